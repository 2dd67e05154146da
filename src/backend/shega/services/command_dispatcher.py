"""Command dispatcher for operator fan/buzzer directives.

Commands are addressed by topic, one control topic per device type, and
published once with no acknowledgement. Whether the device applied the
command is only visible in its next reading.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import structlog

from shega.core.metrics import record_command
from shega.core.topics import BusTopics
from shega.schemas.telemetry import ControlCommand
from shega.services.contracts import DeviceRegistry, LiveFanout, Publisher
from shega.services.mqtt_service import PublishError

logger = structlog.get_logger()


class CommandDispatchError(Exception):
    """Base exception for command dispatch."""
    pass


class DeviceNotFoundError(CommandDispatchError):
    """No registered device has the requested id."""
    pass


class InvalidCommandError(CommandDispatchError):
    """Command is not a non-empty mapping."""
    pass


@dataclass(frozen=True)
class DispatchResult:
    topic: str
    payload: dict[str, Any]


class CommandDispatcher:
    """Publishes operator commands to a device's control topic."""

    def __init__(
        self,
        registry: DeviceRegistry,
        publisher: Publisher,
        topics: BusTopics,
        fanout: LiveFanout | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.registry = registry
        self.publisher = publisher
        self.topics = topics
        self.fanout = fanout
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def dispatch(self, device_id: str, command: Mapping[str, Any]) -> DispatchResult:
        """Publish ``command`` for ``device_id``.

        Raises:
            InvalidCommandError: ``command`` is empty or not a mapping.
            DeviceNotFoundError: The registry has no such device.
            PublishError: The transport would not take the message.
        """
        if not isinstance(command, Mapping) or not command:
            raise InvalidCommandError("command must be a non-empty object")

        device = await self.registry.find_by_device_id(device_id)
        if device is None:
            record_command("unknown", "not_found")
            raise DeviceNotFoundError(f"Device {device_id} not found")

        topic = self.topics.control(device.type)
        control = ControlCommand(
            device_id=device.device_id,
            home_id=device.home_id,
            command=dict(command),
            issued_at=self.clock(),
        )
        payload = control.to_wire()

        try:
            await self.publisher.publish(topic, payload)
        except PublishError:
            record_command(device.type, "publish_error")
            logger.error("Control publish failed", device_id=device_id, topic=topic)
            raise
        except Exception as e:
            record_command(device.type, "publish_error")
            logger.error("Control publish failed", device_id=device_id, topic=topic, error=str(e))
            raise PublishError(str(e)) from e

        record_command(device.type, "published")
        logger.info("Control command published", device_id=device_id, topic=topic, command=payload["command"])

        if self.fanout is not None:
            try:
                await self.fanout.emit_command(payload)
            except Exception as e:
                logger.error("Live fan-out failed", channel="command", error=str(e))

        return DispatchResult(topic=topic, payload=payload)
