"""Ingestion router: one entry point per inbound bus message.

Pipeline for a telemetry message:
decode -> normalize -> registry upsert -> persist -> fan-out -> evaluate -> alert.

Every failure is terminal for that one message only. Nothing raised here
escapes ``on_message``, so a bad payload can never stop the subscription.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Sequence

import structlog

from shega.core.metrics import record_alert_item, record_ingest_outcome
from shega.core.topics import BusTopics
from shega.schemas.telemetry import STREAM_DEVICE_KIND, CanonicalReading
from shega.services.contracts import DeviceRegistry, LiveFanout, Publisher, TelemetryStore
from shega.services.normalizer import IdentityResolver, normalize
from shega.services.threshold_evaluator import (
    DEFAULT_THRESHOLDS,
    ThresholdConfig,
    build_alert_record,
    evaluate,
)

logger = structlog.get_logger()


class IngestionError(Exception):
    """Base exception for a dropped inbound message."""
    pass


class MalformedInputError(IngestionError):
    """Payload bytes are not a JSON object."""
    pass


class UnresolvedIdentityError(IngestionError):
    """homeId, deviceId or stream could not be resolved."""
    pass


class RegistryFailureError(IngestionError):
    """Device registry upsert failed."""
    pass


class PersistenceFailureError(IngestionError):
    """Telemetry store append failed."""
    pass


class IngestOutcome(str, Enum):
    PERSISTED = "persisted"
    ALERTED = "alerted"
    RELAYED = "relayed"
    DROPPED_MALFORMED = "dropped_malformed"
    DROPPED_UNRESOLVED = "dropped_unresolved"
    DROPPED_REGISTRY = "dropped_registry"
    DROPPED_PERSISTENCE = "dropped_persistence"
    DROPPED_ERROR = "dropped_error"
    IGNORED_ECHO = "ignored_echo"


_ERROR_OUTCOMES: dict[type[IngestionError], IngestOutcome] = {
    MalformedInputError: IngestOutcome.DROPPED_MALFORMED,
    UnresolvedIdentityError: IngestOutcome.DROPPED_UNRESOLVED,
    RegistryFailureError: IngestOutcome.DROPPED_REGISTRY,
    PersistenceFailureError: IngestOutcome.DROPPED_PERSISTENCE,
}


def decode_payload(raw: bytes | bytearray | str | dict) -> dict[str, Any]:
    """Decode a bus payload into a JSON object.

    Raises:
        MalformedInputError: Not UTF-8, not JSON, or not an object.
    """
    if isinstance(raw, dict):
        return raw
    try:
        text = raw.decode() if isinstance(raw, (bytes, bytearray)) else raw
        data = json.loads(text)
    except (ValueError, TypeError) as e:
        raise MalformedInputError(str(e)) from e
    if not isinstance(data, dict):
        raise MalformedInputError(f"expected JSON object, got {type(data).__name__}")
    return data


class IngestionRouter:
    """Turns inbound bus messages into persisted, fanned-out, evaluated readings."""

    def __init__(
        self,
        registry: DeviceRegistry,
        store: TelemetryStore,
        fanout: LiveFanout,
        publisher: Publisher,
        topics: BusTopics,
        thresholds: ThresholdConfig = DEFAULT_THRESHOLDS,
        identity_resolvers: Sequence[IdentityResolver] | None = None,
        clock: Callable[[], datetime] | None = None,
        source_id: str = "shega-backend",
    ):
        self.registry = registry
        self.store = store
        self.fanout = fanout
        self.publisher = publisher
        self.topics = topics
        self.thresholds = thresholds
        self.identity_resolvers = identity_resolvers
        self.clock = clock
        self.source_id = source_id

    async def on_message(self, topic: str, raw: bytes | bytearray | str | dict) -> IngestOutcome:
        """Process one inbound message to completion or drop it."""
        try:
            outcome = await self._process(topic, raw)
        except IngestionError as e:
            outcome = _ERROR_OUTCOMES[type(e)]
            logger.warning("Dropped inbound message", topic=topic, outcome=outcome.value, error=str(e))
        except Exception as e:
            outcome = IngestOutcome.DROPPED_ERROR
            logger.error("Unexpected ingestion error", topic=topic, error=str(e), exc_info=True)
        record_ingest_outcome(outcome.value)
        return outcome

    async def _process(self, topic: str, raw: bytes | bytearray | str | dict) -> IngestOutcome:
        payload = decode_payload(raw)

        if topic == self.topics.alerts:
            if payload.get("source") == self.source_id:
                # our own derived alert coming back; already fanned out
                return IngestOutcome.IGNORED_ECHO
            await self._safe_emit(self.fanout.emit_alert, payload, "alert")
            logger.debug("Relayed external alert", topic=topic, home_id=payload.get("homeId"))
            return IngestOutcome.RELAYED

        now = self.clock() if self.clock else None
        reading = normalize(topic, payload, now=now, identity_resolvers=self.identity_resolvers)
        logger.debug(
            "Normalized telemetry",
            topic=topic,
            home_id=reading.home_id,
            device_id=reading.device_id,
            stream=reading.stream.value,
        )
        if not reading.is_usable:
            raise UnresolvedIdentityError(
                f"home_id={reading.home_id!r} device_id={reading.device_id!r} stream={reading.stream.value}"
            )

        device_type = STREAM_DEVICE_KIND[reading.stream].value
        try:
            device = await self.registry.upsert(reading.device_id, reading.home_id, device_type)
        except Exception as e:
            raise RegistryFailureError(str(e)) from e

        try:
            document = await self.store.append(reading, device)
        except Exception as e:
            raise PersistenceFailureError(str(e)) from e

        logger.info("Telemetry saved", device_id=reading.device_id, stream=reading.stream.value)
        await self._safe_emit(self.fanout.emit_telemetry, document, "telemetry")

        if await self._publish_alerts(reading, now):
            return IngestOutcome.ALERTED
        return IngestOutcome.PERSISTED

    async def _publish_alerts(self, reading: CanonicalReading, now: datetime | None) -> bool:
        record = build_alert_record(reading, evaluate(reading, self.thresholds), now=now)
        if record is None:
            return False

        body = record.to_wire()
        body["source"] = self.source_id
        try:
            await self.publisher.publish(self.topics.alerts, body)
            logger.info(
                "Alert published",
                topic=self.topics.alerts,
                home_id=record.home_id,
                device_id=record.device_id,
                alerts=[f"{item.type.value}/{item.level.value}" for item in record.items],
            )
        except Exception as e:
            logger.error("Failed to publish alert", home_id=record.home_id, device_id=record.device_id, error=str(e))

        for item in record.items:
            record_alert_item(item.type.value, item.level.value)
        await self._safe_emit(self.fanout.emit_alert, body, "alert")
        return True

    @staticmethod
    async def _safe_emit(emit, data: dict[str, Any], event: str) -> None:
        try:
            await emit(data)
        except Exception as e:
            logger.error("Live fan-out failed", channel=event, error=str(e))
