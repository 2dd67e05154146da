"""Tests for CommandDispatcher."""

import pytest

from shega.services.command_dispatcher import (
    CommandDispatcher,
    DeviceNotFoundError,
    InvalidCommandError,
)
from shega.services.contracts import DeviceRef
from shega.services.mqtt_service import PublishError

STOVE = DeviceRef(device_id="STOVE_HOME_02", home_id="HOME_02", type="STOVENODE")


@pytest.fixture
def dispatcher(registry, publisher, fanout, topics, clock) -> CommandDispatcher:
    registry.find_by_device_id.return_value = STOVE
    return CommandDispatcher(registry=registry, publisher=publisher, topics=topics, fanout=fanout, clock=clock)


@pytest.mark.asyncio
class TestDispatch:
    """Tests for CommandDispatcher.dispatch()."""

    async def test_publishes_to_type_control_topic(self, dispatcher, publisher):
        result = await dispatcher.dispatch("STOVE_HOME_02", {"fanOn": True})

        assert result.topic == "shega/stovenode/control"
        publisher.publish.assert_awaited_once_with(
            "shega/stovenode/control",
            {
                "deviceId": "STOVE_HOME_02",
                "homeId": "HOME_02",
                "command": {"fanOn": True},
                "ts": "2025-03-01T12:00:00Z",
            },
        )
        assert result.payload["command"] == {"fanOn": True}

    async def test_command_is_fanned_out(self, dispatcher, fanout):
        result = await dispatcher.dispatch("STOVE_HOME_02", {"buzzerOn": False})
        fanout.emit_command.assert_awaited_once_with(result.payload)

    async def test_unknown_device(self, dispatcher, registry, publisher):
        registry.find_by_device_id.return_value = None

        with pytest.raises(DeviceNotFoundError):
            await dispatcher.dispatch("STOVE_HOME_99", {"fanOn": True})
        publisher.publish.assert_not_awaited()

    @pytest.mark.parametrize("command", [{}, None, ["fanOn"]])
    async def test_invalid_command(self, dispatcher, registry, command):
        with pytest.raises(InvalidCommandError):
            await dispatcher.dispatch("STOVE_HOME_02", command)
        registry.find_by_device_id.assert_not_awaited()

    async def test_publish_error_propagates(self, dispatcher, publisher, fanout):
        publisher.publish.side_effect = PublishError("MQTT client not connected")

        with pytest.raises(PublishError):
            await dispatcher.dispatch("STOVE_HOME_02", {"fanOn": True})
        fanout.emit_command.assert_not_awaited()

    async def test_transport_exception_becomes_publish_error(self, dispatcher, publisher):
        publisher.publish.side_effect = OSError("connection reset")

        with pytest.raises(PublishError):
            await dispatcher.dispatch("STOVE_HOME_02", {"fanOn": True})

    async def test_fanout_failure_does_not_fail_dispatch(self, dispatcher, fanout):
        fanout.emit_command.side_effect = RuntimeError("socket error")

        result = await dispatcher.dispatch("STOVE_HOME_02", {"fanOn": True})
        assert result.topic == "shega/stovenode/control"

    async def test_airnode_topic(self, dispatcher, registry, publisher):
        registry.find_by_device_id.return_value = DeviceRef("AIR_HOME_01", "HOME_01", "AIRNODE")

        result = await dispatcher.dispatch("AIR_HOME_01", {"led": "on"})
        assert result.topic == "shega/airnode/control"
