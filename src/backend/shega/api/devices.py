"""Device control endpoint."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from shega.core.deps import get_command_dispatcher
from shega.services.command_dispatcher import (
    CommandDispatcher,
    DeviceNotFoundError,
    InvalidCommandError,
)
from shega.services.mqtt_service import PublishError

router = APIRouter()


class ControlRequest(BaseModel):
    """Control request, e.g. ``{"command": {"fanOn": true}}``."""
    command: dict[str, Any] = Field(..., description="Capability name to target value")


class ControlResponse(BaseModel):
    ok: bool = True
    topic: str
    payload: dict[str, Any]


@router.post("/{device_id}/control", response_model=ControlResponse)
async def send_device_control(
    device_id: str,
    body: ControlRequest,
    dispatcher: CommandDispatcher = Depends(get_command_dispatcher),
):
    """Publish a control command to the device's control topic.

    Fire-and-forget: a 200 means the broker accepted the message, not that
    the device applied it.
    """
    try:
        result = await dispatcher.dispatch(device_id, body.command)
    except InvalidCommandError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except DeviceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PublishError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"MQTT publish failed: {e}")

    return ControlResponse(topic=result.topic, payload=result.payload)
