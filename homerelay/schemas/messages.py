"""
Wire messages
=============

Every message on every namespace is a JSON object with a ``type`` tag.
Inbound traffic is parsed into a closed tagged union per direction; a payload
that is not JSON, is not an object, or carries a tag outside the union raises
:class:`MalformedMessageError`.

Outbound messages are plain dicts built with :func:`hub_message`.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from homerelay.domain.exceptions import MalformedMessageError
from homerelay.enums.messages import HubMessageType


class _Message(BaseModel):
    # Unknown fields are kept so forwarded messages reach controllers verbatim.
    model_config = ConfigDict(extra="allow")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ── device -> hub ────────────────────────────────────────────────────


class AuthMessage(_Message):
    type: Literal["AUTH"]
    secret: str | None = None


class StateMessage(_Message):
    type: Literal["STATE"]
    data: dict[str, Any]


class AckMessage(_Message):
    type: Literal["ACK"]


class IrrigationCompleteMessage(_Message):
    type: Literal["IRRIGATION_COMPLETE"]


class RobotResponseMessage(_Message):
    type: Literal["ROBOT_RESPONSE"]
    robot: str | None = None
    command: str | None = None
    status: str | None = None


class SchedulesMessage(_Message):
    type: Literal["SCHEDULES"]


DeviceMessage = Annotated[
    Union[
        AuthMessage,
        StateMessage,
        AckMessage,
        IrrigationCompleteMessage,
        RobotResponseMessage,
        SchedulesMessage,
    ],
    Field(discriminator="type"),
]


# ── controller -> hub ────────────────────────────────────────────────


class ShutterCommandMessage(_Message):
    type: Literal["COMMAND"]
    token: str | None = None
    action: str | None = None
    channel: Any = None
    value: Any = None


class IrrigationCommandMessage(_Message):
    type: Literal["IRRIGATION_COMMAND"]
    token: str | None = None
    action: str | None = None
    duration: float | None = None


class RobotCommandMessage(_Message):
    type: Literal["ROBOT_COMMAND"]
    token: str | None = None
    robot: str | None = None
    command: str | None = None
    args: dict[str, Any] | None = None


ControllerMessage = Annotated[
    Union[ShutterCommandMessage, IrrigationCommandMessage, RobotCommandMessage],
    Field(discriminator="type"),
]

_device_adapter: TypeAdapter[DeviceMessage] = TypeAdapter(DeviceMessage)
_controller_adapter: TypeAdapter[ControllerMessage] = TypeAdapter(ControllerMessage)


def _load(raw: Any) -> dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessageError("Message is not valid UTF-8") from exc
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedMessageError("Message is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise MalformedMessageError("Message must be a JSON object")
    return raw


def parse_device_message(raw: Any) -> DeviceMessage:
    """Parse a device-to-hub payload (dict, JSON text or bytes)."""
    payload = _load(raw)
    try:
        return _device_adapter.validate_python(payload)
    except PydanticValidationError as exc:
        raise MalformedMessageError(
            f"Unrecognised device message type={payload.get('type')!r}",
            detail={"errors": exc.errors(include_url=False)},
        ) from exc


def parse_controller_message(raw: Any) -> ControllerMessage:
    """Parse a controller-to-hub payload (dict, JSON text or bytes)."""
    payload = _load(raw)
    try:
        return _controller_adapter.validate_python(payload)
    except PydanticValidationError as exc:
        raise MalformedMessageError(
            f"Unrecognised controller message type={payload.get('type')!r}",
            detail={"errors": exc.errors(include_url=False)},
        ) from exc


def hub_message(message_type: HubMessageType, **fields: Any) -> dict[str, Any]:
    """Build an outbound message dict."""
    return {"type": message_type.value, **fields}
