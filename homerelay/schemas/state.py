"""State payloads held by the device registry.

The registry stores plain dicts (devices send complete blobs and whatever
they send is kept verbatim), so these models only describe the initial
values and the records the robot subsystem produces.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from homerelay.enums.devices import DeviceClass

ShutterDirection = Literal[0, 1, 2]  # stopped, opening, closing


class ShutterChannel(BaseModel):
    pos: int = Field(default=0, ge=0, le=100)
    dir: ShutterDirection = 0


class ShuttersState(BaseModel):
    s1: ShutterChannel = Field(default_factory=ShutterChannel)
    s2: ShutterChannel = Field(default_factory=ShutterChannel)
    s3: ShutterChannel = Field(default_factory=ShutterChannel)
    s4: ShutterChannel = Field(default_factory=ShutterChannel)
    lastUpdate: str | None = None


class IrrigationState(BaseModel):
    active: bool = False
    duration: float = 0
    elapsed: float = 0
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    lastUpdate: str | None = None


class RobotStatus(BaseModel):
    """Status record for one robot as exposed to controllers."""

    robot: str
    name: str | None = None
    type: str | None = None
    connected: bool = False
    battery: int = 0
    phase: str = "unknown"
    cycle: str | None = None
    binFull: bool | None = None
    error: Any = None
    position: dict[str, Any] | None = None
    lastUpdate: str | None = None


def initial_state(device_class: DeviceClass) -> dict[str, Any]:
    """Return the state a class holds before its device ever reports."""
    if device_class == DeviceClass.SHUTTERS:
        return ShuttersState().model_dump()
    if device_class == DeviceClass.IRRIGATION:
        return IrrigationState().model_dump()
    return {"lastUpdate": None}
