"""Robot unit configuration and status records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from homerelay.schemas.state import RobotStatus
from homerelay.utils.time import iso_now

VACUUM = "vacuum"
MOP = "mop"


@dataclass(frozen=True)
class RobotUnitConfig:
    """Static description of one robot the subsystem talks to directly."""

    id: str
    name: str
    type: str
    address: str | None = None
    blid: str | None = None
    password: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.address and self.blid and self.password)


def _battery(value: Any) -> int:
    # Firmware reports batPct as an int; tolerate floats and junk.
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0


def status_from_reported(unit: RobotUnitConfig, reported: dict[str, Any]) -> dict[str, Any]:
    """Map a robot's reported-state document to a RobotStatus record."""
    mission = reported.get("cleanMissionStatus")
    if not isinstance(mission, dict):
        mission = {}
    bin_state = reported.get("bin")
    pose = reported.get("pose")
    return RobotStatus(
        robot=unit.id,
        name=unit.name,
        type=unit.type,
        connected=True,
        battery=_battery(reported.get("batPct")),
        phase=str(mission.get("phase") or "unknown"),
        cycle=str(mission.get("cycle") or "none"),
        binFull=bool(bin_state.get("full", False)) if isinstance(bin_state, dict) else False,
        error=mission.get("error") or None,
        position=pose if isinstance(pose, dict) else None,
        lastUpdate=iso_now(),
    ).model_dump()


def placeholder_status(unit: RobotUnitConfig, *, connected: bool) -> dict[str, Any]:
    """Record for a unit that has not reported state yet."""
    return RobotStatus(
        robot=unit.id,
        name=unit.name,
        type=unit.type,
        connected=connected,
        battery=0,
        phase="waiting" if connected else "disconnected",
        error=None if connected else "Not connected to robot",
        lastUpdate=iso_now(),
    ).model_dump()


def error_status(robot_id: str, error: Exception | str) -> dict[str, Any]:
    """Record for a unit whose status could not be built."""
    return RobotStatus(
        robot=robot_id,
        connected=False,
        phase="error",
        error=str(error),
        lastUpdate=iso_now(),
    ).model_dump()
