from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from infrastructure.database.ops.history import HistoryOperations


@dataclass(frozen=True)
class HistoryRepository:
    _backend: HistoryOperations

    def add_irrigation(self, action: str, duration: float = 0, water_used: float = 0) -> int | None:
        return self._backend.insert_irrigation_log(action, duration, water_used)

    def add_robot_mission(
        self, robot_id: str, action: str, status: str, details: dict[str, Any] | None = None
    ) -> int | None:
        return self._backend.insert_robot_log(robot_id, action, status, details)

    def irrigation(self, limit: int = 50) -> list[dict[str, Any]]:
        return self._backend.get_irrigation_logs(limit)

    def robots(self, limit: int = 50, robot_id: str | None = None) -> list[dict[str, Any]]:
        return self._backend.get_robot_logs(limit, robot_id)
