from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from infrastructure.utils.time import iso_now

logger = logging.getLogger(__name__)


class HistoryOperations:
    """Database operations for the IrrigationLogs and RobotLogs tables."""

    def insert_irrigation_log(self, action: str, duration: float = 0, water_used: float = 0) -> Optional[int]:
        with self.connection() as db:
            cur = db.execute(
                """
                INSERT INTO IrrigationLogs (action, duration, water_used, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (action, duration, water_used, iso_now()),
            )
            return cur.lastrowid

    def insert_robot_log(
        self, robot_id: str, action: str, status: str, details: Optional[Dict[str, Any]] = None
    ) -> Optional[int]:
        details_json = json.dumps(details, default=str) if details else None
        with self.connection() as db:
            cur = db.execute(
                """
                INSERT INTO RobotLogs (robot_id, action, status, details, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (robot_id, action, status, details_json, iso_now()),
            )
            return cur.lastrowid

    def get_irrigation_logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        with self.connection() as db:
            cur = db.execute(
                "SELECT * FROM IrrigationLogs ORDER BY created_at DESC, log_id DESC LIMIT ?",
                (limit,),
            )
            return [dict(row) for row in cur.fetchall()]

    def get_robot_logs(self, limit: int = 50, robot_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM RobotLogs"
        params: List[Any] = []
        if robot_id:
            query += " WHERE robot_id = ?"
            params.append(robot_id)
        query += " ORDER BY created_at DESC, log_id DESC LIMIT ?"
        params.append(limit)
        with self.connection() as db:
            rows = [dict(row) for row in db.execute(query, params).fetchall()]
        for row in rows:
            if row.get("details"):
                try:
                    row["details"] = json.loads(row["details"])
                except (TypeError, ValueError) as exc:
                    logger.debug("Unreadable RobotLogs.details for id=%s: %s", row.get("log_id"), exc)
        return rows

