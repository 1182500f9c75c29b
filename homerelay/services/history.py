"""
History Sink
============

Best-effort audit log of irrigation runs and robot missions.

Writes are handed to a single background worker and return immediately;
a failing write is logged and never reaches the caller, so relay traffic is
unaffected by storage problems. Reads are synchronous and return ``[]`` on
failure. A disabled sink accepts every call and stores nothing.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from infrastructure.database.repositories.history import HistoryRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 500


def clamp_limit(limit: Any, default: int = DEFAULT_HISTORY_LIMIT) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return default
    return max(1, min(value, MAX_HISTORY_LIMIT))


class HistorySink:
    def __init__(
        self, repository: HistoryRepository | None, database: SQLiteDatabaseHandler | None = None
    ) -> None:
        self._repository = repository
        self._database = database
        self._executor: ThreadPoolExecutor | None = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="history") if repository is not None else None
        )

    @classmethod
    def from_path(cls, database_path: str) -> "HistorySink":
        """Open (and create if needed) the history database."""
        try:
            handler = SQLiteDatabaseHandler(database_path)
            handler.init_db()
        except Exception as exc:
            logger.error("History storage unavailable (%s): %s; history disabled", database_path, exc)
            return cls.disabled()
        logger.info("📚 History enabled (%s)", database_path)
        return cls(HistoryRepository(handler), handler)

    @classmethod
    def disabled(cls) -> "HistorySink":
        return cls(None)

    @property
    def enabled(self) -> bool:
        return self._repository is not None

    # ── writes ───────────────────────────────────────────────────────

    def log_irrigation(self, action: str, duration: float = 0, water_used: float = 0) -> Future | None:
        if self._repository is None:
            return None
        return self._submit(
            "irrigation", self._repository.add_irrigation, action, duration or 0, water_used or 0
        )

    def log_robot_mission(
        self, robot_id: str, action: str, status: str, details: dict[str, Any] | None = None
    ) -> Future | None:
        if self._repository is None:
            return None
        return self._submit("robot mission", self._repository.add_robot_mission, robot_id, action, status, details)

    def _submit(self, what: str, func: Any, *args: Any) -> Future | None:
        if self._executor is None:
            return None
        try:
            future = self._executor.submit(func, *args)
        except RuntimeError as exc:
            # Executor already shut down.
            logger.warning("Dropping %s log: %s", what, exc)
            return None

        def _on_done(done: Future) -> None:
            exc = None if done.cancelled() else done.exception()
            if exc is not None:
                logger.error("Error logging %s: %s", what, exc)

        future.add_done_callback(_on_done)
        return future

    # ── reads ────────────────────────────────────────────────────────

    def irrigation_history(self, limit: Any = DEFAULT_HISTORY_LIMIT) -> list[dict[str, Any]]:
        if self._repository is None:
            return []
        try:
            return self._repository.irrigation(clamp_limit(limit))
        except Exception as exc:
            logger.error("Error fetching irrigation history: %s", exc)
            return []

    def robot_history(self, limit: Any = DEFAULT_HISTORY_LIMIT, robot_id: str | None = None) -> list[dict[str, Any]]:
        if self._repository is None:
            return []
        try:
            return self._repository.robots(clamp_limit(limit), robot_id)
        except Exception as exc:
            logger.error("Error fetching robot history: %s", exc)
            return []

    def flush(self, timeout: float | None = None) -> None:
        """Wait until every write queued so far has been applied."""
        if self._executor is None:
            return
        self._executor.submit(lambda: None).result(timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        if self._database is not None:
            self._database.close_db()
