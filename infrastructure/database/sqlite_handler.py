import logging
import shutil
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from infrastructure.database.ops.history import HistoryOperations

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


class SQLiteDatabaseHandler(HistoryOperations):
    """Thread-safe SQLite handler for the relay's history tables.

    A single connection is shared by every thread and guarded by a lock, so
    an in-memory database behaves the same as a file-backed one.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None

        if database_path != MEMORY_DATABASE:
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

    @property
    def database_path(self) -> str:
        return self._database_path

    # --- Lifecycle ------------------------------------------------------------
    def init_db(self) -> None:
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        with self._lock:
            if self._connection is None:
                try:
                    self._connection = self._open_connection()
                except sqlite3.DatabaseError as exc:
                    if self._is_corruption_error(exc):
                        logger.error("Database appears corrupt (%s). Recreating a fresh database.", exc)
                        self._quarantine_corrupt_db()
                        self._connection = self._open_connection()
                    else:
                        raise
            return self._connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        message = str(exc).lower()
        return (
            "database disk image is malformed" in message
            or "file is not a database" in message
            or "file is encrypted or is not a database" in message
            or "malformed" in message
        )

    def _quarantine_corrupt_db(self) -> Optional[Path]:
        if self._database_path == MEMORY_DATABASE:
            return None
        db_path = Path(self._database_path)
        if not db_path.exists():
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        quarantine_dir = db_path.parent / "corrupt"
        quarantine_dir.mkdir(parents=True, exist_ok=True)

        suffix = db_path.suffix or ".db"
        quarantined = quarantine_dir / f"{db_path.stem}_corrupt_{timestamp}{suffix}"
        try:
            shutil.move(str(db_path), str(quarantined))
            for sidecar_suffix in ("-wal", "-shm"):
                sidecar = Path(f"{db_path}{sidecar_suffix}")
                if sidecar.exists():
                    shutil.move(str(sidecar), str(quarantine_dir / f"{sidecar.name}_{timestamp}"))
            logger.warning("Quarantined corrupt database to %s", quarantined)
            return quarantined
        except Exception as exc:
            logger.error("Failed to quarantine corrupt database %s: %s", db_path, exc)
            return None

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """WAL + NORMAL synchronous for file databases; in-memory needs nothing."""
        if self._database_path == MEMORY_DATABASE:
            return
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self.get_db()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the history tables if they do not already exist."""
        with self.connection() as db:
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS IrrigationLogs (
                    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    action TEXT NOT NULL,
                    duration REAL DEFAULT 0,
                    water_used REAL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )
            db.execute(
                "CREATE INDEX IF NOT EXISTS idx_irrigation_logs_created ON IrrigationLogs(created_at)"
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS RobotLogs (
                    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    robot_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    status TEXT NOT NULL,
                    details TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            db.execute(
                "CREATE INDEX IF NOT EXISTS idx_robot_logs_created ON RobotLogs(created_at)"
            )
        logger.info("History tables ready (%s)", self._database_path)
