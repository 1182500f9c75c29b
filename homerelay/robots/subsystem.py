"""
Robot Subsystem
===============

Owns a direct session to each configured robot unit and exposes a small
command/status surface to the hub.

Per unit:
  - a supervisor thread keeps the session up, reconnecting with exponential
    backoff (1 s doubling to 60 s);
  - a single-worker executor serializes vendor commands, so a slow robot only
    delays its own queue;
  - the last reported state is cached and served by ``get_cached_status``
    without touching the network.

Status changes are published to subscribers as :class:`RobotEvent`. Units
with missing credentials are skipped with a warning; the hub still works for
every other device class.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Iterable

from homerelay.domain.exceptions import (
    ExternalServiceError,
    NotConnectedError,
    NotFoundError,
    ValidationError,
)
from homerelay.enums.messages import RobotCommand, RobotEventKind
from homerelay.robots.drivers import RobotDriver, create_driver
from homerelay.robots.models import (
    VACUUM,
    RobotUnitConfig,
    error_status,
    placeholder_status,
    status_from_reported,
)

logger = logging.getLogger(__name__)

RECONNECT_INITIAL_SECONDS = 1.0
RECONNECT_MAX_SECONDS = 60.0
CONNECTED_CHECK_SECONDS = 5.0

# Vendor command issued for each relay command.
_VENDOR_COMMANDS: dict[RobotCommand, str] = {
    RobotCommand.START: "start",
    RobotCommand.PAUSE: "pause",
    RobotCommand.RESUME: "resume",
    RobotCommand.STOP: "stop",
    RobotCommand.DOCK: "dock",
    RobotCommand.CLEAN_ROOM: "start",
}

_RESULT_STATUS: dict[RobotCommand, str] = {
    RobotCommand.START: "started",
    RobotCommand.PAUSE: "paused",
    RobotCommand.RESUME: "resumed",
    RobotCommand.STOP: "stopped",
    RobotCommand.DOCK: "docking",
    RobotCommand.CLEAN_ROOM: "cleaning_room",
}


@dataclass
class RobotEvent:
    kind: RobotEventKind
    robot_id: str | None = None
    connected: bool | None = None
    statuses: dict[str, dict[str, Any]] = field(default_factory=dict)


class _RobotUnit:
    def __init__(self, config: RobotUnitConfig, driver: RobotDriver) -> None:
        self.config = config
        self.driver = driver
        self.connected = False
        self.last_state: dict[str, Any] | None = None
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"robot-{config.id}")
        self.supervisor: threading.Thread | None = None


class RobotSubsystem:
    """Direct sessions to robot units with per-unit command queues."""

    def __init__(
        self,
        units: Iterable[RobotUnitConfig],
        driver_factory: Callable[[RobotUnitConfig], RobotDriver] | None = None,
        *,
        reconnect_initial: float = RECONNECT_INITIAL_SECONDS,
        reconnect_max: float = RECONNECT_MAX_SECONDS,
        check_interval: float = CONNECTED_CHECK_SECONDS,
    ) -> None:
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._running = False
        self._reconnect_initial = reconnect_initial
        self._reconnect_max = reconnect_max
        self._check_interval = check_interval
        self._listeners: list[Callable[[RobotEvent], None]] = []
        self._units: dict[str, _RobotUnit] = {}

        factory = driver_factory or create_driver
        for config in units:
            if not config.configured:
                logger.warning("⚠️ %s credentials not configured, unit disabled", config.name)
                continue
            try:
                driver = factory(config)
            except Exception as exc:
                logger.error("Failed to initialize %s: %s", config.name, exc, exc_info=True)
                continue
            driver.set_callbacks(
                on_state=partial(self._on_state, config.id),
                on_disconnect=partial(self._on_disconnect, config.id),
            )
            self._units[config.id] = _RobotUnit(config, driver)

        logger.info("Robot subsystem initialized with %d unit(s)", len(self._units))

    # ==================== Subscription ====================

    def subscribe(self, callback: Callable[[RobotEvent], None]) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return _unsubscribe

    def _emit(self, event: RobotEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.error("Robot event listener failed: %s", exc, exc_info=True)

    # ==================== Lifecycle ====================

    def start(self) -> None:
        if self._running:
            logger.warning("Robot subsystem already running")
            return
        self._running = True
        self._stop_event.clear()
        for unit in self._units.values():
            unit.supervisor = threading.Thread(
                target=self._supervise,
                args=(unit,),
                daemon=True,
                name=f"RobotSupervisor-{unit.config.id}",
            )
            unit.supervisor.start()
        logger.info("Robot subsystem started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop supervisors and command workers. Not restartable."""
        was_running = self._running
        self._running = False
        self._stop_event.set()
        for unit in self._units.values():
            if unit.supervisor is not None:
                unit.supervisor.join(timeout=timeout)
                unit.supervisor = None
            unit.executor.shutdown(wait=False, cancel_futures=True)
            if not was_running:
                continue
            try:
                unit.driver.disconnect()
            except Exception as exc:
                logger.warning("Error disconnecting %s: %s", unit.config.name, exc)
        logger.info("Robot subsystem stopped")

    def is_running(self) -> bool:
        return self._running

    def _supervise(self, unit: _RobotUnit) -> None:
        delay = self._reconnect_initial
        while not self._stop_event.is_set():
            if unit.connected:
                delay = self._reconnect_initial
                self._stop_event.wait(self._check_interval)
                continue

            if unit.driver.is_connected:
                # The driver re-established the session by itself.
                self._set_connected(unit, True)
                continue

            try:
                unit.driver.connect()
            except Exception as exc:
                logger.warning(
                    "%s connection failed: %s (retrying in %.0fs)", unit.config.name, exc, delay
                )
                self._stop_event.wait(delay)
                delay = min(delay * 2, self._reconnect_max)
                continue

            self._set_connected(unit, True)

    # ==================== Driver callbacks ====================

    def _on_state(self, robot_id: str, reported: dict[str, Any]) -> None:
        unit = self._units[robot_id]
        with self._lock:
            unit.last_state = dict(reported)
        if not unit.connected:
            self._set_connected(unit, True)

    def _on_disconnect(self, robot_id: str, error: Any = None) -> None:
        self._set_connected(self._units[robot_id], False)

    def _set_connected(self, unit: _RobotUnit, connected: bool) -> None:
        with self._lock:
            if unit.connected == connected:
                return
            unit.connected = connected
        if connected:
            logger.info("✅ %s connected", unit.config.name)
        else:
            logger.warning("❌ %s disconnected", unit.config.name)
        self._emit(
            RobotEvent(
                kind=RobotEventKind.CONNECTIVITY,
                robot_id=unit.config.id,
                connected=connected,
                statuses={unit.config.id: self._status_or_error(unit.config.id)},
            )
        )

    # ==================== Queries ====================

    def has_unit(self, robot_id: str) -> bool:
        return robot_id in self._units

    def is_connected(self, robot_id: str) -> bool:
        return self._require(robot_id).connected

    def list_units(self) -> list[dict[str, Any]]:
        return [
            {
                "id": unit.config.id,
                "name": unit.config.name,
                "type": unit.config.type,
                "connected": unit.connected,
            }
            for unit in self._units.values()
        ]

    def get_cached_status(self, robot_id: str) -> dict[str, Any]:
        """Last known status; never blocks on the robot."""
        unit = self._require(robot_id)
        with self._lock:
            connected = unit.connected
            reported = dict(unit.last_state) if unit.last_state is not None else None
        if not connected or reported is None:
            return placeholder_status(unit.config, connected=connected)
        return status_from_reported(unit.config, reported)

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Cached status of every unit; a unit that fails gets an error record."""
        return {robot_id: self._status_or_error(robot_id) for robot_id in self._units}

    def _status_or_error(self, robot_id: str) -> dict[str, Any]:
        try:
            return self.get_cached_status(robot_id)
        except Exception as exc:
            logger.error("Failed to build status for %s: %s", robot_id, exc, exc_info=True)
            return error_status(robot_id, exc)

    def poll(self) -> dict[str, dict[str, Any]]:
        """Publish the cached status of every unit."""
        statuses = self.get_all_status()
        if statuses:
            self._emit(RobotEvent(kind=RobotEventKind.STATUS, statuses=statuses))
        return statuses

    def _require(self, robot_id: str) -> _RobotUnit:
        unit = self._units.get(robot_id)
        if unit is None:
            raise NotFoundError(f"Robot {robot_id} not found")
        return unit

    # ==================== Commands ====================

    def issue_command(self, robot_id: str, command: str, args: dict[str, Any] | None = None) -> Future:
        """Queue a command on the unit's worker.

        Raises:
            NotFoundError: unknown unit
            ValidationError: unknown command, or clean_room on a non-vacuum
            NotConnectedError: the unit has no live session
        """
        unit = self._require(robot_id)
        try:
            robot_command = RobotCommand(command)
        except ValueError:
            raise ValidationError(f"Unknown robot command {command!r}") from None

        if robot_command == RobotCommand.CLEAN_ROOM:
            if unit.config.type != VACUUM:
                raise ValidationError(f"{unit.config.name} does not support clean_room")
            if (args or {}).get("room") is None:
                raise ValidationError("clean_room requires a room")
        if not unit.connected:
            raise NotConnectedError(f"{unit.config.name} not connected")

        return unit.executor.submit(self._run_command, unit, robot_command, dict(args or {}))

    def _run_command(self, unit: _RobotUnit, command: RobotCommand, args: dict[str, Any]) -> dict[str, Any]:
        params = self._clean_room_params(unit, args) if command == RobotCommand.CLEAN_ROOM else None
        try:
            unit.driver.send_command(_VENDOR_COMMANDS[command], params)
        except Exception as exc:
            logger.error("%s command %s failed: %s", unit.config.name, command.value, exc)
            raise ExternalServiceError(f"{unit.config.name} rejected {command.value}: {exc}") from exc

        logger.info("🤖 %s: %s", unit.config.name, command.value)
        result: dict[str, Any] = {"status": _RESULT_STATUS[command], "robot": unit.config.id}
        if command == RobotCommand.CLEAN_ROOM:
            result["room"] = args.get("room")
        return result

    def _clean_room_params(self, unit: _RobotUnit, args: dict[str, Any]) -> dict[str, Any]:
        room = args["room"]
        with self._lock:
            pmaps = (unit.last_state or {}).get("pmaps") or []
        # pmaps is a list of {pmap_id: version} mappings.
        pmap_id = next(iter(pmaps[0]), "") if pmaps and isinstance(pmaps[0], dict) else ""
        return {
            "ordered": 1,
            "pmap_id": pmap_id,
            "regions": [{"region_id": str(room), "type": "rid"}],
        }
