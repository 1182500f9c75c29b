"""
ConnectionHub
=============

Classifies connections, runs the per-connection state machine, applies device
state to the registry and routes controller commands to the single live
device of the addressed class.

State machine::

    connecting -> device_unauthenticated -> device_registered -> closed
    connecting -> controller_active -> closed

    device_unauthenticated -> closed   (bad secret, or any non-AUTH first message)
    device_registered      -> closed   (transport close, eviction)

Threading:
  - Transport callbacks arrive on arbitrary threads (Flask-SocketIO threading
    mode, robot driver threads, the polling worker).
  - register / unregister / replace_state and the broadcast that follows them
    run under the registry's RLock as one unit, so a register-then-broadcast
    can never interleave with an unregister of the same class.
  - The lock is re-entrant because evicting a connection fires that
    connection's close handler on the same thread.
  - Robot vendor calls never run under the lock.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from functools import partial
from typing import Any

from homerelay.domain.exceptions import (
    MalformedMessageError,
    NotConnectedError,
    NotFoundError,
    RelayError,
    TransportError,
    ValidationError,
)
from homerelay.enums.devices import ConnectionRole, ConnectionState, DeviceClass
from homerelay.enums.messages import HubMessageType, RobotCommand, RobotEventKind
from homerelay.hub.auth import AuthGate
from homerelay.hub.broadcaster import Broadcaster
from homerelay.hub.connection import Connection
from homerelay.hub.registry import (
    IRRIGATION_START,
    DeviceRegistry,
    irrigation_transition,
    robot_entries,
)
from homerelay.robots.subsystem import RobotEvent, RobotSubsystem
from homerelay.schemas.messages import (
    AckMessage,
    AuthMessage,
    IrrigationCommandMessage,
    IrrigationCompleteMessage,
    RobotCommandMessage,
    RobotResponseMessage,
    SchedulesMessage,
    ShutterCommandMessage,
    StateMessage,
    hub_message,
    parse_controller_message,
    parse_device_message,
)
from homerelay.services.history import HistorySink

logger = logging.getLogger(__name__)

# Update message pushed to controllers whenever a class's state is replaced.
UPDATE_MESSAGE_TYPES: dict[DeviceClass, HubMessageType] = {
    DeviceClass.SHUTTERS: HubMessageType.STATE_UPDATE,
    DeviceClass.IRRIGATION: HubMessageType.IRRIGATION_UPDATE,
    DeviceClass.ROBOTS: HubMessageType.ROBOTS_UPDATE,
}

_DEVICE_LABELS: dict[DeviceClass, str] = {
    DeviceClass.SHUTTERS: "Shutters device",
    DeviceClass.IRRIGATION: "Irrigation device",
    DeviceClass.ROBOTS: "Robot bridge",
}


class ConnectionHub:
    """Routes traffic between device connections and controller connections."""

    def __init__(
        self,
        registry: DeviceRegistry,
        auth: AuthGate,
        *,
        robots: RobotSubsystem | None = None,
        history: HistorySink | None = None,
    ) -> None:
        self._registry = registry
        self._lock = registry.lock
        self._auth = auth
        self._robots = robots
        self._history = history
        self._connections: dict[str, Connection] = {}
        self._broadcaster = Broadcaster(self.connections)
        self._unsubscribe_robots = robots.subscribe(self._on_robot_event) if robots is not None else None

    # ==================== Connection lifecycle ====================

    def connections(self) -> list[Connection]:
        with self._lock:
            return list(self._connections.values())

    def open(self, connection: Connection) -> None:
        """Accept a freshly upgraded connection."""
        if connection.role == ConnectionRole.DEVICE:
            self.open_device(connection)
        else:
            self.open_controller(connection)

    def open_device(self, connection: Connection) -> None:
        with self._lock:
            self._connections[connection.id] = connection
            connection.state = ConnectionState.DEVICE_UNAUTHENTICATED
        logger.info("🔌 %s connected, awaiting AUTH", connection.describe())

    def open_controller(self, connection: Connection) -> None:
        with self._lock:
            self._connections[connection.id] = connection
            connection.state = ConnectionState.CONTROLLER_ACTIVE
            # Eager push so a fresh controller never has to poll.
            for device_class, message_type in UPDATE_MESSAGE_TYPES.items():
                self._safe_send(connection, hub_message(message_type, data=self._registry.snapshot(device_class)))
        logger.info("📱 %s connected", connection.describe())

    def handle_close(self, connection: Connection) -> None:
        """Transport closed (peer left, protocol error or forced eviction)."""
        with self._lock:
            if self._connections.pop(connection.id, None) is None:
                return
            connection.state = ConnectionState.CLOSED
            device_class = connection.device_class
            if connection.is_device and device_class is not None:
                # Compare-and-clear: a late close from an evicted connection is a no-op.
                if self._registry.unregister(device_class, connection):
                    logger.warning("❌ %s disconnected", _DEVICE_LABELS[device_class])
                    self._broadcast_device_status(device_class, connected=False)
                    return
        logger.info("%s disconnected", connection.describe())

    def close_all(self) -> None:
        for connection in self.connections():
            try:
                connection.close()
            except Exception as exc:
                logger.warning("Error closing %s: %s", connection.describe(), exc)
            self.handle_close(connection)
        if self._unsubscribe_robots is not None:
            self._unsubscribe_robots()
            self._unsubscribe_robots = None

    # ==================== Inbound messages ====================

    def handle_message(self, connection: Connection, raw: Any) -> None:
        if connection.state == ConnectionState.CLOSED:
            logger.debug("Dropping message from closed %s", connection.describe())
            return
        if connection.is_device:
            self._handle_device_message(connection, raw)
        else:
            self._handle_controller_message(connection, raw)

    def _handle_device_message(self, connection: Connection, raw: Any) -> None:
        if connection.state == ConnectionState.DEVICE_UNAUTHENTICATED:
            self._authenticate(connection, raw)
            return

        try:
            message = parse_device_message(raw)
        except MalformedMessageError as exc:
            logger.warning("Discarding malformed message from %s: %s", connection.describe(), exc)
            return

        device_class = connection.device_class
        if device_class is None:
            logger.warning("Ignoring message from %s: no device class", connection.describe())
            return

        with self._lock:
            if not self._registry.is_owner(device_class, connection):
                logger.warning("Ignoring %s from stale %s", message.type, connection.describe())
                return

            if isinstance(message, StateMessage):
                self._apply_device_state(device_class, message.data)
            elif isinstance(message, AckMessage):
                logger.info("✓ %s acknowledged command", _DEVICE_LABELS[device_class])
            elif isinstance(message, RobotResponseMessage):
                self._broadcaster.broadcast(message.to_wire())
                self._log_robot_mission(
                    message.robot or "unknown",
                    message.command or "unknown",
                    message.status or "reported",
                    message.to_wire(),
                )
            elif isinstance(message, (IrrigationCompleteMessage, SchedulesMessage)):
                self._broadcaster.broadcast(message.to_wire())
            elif isinstance(message, AuthMessage):
                logger.debug("Ignoring repeated AUTH from %s", connection.describe())

    def _authenticate(self, connection: Connection, raw: Any) -> None:
        device_class = connection.device_class
        if device_class is None:
            logger.warning("Closing %s: device connection without a class", connection.describe())
            self._close(connection)
            return

        try:
            message = parse_device_message(raw)
        except MalformedMessageError as exc:
            logger.warning("First message from %s is malformed: %s", connection.describe(), exc)
            message = None

        if not isinstance(message, AuthMessage) or not self._auth.validate_device_auth(device_class, message.secret):
            logger.warning("⛔ Authentication failed for %s", connection.describe())
            self._safe_send(connection, hub_message(HubMessageType.AUTH_FAILED))
            self._close(connection)
            return

        with self._lock:
            connection.authenticated = True
            connection.state = ConnectionState.DEVICE_REGISTERED
            self._registry.register(device_class, connection)
            self._safe_send(connection, hub_message(HubMessageType.AUTH_OK))
            self._safe_send(connection, hub_message(HubMessageType.REQUEST_STATE))
            self._broadcast_device_status(device_class, connected=True)
        logger.info("✅ %s authenticated", _DEVICE_LABELS[device_class])

    def _handle_controller_message(self, connection: Connection, raw: Any) -> None:
        try:
            message = parse_controller_message(raw)
        except MalformedMessageError as exc:
            logger.warning("Discarding malformed message from %s: %s", connection.describe(), exc)
            return

        # The token travels with every command; there is no session.
        if not self._auth.validate_controller_token(message.token):
            logger.warning("Ignoring unauthenticated %s from %s", message.type, connection.describe())
            return

        if isinstance(message, ShutterCommandMessage):
            self._forward_shutter_command(message)
        elif isinstance(message, IrrigationCommandMessage):
            self._reply_to_irrigation_command(connection, message)
        elif isinstance(message, RobotCommandMessage):
            self._reply_to_robot_command(connection, message)

    # ==================== Device state ====================

    def _apply_device_state(self, device_class: DeviceClass, data: dict[str, Any]) -> None:
        """Replace the class blob and broadcast it. Caller holds the lock."""
        if device_class == DeviceClass.ROBOTS:
            bridge_entries = robot_entries(data)
            _, committed = self._registry.update_state(
                device_class, lambda current: {**self._subsystem_entries(current), **bridge_entries}
            )
        else:
            previous, committed = self._registry.replace_state(device_class, data)
            if device_class == DeviceClass.IRRIGATION:
                self._record_irrigation_transition(previous, committed)

        logger.debug("📊 %s state updated", device_class.value)
        self._broadcaster.broadcast(hub_message(UPDATE_MESSAGE_TYPES[device_class], data=committed))

    def _record_irrigation_transition(self, previous: dict[str, Any], committed: dict[str, Any]) -> None:
        transition = irrigation_transition(previous, committed)
        if transition is None or self._history is None:
            return
        if transition == IRRIGATION_START:
            duration = committed.get("duration", 0)
        else:
            duration = committed.get("elapsed", previous.get("elapsed", 0))
        logger.info("💧 Irrigation %s (duration=%s)", transition, duration)
        self._history.log_irrigation(transition, duration=duration)

    def _subsystem_entries(self, state: dict[str, Any]) -> dict[str, dict[str, Any]]:
        if self._robots is None:
            return {}
        return {robot_id: record for robot_id, record in robot_entries(state).items() if self._robots.has_unit(robot_id)}

    def _broadcast_device_status(self, device_class: DeviceClass, *, connected: bool) -> None:
        self._broadcaster.broadcast(
            hub_message(
                HubMessageType.DEVICE_STATUS,
                device=device_class.value,
                connected=connected,
                data=self._registry.snapshot(device_class),
            )
        )

    # ==================== Commands ====================

    def _forward_shutter_command(self, message: ShutterCommandMessage) -> None:
        # Silent on failure: no live device means the command is simply dropped.
        command = hub_message(
            HubMessageType.COMMAND, action=message.action, channel=message.channel, value=message.value
        )
        with self._lock:
            device = self._live_owner(DeviceClass.SHUTTERS)
            if device is None:
                logger.info("Dropping shutter command %s: device not connected", message.action)
                return
            self._safe_send(device, command)

    def _reply_to_irrigation_command(self, connection: Connection, message: IrrigationCommandMessage) -> None:
        try:
            command = self.send_irrigation_command(message.action, message.duration)
        except RelayError as exc:
            self._reply(connection, success=False, command=message.type, error=str(exc))
            return
        self._reply(connection, success=True, command=command)

    def _reply_to_robot_command(self, connection: Connection, message: RobotCommandMessage) -> None:
        try:
            outcome = self.send_robot_command(message.robot, message.command, message.args)
        except RelayError as exc:
            self._reply(connection, success=False, command=message.type, error=str(exc))
            return

        if isinstance(outcome, Future):
            outcome.add_done_callback(partial(self._broadcast_robot_result, message.robot, message.command))
            self._reply(connection, success=True, command={"robot": message.robot, "command": message.command})
        else:
            self._reply(connection, success=True, command=outcome)

    def send_shutter_command(self, action: Any, channel: Any = None, value: Any = None) -> dict[str, Any]:
        command = hub_message(HubMessageType.COMMAND, action=action, channel=channel, value=value)
        self._send_to_device(DeviceClass.SHUTTERS, command)
        return command

    def request_schedules(self) -> dict[str, Any]:
        """Ask the shutters device for its schedules.

        There is no request/response correlation: the device answers later
        with a SCHEDULES message that is forwarded to every controller.
        """
        request = hub_message(HubMessageType.GET_SCHEDULES)
        self._send_to_device(DeviceClass.SHUTTERS, request)
        return request

    def send_irrigation_command(self, action: Any, duration: Any = None) -> dict[str, Any]:
        if not action or not isinstance(action, str):
            raise ValidationError("Irrigation command requires an action")
        command = hub_message(HubMessageType.IRRIGATION_COMMAND, action=action.upper(), duration=duration)
        self._send_to_device(DeviceClass.IRRIGATION, command)
        return command

    def send_robot_command(
        self, robot_id: Any, command: Any, args: dict[str, Any] | None = None
    ) -> Future | dict[str, Any]:
        """Route a robot command.

        Units owned by the robot subsystem run on that unit's worker and a
        Future is returned. Robots reported by the robot bridge get the
        command forwarded and the forwarded message is returned.
        """
        if not robot_id or not isinstance(robot_id, str):
            raise ValidationError("Robot command requires a robot id")
        owned_by_subsystem = self._robots is not None and self._robots.has_unit(robot_id)
        if not owned_by_subsystem and robot_id not in robot_entries(self._registry.snapshot(DeviceClass.ROBOTS)):
            raise NotFoundError(f"Robot {robot_id} not found")

        try:
            robot_command = RobotCommand(command)
        except ValueError:
            raise ValidationError(f"Unknown robot command {command!r}") from None

        if owned_by_subsystem and self._robots is not None:
            future = self._robots.issue_command(robot_id, robot_command.value, args)
            future.add_done_callback(partial(self._record_robot_result, robot_id, robot_command.value))
            return future

        message = hub_message(HubMessageType.ROBOT_COMMAND, robot=robot_id, command=robot_command.value, args=args or {})
        self._send_to_device(DeviceClass.ROBOTS, message)
        return message

    def _send_to_device(self, device_class: DeviceClass, message: dict[str, Any]) -> None:
        with self._lock:
            device = self._live_owner(device_class)
            if device is None:
                raise NotConnectedError(f"{_DEVICE_LABELS[device_class]} not connected")
            try:
                device.send(message)
            except Exception as exc:
                logger.error("Error sending %s to %s: %s", message.get("type"), device.describe(), exc)
                raise TransportError(f"Failed to send {message.get('type')}") from exc

    def _live_owner(self, device_class: DeviceClass) -> Connection | None:
        if not self._registry.is_live(device_class):
            return None
        return self._registry.owner(device_class)

    # ==================== Robot subsystem ====================

    def _on_robot_event(self, event: RobotEvent) -> None:
        if event.kind == RobotEventKind.CONNECTIVITY:
            logger.info("🤖 %s %s", event.robot_id, "connected" if event.connected else "disconnected")
        self._merge_robot_statuses(event.statuses)

    def _merge_robot_statuses(self, statuses: dict[str, dict[str, Any]]) -> None:
        if not statuses:
            return

        def _build(current: dict[str, Any]) -> dict[str, Any]:
            entries = robot_entries(current)
            entries.update(statuses)
            return entries

        with self._lock:
            _, committed = self._registry.update_state(DeviceClass.ROBOTS, _build)
            self._broadcaster.broadcast(hub_message(HubMessageType.ROBOTS_UPDATE, data=committed))

    def _record_robot_result(self, robot_id: str, command: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            self._log_robot_mission(robot_id, command, "failed", {"error": str(exc)})
        else:
            self._log_robot_mission(robot_id, command, "success", future.result())

    def _broadcast_robot_result(self, robot_id: str | None, command: str | None, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            event = hub_message(
                HubMessageType.ROBOT_RESPONSE, robot=robot_id, command=command, success=False, error=str(exc)
            )
        else:
            event = hub_message(
                HubMessageType.ROBOT_RESPONSE, robot=robot_id, command=command, success=True, result=future.result()
            )
        with self._lock:
            self._broadcaster.broadcast(event)

    def _log_robot_mission(self, robot_id: str, action: str, status: str, details: dict[str, Any] | None) -> None:
        if self._history is not None:
            self._history.log_robot_mission(robot_id, action, status, details)

    # ==================== Read side ====================

    def snapshot(self, device_class: DeviceClass) -> dict[str, Any]:
        return self._registry.snapshot(device_class)

    def is_live(self, device_class: DeviceClass) -> bool:
        if self._registry.is_live(device_class):
            return True
        if device_class == DeviceClass.ROBOTS and self._robots is not None:
            return any(unit["connected"] for unit in self._robots.list_units())
        return False

    def health(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": "ok"}
        for device_class in DeviceClass:
            payload[f"{device_class.value}Connected"] = self.is_live(device_class)
        payload["lastUpdate"] = self._registry.snapshot(DeviceClass.SHUTTERS).get("lastUpdate")
        return payload

    def robot_statuses(self) -> dict[str, dict[str, Any]]:
        """All robot records; subsystem units read from their local cache."""
        statuses = robot_entries(self._registry.snapshot(DeviceClass.ROBOTS))
        if self._robots is not None:
            statuses.update(self._robots.get_all_status())
        return statuses

    def robot_status(self, robot_id: str) -> dict[str, Any]:
        statuses = self.robot_statuses()
        if robot_id not in statuses:
            raise NotFoundError(f"Robot {robot_id} not found")
        return statuses[robot_id]

    # ==================== Helpers ====================

    def _reply(self, connection: Connection, **fields: Any) -> None:
        self._safe_send(connection, hub_message(HubMessageType.COMMAND_RESPONSE, **fields))

    def _safe_send(self, connection: Connection, message: dict[str, Any]) -> bool:
        if not connection.is_open:
            return False
        try:
            connection.send(message)
            return True
        except Exception as exc:
            logger.warning("Failed to send %s to %s: %s", message.get("type"), connection.describe(), exc)
            return False

    def _close(self, connection: Connection) -> None:
        try:
            connection.close()
        except Exception as exc:
            logger.warning("Error closing %s: %s", connection.describe(), exc)
        self.handle_close(connection)
