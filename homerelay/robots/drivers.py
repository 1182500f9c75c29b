"""
Robot Drivers
=============
Abstract interface the robot subsystem uses to talk to one robot, plus the
local-MQTT implementation for iRobot Roomba / Braava units (paho-mqtt).

Drivers are blocking. The subsystem calls them from its own threads and
never while holding a hub lock.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import paho.mqtt.client as mqtt

from homerelay.robots.models import RobotUnitConfig
from homerelay.robots.mqtt_client import ROBOT_MQTT_PORT, create_robot_client

logger = logging.getLogger(__name__)

StateCallback = Callable[[dict[str, Any]], None]
DisconnectCallback = Callable[[Any], None]


class RobotDriver(ABC):
    """
    Abstract interface for a robot connection.

    Required Methods (must override):
        - connect(): Open the session (raises on failure)
        - disconnect(): Close the session
        - send_command(): Issue a vendor command
        - reported_state(): Last reported state document
        - is_connected: Whether the session is up
    """

    def __init__(self) -> None:
        self._on_state: StateCallback | None = None
        self._disconnect_callback: DisconnectCallback | None = None

    def set_callbacks(self, *, on_state: StateCallback, on_disconnect: DisconnectCallback) -> None:
        self._on_state = on_state
        self._disconnect_callback = on_disconnect

    def _emit_state(self) -> None:
        if self._on_state is not None:
            self._on_state(self.reported_state())

    def _emit_disconnect(self, error: Any = None) -> None:
        if self._disconnect_callback is not None:
            self._disconnect_callback(error)

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass

    @abstractmethod
    def send_command(self, command: str, params: dict[str, Any] | None = None) -> None:
        pass

    @abstractmethod
    def reported_state(self) -> dict[str, Any]:
        pass
class RoombaDriver(RobotDriver):
    """Local MQTT session to a Roomba / Braava.

    The robot pushes partial reported-state documents on its shadow topic;
    they are merged into one reported state. Commands are published on the
    ``cmd`` topic.
    """

    COMMAND_TOPIC = "cmd"

    def __init__(
        self,
        unit: RobotUnitConfig,
        *,
        port: int = ROBOT_MQTT_PORT,
        keepalive: int = 60,
        connect_timeout: float = 10.0,
    ) -> None:
        super().__init__()
        self.unit = unit
        self._port = port
        self._keepalive = keepalive
        self._connect_timeout = connect_timeout
        self._state_lock = threading.Lock()
        self._reported: dict[str, Any] = {}
        self._connack = threading.Event()
        self._connack_rc: int | None = None
        self._connected = False
        self._loop_running = False

        self._client = create_robot_client(unit)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        logger.info("Connecting to %s at %s:%s", self.unit.name, self.unit.address, self._port)
        self._stop_loop()
        self._connack.clear()
        self._connack_rc = None

        self._client.connect(self.unit.address, self._port, self._keepalive)
        self._client.loop_start()
        self._loop_running = True

        if not self._connack.wait(self._connect_timeout):
            self._stop_loop()
            raise ConnectionError(f"{self.unit.name} did not answer the MQTT handshake")
        if self._connack_rc != 0:
            self._stop_loop()
            raise ConnectionError(f"{self.unit.name} refused connection: {mqtt.connack_string(self._connack_rc)}")

    def disconnect(self) -> None:
        self._connected = False
        try:
            self._client.disconnect()
        finally:
            self._stop_loop()

    def send_command(self, command: str, params: dict[str, Any] | None = None) -> None:
        if not self._connected:
            raise ConnectionError(f"{self.unit.name} is not connected")
        payload: dict[str, Any] = {"command": command, "time": int(time.time()), "initiator": "localApp"}
        if params:
            payload.update(params)
        info = self._client.publish(self.COMMAND_TOPIC, json.dumps(payload))
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"Publish to {self.unit.name} failed: {mqtt.error_string(info.rc)}")
        logger.debug("Published %s to %s", command, self.unit.name)

    def reported_state(self) -> dict[str, Any]:
        with self._state_lock:
            return dict(self._reported)

    def _stop_loop(self) -> None:
        if self._loop_running:
            self._client.loop_stop()
            self._loop_running = False

    # ── paho callbacks (network thread) ──────────────────────────────

    def _on_connect(self, client, userdata, flags, rc) -> None:
        self._connack_rc = rc
        if rc == 0:
            self._connected = True
            client.subscribe("#")
        self._connack.set()

    def _on_disconnect(self, client, userdata, rc) -> None:
        was_connected = self._connected
        self._connected = False
        if was_connected:
            logger.warning("%s disconnected (rc=%s)", self.unit.name, rc)
            self._emit_disconnect(rc)

    def _on_message(self, client, userdata, msg) -> None:
        try:
            document = json.loads(msg.payload)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-JSON payload from %s on %s", self.unit.name, msg.topic)
            return
        reported = (document.get("state") or {}).get("reported") if isinstance(document, dict) else None
        if not isinstance(reported, dict):
            return
        with self._state_lock:
            self._reported.update(reported)
        self._emit_state()


def create_driver(unit: RobotUnitConfig) -> RobotDriver:
    """Default driver factory."""
    return RoombaDriver(unit)
