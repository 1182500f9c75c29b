"""
Shared test fixtures for the HomeRelay test suite.

Provides:
- FakeConnection: in-memory Connection recording everything sent to it
- FakeDriver: scriptable RobotDriver (no network)
- Hub, registry, auth and history fixtures wired together
- Flask app / HTTP client fixtures built through create_app

Usage:
    def test_example(hub, make_device):
        device = make_device(DeviceClass.SHUTTERS)
        ...
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import pytest

from homerelay.domain.exceptions import TransportError
from homerelay.enums.devices import ConnectionRole, DeviceClass
from homerelay.hub.auth import AuthGate
from homerelay.hub.connection import Connection
from homerelay.hub.hub import ConnectionHub
from homerelay.hub.registry import DeviceRegistry
from homerelay.robots.drivers import RobotDriver
from homerelay.robots.models import MOP, VACUUM, RobotUnitConfig
from homerelay.services.history import HistorySink

# ---------------------------------------------------------------------------
# Logging, keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("homerelay").setLevel(logging.WARNING)
logging.getLogger("infrastructure").setLevel(logging.WARNING)

SHUTTERS_SECRET = "test-shutters-secret"
IRRIGATION_SECRET = "test-irrigation-secret"
ROBOTS_SECRET = "test-robots-secret"
APP_SECRET = "test-app-secret"

DEVICE_SECRETS = {
    DeviceClass.SHUTTERS: SHUTTERS_SECRET,
    DeviceClass.IRRIGATION: IRRIGATION_SECRET,
    DeviceClass.ROBOTS: ROBOTS_SECRET,
}


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ========================== Fakes ==========================================


class FakeConnection(Connection):
    def __init__(
        self, role: ConnectionRole, device_class: DeviceClass | None = None, *, fail_send: bool = False
    ) -> None:
        super().__init__(role, device_class)
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0
        self.fail_send = fail_send
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, message: dict[str, Any]) -> None:
        if self.fail_send:
            raise ConnectionResetError("peer went away")
        if not self._open:
            raise TransportError("closed")
        self.sent.append(message)

    def close(self) -> None:
        self.close_calls += 1
        self._open = False

    def types(self) -> list[str]:
        return [message["type"] for message in self.sent]

    def of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message["type"] == message_type]


class FakeDriver(RobotDriver):
    def __init__(self, unit: RobotUnitConfig, *, fail_connect: int = 0) -> None:
        super().__init__()
        self.unit = unit
        self.connected = False
        self.connect_calls = 0
        self.fail_connect = fail_connect
        self.commands: list[tuple[str, dict | None]] = []
        self.command_gate: threading.Event | None = None
        self.command_error: Exception | None = None
        self.state: dict[str, Any] = {}

    @property
    def is_connected(self) -> bool:
        return self.connected

    def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_calls <= self.fail_connect:
            raise ConnectionRefusedError("robot unreachable")
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def send_command(self, command: str, params: dict[str, Any] | None = None) -> None:
        if self.command_gate is not None:
            self.command_gate.wait(5)
        if self.command_error is not None:
            raise self.command_error
        self.commands.append((command, params))

    def reported_state(self) -> dict[str, Any]:
        return dict(self.state)

    # test helpers
    def push_state(self, state: dict[str, Any]) -> None:
        self.connected = True
        self.state = state
        self._emit_state()

    def drop(self, error: Any = None) -> None:
        self.connected = False
        self._emit_disconnect(error)


def robot_units() -> list[RobotUnitConfig]:
    return [
        RobotUnitConfig("roomba_j7", "Roomba j7", VACUUM, "10.0.0.5", "blid-j7", "pw-j7"),
        RobotUnitConfig("braava_jet", "Braava Jet", MOP, "10.0.0.6", "blid-jet", "pw-jet"),
    ]


class DriverRegistry:
    """Driver factory that remembers the FakeDriver built for each unit."""

    def __init__(self) -> None:
        self.drivers: dict[str, FakeDriver] = {}

    def __call__(self, unit: RobotUnitConfig) -> FakeDriver:
        driver = FakeDriver(unit)
        self.drivers[unit.id] = driver
        return driver


REPORTED_RUNNING = {
    "batPct": 87,
    "cleanMissionStatus": {"phase": "run", "cycle": "clean", "error": 0},
    "bin": {"full": False},
    "pose": {"point": {"x": 10, "y": -4}, "theta": 90},
    "pmaps": [{"pmap-abc": "version-1"}],
}


# ========================== Hub Fixtures ===================================


@pytest.fixture()
def registry():
    return DeviceRegistry()


@pytest.fixture()
def auth():
    return AuthGate(DEVICE_SECRETS, APP_SECRET)


@pytest.fixture()
def history():
    sink = HistorySink.from_path(":memory:")
    yield sink
    sink.shutdown()


@pytest.fixture()
def hub(registry, auth, history):
    return ConnectionHub(registry, auth, history=history)


@pytest.fixture()
def make_device(hub):
    """Open a device connection of a class (unauthenticated)."""

    def _make(device_class: DeviceClass, **kwargs) -> FakeConnection:
        connection = FakeConnection(ConnectionRole.DEVICE, device_class, **kwargs)
        hub.open(connection)
        return connection

    return _make


@pytest.fixture()
def make_controller(hub):
    def _make(**kwargs) -> FakeConnection:
        connection = FakeConnection(ConnectionRole.CONTROLLER, **kwargs)
        hub.open(connection)
        return connection

    return _make


def authenticate(hub: ConnectionHub, device: FakeConnection) -> None:
    assert device.device_class is not None
    hub.handle_message(device, {"type": "AUTH", "secret": DEVICE_SECRETS[device.device_class]})


# ========================== App Fixtures ===================================


@pytest.fixture()
def drivers():
    return DriverRegistry()


@pytest.fixture()
def app(tmp_path, drivers):
    from homerelay import create_app

    flask_app = create_app(
        {
            "database_path": str(tmp_path / "relay.db"),
            "log_file": str(tmp_path / "relay.log"),
            "shutters_secret": SHUTTERS_SECRET,
            "irrigation_secret": IRRIGATION_SECRET,
            "robots_secret": ROBOTS_SECRET,
            "app_secret": APP_SECRET,
            "robot_units": robot_units(),
            "robot_command_timeout": 2.0,
        },
        robot_driver_factory=drivers,
    )
    flask_app.config["TESTING"] = True
    try:
        yield flask_app
    finally:
        flask_app.extensions["relay_shutdown"]("test-teardown")


@pytest.fixture()
def container(app):
    return app.config["CONTAINER"]


@pytest.fixture()
def client(app):
    return app.test_client()
