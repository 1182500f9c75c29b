import pytest
from conftest import APP_SECRET, DEVICE_SECRETS, FakeConnection

from homerelay.domain.exceptions import MalformedMessageError
from homerelay.enums.devices import ConnectionRole, DeviceClass
from homerelay.enums.messages import ControllerMessageType, DeviceMessageType, HubMessageType
from homerelay.hub.auth import AuthGate
from homerelay.hub.broadcaster import Broadcaster
from homerelay.schemas.messages import (
    AuthMessage,
    RobotCommandMessage,
    ShutterCommandMessage,
    StateMessage,
    hub_message,
    parse_controller_message,
    parse_device_message,
)

# ── parsing ─────────────────────────────────────────────────────────


def test_parse_device_message_from_text_and_bytes():
    text = parse_device_message('{"type": "STATE", "data": {"active": true}}')
    raw = parse_device_message(b'{"type": "AUTH", "secret": "s"}')

    assert isinstance(text, StateMessage)
    assert text.data == {"active": True}
    assert isinstance(raw, AuthMessage)
    assert raw.secret == "s"


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        b"\xff\xfe",
        "[1, 2]",
        42,
        {"data": {}},
        {"type": "COMMAND", "action": "open"},
        {"type": "STATE"},
    ],
)
def test_parse_device_message_rejects(raw):
    with pytest.raises(MalformedMessageError):
        parse_device_message(raw)


def test_parse_controller_message():
    command = parse_controller_message({"type": "COMMAND", "token": "t", "action": "open", "channel": 1})
    robot = parse_controller_message({"type": "ROBOT_COMMAND", "robot": "vac", "command": "dock"})

    assert isinstance(command, ShutterCommandMessage)
    assert command.channel == 1
    assert isinstance(robot, RobotCommandMessage)
    assert robot.token is None
    assert robot.args is None

    with pytest.raises(MalformedMessageError):
        parse_controller_message({"type": "STATE", "data": {}})


def test_to_wire_keeps_unknown_fields():
    message = parse_device_message({"type": "IRRIGATION_COMPLETE", "elapsed": 300, "zone": "front"})

    assert message.to_wire() == {"type": "IRRIGATION_COMPLETE", "elapsed": 300, "zone": "front"}


def test_hub_message():
    assert hub_message(HubMessageType.AUTH_OK) == {"type": "AUTH_OK"}
    assert hub_message(HubMessageType.DEVICE_STATUS, device="shutters", connected=False) == {
        "type": "DEVICE_STATUS",
        "device": "shutters",
        "connected": False,
    }


# ── auth ────────────────────────────────────────────────────────────


def test_device_secret_is_per_class():
    gate = AuthGate(DEVICE_SECRETS, APP_SECRET)

    assert gate.validate_device_auth(DeviceClass.SHUTTERS, DEVICE_SECRETS[DeviceClass.SHUTTERS])
    assert not gate.validate_device_auth(DeviceClass.ROBOTS, DEVICE_SECRETS[DeviceClass.SHUTTERS])
    assert not gate.validate_device_auth(DeviceClass.SHUTTERS, None)
    assert not gate.validate_device_auth(DeviceClass.SHUTTERS, 12345)


def test_controller_token():
    gate = AuthGate(DEVICE_SECRETS, APP_SECRET)

    assert gate.validate_controller_token(APP_SECRET)
    assert not gate.validate_controller_token("")
    assert not gate.validate_controller_token(None)
    assert not gate.validate_controller_token(APP_SECRET + "x")


def test_empty_configured_secret_never_matches():
    gate = AuthGate({DeviceClass.SHUTTERS: ""}, "")

    assert not gate.validate_device_auth(DeviceClass.SHUTTERS, "")
    assert not gate.validate_controller_token("")


# ── broadcaster ─────────────────────────────────────────────────────


def test_broadcast_reaches_open_controllers_only():
    healthy = FakeConnection(ConnectionRole.CONTROLLER)
    closed = FakeConnection(ConnectionRole.CONTROLLER)
    closed.close()
    broken = FakeConnection(ConnectionRole.CONTROLLER, fail_send=True)
    device = FakeConnection(ConnectionRole.DEVICE, DeviceClass.SHUTTERS)
    broadcaster = Broadcaster(lambda: [broken, closed, device, healthy])

    delivered = broadcaster.broadcast({"type": "STATE_UPDATE", "data": {}})

    assert delivered == 1
    assert healthy.sent == [{"type": "STATE_UPDATE", "data": {}}]
    assert device.sent == []


def test_device_connection_requires_class():
    with pytest.raises(ValueError):
        FakeConnection(ConnectionRole.DEVICE)


@pytest.mark.parametrize("tag", list(DeviceMessageType))
def test_every_device_tag_parses(tag):
    payload = {"type": tag.value, "data": {}} if tag == DeviceMessageType.STATE else {"type": tag.value}

    assert parse_device_message(payload).type == tag.value


@pytest.mark.parametrize("tag", list(ControllerMessageType))
def test_every_controller_tag_parses(tag):
    assert parse_controller_message({"type": tag.value}).type == tag.value
