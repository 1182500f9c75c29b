from __future__ import annotations

import threading
from datetime import datetime

import pytest
from conftest import APP_SECRET, REPORTED_RUNNING, FakeConnection, FakeDriver, authenticate, robot_units, wait_for

from homerelay.domain.exceptions import (
    ExternalServiceError,
    NotConnectedError,
    NotFoundError,
    ValidationError,
)
from homerelay.enums.devices import ConnectionRole, DeviceClass
from homerelay.enums.messages import RobotEventKind
from homerelay.hub.hub import ConnectionHub
from homerelay.hub.registry import robot_entries
from homerelay.robots import subsystem as subsystem_module
from homerelay.robots.models import VACUUM, RobotUnitConfig, placeholder_status, status_from_reported
from homerelay.robots.subsystem import RobotSubsystem


@pytest.fixture()
def subsystem(drivers):
    robots = RobotSubsystem(robot_units(), drivers, reconnect_initial=0.01, reconnect_max=0.05, check_interval=0.01)
    yield robots
    robots.stop(timeout=1.0)


def test_units_without_credentials_are_skipped(drivers):
    units = robot_units() + [RobotUnitConfig("unset", "Unconfigured", VACUUM)]

    robots = RobotSubsystem(units, drivers)

    assert [unit["id"] for unit in robots.list_units()] == ["roomba_j7", "braava_jet"]
    assert "unset" not in drivers.drivers
    assert not robots.has_unit("unset")


def test_cached_status_for_unknown_robot(subsystem):
    with pytest.raises(NotFoundError):
        subsystem.get_cached_status("ghost")


def test_cached_status_before_connect(subsystem):
    status = subsystem.get_cached_status("roomba_j7")

    assert status["connected"] is False
    assert status["phase"] == "disconnected"
    assert status["error"] == "Not connected to robot"
    assert status["battery"] == 0


def test_cached_status_from_reported_state(subsystem, drivers):
    drivers.drivers["roomba_j7"].push_state(REPORTED_RUNNING)

    status = subsystem.get_cached_status("roomba_j7")

    assert status["connected"] is True
    assert status["battery"] == 87
    assert status["phase"] == "run"
    assert status["cycle"] == "clean"
    assert status["binFull"] is False
    assert status["error"] is None
    assert status["position"] == {"point": {"x": 10, "y": -4}, "theta": 90}


def test_command_validation(subsystem, drivers):
    drivers.drivers["roomba_j7"].push_state(REPORTED_RUNNING)
    drivers.drivers["braava_jet"].push_state({"batPct": 50})

    with pytest.raises(NotFoundError):
        subsystem.issue_command("ghost", "start")
    with pytest.raises(ValidationError):
        subsystem.issue_command("roomba_j7", "fly")
    with pytest.raises(ValidationError):
        subsystem.issue_command("braava_jet", "clean_room", {"room": "3"})
    with pytest.raises(ValidationError):
        subsystem.issue_command("roomba_j7", "clean_room", {})


def test_command_requires_connection(subsystem):
    with pytest.raises(NotConnectedError):
        subsystem.issue_command("roomba_j7", "start")


@pytest.mark.parametrize(
    "command, vendor, status",
    [
        ("start", "start", "started"),
        ("pause", "pause", "paused"),
        ("resume", "resume", "resumed"),
        ("stop", "stop", "stopped"),
        ("dock", "dock", "docking"),
    ],
)
def test_commands_map_to_vendor_calls(subsystem, drivers, command, vendor, status):
    driver = drivers.drivers["roomba_j7"]
    driver.push_state(REPORTED_RUNNING)

    result = subsystem.issue_command("roomba_j7", command).result(timeout=2)

    assert result == {"status": status, "robot": "roomba_j7"}
    assert driver.commands == [(vendor, None)]


def test_clean_room_uses_map_regions(subsystem, drivers):
    driver = drivers.drivers["roomba_j7"]
    driver.push_state(REPORTED_RUNNING)

    result = subsystem.issue_command("roomba_j7", "clean_room", {"room": 4}).result(timeout=2)

    assert result == {"status": "cleaning_room", "robot": "roomba_j7", "room": 4}
    assert driver.commands == [
        (
            "start",
            {"ordered": 1, "pmap_id": "pmap-abc", "regions": [{"region_id": "4", "type": "rid"}]},
        )
    ]


def test_vendor_failure_becomes_external_service_error(subsystem, drivers):
    driver = drivers.drivers["roomba_j7"]
    driver.push_state(REPORTED_RUNNING)
    driver.command_error = RuntimeError("mqtt publish failed")

    future = subsystem.issue_command("roomba_j7", "start")

    with pytest.raises(ExternalServiceError):
        future.result(timeout=2)


def test_slow_unit_does_not_block_other_units(subsystem, drivers):
    slow, fast = drivers.drivers["roomba_j7"], drivers.drivers["braava_jet"]
    slow.push_state(REPORTED_RUNNING)
    fast.push_state({"batPct": 40})
    slow.command_gate = threading.Event()

    pending = subsystem.issue_command("roomba_j7", "start")
    done = subsystem.issue_command("braava_jet", "dock").result(timeout=2)

    assert done["status"] == "docking"
    assert not pending.done()
    assert subsystem.get_cached_status("roomba_j7")["battery"] == 87

    slow.command_gate.set()
    assert pending.result(timeout=2)["status"] == "started"


def test_commands_on_one_unit_run_in_order(subsystem, drivers):
    driver = drivers.drivers["roomba_j7"]
    driver.push_state(REPORTED_RUNNING)

    futures = [subsystem.issue_command("roomba_j7", command) for command in ("start", "pause", "resume", "dock")]
    for future in futures:
        future.result(timeout=2)

    assert [command for command, _ in driver.commands] == ["start", "pause", "resume", "dock"]


def test_connectivity_events_and_unsubscribe(subsystem, drivers):
    events = []
    unsubscribe = subsystem.subscribe(events.append)
    driver = drivers.drivers["braava_jet"]

    driver.push_state({"batPct": 66})
    driver.push_state({"batPct": 65})
    driver.drop("socket closed")

    assert [(event.kind, event.connected) for event in events] == [
        (RobotEventKind.CONNECTIVITY, True),
        (RobotEventKind.CONNECTIVITY, False),
    ]
    assert events[-1].statuses["braava_jet"]["phase"] == "disconnected"

    unsubscribe()
    driver.push_state({"batPct": 64})
    assert len(events) == 2


def test_poll_publishes_all_statuses(subsystem, drivers):
    events = []
    subsystem.subscribe(events.append)
    drivers.drivers["roomba_j7"].push_state(REPORTED_RUNNING)
    events.clear()

    statuses = subsystem.poll()

    assert set(statuses) == {"roomba_j7", "braava_jet"}
    assert events[-1].kind == RobotEventKind.STATUS
    assert events[-1].statuses["roomba_j7"]["battery"] == 87


def test_status_records_carry_last_update():
    unit = robot_units()[0]

    reported = status_from_reported(unit, REPORTED_RUNNING)
    placeholder = placeholder_status(unit, connected=False)

    assert reported["lastUpdate"]
    assert placeholder["lastUpdate"]
    assert datetime.fromisoformat(reported["lastUpdate"]).tzinfo is not None


@pytest.mark.parametrize(
    "reported, battery",
    [
        ({"batPct": 87.5}, 88),
        ({"batPct": "64"}, 64),
        ({"batPct": None}, 0),
        ({"batPct": "full"}, 0),
        ({}, 0),
    ],
)
def test_odd_battery_reports_are_tolerated(reported, battery):
    assert status_from_reported(robot_units()[0], reported)["battery"] == battery


def test_malformed_reported_sections_are_ignored():
    status = status_from_reported(
        robot_units()[0],
        {"batPct": 50, "cleanMissionStatus": "run", "bin": [], "pose": "dock"},
    )

    assert status["phase"] == "unknown"
    assert status["binFull"] is False
    assert status["position"] is None


def test_failing_unit_gets_error_record_and_poll_continues(subsystem, drivers, monkeypatch):
    def _explode(unit, reported):
        if unit.id == "roomba_j7":
            raise RuntimeError("bad telemetry")
        return original(unit, reported)

    original = subsystem_module.status_from_reported
    monkeypatch.setattr(subsystem_module, "status_from_reported", _explode)
    events = []
    subsystem.subscribe(events.append)
    drivers.drivers["roomba_j7"].push_state(REPORTED_RUNNING)
    drivers.drivers["braava_jet"].push_state({"batPct": 40})
    events.clear()

    statuses = subsystem.poll()

    assert statuses["roomba_j7"]["connected"] is False
    assert statuses["roomba_j7"]["error"] == "bad telemetry"
    assert statuses["braava_jet"]["battery"] == 40
    assert events[-1].kind == RobotEventKind.STATUS
    assert events[-1].statuses == statuses


def test_supervisor_reconnects_with_backoff():
    unit = robot_units()[0]
    driver = FakeDriver(unit, fail_connect=2)
    robots = RobotSubsystem([unit], lambda _unit: driver, reconnect_initial=0.01, reconnect_max=0.02, check_interval=0.01)
    try:
        robots.start()

        assert wait_for(lambda: robots.is_connected(unit.id))
        assert driver.connect_calls == 3
        assert robots.get_cached_status(unit.id)["phase"] == "waiting"

        driver.drop()
        assert wait_for(lambda: driver.connect_calls == 4 and robots.is_connected(unit.id))
    finally:
        robots.stop(timeout=1.0)

    assert not robots.is_running()


def test_driver_factory_failure_disables_unit():
    def factory(unit):
        if unit.id == "braava_jet":
            raise RuntimeError("no such robot")
        return FakeDriver(unit)

    robots = RobotSubsystem(robot_units(), factory)

    assert robots.has_unit("roomba_j7")
    assert not robots.has_unit("braava_jet")


# ── through the hub ─────────────────────────────────────────────────


@pytest.fixture()
def robot_hub(registry, auth, history, subsystem):
    return ConnectionHub(registry, auth, robots=subsystem, history=history)


def test_connectivity_pushes_robots_update(robot_hub, drivers):
    controller = FakeConnection(ConnectionRole.CONTROLLER)
    robot_hub.open(controller)

    drivers.drivers["roomba_j7"].push_state(REPORTED_RUNNING)

    update = controller.sent[-1]
    assert update["type"] == "ROBOTS_UPDATE"
    assert update["data"]["roomba_j7"]["battery"] == 87
    assert robot_hub.health()["robotsConnected"] is True


def test_hub_robot_command_runs_on_unit_and_is_recorded(robot_hub, drivers, history):
    drivers.drivers["roomba_j7"].push_state(REPORTED_RUNNING)
    controller = FakeConnection(ConnectionRole.CONTROLLER)
    robot_hub.open(controller)

    robot_hub.handle_message(
        controller, {"type": "ROBOT_COMMAND", "token": APP_SECRET, "robot": "roomba_j7", "command": "dock"}
    )

    assert controller.of_type("COMMAND_RESPONSE")[-1]["success"] is True
    assert wait_for(lambda: controller.of_type("ROBOT_RESPONSE"))
    response = controller.of_type("ROBOT_RESPONSE")[-1]
    assert response["success"] is True
    assert response["result"] == {"status": "docking", "robot": "roomba_j7"}

    assert wait_for(lambda: history.robot_history(robot_id="roomba_j7"))
    record = history.robot_history(robot_id="roomba_j7")[0]
    assert record["action"] == "dock"
    assert record["status"] == "success"


def test_hub_robot_command_rejected_when_unit_offline(robot_hub):
    controller = FakeConnection(ConnectionRole.CONTROLLER)
    robot_hub.open(controller)

    robot_hub.handle_message(
        controller, {"type": "ROBOT_COMMAND", "token": APP_SECRET, "robot": "braava_jet", "command": "start"}
    )

    response = controller.sent[-1]
    assert response["type"] == "COMMAND_RESPONSE"
    assert response["success"] is False
    assert "not connected" in response["error"]


def test_poll_refreshes_hub_snapshot(robot_hub, subsystem, drivers):
    drivers.drivers["braava_jet"].push_state({"batPct": 20})
    controller = FakeConnection(ConnectionRole.CONTROLLER)
    robot_hub.open(controller)
    controller.sent.clear()

    subsystem.poll()

    assert controller.types() == ["ROBOTS_UPDATE"]
    assert controller.sent[0]["data"]["braava_jet"]["battery"] == 20
    assert robot_hub.robot_status("braava_jet")["connected"] is True
    assert robot_hub.robot_status("roomba_j7")["connected"] is False


def test_bridge_state_keeps_subsystem_entries(robot_hub, drivers):
    drivers.drivers["roomba_j7"].push_state(REPORTED_RUNNING)
    bridge = FakeConnection(ConnectionRole.DEVICE, DeviceClass.ROBOTS)
    robot_hub.open(bridge)
    authenticate(robot_hub, bridge)

    robot_hub.handle_message(bridge, {"type": "STATE", "data": {"lawn": {"robot": "lawn", "connected": True}}})

    assert set(robot_hub.robot_statuses()) == {"roomba_j7", "braava_jet", "lawn"}
    assert robot_entries(robot_hub.snapshot(DeviceClass.ROBOTS))["roomba_j7"]["battery"] == 87


def test_bridge_disconnect_forces_all_offline_until_next_poll(robot_hub, subsystem, drivers):
    drivers.drivers["roomba_j7"].push_state(REPORTED_RUNNING)
    bridge = FakeConnection(ConnectionRole.DEVICE, DeviceClass.ROBOTS)
    robot_hub.open(bridge)
    authenticate(robot_hub, bridge)
    robot_hub.handle_message(bridge, {"type": "STATE", "data": {"lawn": {"robot": "lawn", "connected": True}}})
    controller = FakeConnection(ConnectionRole.CONTROLLER)
    robot_hub.open(controller)

    robot_hub.handle_close(bridge)

    status = controller.of_type("DEVICE_STATUS")[-1]
    assert status["connected"] is False
    assert status["data"]["lawn"]["connected"] is False
    assert status["data"]["roomba_j7"]["connected"] is False
    # The subsystem cache still answers direct queries.
    assert robot_hub.robot_status("roomba_j7")["connected"] is True

    subsystem.poll()

    entries = robot_entries(robot_hub.snapshot(DeviceClass.ROBOTS))
    assert entries["roomba_j7"]["connected"] is True
    assert entries["lawn"]["connected"] is False
