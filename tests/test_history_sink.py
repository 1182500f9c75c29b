from unittest.mock import Mock

import pytest

from homerelay.services.history import MAX_HISTORY_LIMIT, HistorySink, clamp_limit


def test_irrigation_history_newest_first(history):
    history.log_irrigation("START", duration=600)
    history.log_irrigation("STOP", duration=420)
    history.flush(timeout=2)

    rows = history.irrigation_history()

    assert [row["action"] for row in rows] == ["STOP", "START"]
    assert rows[0]["duration"] == 420
    assert rows[0]["water_used"] == 0
    assert rows[0]["created_at"]


def test_irrigation_history_limit(history):
    for minute in range(5):
        history.log_irrigation("START", duration=minute * 60)
    history.flush(timeout=2)

    rows = history.irrigation_history(limit=2)

    assert [row["duration"] for row in rows] == [240, 180]


def test_robot_history_details_and_filter(history):
    history.log_robot_mission("roomba_j7", "start", "success", {"status": "started", "robot": "roomba_j7"})
    history.log_robot_mission("braava_jet", "dock", "failed", {"error": "Braava Jet not connected"})
    history.log_robot_mission("roomba_j7", "dock", "success")
    history.flush(timeout=2)

    everything = history.robot_history(limit=10)
    roomba = history.robot_history(limit=10, robot_id="roomba_j7")

    assert len(everything) == 3
    assert [row["action"] for row in roomba] == ["dock", "start"]
    assert roomba[0]["details"] is None
    assert roomba[1]["details"] == {"status": "started", "robot": "roomba_j7"}


def test_disabled_sink_accepts_writes_and_returns_nothing():
    sink = HistorySink.disabled()

    assert not sink.enabled
    assert sink.log_irrigation("START", duration=60) is None
    assert sink.log_robot_mission("r1", "start", "success") is None
    assert sink.irrigation_history() == []
    assert sink.robot_history() == []
    sink.flush()
    sink.shutdown()


def test_unopenable_database_disables_history(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")

    sink = HistorySink.from_path(str(blocker / "relay.db"))

    assert not sink.enabled


def test_failed_write_is_logged_not_raised(caplog):
    repository = Mock()
    repository.add_irrigation.side_effect = RuntimeError("disk full")
    sink = HistorySink(repository)
    try:
        future = sink.log_irrigation("START", duration=60)
        with pytest.raises(RuntimeError):
            future.result(timeout=2)
        sink.flush(timeout=2)
    finally:
        sink.shutdown()

    assert "Error logging irrigation: disk full" in caplog.text


def test_failed_read_returns_empty_list():
    repository = Mock()
    repository.robots.side_effect = RuntimeError("database is locked")
    sink = HistorySink(repository)
    try:
        assert sink.robot_history() == []
    finally:
        sink.shutdown()


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 10), ("abc", 10), ("25", 25), (0, 1), (-3, 1), (10_000, MAX_HISTORY_LIMIT)],
)
def test_clamp_limit(raw, expected):
    assert clamp_limit(raw) == expected
