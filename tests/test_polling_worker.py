import threading
from unittest.mock import Mock

import pytest
from conftest import wait_for

from homerelay.workers.poller import PollingWorker


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PollingWorker("Bad", lambda: None, 0)


def test_tick_skips_while_previous_run_in_flight():
    gate = threading.Event()
    started = threading.Event()

    def slow():
        started.set()
        gate.wait(5)

    worker = PollingWorker("Slow", slow, 60)
    try:
        assert worker.tick() is True
        assert started.wait(2)

        assert worker.tick() is False
        assert worker.tick() is False
        assert worker.skipped == 2

        gate.set()
        worker.wait_idle(timeout=2)
        assert worker.tick() is True
        worker.wait_idle(timeout=2)
        assert worker.runs == 2
    finally:
        gate.set()
        worker.stop()


def test_failing_run_is_logged_and_next_run_proceeds(caplog):
    func = Mock(side_effect=[RuntimeError("robot offline"), None])
    worker = PollingWorker("Flaky", func, 60)
    try:
        worker.tick()
        worker.wait_idle(timeout=2)
        worker.tick()
        worker.wait_idle(timeout=2)
    finally:
        worker.stop()

    assert func.call_count == 2
    assert "Flaky run failed: robot offline" in caplog.text


def test_start_runs_immediately_then_on_interval():
    func = Mock()
    worker = PollingWorker("Fast", func, 0.02)
    worker.start()
    try:
        assert worker.is_running()
        assert wait_for(lambda: func.call_count >= 3)
    finally:
        worker.stop()

    assert not worker.is_running()


def test_start_without_immediate_run_waits_for_interval():
    func = Mock()
    worker = PollingWorker("Lazy", func, 60, run_immediately=False)
    worker.start()
    try:
        assert not wait_for(lambda: func.call_count > 0, timeout=0.1)
    finally:
        worker.stop()
