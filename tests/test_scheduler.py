"""
Unit tests for PeriodicCheckTask and engine-driven periodic checks.
"""

from __future__ import annotations

import threading
import time

import pytest

from pulse_lock.lock.device import IoTDevice, LockState
from pulse_lock.lock.engine import DeviceAuthorizationEngine
from pulse_lock.lock.errors import NoActiveSession
from pulse_lock.lock.scheduler import PeriodicCheckTask
from pulse_lock.synthetic import flat_signal

OWNER = "did:vida:owner"


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


# ---------------------------------------------------------------------------
# PeriodicCheckTask
# ---------------------------------------------------------------------------

class TestPeriodicCheckTask:

    def test_runs_until_cancelled(self):
        ticks = threading.Semaphore(0)
        task = PeriodicCheckTask(0.01, ticks.release, name="tick").start()
        for _ in range(3):
            assert ticks.acquire(timeout=5)
        task.cancel()
        task.join(timeout=5)
        assert not task.is_alive
        assert task.cancelled
        assert task.runs >= 3

    def test_cancel_is_idempotent(self):
        task = PeriodicCheckTask(10.0, lambda: None)
        task.cancel()
        task.cancel()
        assert task.cancelled

    def test_cancel_before_first_tick(self):
        calls = []
        task = PeriodicCheckTask(10.0, lambda: calls.append(1)).start()
        task.cancel()
        task.join(timeout=5)
        assert calls == []
        assert not task.is_alive

    @pytest.mark.parametrize("interval", [0, -1.0])
    def test_invalid_interval(self, interval):
        with pytest.raises(ValueError):
            PeriodicCheckTask(interval, lambda: None)

    def test_double_start(self):
        task = PeriodicCheckTask(10.0, lambda: None).start()
        try:
            with pytest.raises(RuntimeError):
                task.start()
        finally:
            task.cancel()
            task.join(timeout=5)

    def test_callback_error_cancels_task(self):
        def boom():
            raise RuntimeError("sensor offline")

        task = PeriodicCheckTask(0.01, boom).start()
        task.join(timeout=5)
        assert task.cancelled
        assert task.runs == 1

    def test_cancel_from_inside_callback(self):
        holder = {}

        def once():
            holder["task"].cancel()

        holder["task"] = PeriodicCheckTask(0.01, once).start()
        holder["task"].join(timeout=5)
        assert holder["task"].runs == 1
        assert not holder["task"].is_alive


# ---------------------------------------------------------------------------
# Engine scheduling
# ---------------------------------------------------------------------------

class TestScheduledChecks:

    def _unlocked_engine(self, scripted, result_factory, checks, fallback=None):
        validator = scripted([result_factory()] + checks, fallback=fallback)
        eng = DeviceAuthorizationEngine(validator=validator)
        eng.register_device(IoTDevice(
            device_id="door-01",
            registered_owner=OWNER,
            requires_continuous_verification=True,
        ))
        assert eng.verify_ownership_and_pulse("door-01", OWNER, flat_signal(), "unlock").unlock_granted
        return eng, validator

    def test_requires_active_session(self, scripted, result_factory):
        eng = DeviceAuthorizationEngine(validator=scripted([result_factory()]))
        eng.register_device(IoTDevice(device_id="door-01", registered_owner=OWNER))
        with pytest.raises(NoActiveSession):
            eng.schedule_periodic_checks("door-01", flat_signal, interval=0.01)

    def test_scheduled_failures_lock_device(self, scripted, result_factory):
        bad = result_factory(valid=False, bpm=0, confidence=0)
        eng, validator = self._unlocked_engine(scripted, result_factory, [], fallback=bad)

        task = eng.schedule_periodic_checks("door-01", flat_signal, interval=0.01)
        task.join(timeout=5)

        assert task.cancelled
        status = eng.get_verification_status("door-01")
        assert not status.is_active
        assert status.checks_failed == 3
        assert validator.calls == 4
        assert eng.lock_state("door-01") is LockState.LOCKED

    def test_passing_checks_keep_session(self, scripted, result_factory):
        eng, _ = self._unlocked_engine(scripted, result_factory, [])
        task = eng.schedule_periodic_checks("door-01", flat_signal, interval=0.01)
        try:
            assert _wait_for(lambda: eng.get_verification_status("door-01").checks_performed >= 3)
            status = eng.get_verification_status("door-01")
            assert status.is_active
            assert status.checks_failed == 0
        finally:
            eng.stop_continuous_verification("door-01")
            task.join(timeout=5)
        assert task.cancelled

    def test_expired_unlock_cancels_task(self, clock, scripted, result_factory):
        validator = scripted([result_factory()])
        eng = DeviceAuthorizationEngine(validator=validator, clock=clock)
        eng.register_device(IoTDevice(
            device_id="door-01",
            registered_owner=OWNER,
            requires_continuous_verification=True,
        ))
        assert eng.verify_ownership_and_pulse("door-01", OWNER, flat_signal(), "unlock").unlock_granted
        clock.advance(301.0)

        task = eng.schedule_periodic_checks("door-01", flat_signal, interval=0.01)
        task.join(timeout=5)

        assert task.cancelled
        assert not task.is_alive
        assert task.runs == 1
        assert validator.calls == 1
        assert not eng.get_verification_status("door-01").is_active

    def test_stop_cancels_task(self, scripted, result_factory):
        eng, _ = self._unlocked_engine(scripted, result_factory, [])
        task = eng.schedule_periodic_checks("door-01", flat_signal, interval=10.0)
        assert eng.stop_continuous_verification("door-01")
        task.join(timeout=5)
        assert task.cancelled
        assert task.runs == 0

    def test_new_unlock_replaces_task(self, scripted, result_factory):
        eng, _ = self._unlocked_engine(scripted, result_factory, [])
        first = eng.schedule_periodic_checks("door-01", flat_signal, interval=10.0)
        assert eng.verify_ownership_and_pulse("door-01", OWNER, flat_signal(), "again").unlock_granted
        first.join(timeout=5)
        assert first.cancelled
        second = eng.schedule_periodic_checks("door-01", flat_signal, interval=10.0)
        assert not second.cancelled
        eng.stop_continuous_verification("door-01")
        second.join(timeout=5)

    def test_default_interval_from_device(self, scripted, result_factory):
        eng, _ = self._unlocked_engine(scripted, result_factory, [])
        task = eng.schedule_periodic_checks("door-01", flat_signal)
        assert task.interval == 60.0
        eng.stop_continuous_verification("door-01")
        task.join(timeout=5)
