"""
Shared fixtures: a controllable clock and a validator that replays scripted
verdicts, so engine tests do not depend on signal-processing numerics.
"""

from __future__ import annotations

from typing import List, Optional

import pytest

from pulse_lock.rppg import HeartbeatMetrics, PffValidationResult, RppgSignal, SpoofingRisk
from pulse_lock.validator import LivenessValidator


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedValidator(LivenessValidator):
    """Returns queued results in order, then *fallback* forever."""

    def __init__(self, results: List[PffValidationResult], fallback: Optional[PffValidationResult] = None):
        super().__init__()
        self.results = list(results)
        self.fallback = fallback if fallback is not None else (results[-1] if results else None)
        self.calls = 0

    def validate_pff(self, signal: RppgSignal, session_id: str) -> PffValidationResult:
        self.calls += 1
        if self.results:
            return self.results.pop(0)
        return self.fallback


def make_result(
    valid: bool = True,
    bpm: int = 75,
    confidence: int = 90,
    quality: int = 90,
    risk: SpoofingRisk = SpoofingRisk.LOW,
    is_live: Optional[bool] = None,
    session_id: str = "session-0001",
) -> PffValidationResult:
    return PffValidationResult(
        is_valid=valid,
        heartbeat_detected=bpm > 0,
        metrics=HeartbeatMetrics(
            bpm=bpm,
            confidence=confidence,
            signal_quality=quality,
            is_live=valid if is_live is None else is_live,
        ),
        timestamp=0.0,
        session_id=session_id,
        spoofing_risk=risk,
        validation_hash=f"pff_test_{session_id[:8]}",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def scripted():
    """Factory: ``scripted(results, fallback=None) -> ScriptedValidator``."""
    return ScriptedValidator
