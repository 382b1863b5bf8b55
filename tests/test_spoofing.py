"""
Unit tests for SpoofingRiskEngine and its scoring helpers.
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_lock.rppg import RppgSignal, SpoofingRisk
from pulse_lock.spoofing import (
    SpoofingRiskEngine,
    classify,
    micro_variation_score,
    noise_floor_score,
    score_bpm_variance,
)
from pulse_lock.synthetic import flat_signal, synthetic_pulse


class TestScoringHelpers:

    def test_constant_bpm_looks_replayed(self):
        assert score_bpm_variance([75.0, 75.0, 75.0, 75.0]) == 30.0

    def test_natural_drift_scores_full(self):
        assert score_bpm_variance([72.0, 75.0, 78.0, 74.0]) == 100.0

    def test_erratic_bpm_looks_like_noise(self):
        assert score_bpm_variance([60.0, 150.0]) == 40.0

    def test_no_segments_is_neutral(self):
        assert score_bpm_variance([]) == 50.0

    @pytest.mark.parametrize("score,risk", [
        (100.0, SpoofingRisk.LOW),
        (80.0, SpoofingRisk.LOW),
        (79.9, SpoofingRisk.MEDIUM),
        (60.0, SpoofingRisk.MEDIUM),
        (59.9, SpoofingRisk.HIGH),
    ])
    def test_classify_thresholds(self, score, risk):
        assert classify(score) is risk

    def test_micro_variation(self):
        assert micro_variation_score(np.full(100, 5.0)) == 20.0
        assert micro_variation_score(np.array([0.0, 20.0] * 50)) == 30.0
        assert micro_variation_score(synthetic_pulse().green) == 100.0
        assert micro_variation_score(np.array([1.0])) == 20.0

    def test_noise_floor(self):
        rng = np.random.default_rng(1)
        assert noise_floor_score(np.full(100, 5.0)) == 30.0
        assert noise_floor_score(rng.normal(0.0, 10.0, 1000)) == 40.0
        assert noise_floor_score(rng.normal(0.0, 1.0, 1000)) == 100.0


class TestSpoofingRiskEngine:

    def test_looped_pulse_has_constant_segments(self):
        engine = SpoofingRiskEngine()
        bpms = engine.segment_bpms(synthetic_pulse(bpm=75.0))
        assert len(bpms) == 5
        assert engine.temporal_consistency(synthetic_pulse(bpm=75.0)) == 30.0

    def test_white_noise_segments_are_erratic(self):
        rng = np.random.default_rng(11)
        sig = RppgSignal(
            red=rng.normal(100, 1, 300),
            green=rng.normal(100, 1, 300),
            blue=rng.normal(100, 1, 300),
            frame_rate=30.0,
        )
        assert SpoofingRiskEngine().temporal_consistency(sig) == 40.0

    def test_short_capture_is_neutral(self):
        sig = synthetic_pulse(duration=1.0)
        assert SpoofingRiskEngine().temporal_consistency(sig) == 50.0

    def test_correlated_pulse_is_not_high_risk(self):
        result = SpoofingRiskEngine().assess(synthetic_pulse())
        assert result.naturalness == 100.0
        assert result.channel_validity == pytest.approx(100.0, abs=1e-3)
        assert result.score == pytest.approx(72.0, abs=1e-3)
        assert result.risk is SpoofingRisk.MEDIUM

    def test_uncorrelated_channels_are_high_risk(self):
        base = synthetic_pulse()
        sig = RppgSignal(
            red=np.full(len(base), 110.0),
            green=base.green,
            blue=np.full(len(base), 90.0),
            frame_rate=base.frame_rate,
        )
        assert SpoofingRiskEngine().assess(sig).risk is SpoofingRisk.HIGH

    def test_flat_signal_is_high_risk(self):
        assert SpoofingRiskEngine().assess(flat_signal()).risk is SpoofingRisk.HIGH
