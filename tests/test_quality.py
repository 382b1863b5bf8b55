"""
Unit tests for QualityAssessor.
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_lock.quality import QualityAssessor, pearson
from pulse_lock.rppg import RppgSignal
from pulse_lock.synthetic import flat_signal, synthetic_pulse


class TestPearson:

    def test_identical_series(self):
        x = np.sin(np.linspace(0, 10, 200))
        assert pearson(x, x) == pytest.approx(1.0, abs=1e-6)

    def test_inverted_series(self):
        x = np.sin(np.linspace(0, 10, 200))
        assert pearson(x, -x) == pytest.approx(-1.0, abs=1e-6)

    def test_constant_series_is_uncorrelated(self):
        assert pearson(np.full(50, 3.0), np.arange(50.0)) == 0.0

    def test_uses_common_prefix(self):
        x = np.arange(10.0)
        assert pearson(x, np.arange(5.0)) == pytest.approx(1.0, abs=1e-6)


class TestQualityAssessor:

    def test_correlated_channels_score_full(self):
        qa = QualityAssessor()
        assert qa.channel_consistency(synthetic_pulse()) == pytest.approx(100.0, abs=1e-3)

    def test_green_only_pulse_scores_half(self):
        base = synthetic_pulse()
        sig = RppgSignal(
            red=np.full(len(base), 110.0),
            green=base.green,
            blue=np.full(len(base), 90.0),
            frame_rate=base.frame_rate,
        )
        assert QualityAssessor().channel_consistency(sig) == pytest.approx(50.0)

    def test_variance_score_capped(self):
        qa = QualityAssessor()
        assert qa.variance_score(np.array([-10.0, 10.0] * 50)) == 100.0
        assert qa.variance_score(np.array([])) == 0.0
        assert qa.variance_score(np.array([-0.1, 0.1] * 50)) == pytest.approx(10.0)

    def test_combined_weights(self):
        qa = QualityAssessor()
        sig = flat_signal()
        filtered = np.array([-0.1, 0.1] * 150)
        expected = 0.6 * qa.variance_score(filtered) + 0.4 * qa.channel_consistency(sig)
        assert qa.assess(sig, filtered) == pytest.approx(expected)

    def test_flat_signal_scores_low(self):
        qa = QualityAssessor()
        sig = flat_signal()
        assert qa.assess(sig, np.zeros(len(sig))) == pytest.approx(20.0)
