"""
Signal-quality scoring.

Live facial skin modulates all three colour channels with the same blood-volume
pulse, so a genuine capture shows correlated R / G / B fluctuations.  Quality
combines the strength of the pulsatile component (variance of the filtered
green channel) with that cross-channel coherence.
"""

from __future__ import annotations

import numpy as np

from pulse_lock.rppg import RppgSignal

VARIANCE_WEIGHT = 0.6
CHANNEL_WEIGHT = 0.4


def pearson(a: np.ndarray, b: np.ndarray) -> float:
    """Pearson correlation of the common prefix of *a* and *b* (0.0 if degenerate)."""
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    da = np.asarray(a[:n], dtype=np.float64)
    db = np.asarray(b[:n], dtype=np.float64)
    da = da - da.mean()
    db = db - db.mean()
    num = float(np.sum(da * db))
    den = float(np.sqrt(np.sum(da * da) * np.sum(db * db)))
    return num / (den + 1e-10)


class QualityAssessor:

    def variance_score(self, filtered: np.ndarray) -> float:
        """Stronger pulsatile component → higher score (0 – 100)."""
        if len(filtered) == 0:
            return 0.0
        return min(100.0, float(np.var(filtered)) * 1000.0)

    def channel_consistency(self, signal: RppgSignal) -> float:
        """Mean pairwise R/G/B correlation mapped from [-1, 1] to [0, 100]."""
        rg = pearson(signal.red, signal.green)
        rb = pearson(signal.red, signal.blue)
        gb = pearson(signal.green, signal.blue)
        return ((rg + rb + gb) / 3.0 + 1.0) * 50.0

    def assess(self, signal: RppgSignal, filtered: np.ndarray) -> float:
        return (
            VARIANCE_WEIGHT * self.variance_score(filtered)
            + CHANNEL_WEIGHT * self.channel_consistency(signal)
        )
