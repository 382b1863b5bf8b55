"""
Heuristic anti-spoofing checks.

A replayed or synthesised signal can pass the frequency and quality gates, so
three further checks look at how the pulse behaves over time:

* **Temporal consistency** – BPM estimated independently per ~2 s segment.
  A live heart drifts slightly; a looped recording is perfectly constant and
  noise jumps around.
* **Naturalness** – frame-to-frame micro-variation and the noise floor of the
  raw green channel must both sit in an organic band.
* **Channel validity** – the R/G/B correlation from
  :class:`~pulse_lock.quality.QualityAssessor`.

The weighted score (0.4 / 0.3 / 0.3) maps to LOW (>= 80), MEDIUM (>= 60) or
HIGH risk.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from pulse_lock.quality import QualityAssessor
from pulse_lock.rppg import RppgSignal, SpoofingRisk
from pulse_lock.signal_processor import FrequencyAnalyzer, SignalPreprocessor

logger = logging.getLogger(__name__)

TEMPORAL_WEIGHT = 0.4
NATURALNESS_WEIGHT = 0.3
CHANNEL_WEIGHT = 0.3

LOW_RISK_SCORE = 80.0
MEDIUM_RISK_SCORE = 60.0


@dataclass(frozen=True)
class SpoofingAssessment:
    temporal_consistency: float
    naturalness: float
    channel_validity: float
    score: float
    risk: SpoofingRisk


def classify(score: float) -> SpoofingRisk:
    if score >= LOW_RISK_SCORE:
        return SpoofingRisk.LOW
    if score >= MEDIUM_RISK_SCORE:
        return SpoofingRisk.MEDIUM
    return SpoofingRisk.HIGH


def score_bpm_variance(segment_bpms: Sequence[float]) -> float:
    """Score the spread of per-segment BPM estimates (0 – 100)."""
    if len(segment_bpms) == 0:
        return 50.0
    variance = float(np.var(segment_bpms))
    if variance < 1.0:
        return 30.0   # too regular: looped recording
    if variance > 100.0:
        return 40.0   # too erratic: noise
    return 100.0


def micro_variation_score(samples: np.ndarray) -> float:
    if len(samples) < 2:
        return 20.0
    avg_step = float(np.mean(np.abs(np.diff(samples))))
    if avg_step < 0.001:
        return 20.0   # synthetic smoothness
    if avg_step > 10.0:
        return 30.0   # sensor noise
    return 100.0


def noise_floor_score(samples: np.ndarray) -> float:
    if len(samples) == 0:
        return 30.0
    std = float(np.std(SignalPreprocessor.detrend(samples)))
    if std < 0.01:
        return 30.0
    if std > 5.0:
        return 40.0
    return 100.0


class SpoofingRiskEngine:
    """
    Parameters
    ----------
    preprocessor, analyzer, quality:
        Pipeline stages reused for per-segment BPM and channel validity.
    segment_seconds:
        Length of each temporal-consistency segment.
    """

    def __init__(
        self,
        preprocessor: Optional[SignalPreprocessor] = None,
        analyzer: Optional[FrequencyAnalyzer] = None,
        quality: Optional[QualityAssessor] = None,
        segment_seconds: float = 2.0,
    ) -> None:
        self.preprocessor = preprocessor or SignalPreprocessor()
        self.analyzer = analyzer or FrequencyAnalyzer()
        self.quality = quality or QualityAssessor()
        self.segment_seconds = segment_seconds

    def assess(self, signal: RppgSignal) -> SpoofingAssessment:
        temporal = self.temporal_consistency(signal)
        naturalness = self.naturalness(signal)
        channel = self.quality.channel_consistency(signal)
        score = (
            TEMPORAL_WEIGHT * temporal
            + NATURALNESS_WEIGHT * naturalness
            + CHANNEL_WEIGHT * channel
        )
        risk = classify(score)
        logger.debug(
            "Spoofing score %.1f (temporal=%.0f naturalness=%.0f channel=%.1f) → %s",
            score, temporal, naturalness, channel, risk.value,
        )
        return SpoofingAssessment(temporal, naturalness, channel, score, risk)

    def segment_bpms(self, signal: RppgSignal) -> List[float]:
        """Independent BPM estimate for each full-enough green-channel segment."""
        size = int(signal.frame_rate * self.segment_seconds)
        if size < 2:
            return []
        green = signal.green
        bpms: List[float] = []
        for start in range(0, len(green), size):
            segment = green[start:start + size]
            if len(segment) < size / 2:
                continue
            filtered = self.preprocessor.process(segment, signal.frame_rate)
            bpms.append(self.analyzer.analyze(filtered, signal.frame_rate).bpm)
        return bpms

    def temporal_consistency(self, signal: RppgSignal) -> float:
        size = int(signal.frame_rate * self.segment_seconds)
        if size < 1 or int(np.ceil(len(signal) / size)) < 2:
            return 50.0
        return score_bpm_variance(self.segment_bpms(signal))

    def naturalness(self, signal: RppgSignal) -> float:
        return (
            0.6 * micro_variation_score(signal.green)
            + 0.4 * noise_floor_score(signal.green)
        )
