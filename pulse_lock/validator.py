"""
PFF (Presence Factor Fabric) liveness validation.

Runs the full rPPG pipeline on one capture window and returns an immutable
:class:`~pulse_lock.rppg.PffValidationResult`:

    preprocess → frequency analysis → quality → live-signal checks
               → spoofing risk → verdict + audit hash
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Callable, Optional, Tuple

import numpy as np

from pulse_lock.config import LivenessConfig
from pulse_lock.quality import QualityAssessor
from pulse_lock.rppg import HeartbeatMetrics, PffValidationResult, RppgSignal, SpoofingRisk
from pulse_lock.signal_processor import FrequencyAnalyzer, SignalPreprocessor, SpectrumPeak
from pulse_lock.spoofing import SpoofingRiskEngine

logger = logging.getLogger(__name__)

MIN_PEAK_MAGNITUDE = 0.1
MIN_FILTERED_POWER = 0.001
HASH_SAMPLE_SIZE = 10


class LivenessValidator:
    """
    Orchestrates the signal pipeline into a single liveness verdict.

    Parameters
    ----------
    config:
        Thresholds and filter settings.  Defaults to :class:`LivenessConfig`.
    clock:
        Returns the current epoch time in seconds; injectable for tests.
    """

    def __init__(
        self,
        config: Optional[LivenessConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or LivenessConfig()
        self.clock = clock
        self.preprocessor = SignalPreprocessor(
            bpm_low=self.config.bpm_min,
            bpm_high=self.config.bpm_max,
            method=self.config.filter_method,
            filter_order=self.config.filter_order,
        )
        self.analyzer = FrequencyAnalyzer()
        self.quality = QualityAssessor()
        self.spoofing = SpoofingRiskEngine(
            preprocessor=self.preprocessor,
            analyzer=self.analyzer,
            quality=self.quality,
            segment_seconds=self.config.segment_seconds,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_pff(self, signal: RppgSignal, session_id: str) -> PffValidationResult:
        """Return the liveness verdict for *signal*."""
        metrics = self.extract_heartbeat(signal)
        spoofing = self.spoofing.assess(signal)

        is_valid = (
            metrics.is_live
            and self.config.bpm_in_range(metrics.bpm)
            and metrics.confidence >= self.config.min_confidence
            and metrics.signal_quality >= self.config.min_signal_quality
            and spoofing.risk is not SpoofingRisk.HIGH
        )

        result = PffValidationResult(
            is_valid=is_valid,
            heartbeat_detected=metrics.bpm > 0,
            metrics=metrics,
            timestamp=self.clock(),
            session_id=session_id,
            spoofing_risk=spoofing.risk,
            validation_hash=self.validation_hash(signal, metrics, session_id),
        )
        logger.info(
            "PFF session %s: valid=%s bpm=%d conf=%d quality=%d risk=%s",
            session_id, result.is_valid, metrics.bpm, metrics.confidence,
            metrics.signal_quality, result.spoofing_risk.value,
        )
        return result

    def extract_heartbeat(self, signal: RppgSignal) -> HeartbeatMetrics:
        """Green-channel pulse → rounded BPM, confidence, quality and liveness."""
        filtered, peak = self._analyze(signal)
        confidence = self.analyzer.confidence(peak)
        quality = self.quality.assess(signal, filtered)
        return HeartbeatMetrics(
            bpm=int(round(peak.bpm)),
            confidence=int(round(confidence)),
            signal_quality=int(round(quality)),
            is_live=self.is_live_signal(filtered, peak),
        )

    def is_live_signal(self, filtered: np.ndarray, peak: SpectrumPeak) -> bool:
        if not self.config.bpm_in_range(peak.bpm):
            return False
        if peak.peak_magnitude < MIN_PEAK_MAGNITUDE:
            return False
        # Mean power of the filtered pulse; near zero means synthetic flatness.
        if len(filtered) == 0 or float(np.mean(filtered ** 2)) < MIN_FILTERED_POWER:
            return False
        return True

    def validation_hash(
        self, signal: RppgSignal, metrics: HeartbeatMetrics, session_id: str
    ) -> str:
        """
        Audit fingerprint binding the session, capture time, metrics and the
        first few green samples.

        SHA-256 over canonical JSON; HMAC-SHA-256 when ``config.hash_key`` is
        set, which makes the hash a commitment only the key holder can forge.
        """
        payload = {
            "session_id": session_id,
            "timestamp": signal.timestamp,
            "bpm": metrics.bpm,
            "confidence": metrics.confidence,
            "signal_quality": metrics.signal_quality,
            "signal_sample": [float(v) for v in signal.green[:HASH_SAMPLE_SIZE]],
        }
        data = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()
        if self.config.hash_key:
            digest = hmac.new(self.config.hash_key, data, hashlib.sha256).hexdigest()
        else:
            digest = hashlib.sha256(data).hexdigest()
        return f"pff_{digest}_{session_id[:8]}"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _analyze(self, signal: RppgSignal) -> Tuple[np.ndarray, SpectrumPeak]:
        # Green is most sensitive to haemoglobin absorption changes.
        filtered = self.preprocessor.process(signal.green, signal.frame_rate)
        return filtered, self.analyzer.analyze(filtered, signal.frame_rate)
