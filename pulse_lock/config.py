"""
Tunable thresholds for the liveness pipeline and the device lock policy.

Both objects are plain dataclasses so they can be built from CLI flags or
any other configuration source and handed to the constructors that need them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class LivenessConfig:
    """
    Thresholds used by :class:`~pulse_lock.validator.LivenessValidator`.

    Parameters
    ----------
    bpm_min, bpm_max:
        Physiological heart-rate range.  Also defines the bandpass corners
        (45 – 180 BPM = 0.75 – 3.0 Hz).
    min_confidence:
        Minimum spectral-peak confidence (0 – 100) for a valid verdict.
    min_signal_quality:
        Minimum combined signal quality (0 – 100) for a valid verdict.
    segment_seconds:
        Segment length used by the temporal-consistency spoofing check.
    filter_method:
        ``"moving_average"`` (default) or ``"butterworth"``.
    filter_order:
        Butterworth order, ignored by the moving-average filter.
    hash_key:
        Optional secret.  When set, validation hashes are HMAC-SHA-256
        commitments instead of plain SHA-256 fingerprints.
    """

    bpm_min: float = 45.0
    bpm_max: float = 180.0
    min_confidence: float = 75.0
    min_signal_quality: float = 60.0
    segment_seconds: float = 2.0
    filter_method: str = "moving_average"
    filter_order: int = 4
    hash_key: Optional[bytes] = None

    @property
    def low_hz(self) -> float:
        return self.bpm_min / 60.0

    @property
    def high_hz(self) -> float:
        return self.bpm_max / 60.0

    def bpm_in_range(self, bpm: float) -> bool:
        return self.bpm_min <= bpm <= self.bpm_max


@dataclass(frozen=True)
class LockPolicy:
    """
    Policy applied by :class:`~pulse_lock.lock.engine.DeviceAuthorizationEngine`.

    Parameters
    ----------
    min_unlock_confidence:
        Minimum liveness confidence (0 – 100) to unlock or pass a periodic check.
    unlock_duration:
        Seconds an unlock stays valid before re-verification is required.
    max_failed_checks:
        Failed periodic checks that end a continuous-verification session.
    default_verification_interval:
        Seconds between periodic checks for devices that do not set their own.
    """

    min_unlock_confidence: float = 75.0
    unlock_duration: float = 300.0
    max_failed_checks: int = 3
    default_verification_interval: float = 60.0
