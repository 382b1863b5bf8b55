"""
rPPG data model.

An :class:`RppgSignal` is the raw per-frame average colour of the facial
region over one capture window.  It is created per verification attempt and
dropped once a verdict exists; nothing in this package keeps a reference to
it after :meth:`LivenessValidator.validate_pff` returns.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

import numpy as np


class SpoofingRisk(str, Enum):
    """How likely a signal is synthetic or replayed rather than live."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class RppgSignal:
    """
    Per-frame mean red / green / blue intensities of one capture window.

    Parameters
    ----------
    red, green, blue:
        Channel time series.  All three must have the same length.
    frame_rate:
        Capture rate in frames per second.
    timestamp:
        Capture start time (epoch seconds).  Defaults to *now*.
    """

    red: np.ndarray
    green: np.ndarray
    blue: np.ndarray
    frame_rate: float
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        self.red = np.asarray(self.red, dtype=np.float64).ravel()
        self.green = np.asarray(self.green, dtype=np.float64).ravel()
        self.blue = np.asarray(self.blue, dtype=np.float64).ravel()
        if not (len(self.red) == len(self.green) == len(self.blue)):
            raise ValueError(
                "Channel lengths differ: "
                f"red={len(self.red)} green={len(self.green)} blue={len(self.blue)}"
            )
        if self.frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {self.frame_rate}")

    def __len__(self) -> int:
        return len(self.green)

    @property
    def duration(self) -> float:
        """Window length in seconds."""
        return len(self) / self.frame_rate

    @classmethod
    def from_frames(
        cls,
        frames: Iterable[np.ndarray],
        frame_rate: float,
        timestamp: Optional[float] = None,
    ) -> "RppgSignal":
        """
        Build a signal from BGR face-region crops (H × W × 3, uint8).

        Each frame contributes the mean of its red, green and blue planes.
        """
        red, green, blue = [], [], []
        for frame in frames:
            blue.append(float(np.mean(frame[:, :, 0])))
            green.append(float(np.mean(frame[:, :, 1])))
            red.append(float(np.mean(frame[:, :, 2])))
        return cls(
            red=np.array(red),
            green=np.array(green),
            blue=np.array(blue),
            frame_rate=frame_rate,
            timestamp=time.time() if timestamp is None else timestamp,
        )


@dataclass(frozen=True)
class HeartbeatMetrics:
    bpm: int
    confidence: int          # 0 – 100
    signal_quality: int      # 0 – 100
    is_live: bool


@dataclass(frozen=True)
class PffValidationResult:
    """Outcome of one liveness check.  Never mutated after creation."""

    is_valid: bool
    heartbeat_detected: bool
    metrics: HeartbeatMetrics
    timestamp: float
    session_id: str
    spoofing_risk: SpoofingRisk
    validation_hash: str
