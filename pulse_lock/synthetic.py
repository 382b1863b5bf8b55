"""
Synthetic rPPG signals for demos and tests.

The pulse is injected into all three channels with the relative strengths
seen on real skin (green strongest, blue weakest), on top of typical
face-region brightness levels.
"""

from __future__ import annotations

import time
from typing import Optional

import numpy as np

from pulse_lock.rppg import RppgSignal

# (baseline, relative pulse amplitude) per channel
_RED = (110.0, 0.6)
_GREEN = (120.0, 1.0)
_BLUE = (90.0, 0.4)


def synthetic_pulse(
    bpm: float = 75.0,
    fps: float = 30.0,
    duration: float = 10.0,
    amplitude: float = 2.0,
    noise: float = 0.0,
    seed: Optional[int] = None,
    timestamp: Optional[float] = None,
) -> RppgSignal:
    """
    Sinusoidal pulse at *bpm* sampled at *fps* for *duration* seconds.

    Parameters
    ----------
    amplitude:
        Green-channel pulse amplitude in intensity units.
    noise:
        Standard deviation of independent Gaussian noise added per channel.
    seed:
        Seed for the noise generator.
    """
    t = np.arange(int(round(fps * duration))) / fps
    pulse = amplitude * np.sin(2 * np.pi * (bpm / 60.0) * t)
    rng = np.random.default_rng(seed)

    def channel(spec: tuple) -> np.ndarray:
        base, gain = spec
        values = base + gain * pulse
        if noise > 0:
            values = values + rng.normal(0.0, noise, size=t.size)
        return values

    return RppgSignal(
        red=channel(_RED),
        green=channel(_GREEN),
        blue=channel(_BLUE),
        frame_rate=fps,
        timestamp=time.time() if timestamp is None else timestamp,
    )


def flat_signal(
    level: float = 100.0,
    fps: float = 30.0,
    duration: float = 10.0,
    timestamp: Optional[float] = None,
) -> RppgSignal:
    """Constant signal: no pulse at all (covered camera, photo, frozen frame)."""
    n = int(round(fps * duration))
    values = np.full(n, level)
    return RppgSignal(
        red=values.copy(),
        green=values.copy(),
        blue=values.copy(),
        frame_rate=fps,
        timestamp=time.time() if timestamp is None else timestamp,
    )
