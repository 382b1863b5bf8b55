#!/usr/bin/env python3
"""
Pulse Lock – command-line demo of liveness-gated device unlock.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --signal PATH        CSV file with one ``red,green,blue`` row per frame
                         (default: synthesise a pulse)
    --bpm FLOAT          Synthetic pulse rate (default: 75)
    --fps FLOAT          Frame rate of the signal (default: 30)
    --duration FLOAT     Synthetic capture length in seconds (default: 10)
    --noise FLOAT        Synthetic per-channel noise std-dev (default: 0.05)
    --seed INT           Noise seed
    --owner DID          Registered owner of the demo device
    --identity DID       Identity attempting the unlock (default: owner)
    --device-type TYPE   VEHICLE, FIREARM, DOOR, MEDICAL, INDUSTRIAL, OTHER
    --checks INT         Periodic re-checks to run after a granted unlock
    --unlock-duration S  Seconds an unlock stays valid (default: 300)
    --filter NAME        moving_average or butterworth
    --verbose            Debug logging

Exit status: 0 unlock granted, 2 unlock denied, 1 bad input.
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from pathlib import Path

import numpy as np

from pulse_lock.config import LivenessConfig, LockPolicy
from pulse_lock.lock.device import DeviceType, IoTDevice
from pulse_lock.lock.engine import DeviceAuthorizationEngine
from pulse_lock.rppg import RppgSignal
from pulse_lock.signal_processor import FILTER_METHODS
from pulse_lock.synthetic import synthetic_pulse
from pulse_lock.validator import LivenessValidator

logger = logging.getLogger("pulse_lock")

DEMO_DEVICE_ID = "demo-device"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Liveness-gated device unlock via rPPG heartbeat",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--signal", type=Path, default=None,
                        help="CSV of per-frame red,green,blue means")
    parser.add_argument("--bpm", type=float, default=75.0,
                        help="Synthetic pulse rate")
    parser.add_argument("--fps", type=float, default=30.0,
                        help="Signal frame rate")
    parser.add_argument("--duration", type=float, default=10.0,
                        help="Synthetic capture length in seconds")
    parser.add_argument("--noise", type=float, default=0.05,
                        help="Synthetic per-channel noise std-dev")
    parser.add_argument("--seed", type=int, default=None,
                        help="Noise seed")
    parser.add_argument("--owner", default="did:vida:owner",
                        help="Registered owner of the demo device")
    parser.add_argument("--identity", default=None,
                        help="Identity attempting the unlock (default: owner)")
    parser.add_argument("--device-type", default="OTHER",
                        choices=[t.value for t in DeviceType],
                        help="Demo device type")
    parser.add_argument("--checks", type=int, default=0,
                        help="Periodic re-checks to run after a granted unlock")
    parser.add_argument("--unlock-duration", type=float, default=300.0,
                        help="Seconds an unlock stays valid")
    parser.add_argument("--filter", default="moving_average", choices=FILTER_METHODS,
                        help="Bandpass filter implementation")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def load_signal(path: Path, fps: float) -> RppgSignal:
    """Read a ``red,green,blue`` CSV (header row optional)."""
    data = np.genfromtxt(path, delimiter=",", dtype=np.float64)
    data = np.atleast_2d(data)
    data = data[~np.isnan(data).any(axis=1)]
    if data.ndim != 2 or data.shape[1] < 3:
        raise ValueError(f"{path}: expected three columns red,green,blue")
    return RppgSignal(red=data[:, 0], green=data[:, 1], blue=data[:, 2], frame_rate=fps)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )

    def capture() -> RppgSignal:
        if args.signal is not None:
            return load_signal(args.signal, args.fps)
        return synthetic_pulse(bpm=args.bpm, fps=args.fps, duration=args.duration,
                               noise=args.noise, seed=args.seed)

    try:
        signal = capture()
    except (OSError, ValueError) as exc:
        logger.error("Cannot load signal: %s", exc)
        return 1

    validator = LivenessValidator(LivenessConfig(filter_method=args.filter))
    engine = DeviceAuthorizationEngine(
        validator=validator,
        policy=LockPolicy(unlock_duration=args.unlock_duration),
    )
    engine.register_device(IoTDevice(
        device_id=DEMO_DEVICE_ID,
        registered_owner=args.owner,
        device_type=DeviceType(args.device_type),
        requires_continuous_verification=args.checks > 0,
    ))

    identity = args.identity or args.owner
    result = engine.verify_ownership_and_pulse(
        DEMO_DEVICE_ID, identity, signal, session_id=uuid.uuid4().hex,
    )
    metrics = result.pff_validation.metrics
    print(f"BPM={metrics.bpm}  conf={metrics.confidence}  quality={metrics.signal_quality}  "
          f"risk={result.pff_validation.spoofing_risk.value}  live={metrics.is_live}")
    print(f"hash={result.pff_validation.validation_hash}")

    if not result.unlock_granted:
        print(f"Unlock DENIED: {result.failure_reason}")
        return 2
    print(f"Unlock GRANTED for {identity} until {result.expiry_time:.0f}")

    for n in range(args.checks):
        ok = engine.perform_periodic_check(DEMO_DEVICE_ID, capture(), f"check-{n + 1}")
        status = engine.get_verification_status(DEMO_DEVICE_ID)
        print(f"Check {n + 1}: passed={ok}  failed={status.checks_failed}  "
              f"active={status.is_active}")

    print(f"Lock state: {engine.lock_state(DEMO_DEVICE_ID).name}")
    return 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
