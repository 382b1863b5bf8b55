"""
Device authorization engine.

Per-device state machine::

    LOCKED ──verify_ownership_and_pulse──▶ VERIFYING ──granted──▶ UNLOCKED
       ▲                                       │                    │
       └──────────────denied───────────────────┘                    │
       └──── expiry / lockout / stop / deactivate ◀─────────────────┘

Every operation on a device runs under that device's lock, so two pulse
sessions racing for the same device are serialised: the first one to finish
establishes the unlock (and continuous session), the second runs after it.
Different devices never contend.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, Set

from pulse_lock.config import LockPolicy
from pulse_lock.lock.device import (
    ContinuousVerification,
    DeviceStats,
    GeoLocation,
    IoTDevice,
    LockState,
    OwnershipVerification,
    UnlockAttempt,
)
from pulse_lock.lock.errors import (
    DeviceAlreadyRegistered,
    DeviceInactive,
    DeviceNotFound,
    NoActiveSession,
)
from pulse_lock.lock.repository import (
    AuditLog,
    DeviceRepository,
    InMemoryAuditLog,
    InMemoryDeviceRepository,
)
from pulse_lock.lock.scheduler import PeriodicCheckTask
from pulse_lock.rppg import PffValidationResult, RppgSignal, SpoofingRisk
from pulse_lock.validator import LivenessValidator

logger = logging.getLogger(__name__)

NO_HEARTBEAT = "No valid heartbeat detected"
NOT_AUTHORIZED = "User not authorized"
SPOOFING_HIGH = "Spoofing risk HIGH"


class DeviceAuthorizationEngine:
    """
    Parameters
    ----------
    validator:
        Liveness validator; its config supplies the BPM range and quality
        threshold used to explain denials.
    devices:
        Device store.  Defaults to :class:`InMemoryDeviceRepository`.
    audit_log:
        Unlock-attempt log.  Defaults to :class:`InMemoryAuditLog`.
    policy:
        Unlock duration, confidence threshold and lockout policy.
    clock:
        Returns the current epoch time in seconds; injectable for tests.
    """

    def __init__(
        self,
        validator: Optional[LivenessValidator] = None,
        devices: Optional[DeviceRepository] = None,
        audit_log: Optional[AuditLog] = None,
        policy: Optional[LockPolicy] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.validator = validator if validator is not None else LivenessValidator(clock=clock)
        self.devices = devices if devices is not None else InMemoryDeviceRepository()
        self.audit_log = audit_log if audit_log is not None else InMemoryAuditLog()
        self.policy = policy or LockPolicy()
        self.clock = clock

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._sessions: Dict[str, ContinuousVerification] = {}
        self._ended_sessions: Dict[str, ContinuousVerification] = {}
        self._tasks: Dict[str, PeriodicCheckTask] = {}
        self._unlocked_until: Dict[str, float] = {}
        self._verifying: Set[str] = set()

    # ------------------------------------------------------------------
    # Device management
    # ------------------------------------------------------------------

    def register_device(self, device: IoTDevice) -> IoTDevice:
        with self._device_lock(device.device_id):
            if device.device_id in self.devices:
                raise DeviceAlreadyRegistered(device.device_id)
            stored = device.snapshot()
            self.devices.save(stored)
        logger.info("Registered device %s (%s) for owner %s",
                    device.device_id, device.device_type.value, device.registered_owner)
        return stored.snapshot()

    def get_device(self, device_id: str) -> Optional[IoTDevice]:
        with self._device_lock(device_id):
            device = self.devices.get(device_id)
            return device.snapshot() if device is not None else None

    def add_backup_owner(self, device_id: str, identity: str) -> None:
        with self._device_lock(device_id):
            device = self._require_device(device_id)
            if device.is_owner(identity) or identity in device.backup_owners:
                return
            device.backup_owners.add(identity)
            self.devices.save(device)
        logger.info("Added backup owner %s to device %s", identity, device_id)

    def remove_backup_owner(self, device_id: str, identity: str) -> None:
        with self._device_lock(device_id):
            device = self._require_device(device_id)
            device.backup_owners.discard(identity)
            self.devices.save(device)
        logger.info("Removed backup owner %s from device %s", identity, device_id)

    def deactivate_device(self, device_id: str) -> None:
        with self._device_lock(device_id):
            device = self._require_device(device_id)
            device.is_active = False
            self.devices.save(device)
            self._unlocked_until.pop(device_id, None)
            self._stop_session_locked(device_id, "device deactivated")
        logger.info("Deactivated device %s", device_id)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_ownership_and_pulse(
        self,
        device_id: str,
        user_identity: str,
        signal: RppgSignal,
        session_id: str,
        location: Optional[GeoLocation] = None,
    ) -> OwnershipVerification:
        """
        Decide whether *user_identity* may unlock *device_id* with this pulse.

        Raises :class:`DeviceNotFound` / :class:`DeviceInactive` for bad
        device references; every biometric or ownership failure is returned
        as a record with ``unlock_granted=False``.
        """
        with self._device_lock(device_id):
            device = self._require_device(device_id)
            if not device.is_active:
                raise DeviceInactive(device_id)

            self._verifying.add(device_id)
            try:
                return self._verify_locked(device, user_identity, signal, session_id, location)
            finally:
                self._verifying.discard(device_id)

    def perform_periodic_check(self, device_id: str, signal: RppgSignal, session_id: str) -> bool:
        """
        Re-verify presence during a continuous-verification session.

        Returns ``False`` when the check fails or is rejected (no active
        session, device gone or deactivated).  Reaching
        ``policy.max_failed_checks`` failures ends the session and relocks
        the device until a fresh :meth:`verify_ownership_and_pulse` succeeds.
        """
        return self._periodic_check(device_id, signal, session_id, expected=None)

    def stop_continuous_verification(self, device_id: str) -> bool:
        with self._device_lock(device_id):
            return self._stop_session_locked(device_id, "stopped by caller")

    def schedule_periodic_checks(
        self,
        device_id: str,
        capture: Callable[[], RppgSignal],
        interval: Optional[float] = None,
    ) -> PeriodicCheckTask:
        """
        Drive :meth:`perform_periodic_check` from a background timer.

        *capture* is called on every tick to obtain a fresh signal.  The task
        is bound to the session active right now; ending that session for
        any reason cancels it.
        """
        with self._device_lock(device_id):
            session = self._sessions.get(device_id)
            if session is None or not session.is_active:
                raise NoActiveSession(device_id)
            device = self._require_device(device_id)
            if interval is None:
                interval = device.verification_interval

            counter = itertools.count(1)
            task: PeriodicCheckTask

            def check() -> bool:
                if task.cancelled:
                    return False
                signal = capture()
                return self._periodic_check(
                    device_id, signal, f"{device_id}-check-{next(counter)}", expected=session,
                )

            task = PeriodicCheckTask(interval, check, name=f"pff-check-{device_id}")
            previous = self._tasks.pop(device_id, None)
            if previous is not None:
                previous.cancel()
            self._tasks[device_id] = task
            task.start()
        return task

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_device_stats(self, device_id: str) -> DeviceStats:
        with self._device_lock(device_id):
            device = self._require_device(device_id)
            total = device.total_unlocks + device.total_denials
            rate = device.total_unlocks / total * 100.0 if total > 0 else 0.0
            return DeviceStats(
                total_unlocks=device.total_unlocks,
                total_denials=device.total_denials,
                success_rate=rate,
                last_verification=device.last_verification,
                is_active=device.is_active,
            )

    def get_device_unlock_attempts(self, device_id: str) -> List[UnlockAttempt]:
        return self.audit_log.for_device(device_id)

    def get_user_unlock_attempts(self, user_identity: str) -> List[UnlockAttempt]:
        return self.audit_log.for_user(user_identity)

    def get_verification_status(self, device_id: str) -> Optional[ContinuousVerification]:
        """Snapshot of the current session, else of the last ended one, else None."""
        with self._device_lock(device_id):
            session = self._sessions.get(device_id) or self._ended_sessions.get(device_id)
            return session.snapshot() if session is not None else None

    def lock_state(self, device_id: str) -> LockState:
        # Read without the device lock so an in-flight verification shows up.
        if device_id in self._verifying:
            return LockState.VERIFYING
        if self.clock() >= self._unlocked_until.get(device_id, 0.0):
            return LockState.LOCKED
        device = self.devices.get(device_id)
        if device is None or not device.is_active:
            return LockState.LOCKED
        if device.requires_continuous_verification and device_id not in self._sessions:
            return LockState.LOCKED
        return LockState.UNLOCKED

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _device_lock(self, device_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(device_id, threading.Lock())

    def _require_device(self, device_id: str) -> IoTDevice:
        device = self.devices.get(device_id)
        if device is None:
            raise DeviceNotFound(device_id)
        return device

    def _verify_locked(
        self,
        device: IoTDevice,
        user_identity: str,
        signal: RppgSignal,
        session_id: str,
        location: Optional[GeoLocation],
    ) -> OwnershipVerification:
        device_id = device.device_id
        validation = self.validator.validate_pff(signal, session_id)
        is_owner = device.is_owner(user_identity)
        is_authorized = device.is_authorized(user_identity)

        reason = self._liveness_failure(validation)
        if reason is None and not is_authorized:
            reason = NOT_AUTHORIZED
            device.total_denials += 1
            self.devices.save(device)

        if reason is not None:
            self._log_attempt(device_id, user_identity, False, reason, validation, location)
            return OwnershipVerification(
                device_id=device_id,
                user_identity=user_identity,
                pff_validation=validation,
                is_owner=is_owner,
                is_authorized=is_authorized,
                unlock_granted=False,
                timestamp=self.clock(),
                expiry_time=0.0,
                location=location,
                failure_reason=reason,
            )

        timestamp = self.clock()
        expiry_time = timestamp + self.policy.unlock_duration
        device.last_verification = timestamp
        device.total_unlocks += 1
        self.devices.save(device)
        self._unlocked_until[device_id] = expiry_time

        self._log_attempt(device_id, user_identity, True, None, validation, location)

        if device.requires_continuous_verification:
            self._start_session_locked(device_id, user_identity, timestamp)

        return OwnershipVerification(
            device_id=device_id,
            user_identity=user_identity,
            pff_validation=validation,
            is_owner=is_owner,
            is_authorized=is_authorized,
            unlock_granted=True,
            timestamp=timestamp,
            expiry_time=expiry_time,
            location=location,
        )

    def _liveness_failure(self, validation: PffValidationResult) -> Optional[str]:
        """Most specific reason the verdict blocks an unlock, or None."""
        metrics = validation.metrics
        config = self.validator.config
        min_confidence = max(config.min_confidence, self.policy.min_unlock_confidence)

        if not validation.heartbeat_detected:
            return NO_HEARTBEAT
        if validation.is_valid and metrics.confidence >= self.policy.min_unlock_confidence:
            return None
        if not config.bpm_in_range(metrics.bpm):
            return f"BPM out of physiological range: {metrics.bpm}"
        if validation.spoofing_risk is SpoofingRisk.HIGH:
            return SPOOFING_HIGH
        if metrics.confidence < min_confidence:
            return f"PFF confidence too low: {metrics.confidence}%"
        if metrics.signal_quality < config.min_signal_quality:
            return f"Signal quality too low: {metrics.signal_quality}%"
        return NO_HEARTBEAT

    def _periodic_check(
        self,
        device_id: str,
        signal: RppgSignal,
        session_id: str,
        expected: Optional[ContinuousVerification],
    ) -> bool:
        with self._device_lock(device_id):
            session = self._sessions.get(device_id)
            if session is None or not session.is_active:
                logger.warning("Periodic check for %s rejected: no active session", device_id)
                return False
            if expected is not None and session is not expected:
                logger.warning("Periodic check for %s rejected: session replaced", device_id)
                return False
            device = self.devices.get(device_id)
            if device is None or not device.is_active:
                self._stop_session_locked(device_id, "device unavailable")
                return False
            if self.clock() >= self._unlocked_until.get(device_id, 0.0):
                self._unlocked_until.pop(device_id, None)
                self._stop_session_locked(device_id, "unlock expired")
                logger.warning("Periodic check for %s rejected: unlock expired", device_id)
                return False

            validation = self.validator.validate_pff(signal, session_id)
            now = self.clock()
            session.checks_performed += 1
            session.last_check_time = now

            passed = (
                validation.is_valid
                and validation.metrics.confidence >= self.policy.min_unlock_confidence
            )
            if passed:
                device.last_verification = now
                self.devices.save(device)
                return True

            session.checks_failed += 1
            logger.warning("Periodic check failed for %s (%d/%d)",
                           device_id, session.checks_failed, self.policy.max_failed_checks)
            if session.checks_failed >= self.policy.max_failed_checks:
                self._unlocked_until.pop(device_id, None)
                self._stop_session_locked(device_id, "too many failed checks")
                logger.warning("Device %s locked after failed verification", device_id)
            return False

    def _start_session_locked(self, device_id: str, user_identity: str, now: float) -> None:
        if device_id in self._sessions:
            self._stop_session_locked(device_id, "replaced by new unlock")
        self._sessions[device_id] = ContinuousVerification(
            device_id=device_id,
            user_identity=user_identity,
            start_time=now,
            last_check_time=now,
        )
        self._ended_sessions.pop(device_id, None)
        logger.info("Started continuous verification for device %s", device_id)

    def _stop_session_locked(self, device_id: str, reason: str) -> bool:
        task = self._tasks.pop(device_id, None)
        if task is not None:
            task.cancel()
        session = self._sessions.pop(device_id, None)
        if session is None:
            return False
        session.is_active = False
        self._ended_sessions[device_id] = session
        logger.info("Stopped continuous verification for device %s (%s)", device_id, reason)
        return True

    def _log_attempt(
        self,
        device_id: str,
        user_identity: str,
        success: bool,
        failure_reason: Optional[str],
        validation: PffValidationResult,
        location: Optional[GeoLocation],
    ) -> None:
        attempt = UnlockAttempt(
            attempt_id=f"attempt_{uuid.uuid4().hex}",
            device_id=device_id,
            user_identity=user_identity,
            timestamp=self.clock(),
            success=success,
            failure_reason=failure_reason,
            bpm=validation.metrics.bpm,
            confidence=validation.metrics.confidence,
            is_live=validation.metrics.is_live,
            spoofing_risk=validation.spoofing_risk,
            location=location,
        )
        self.audit_log.append(attempt)
        if success:
            logger.info("Unlock attempt – device=%s user=%s success=True", device_id, user_identity)
        else:
            logger.info("Unlock attempt – device=%s user=%s success=False reason=%s",
                        device_id, user_identity, failure_reason)
