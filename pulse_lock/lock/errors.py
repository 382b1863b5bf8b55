"""
Structural errors raised by the authorization engine.

Biometric and ownership failures are *not* exceptions; they come back as
:class:`~pulse_lock.lock.device.OwnershipVerification` records with
``unlock_granted=False``.
"""

from __future__ import annotations


class LockError(Exception):
    """Base class for device-lock errors."""


class DeviceNotFound(LockError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device not found: {device_id}")
        self.device_id = device_id


class DeviceInactive(LockError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device is inactive: {device_id}")
        self.device_id = device_id


class DeviceAlreadyRegistered(LockError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device already registered: {device_id}")
        self.device_id = device_id


class NoActiveSession(LockError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"No active continuous verification for device: {device_id}")
        self.device_id = device_id
