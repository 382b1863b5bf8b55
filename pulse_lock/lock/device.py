"""
Device registry records and per-attempt decision records.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Optional, Set

from pulse_lock.rppg import PffValidationResult, SpoofingRisk


class DeviceType(Enum):
    VEHICLE = "VEHICLE"          # ignition relay
    FIREARM = "FIREARM"
    DOOR = "DOOR"                # lock solenoid / door controller
    MEDICAL = "MEDICAL"
    INDUSTRIAL = "INDUSTRIAL"
    OTHER = "OTHER"


class LockState(Enum):
    LOCKED = auto()
    VERIFYING = auto()
    UNLOCKED = auto()


@dataclass(frozen=True)
class GeoLocation:
    latitude: float
    longitude: float


@dataclass
class IoTDevice:
    """
    A lockable device and its owner set.

    Devices are never removed from the registry, only deactivated, so every
    audit record keeps resolving to a device.
    """

    device_id: str
    registered_owner: str
    device_type: DeviceType = DeviceType.OTHER
    backup_owners: Set[str] = field(default_factory=set)
    is_active: bool = True
    requires_continuous_verification: bool = False
    verification_interval: float = 60.0      # seconds between periodic checks
    last_verification: float = 0.0
    total_unlocks: int = 0
    total_denials: int = 0

    def __post_init__(self) -> None:
        if not self.registered_owner:
            raise ValueError("registered_owner must be a non-empty identity")
        if self.verification_interval <= 0:
            raise ValueError("verification_interval must be positive")
        self.backup_owners = set(self.backup_owners)

    def is_owner(self, identity: str) -> bool:
        return identity == self.registered_owner

    def is_authorized(self, identity: str) -> bool:
        return self.is_owner(identity) or identity in self.backup_owners

    def snapshot(self) -> "IoTDevice":
        """Detached copy safe to hand to callers."""
        return replace(self, backup_owners=set(self.backup_owners))


@dataclass(frozen=True)
class OwnershipVerification:
    device_id: str
    user_identity: str
    pff_validation: PffValidationResult
    is_owner: bool
    is_authorized: bool
    unlock_granted: bool
    timestamp: float
    expiry_time: float                       # 0.0 when denied
    location: Optional[GeoLocation] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class UnlockAttempt:
    attempt_id: str
    device_id: str
    user_identity: str
    timestamp: float
    success: bool
    failure_reason: Optional[str]
    bpm: int
    confidence: int
    is_live: bool
    spoofing_risk: SpoofingRisk
    location: Optional[GeoLocation] = None


@dataclass
class ContinuousVerification:
    device_id: str
    user_identity: str
    start_time: float
    last_check_time: float
    checks_performed: int = 0
    checks_failed: int = 0
    is_active: bool = True

    def snapshot(self) -> "ContinuousVerification":
        return replace(self)


@dataclass(frozen=True)
class DeviceStats:
    total_unlocks: int
    total_denials: int
    success_rate: float                      # percent
    last_verification: float
    is_active: bool
