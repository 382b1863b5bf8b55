"""
Storage boundary for the authorization engine.

The engine talks to a :class:`DeviceRepository` and an :class:`AuditLog`
rather than module-level dictionaries, so a persistent store can be plugged
in without touching the decision logic.  The in-memory implementations here
are the defaults.

The audit log is append-only and hash-chained: every entry stores the SHA-256
of its predecessor, so any edit or deletion in the middle of the trail breaks
:meth:`InMemoryAuditLog.verify_chain`.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from pulse_lock.lock.device import IoTDevice, UnlockAttempt

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


class DeviceRepository(Protocol):
    def get(self, device_id: str) -> Optional[IoTDevice]: ...

    def save(self, device: IoTDevice) -> None: ...

    def __contains__(self, device_id: object) -> bool: ...


class AuditLog(Protocol):
    def append(self, attempt: UnlockAttempt) -> str: ...

    def for_device(self, device_id: str) -> List[UnlockAttempt]: ...

    def for_user(self, user_identity: str) -> List[UnlockAttempt]: ...


class InMemoryDeviceRepository:
    """Dictionary-backed device store.  Callers serialise writes per device."""

    def __init__(self) -> None:
        self._devices: Dict[str, IoTDevice] = {}

    def get(self, device_id: str) -> Optional[IoTDevice]:
        return self._devices.get(device_id)

    def save(self, device: IoTDevice) -> None:
        self._devices[device.device_id] = device

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __len__(self) -> int:
        return len(self._devices)


@dataclass(frozen=True)
class AuditEntry:
    attempt: UnlockAttempt
    prev_hash: str
    hash: str


def _json_default(obj: object) -> object:
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Not JSON serialisable: {type(obj).__name__}")


def entry_hash(attempt: UnlockAttempt, prev_hash: str) -> str:
    body = {"attempt": asdict(attempt), "prev_hash": prev_hash}
    data = json.dumps(body, sort_keys=True, default=_json_default)
    return hashlib.sha256(data.encode()).hexdigest()


class InMemoryAuditLog:
    """
    Append-only, hash-chained unlock-attempt log.

    Parameters
    ----------
    sink:
        Optional callable invoked with each new :class:`AuditEntry` (e.g. to
        forward it to a compliance store).  Exceptions raised by the sink
        propagate to the caller; the entry is still kept locally.
    """

    def __init__(self, sink: Optional[Callable[[AuditEntry], None]] = None) -> None:
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()
        self._sink = sink

    def append(self, attempt: UnlockAttempt) -> str:
        with self._lock:
            prev = self._entries[-1].hash if self._entries else GENESIS_HASH
            entry = AuditEntry(attempt, prev, entry_hash(attempt, prev))
            self._entries.append(entry)
        if self._sink is not None:
            self._sink(entry)
        return entry.hash

    def for_device(self, device_id: str) -> List[UnlockAttempt]:
        return [e.attempt for e in self.entries() if e.attempt.device_id == device_id]

    def for_user(self, user_identity: str) -> List[UnlockAttempt]:
        return [e.attempt for e in self.entries() if e.attempt.user_identity == user_identity]

    def entries(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    @property
    def head_hash(self) -> str:
        with self._lock:
            return self._entries[-1].hash if self._entries else GENESIS_HASH

    def verify_chain(self) -> bool:
        """Recompute every link; False at the first mismatch."""
        prev = GENESIS_HASH
        for i, entry in enumerate(self.entries()):
            if entry.prev_hash != prev:
                logger.error("Audit chain broken at entry %d: link mismatch", i)
                return False
            if entry_hash(entry.attempt, prev) != entry.hash:
                logger.error("Audit chain corrupted at entry %d: hash mismatch", i)
                return False
            prev = entry.hash
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
