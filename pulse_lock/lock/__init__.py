"""
pulse_lock.lock – liveness-gated device authorization.

Owns the device registry, turns liveness verdicts into time-bounded unlocks,
runs continuous re-verification while a device stays unlocked, and keeps an
append-only audit trail of every unlock attempt.
"""
