"""
Pulse Lock: liveness-gated device authorization.

A live heartbeat is recovered from facial colour fluctuations (rPPG), scored
for spoofing risk, and used to grant time-bounded, continuously re-checked
unlock sessions on registered devices.
"""

__version__ = "0.1.0"
__author__ = "pulse_lock"
