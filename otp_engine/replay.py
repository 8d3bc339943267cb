"""
replay.py - Caller-side replay protection for HOTP counters and TOTP steps.

The engine is stateless; these guards hold the one piece of mutable state a
verifier needs (next HOTP counter / last accepted TOTP step) per key, usually
a user id. Each verify() runs under a lock, so two concurrent submissions of
the same code can never both be accepted.

State is in memory only. An application with a database keeps the same
numbers in its user table and does the read-verify-write in one transaction.
"""

import logging
import threading
from typing import Dict, Hashable, Optional

from otp_engine.config import (
    DEFAULT_ALGORITHM,
    DEFAULT_DIGITS,
    DEFAULT_LOOKAHEAD,
    DEFAULT_T0,
    DEFAULT_TIME_STEP,
    DEFAULT_WINDOW,
)
from otp_engine.errors import InvalidMovingFactor
from otp_engine.otp_core import SecretBytes, Timestamp, _match_step, verify_hotp

logger = logging.getLogger(__name__)


class HotpCounterGuard:
    """
    Tracks the next acceptable HOTP counter per key.

    Once counter N has been accepted, N and every lower counter are rejected,
    even though hotp(secret, N) still yields the same code.
    """

    def __init__(self, initial: Optional[Dict[Hashable, int]] = None):
        self._lock = threading.Lock()
        self._counters: Dict[Hashable, int] = {}
        for key, value in (initial or {}).items():
            self.set_counter(key, value)

    def counter(self, key: Hashable) -> int:
        """Next counter value that verify() will start from (0 if unknown)."""
        with self._lock:
            return self._counters.get(key, 0)

    def set_counter(self, key: Hashable, value: int) -> None:
        """Resynchronise a key. The counter only ever moves forward."""
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidMovingFactor(f"counter must be a non-negative integer, got {value!r}")
        with self._lock:
            current = self._counters.get(key, 0)
            if value < current:
                raise InvalidMovingFactor(
                    f"counter for {key!r} cannot move backwards ({current} -> {value})"
                )
            self._counters[key] = value

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def verify(
        self,
        key: Hashable,
        secret: SecretBytes,
        submitted_code: str,
        lookahead: int = DEFAULT_LOOKAHEAD,
        digits: int = DEFAULT_DIGITS,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> bool:
        with self._lock:
            counter = self._counters.get(key, 0)
            ok, matched = verify_hotp(secret, submitted_code, counter, lookahead, digits, algorithm)
            if not ok:
                return False
            self._counters[key] = matched + 1
        logger.debug("HOTP counter for %r advanced to %d", key, matched + 1)
        return True


class TotpReplayGuard:
    """
    Rejects a TOTP code whose time step is not newer than the last one
    accepted for the same key.

    With window_steps=1 a code stays valid for up to three steps; without
    this guard an observer could reuse it during that time.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_steps: Dict[Hashable, int] = {}

    def last_step(self, key: Hashable) -> Optional[int]:
        with self._lock:
            return self._last_steps.get(key)

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._last_steps.pop(key, None)

    def verify(
        self,
        key: Hashable,
        secret: SecretBytes,
        submitted_code: str,
        unix_time: Optional[Timestamp] = None,
        step_seconds: int = DEFAULT_TIME_STEP,
        window_steps: int = DEFAULT_WINDOW,
        digits: int = DEFAULT_DIGITS,
        algorithm: str = DEFAULT_ALGORITHM,
        t0: int = DEFAULT_T0,
    ) -> bool:
        with self._lock:
            step = _match_step(
                secret, submitted_code, unix_time, step_seconds, window_steps, digits, algorithm, t0
            )
            if step is None:
                return False
            last = self._last_steps.get(key)
            if last is not None and step <= last:
                logger.info("TOTP replay rejected for %r", key)
                return False
            self._last_steps[key] = step
        return True
