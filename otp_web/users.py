"""
In-memory user directory for the reference web app.

Holds password hashes and OTP secrets server-side. During enrollment the
new secret waits in `pending_secret` until the user proves, with a code,
that their authenticator has it; the browser never sends a secret back.
"""

import threading
from dataclasses import dataclass
from typing import Dict, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from otp_engine.secret_codec import generate_secret


class UserExists(Exception):
    pass


class UnknownUser(KeyError):
    pass


@dataclass
class UserRecord:
    username: str
    password_hash: str
    otp_secret: Optional[bytes] = None
    pending_secret: Optional[bytes] = None

    @property
    def otp_enabled(self) -> bool:
        return self.otp_secret is not None


class UserDirectory:
    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[str, UserRecord] = {}
        # compared against for unknown usernames so every login costs one hash check
        self._dummy_hash = generate_password_hash(generate_secret().hex())

    def add_user(self, username: str, password: str) -> UserRecord:
        record = UserRecord(username, generate_password_hash(password))
        with self._lock:
            if username in self._users:
                raise UserExists(username)
            self._users[username] = record
        return record

    def get(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            return self._users.get(username)

    def remove_user(self, username: str) -> None:
        with self._lock:
            self._require(username)
            del self._users[username]

    def _require(self, username: str) -> UserRecord:
        record = self._users.get(username)
        if record is None:
            raise UnknownUser(username)
        return record

    def check_password(self, username: str, password: str) -> bool:
        record = self.get(username)
        if record is None:
            check_password_hash(self._dummy_hash, password)
            return False
        return check_password_hash(record.password_hash, password)

    def begin_enrollment(self, username: str) -> bytes:
        """Create (or replace) the pending secret and return it."""
        secret = generate_secret()
        with self._lock:
            self._require(username).pending_secret = secret
        return secret

    def activate_pending(self, username: str, pending: bytes) -> bool:
        """Promote `pending` to the active secret if it is still the pending one."""
        with self._lock:
            record = self._require(username)
            if record.pending_secret != pending:
                return False
            record.otp_secret = pending
            record.pending_secret = None
        return True

    def disable_otp(self, username: str) -> None:
        with self._lock:
            record = self._require(username)
            record.otp_secret = None
            record.pending_secret = None
