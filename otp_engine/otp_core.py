"""
otp_core.py - Core library for TOTP / HOTP (RFC 6238 / RFC 4226).

Goals:
- Pure functions only: every call is independent, nothing is cached or stored,
  so the module is safe to call from many threads at once.
- Secrets are raw bytes. Decode Base32/hex at the boundary with
  otp_engine.secret_codec before calling in here.
- No web framework, no file I/O. CLI and HTTP callers live elsewhere.

Security notes:
- Codes are compared with hmac.compare_digest (constant time).
- Counter / last-step persistence belongs to the caller. verify_hotp() returns
  the matched counter so the caller can move past it; see otp_engine.replay.
- HMAC-SHA1 is the default because that is what common authenticator apps
  implement; SHA256 and SHA512 are available for RFC 6238 deployments.
"""

import hashlib
import hmac
import logging
import struct
import time
from typing import Callable, Dict, Optional, Tuple, Union

from otp_engine.config import (
    DEFAULT_ALGORITHM,
    DEFAULT_DIGITS,
    DEFAULT_LOOKAHEAD,
    DEFAULT_T0,
    DEFAULT_TIME_STEP,
    DEFAULT_WINDOW,
    MAX_DIGITS,
    MIN_DIGITS,
)
from otp_engine.errors import (
    InvalidDigits,
    InvalidMovingFactor,
    InvalidSecret,
    InvalidStep,
    InvalidWindow,
    UnsupportedAlgorithm,
)

logger = logging.getLogger(__name__)

SecretBytes = Union[bytes, bytearray, memoryview]
Timestamp = Union[int, float]

_ALGORITHMS: Dict[str, Callable] = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}
_MAX_MOVING_FACTOR = 2 ** 64 - 1


# --- Validation ------------------------------------------------------------
def _is_int(value) -> bool:
    # bool is an int subclass; True must not pass as digits=1
    return isinstance(value, int) and not isinstance(value, bool)


def normalize_algorithm(algorithm: str) -> str:
    """
    Return the canonical algorithm name ("SHA1", "SHA256", "SHA512").

    Accepts any case and the dashed spelling used in some URIs ("sha-256").

    Raises:
        UnsupportedAlgorithm: for anything else
    """
    if not isinstance(algorithm, str):
        raise UnsupportedAlgorithm(f"algorithm must be a string, got {algorithm!r}")
    name = algorithm.strip().upper().replace("-", "").replace("_", "")
    if name not in _ALGORITHMS:
        raise UnsupportedAlgorithm(
            f"unsupported algorithm {algorithm!r}, expected one of {sorted(_ALGORITHMS)}"
        )
    return name


def validate_digits(digits: int) -> int:
    if not _is_int(digits) or not MIN_DIGITS <= digits <= MAX_DIGITS:
        raise InvalidDigits(f"digits must be an integer in [{MIN_DIGITS}, {MAX_DIGITS}], got {digits!r}")
    return digits


def validate_step(step_seconds: int) -> int:
    if not _is_int(step_seconds) or step_seconds <= 0:
        raise InvalidStep(f"step must be a positive integer, got {step_seconds!r}")
    return step_seconds


def validate_window(window: int, name: str = "window") -> int:
    if not _is_int(window) or window < 0:
        raise InvalidWindow(f"{name} must be a non-negative integer, got {window!r}")
    return window


def _secret_bytes(secret: SecretBytes) -> bytes:
    if isinstance(secret, str):
        raise TypeError("secret must be bytes; decode it with otp_engine.secret_codec first")
    if not isinstance(secret, (bytes, bytearray, memoryview)):
        raise TypeError(f"secret must be bytes, got {type(secret).__name__}")
    key = bytes(secret)
    if not key:
        raise InvalidSecret("secret is empty")
    return key


# --- RFC helpers -----------------------------------------------------------
def int_to_bytes(i: int) -> bytes:
    """
    Encode a moving factor as the 8-byte big-endian message RFC 4226 requires.

    Example: int_to_bytes(1) -> b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00\\x01'

    Raises:
        InvalidMovingFactor: if i is negative, not an int, or >= 2**64
    """
    if not _is_int(i) or not 0 <= i <= _MAX_MOVING_FACTOR:
        raise InvalidMovingFactor(f"moving factor must be an integer in [0, 2**64), got {i!r}")
    return struct.pack(">Q", i)


def dynamic_truncate(hmac_digest: bytes) -> int:
    """
    Apply RFC 4226 dynamic truncation.

    - offset = low 4 bits of the last byte
    - read 4 bytes from offset, clear the top bit of the first one
    - return the resulting 31-bit unsigned integer

    Works for SHA1 (20 bytes), SHA256 (32) and SHA512 (64): the offset is
    at most 15, so offset + 3 always stays inside the digest.
    """
    offset = hmac_digest[-1] & 0x0F
    code = (
        ((hmac_digest[offset] & 0x7F) << 24)
        | ((hmac_digest[offset + 1] & 0xFF) << 16)
        | ((hmac_digest[offset + 2] & 0xFF) << 8)
        | (hmac_digest[offset + 3] & 0xFF)
    )
    return code


# --- Generation ------------------------------------------------------------
def generate(
    secret: SecretBytes,
    moving_factor: int,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """
    Derive a one-time code from a secret and a moving factor.

    Steps:
    1. message = 8-byte big-endian moving factor
    2. HMAC-<algorithm>(key=secret, message)
    3. dynamic truncation -> 31-bit integer
    4. code = value mod 10^digits, zero-padded to `digits`

    Arguments:
        secret: raw secret bytes (non-empty)
        moving_factor: HOTP counter or TOTP time step (non-negative)
        digits: code length, 6..8
        algorithm: "SHA1" (default), "SHA256" or "SHA512"

    Returns:
        str: the code, e.g. "755224"

    Raises:
        InvalidSecret, InvalidDigits, UnsupportedAlgorithm, InvalidMovingFactor
        TypeError: if secret is not bytes-like
    """
    key = _secret_bytes(secret)
    validate_digits(digits)
    digestmod = _ALGORITHMS[normalize_algorithm(algorithm)]
    msg = int_to_bytes(moving_factor)

    digest = hmac.new(key, msg, digestmod).digest()
    otp_val = dynamic_truncate(digest) % (10 ** digits)
    return str(otp_val).zfill(digits)


def hotp(
    secret: SecretBytes,
    counter: int,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """HOTP code for `counter` (RFC 4226 name for generate())."""
    return generate(secret, counter, digits, algorithm)


def current_time_step(
    unix_time: Timestamp,
    step_seconds: int = DEFAULT_TIME_STEP,
    t0: int = DEFAULT_T0,
) -> int:
    """
    TOTP moving factor: floor((unix_time - t0) / step_seconds).

    Raises:
        InvalidStep: if step_seconds is not a positive integer
    """
    validate_step(step_seconds)
    return int((unix_time - t0) // step_seconds)


def totp(
    secret: SecretBytes,
    unix_time: Optional[Timestamp] = None,
    step_seconds: int = DEFAULT_TIME_STEP,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
    t0: int = DEFAULT_T0,
) -> Tuple[str, int]:
    """
    TOTP code for `unix_time` (now if None).

    Returns:
        (code, remaining_seconds)
        - code: OTP string
        - remaining_seconds: seconds left before the next step starts
    """
    if unix_time is None:
        unix_time = time.time()
    step = current_time_step(unix_time, step_seconds, t0)
    code = generate(secret, step, digits, algorithm)
    remaining = int(step_seconds - ((unix_time - t0) % step_seconds))
    return code, remaining


# --- Verification ----------------------------------------------------------
def _normalize_code(code, digits: int) -> Optional[bytes]:
    """Submitted code as ASCII bytes, or None if it cannot possibly match."""
    if not isinstance(code, str):
        return None
    cleaned = "".join(code.split())
    if len(cleaned) != digits or not (cleaned.isascii() and cleaned.isdigit()):
        return None
    return cleaned.encode("ascii")


def _match_step(
    secret: SecretBytes,
    submitted_code: str,
    unix_time: Optional[Timestamp] = None,
    step_seconds: int = DEFAULT_TIME_STEP,
    window_steps: int = DEFAULT_WINDOW,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
    t0: int = DEFAULT_T0,
) -> Optional[int]:
    """
    Time step whose code equals `submitted_code`, or None.

    Meant for replay guards that must remember the accepted step
    (otp_engine.replay.TotpReplayGuard); login code should call verify_totp().
    """
    key = _secret_bytes(secret)
    validate_digits(digits)
    validate_window(window_steps, "window_steps")
    algorithm = normalize_algorithm(algorithm)
    if unix_time is None:
        unix_time = time.time()
    current = current_time_step(unix_time, step_seconds, t0)

    candidate = _normalize_code(submitted_code, digits)
    if candidate is None:
        logger.debug("TOTP verify: malformed code rejected (step=%d)", current)
        return None

    for offset in range(-window_steps, window_steps + 1):
        step = current + offset
        if step < 0:
            continue
        expected = generate(key, step, digits, algorithm).encode("ascii")
        if hmac.compare_digest(expected, candidate):
            logger.debug("TOTP verify: accepted (step=%d, window=%d)", current, window_steps)
            return step
    logger.debug("TOTP verify: no match (step=%d, window=%d)", current, window_steps)
    return None


def verify_totp(
    secret: SecretBytes,
    submitted_code: str,
    unix_time: Optional[Timestamp] = None,
    step_seconds: int = DEFAULT_TIME_STEP,
    window_steps: int = DEFAULT_WINDOW,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
    t0: int = DEFAULT_T0,
) -> bool:
    """
    Verify a user-submitted TOTP code (RFC 6238).

    Every step in [current - window_steps, current + window_steps] is tried;
    window_steps=1 accepts the previous, current and next code. The result
    does not say which step matched.

    A malformed code (wrong length, non-digits) simply returns False.
    Spaces inside the code ("123 456") are ignored.

    Raises:
        InvalidSecret, InvalidDigits, InvalidStep, InvalidWindow,
        UnsupportedAlgorithm: parameters are validated before any hashing
    """
    step = _match_step(
        secret, submitted_code, unix_time, step_seconds, window_steps, digits, algorithm, t0
    )
    return step is not None


def verify_hotp(
    secret: SecretBytes,
    submitted_code: str,
    counter: int,
    lookahead: int = DEFAULT_LOOKAHEAD,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
) -> Tuple[bool, Optional[int]]:
    """
    Verify a user-submitted HOTP code (RFC 4226).

    Tries counter, counter + 1, ..., counter + lookahead in ascending order.

    Returns:
        (True, matched_counter) on the first match, (False, None) otherwise.

    The caller must persist matched_counter + 1 and never accept an equal or
    lower counter again, otherwise the same code can be replayed.
    """
    key = _secret_bytes(secret)
    validate_digits(digits)
    validate_window(lookahead, "lookahead")
    algorithm = normalize_algorithm(algorithm)
    int_to_bytes(counter)

    candidate = _normalize_code(submitted_code, digits)
    if candidate is None:
        logger.debug("HOTP verify: malformed code rejected (counter=%d)", counter)
        return False, None

    for i in range(lookahead + 1):
        test_counter = counter + i
        if test_counter > _MAX_MOVING_FACTOR:
            break
        expected = generate(key, test_counter, digits, algorithm).encode("ascii")
        if hmac.compare_digest(expected, candidate):
            logger.debug("HOTP verify: accepted (counter=%d, matched=%d)", counter, test_counter)
            return True, test_counter
    logger.debug("HOTP verify: no match (counter=%d, lookahead=%d)", counter, lookahead)
    return False, None
