"""
config.py - Defaults for the OTP engine and its callers.

Defaults follow RFC 6238 / Google Authenticator: 6 digits, HMAC-SHA1, 30 s.
OtpSettings.from_env() lets a deployment override them without code changes:

    OTP_DIGITS=8 OTP_PERIOD=60 otp-engine totp --secret-file otp_secret.txt
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# --- Config / constants ----------------------------------------------------
DEFAULT_DIGITS = 6          # standard: 6 digits
MIN_DIGITS = 6
MAX_DIGITS = 8
DEFAULT_TIME_STEP = 30      # TOTP step (seconds)
DEFAULT_T0 = 0              # Unix epoch
DEFAULT_WINDOW = 1          # +/- 1 step of clock drift
DEFAULT_LOOKAHEAD = 1       # HOTP: accept counter .. counter + 1
DEFAULT_ALGORITHM = "SHA1"
SECRET_BYTES = 20           # 160-bit secret (RFC 4226 recommendation)
MIN_SECRET_BYTES = 16       # 128-bit minimum (RFC 4226 R6)
DEFAULT_ISSUER = "otp-engine"
SECRET_FILE = "otp_secret.txt"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class OtpSettings:
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_TIME_STEP
    window: int = DEFAULT_WINDOW
    lookahead: int = DEFAULT_LOOKAHEAD
    algorithm: str = DEFAULT_ALGORITHM
    issuer: str = DEFAULT_ISSUER

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "OtpSettings":
        """
        Build settings from OTP_* environment variables.

        Values are validated with the engine's own checks, so a bad
        OTP_DIGITS fails here with InvalidDigits rather than on first use.
        """
        # late import: otp_core imports the constants above
        from otp_engine.otp_core import (
            normalize_algorithm,
            validate_digits,
            validate_step,
            validate_window,
        )

        if env is None:
            env = os.environ
        digits = _env_int(env, "OTP_DIGITS", DEFAULT_DIGITS)
        period = _env_int(env, "OTP_PERIOD", DEFAULT_TIME_STEP)
        window = _env_int(env, "OTP_WINDOW", DEFAULT_WINDOW)
        lookahead = _env_int(env, "OTP_LOOKAHEAD", DEFAULT_LOOKAHEAD)

        validate_digits(digits)
        validate_step(period)
        validate_window(window, "OTP_WINDOW")
        validate_window(lookahead, "OTP_LOOKAHEAD")
        return cls(
            digits=digits,
            period=period,
            window=window,
            lookahead=lookahead,
            # canonical name: "sha-256" -> "SHA256"
            algorithm=normalize_algorithm(env.get("OTP_ALGORITHM") or DEFAULT_ALGORITHM),
            issuer=env.get("OTP_ISSUER") or DEFAULT_ISSUER,
        )
