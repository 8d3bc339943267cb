"""
otp_engine package
==================

One-time password engine (HOTP/TOTP) following RFC 4226 & RFC 6238.

──────────────────────────────────────────────
Core algorithm
──────────────────────────────────────────────
- HOTP (HMAC-based One-Time Password):
  code = Truncate(HMAC-SHA1(key=secret, msg=counter)) mod 10^digits
  → The counter moves forward on every use (event-based tokens).

- TOTP (Time-based One-Time Password):
  HOTP with counter = floor((timestamp - T0) / timestep)
  → Default timestep is 30 seconds, 6 digits, SHA-1.

- Dynamic Truncation:
  Read 4 bytes of the HMAC at offset (last byte & 0x0F), drop the sign bit.

──────────────────────────────────────────────
Quick example
──────────────────────────────────────────────
>>> from otp_engine import decode_secret, generate, verify_totp
>>> secret = decode_secret("GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ")
>>> generate(secret, 0)
'755224'
>>> verify_totp(secret, "287082", unix_time=59)
True

Secrets are raw bytes everywhere in this package; decode Base32/hex input
with decode_secret() first. Counter and replay state belong to the caller,
see HotpCounterGuard / TotpReplayGuard.
"""

from otp_engine.errors import (
    InvalidDigits,
    InvalidMovingFactor,
    InvalidProvisioningUri,
    InvalidSecret,
    InvalidStep,
    InvalidWindow,
    OtpError,
    UnsupportedAlgorithm,
)
from otp_engine.otp_core import (
    current_time_step,
    generate,
    hotp,
    totp,
    verify_hotp,
    verify_totp,
)
from otp_engine.provisioning import ProvisioningInfo, build_uri, parse_uri
from otp_engine.replay import HotpCounterGuard, TotpReplayGuard
from otp_engine.secret_codec import (
    decode_secret,
    encode_base32,
    generate_secret,
    random_base32,
)

__version__ = "0.1.0"

__all__ = [
    "HotpCounterGuard",
    "InvalidDigits",
    "InvalidMovingFactor",
    "InvalidProvisioningUri",
    "InvalidSecret",
    "InvalidStep",
    "InvalidWindow",
    "OtpError",
    "ProvisioningInfo",
    "TotpReplayGuard",
    "UnsupportedAlgorithm",
    "build_uri",
    "current_time_step",
    "decode_secret",
    "encode_base32",
    "generate",
    "generate_secret",
    "hotp",
    "parse_uri",
    "random_base32",
    "totp",
    "verify_hotp",
    "verify_totp",
]
