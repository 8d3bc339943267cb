"""
errors.py - Validation errors raised by the OTP engine.

Every error derives from ValueError, so callers that only catch ValueError
(e.g. around a bad Base32 secret) keep working.

A failed verification is NOT an error: verify_totp() returns False and
verify_hotp() returns (False, None).
"""


class OtpError(ValueError):
    """Base class for all OTP engine input-validation errors."""


class InvalidSecret(OtpError):
    """Secret is empty, too short to generate, or cannot be decoded."""


class InvalidDigits(OtpError):
    """Requested code length is outside 6..8."""


class InvalidStep(OtpError):
    """TOTP time step is not a positive integer."""


class UnsupportedAlgorithm(OtpError):
    """Hash algorithm identifier is not SHA1, SHA256 or SHA512."""


class InvalidMovingFactor(OtpError):
    """Counter / time step is negative or does not fit in 8 bytes."""


class InvalidWindow(OtpError):
    """Drift window or look-ahead is negative."""


class InvalidProvisioningUri(OtpError):
    """otpauth:// URI is malformed or carries unsupported parameters."""
