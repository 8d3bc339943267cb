"""
secret_codec.py - Generate shared secrets and convert them to/from their
transport encodings (Base32 for authenticator apps, hex for hardware tokens).

The engine itself only ever sees raw bytes; decoding happens here, at the
boundary, before calling generate()/verify_*().
"""

import base64
import binascii
import os

from otp_engine.config import MIN_SECRET_BYTES, SECRET_BYTES
from otp_engine.errors import InvalidSecret

_ENCODINGS = ("base32", "hex")


def generate_secret(num_bytes: int = SECRET_BYTES) -> bytes:
    """
    Generate a random shared secret.

    - Bytes come from os.urandom (CSPRNG).
    - RFC 4226 requires at least 128 bits; 160 bits is the default.

    Raises:
        InvalidSecret: if num_bytes < MIN_SECRET_BYTES
    """
    if num_bytes < MIN_SECRET_BYTES:
        raise InvalidSecret(
            f"secret must be at least {MIN_SECRET_BYTES} bytes, got {num_bytes}"
        )
    return os.urandom(num_bytes)


def random_base32(num_bytes: int = SECRET_BYTES) -> str:
    """Random secret, Base32-encoded without padding (e.g. for Google Authenticator)."""
    return encode_base32(generate_secret(num_bytes))


def encode_base32(secret: bytes) -> str:
    # b32encode pads with '=' to a multiple of 8; otpauth URIs carry it unpadded
    return base64.b32encode(secret).decode("ascii").rstrip("=")


def decode_base32(text: str) -> bytes:
    """
    Decode a Base32 secret as typed by a human.

    - Case-insensitive.
    - Whitespace and '-' separators are ignored ("JBSW Y3DP ..." is fine).
    - '=' padding is optional.

    Raises:
        InvalidSecret: if the text is empty or not valid Base32
    """
    cleaned = "".join(text.split()).replace("-", "").rstrip("=").upper()
    if not cleaned:
        raise InvalidSecret("secret is empty")
    padded = cleaned + "=" * (-len(cleaned) % 8)
    try:
        secret = base64.b32decode(padded, casefold=True)
    except binascii.Error as e:
        raise InvalidSecret("Invalid Base32 secret") from e
    if not secret:
        raise InvalidSecret("secret is empty")
    return secret


def encode_hex(secret: bytes) -> str:
    return secret.hex()


def decode_hex(text: str) -> bytes:
    cleaned = "".join(text.split())
    if cleaned[:2].lower() == "0x":
        cleaned = cleaned[2:]
    if not cleaned:
        raise InvalidSecret("secret is empty")
    try:
        return bytes.fromhex(cleaned)
    except ValueError as e:
        raise InvalidSecret("Invalid hex secret") from e


def decode_secret(text: str, encoding: str = "base32") -> bytes:
    """Decode a secret from 'base32' or 'hex'; any other encoding raises InvalidSecret."""
    if encoding == "base32":
        return decode_base32(text)
    if encoding == "hex":
        return decode_hex(text)
    raise InvalidSecret(f"unknown secret encoding {encoding!r}, expected one of {_ENCODINGS}")
