"""
provisioning.py - otpauth:// URIs and QR codes for authenticator enrollment.

URI format (Google Authenticator "Key Uri Format"):
    otpauth://totp/{issuer}:{account}?secret=..&issuer=..&algorithm=..&digits=..&period=..
    otpauth://hotp/{issuer}:{account}?secret=..&issuer=..&algorithm=..&digits=..&counter=..

The secret travels Base32-encoded inside the URI. Show the URI / QR only to
the enrolling user and never log it.
"""

import base64
import io
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

import qrcode

from otp_engine.config import (
    DEFAULT_ALGORITHM,
    DEFAULT_DIGITS,
    DEFAULT_TIME_STEP,
)
from otp_engine.errors import InvalidProvisioningUri, OtpError
from otp_engine.otp_core import (
    normalize_algorithm,
    validate_digits,
    validate_step,
)
from otp_engine.secret_codec import decode_base32, encode_base32

KINDS = ("totp", "hotp")


@dataclass(frozen=True)
class ProvisioningInfo:
    kind: str
    secret: bytes
    account: str
    issuer: Optional[str] = None
    algorithm: str = DEFAULT_ALGORITHM
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_TIME_STEP
    counter: int = 0

    def to_uri(self) -> str:
        return build_uri(
            self.secret,
            self.account,
            issuer=self.issuer,
            kind=self.kind,
            digits=self.digits,
            period=self.period,
            counter=self.counter,
            algorithm=self.algorithm,
        )


def build_uri(
    secret: bytes,
    account: str,
    issuer: Optional[str] = None,
    kind: str = "totp",
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_TIME_STEP,
    counter: int = 0,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """
    Build an otpauth:// URI to import into an authenticator app.

    - Label is "issuer:account" (or just account), percent-encoded.
    - TOTP carries `period`, HOTP carries `counter` (the app's starting value).

    Raises:
        InvalidProvisioningUri: unknown kind or empty account
        InvalidSecret, InvalidDigits, InvalidStep, UnsupportedAlgorithm
    """
    if kind not in KINDS:
        raise InvalidProvisioningUri(f"kind must be one of {KINDS}, got {kind!r}")
    if not account:
        raise InvalidProvisioningUri("account label is required")
    validate_digits(digits)
    algorithm = normalize_algorithm(algorithm)

    label = quote(account, safe="@")
    params = [("secret", encode_base32(secret))]
    if issuer:
        label = quote(issuer, safe="@") + ":" + label
        params.append(("issuer", issuer))
    params.append(("algorithm", algorithm))
    params.append(("digits", str(digits)))
    if kind == "totp":
        validate_step(period)
        params.append(("period", str(period)))
    else:
        if isinstance(counter, bool) or not isinstance(counter, int) or counter < 0:
            raise InvalidProvisioningUri(f"counter must be a non-negative integer, got {counter!r}")
        params.append(("counter", str(counter)))

    return f"otpauth://{kind}/{label}?{urlencode(params, quote_via=quote)}"


def _single(params: dict, name: str) -> Optional[str]:
    values = params.get(name)
    if not values:
        return None
    if len(values) > 1:
        raise InvalidProvisioningUri(f"parameter {name!r} given more than once")
    return values[0]


def _int_param(params: dict, name: str, default: Optional[int]) -> int:
    raw = _single(params, name)
    if raw is None:
        if default is None:
            raise InvalidProvisioningUri(f"parameter {name!r} is required")
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidProvisioningUri(f"parameter {name!r} must be an integer, got {raw!r}") from e


def parse_uri(uri: str) -> ProvisioningInfo:
    """
    Parse an otpauth:// URI back into its parameters.

    Raises:
        InvalidProvisioningUri: if anything in the URI is missing or invalid
    """
    parts = urlsplit(uri)
    if parts.scheme.lower() != "otpauth":
        raise InvalidProvisioningUri(f"not an otpauth URI: scheme {parts.scheme!r}")
    kind = parts.netloc.lower()
    if kind not in KINDS:
        raise InvalidProvisioningUri(f"unsupported OTP type {parts.netloc!r}")

    label = unquote(parts.path.lstrip("/"))
    if not label:
        raise InvalidProvisioningUri("missing account label")
    label_issuer, sep, account = label.partition(":")
    if not sep:
        label_issuer, account = None, label
    account = account.strip()

    params = parse_qs(parts.query, keep_blank_values=True)
    issuer = _single(params, "issuer") or label_issuer

    secret_text = _single(params, "secret")
    if not secret_text:
        raise InvalidProvisioningUri("parameter 'secret' is required")

    try:
        info = ProvisioningInfo(
            kind=kind,
            secret=decode_base32(secret_text),
            account=account,
            issuer=issuer,
            algorithm=normalize_algorithm(_single(params, "algorithm") or DEFAULT_ALGORITHM),
            digits=validate_digits(_int_param(params, "digits", DEFAULT_DIGITS)),
            period=validate_step(_int_param(params, "period", DEFAULT_TIME_STEP)),
            counter=_int_param(params, "counter", None if kind == "hotp" else 0),
        )
    except InvalidProvisioningUri:
        raise
    except OtpError as e:
        raise InvalidProvisioningUri(str(e)) from e
    if info.counter < 0:
        raise InvalidProvisioningUri(f"counter must be non-negative, got {info.counter}")
    return info


# --- QR rendering ----------------------------------------------------------
def _make_qr(uri: str, border: int) -> qrcode.QRCode:
    qr = qrcode.QRCode(version=None, box_size=10, border=border)
    qr.add_data(uri)
    qr.make(fit=True)
    return qr


def qr_ascii(uri: str) -> str:
    """Render the URI as a QR code made of block characters, for terminals."""
    out = io.StringIO()
    _make_qr(uri, border=1).print_ascii(out=out)
    return out.getvalue()


def qr_png_data_uri(uri: str) -> str:
    """Render the URI as a PNG QR code, returned as a data: URI for <img src>."""
    img = _make_qr(uri, border=4).make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    img_str = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{img_str}"
