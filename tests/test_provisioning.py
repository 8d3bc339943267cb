"""Tests for otpauth:// URIs and QR rendering."""

from __future__ import annotations

import base64

import pytest

from otp_engine.errors import InvalidDigits, InvalidProvisioningUri
from otp_engine.provisioning import (
    ProvisioningInfo,
    build_uri,
    parse_uri,
    qr_ascii,
    qr_png_data_uri,
)
from otp_engine.secret_codec import decode_base32

RFC_SECRET = b"12345678901234567890"
RFC_SECRET_B32 = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def test_build_totp_uri():
    uri = build_uri(RFC_SECRET, "alice@example.com", issuer="Example")
    assert uri == (
        "otpauth://totp/Example:alice@example.com"
        f"?secret={RFC_SECRET_B32}&issuer=Example&algorithm=SHA1&digits=6&period=30"
    )


def test_build_hotp_uri_carries_counter():
    uri = build_uri(RFC_SECRET, "alice", kind="hotp", counter=7, digits=8, algorithm="sha-256")
    assert uri == f"otpauth://hotp/alice?secret={RFC_SECRET_B32}&algorithm=SHA256&digits=8&counter=7"


def test_build_uri_percent_encodes_label_and_issuer():
    uri = build_uri(RFC_SECRET, "john doe", issuer="ACME Co")
    assert uri.startswith("otpauth://totp/ACME%20Co:john%20doe?")
    assert "&issuer=ACME%20Co&" in uri


def test_build_uri_validation():
    with pytest.raises(InvalidProvisioningUri):
        build_uri(RFC_SECRET, "alice", kind="motp")
    with pytest.raises(InvalidProvisioningUri):
        build_uri(RFC_SECRET, "")
    with pytest.raises(InvalidDigits):
        build_uri(RFC_SECRET, "alice", digits=4)
    with pytest.raises(InvalidProvisioningUri):
        build_uri(RFC_SECRET, "alice", kind="hotp", counter=-1)


def test_parse_authenticator_example():
    info = parse_uri(
        "otpauth://totp/ACME%20Co:john.doe@email.com"
        "?secret=HXDMVJECJJWSRB3HWIZR4IFUGFTMXBOZ&issuer=ACME%20Co&algorithm=SHA1&digits=6&period=30"
    )
    assert info.kind == "totp"
    assert info.account == "john.doe@email.com"
    assert info.issuer == "ACME Co"
    assert info.secret == decode_base32("HXDMVJECJJWSRB3HWIZR4IFUGFTMXBOZ")
    assert (info.algorithm, info.digits, info.period) == ("SHA1", 6, 30)


def test_parse_applies_defaults():
    info = parse_uri(f"otpauth://totp/alice?secret={RFC_SECRET_B32.lower()}")
    assert info == ProvisioningInfo(kind="totp", secret=RFC_SECRET, account="alice")


def test_parse_hotp_round_trip():
    info = ProvisioningInfo(
        kind="hotp", secret=RFC_SECRET, account="bob", issuer="Example", digits=8, counter=42,
    )
    assert parse_uri(info.to_uri()) == info


@pytest.mark.parametrize(
    "uri",
    [
        f"https://totp/alice?secret={RFC_SECRET_B32}",
        f"otpauth://motp/alice?secret={RFC_SECRET_B32}",
        "otpauth://totp/alice?issuer=Example",
        f"otpauth://totp/?secret={RFC_SECRET_B32}",
        f"otpauth://totp/alice?secret={RFC_SECRET_B32}&digits=5",
        f"otpauth://totp/alice?secret={RFC_SECRET_B32}&digits=six",
        f"otpauth://totp/alice?secret={RFC_SECRET_B32}&period=0",
        f"otpauth://totp/alice?secret={RFC_SECRET_B32}&algorithm=MD5",
        f"otpauth://hotp/alice?secret={RFC_SECRET_B32}",
        f"otpauth://hotp/alice?secret={RFC_SECRET_B32}&counter=-3",
        "otpauth://totp/alice?secret=not*base32",
        f"otpauth://totp/alice?secret={RFC_SECRET_B32}&secret={RFC_SECRET_B32}",
    ],
)
def test_parse_rejects_bad_uris(uri):
    with pytest.raises(InvalidProvisioningUri):
        parse_uri(uri)


def test_qr_ascii_renders_blocks():
    art = qr_ascii(build_uri(RFC_SECRET, "alice", issuer="Example"))
    lines = art.strip("\n").splitlines()
    assert len(lines) > 10
    assert any(ch in art for ch in "█▀▄")


def test_qr_png_data_uri():
    data_uri = qr_png_data_uri(build_uri(RFC_SECRET, "alice"))
    prefix = "data:image/png;base64,"
    assert data_uri.startswith(prefix)
    assert base64.b64decode(data_uri[len(prefix):]).startswith(b"\x89PNG")
