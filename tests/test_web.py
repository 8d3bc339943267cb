"""Tests for the Flask reference backend (two-step login with TOTP)."""

from __future__ import annotations

import time

import pytest

from otp_engine.config import OtpSettings
from otp_engine.otp_core import current_time_step, generate
from otp_engine.provisioning import parse_uri
from otp_engine.secret_codec import decode_base32
from otp_web import create_app


@pytest.fixture()
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "OTP_SETTINGS": OtpSettings(issuer="TestApp"),
    })
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


def _register_and_login(client, username="alice", password="pass"):
    res = client.post("/api/register", json={"username": username, "password": password})
    assert res.status_code == 201
    res = client.post("/api/login", json={"username": username, "password": password})
    assert res.status_code == 200
    return res.get_json()


def _enable_2fa(client) -> bytes:
    res = client.post("/api/2fa/setup")
    assert res.status_code == 200
    secret = decode_base32(res.get_json()["secret"])
    code = generate(secret, current_time_step(time.time()))
    res = client.post("/api/2fa/confirm", json={"code": code})
    assert res.status_code == 200
    return secret


def test_index_lists_endpoints(client):
    data = client.get("/").get_json()
    assert "/api/login" in data["endpoints"]
    assert "/api/2fa/verify" in data["endpoints"]


def test_register_validation(client):
    assert client.post("/api/register", json={"username": "alice"}).status_code == 400
    assert client.post("/api/register", data="not json").status_code == 400
    assert client.post("/api/register", json={"username": "alice", "password": "pw"}).status_code == 201
    assert client.post("/api/register", json={"username": "alice", "password": "pw"}).status_code == 409


def test_login_without_2fa(client):
    data = _register_and_login(client)
    assert data["otp_required"] is False
    res = client.get("/api/me")
    assert res.status_code == 200
    assert res.get_json() == {"user": "alice", "otp_enabled": False}


def test_login_wrong_password(client):
    client.post("/api/register", json={"username": "alice", "password": "pass"})
    res = client.post("/api/login", json={"username": "alice", "password": "nope"})
    assert res.status_code == 401
    assert client.post("/api/login", json={"username": "ghost", "password": "x"}).status_code == 401


def test_setup_requires_login(client):
    assert client.post("/api/2fa/setup").status_code == 401
    assert client.post("/api/2fa/confirm", json={"code": "123456"}).status_code == 401


def test_setup_returns_uri_and_qr_but_keeps_secret_out_of_session(client):
    _register_and_login(client)
    res = client.post("/api/2fa/setup")
    assert res.status_code == 200
    data = res.get_json()

    info = parse_uri(data["otpauth_uri"])
    assert info.secret == decode_base32(data["secret"])
    assert info.account == "alice"
    assert info.issuer == "TestApp"
    assert data["qr_code"].startswith("data:image/png;base64,")

    with client.session_transaction() as sess:
        assert dict(sess) == {"user": "alice"}


def test_confirm_rejects_wrong_code(client):
    _register_and_login(client)
    secret = decode_base32(client.post("/api/2fa/setup").get_json()["secret"])

    # code from 1970: far outside the drift window
    res = client.post("/api/2fa/confirm", json={"code": generate(secret, 1)})
    assert res.status_code == 401
    assert client.get("/api/me").get_json()["otp_enabled"] is False


def test_confirm_without_setup(client):
    _register_and_login(client)
    assert client.post("/api/2fa/confirm", json={"code": "123456"}).status_code == 409


def test_two_step_login(client):
    _register_and_login(client)
    secret = _enable_2fa(client)
    client.post("/api/logout")

    res = client.post("/api/login", json={"username": "alice", "password": "pass"})
    assert res.get_json()["otp_required"] is True
    # password alone is not enough
    assert client.get("/api/me").status_code == 401

    bad = client.post("/api/2fa/verify", json={"code": generate(secret, 1)})
    assert bad.status_code == 401

    step = current_time_step(time.time())
    res = client.post("/api/2fa/verify", json={"code": generate(secret, step + 1)})
    assert res.status_code == 200
    assert client.get("/api/me").get_json() == {"user": "alice", "otp_enabled": True}


def test_code_cannot_be_replayed(client):
    _register_and_login(client)
    secret = _enable_2fa(client)
    client.post("/api/logout")

    step = current_time_step(time.time())
    code = generate(secret, step + 1)

    client.post("/api/login", json={"username": "alice", "password": "pass"})
    assert client.post("/api/2fa/verify", json={"code": code}).status_code == 200
    client.post("/api/logout")

    client.post("/api/login", json={"username": "alice", "password": "pass"})
    assert client.post("/api/2fa/verify", json={"code": code}).status_code == 401


def test_verify_without_pending_login(client):
    assert client.post("/api/2fa/verify", json={"code": "123456"}).status_code == 401


def test_verify_requires_code(client):
    _register_and_login(client)
    _enable_2fa(client)
    client.post("/api/logout")
    client.post("/api/login", json={"username": "alice", "password": "pass"})
    assert client.post("/api/2fa/verify", json={}).status_code == 400


def test_disable_2fa(client):
    _register_and_login(client)
    secret = _enable_2fa(client)
    assert client.post("/api/2fa/setup").status_code == 409

    step = current_time_step(time.time())
    res = client.post("/api/2fa/disable", json={"code": generate(secret, step + 1)})
    assert res.status_code == 200
    client.post("/api/logout")

    data = client.post("/api/login", json={"username": "alice", "password": "pass"}).get_json()
    assert data["otp_required"] is False


@pytest.mark.parametrize("body", [["alice", "pw"], "alice", 42, None])
def test_non_object_json_body_is_rejected(client, body):
    res = client.post("/api/register", json=body)
    assert res.status_code == 400
    assert "error" in res.get_json()

    _register_and_login(client, username="bob")
    _enable_2fa(client)
    client.post("/api/logout")
    client.post("/api/login", json={"username": "bob", "password": "pass"})
    assert client.post("/api/2fa/verify", json=body).status_code == 400


def test_unknown_user_login_still_checks_a_hash(client, monkeypatch):
    import otp_web.users as users_module

    calls = []
    real_check = users_module.check_password_hash

    def counting_check(pwhash, password):
        calls.append(password)
        return real_check(pwhash, password)

    monkeypatch.setattr(users_module, "check_password_hash", counting_check)
    res = client.post("/api/login", json={"username": "nobody", "password": "guess"})
    assert res.status_code == 401
    assert calls == ["guess"]


def test_session_for_removed_user_is_dropped(app, client):
    _register_and_login(client)
    app.extensions["otp_users"].remove_user("alice")

    assert client.get("/api/me").status_code == 401
    with client.session_transaction() as sess:
        assert "user" not in sess
    assert client.post("/api/2fa/setup").status_code == 401
    assert client.post("/api/2fa/confirm", json={"code": "123456"}).status_code == 401
    assert client.post("/api/2fa/disable", json={"code": "123456"}).status_code == 401
