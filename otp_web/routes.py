"""
OTP BACKEND API ROUTES - FLASK BLUEPRINT

Two-step login with TOTP as the second factor:

    POST /api/register      {"username": "alice", "password": "..."}
    POST /api/login         {"username": "alice", "password": "..."}
    POST /api/2fa/verify    {"code": "123456"}          (after login, if required)

Enrollment (logged-in user):

    POST /api/2fa/setup                                 -> secret, otpauth URI, QR
    POST /api/2fa/confirm   {"code": "123456"}          -> 2FA enabled
    POST /api/2fa/disable   {"code": "123456"}

Example:
    curl -c jar -X POST http://localhost:5000/api/login \
         -H "Content-Type: application/json" -d '{"username": "alice", "password": "pw"}'
    curl -b jar -X POST http://localhost:5000/api/2fa/verify \
         -H "Content-Type: application/json" -d '{"code": "123456"}'

The session cookie only carries usernames. OTP secrets stay in the server's
UserDirectory.
"""

from typing import Optional

from flask import Blueprint, current_app, jsonify, request, session

from otp_engine.config import OtpSettings
from otp_engine.errors import OtpError
from otp_engine.provisioning import build_uri, qr_png_data_uri
from otp_engine.replay import TotpReplayGuard
from otp_engine.secret_codec import encode_base32
from otp_web.users import UserDirectory, UserExists, UserRecord

otp_bp = Blueprint("otp", __name__, url_prefix="/api")


def _users() -> UserDirectory:
    return current_app.extensions["otp_users"]


def _guard() -> TotpReplayGuard:
    return current_app.extensions["otp_replay_guard"]


def _settings() -> OtpSettings:
    return current_app.config["OTP_SETTINGS"]


def _logged_in_user() -> Optional[UserRecord]:
    """Record of the logged-in user; drops a session whose user is gone."""
    username = session.get("user")
    if not username:
        return None
    record = _users().get(username)
    if record is None:
        session.clear()
    return record


def _check_code(username: str, secret: bytes, code: str) -> bool:
    settings = _settings()
    return _guard().verify(
        username,
        secret,
        code,
        step_seconds=settings.period,
        window_steps=settings.window,
        digits=settings.digits,
        algorithm=settings.algorithm,
    )


def _json_fields(*names):
    """Return the requested JSON fields, or None if any is missing/blank."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    values = tuple(data.get(name) for name in names)
    if any(not isinstance(v, str) or not v for v in values):
        return None
    return values


@otp_bp.errorhandler(OtpError)
def handle_otp_error(e):
    return jsonify({"error": str(e)}), 400


@otp_bp.route("/register", methods=["POST"])
def register():
    fields = _json_fields("username", "password")
    if fields is None:
        return jsonify({"error": "Username and password are required"}), 400
    username, password = fields

    try:
        _users().add_user(username, password)
    except UserExists:
        return jsonify({"error": "User already exists"}), 409

    current_app.logger.info("registered user %s", username)
    return jsonify({"message": "User created successfully", "user": username}), 201


@otp_bp.route("/login", methods=["POST"])
def login():
    """
    First factor. With 2FA enabled the user is only *pending* until
    /2fa/verify succeeds.
    """
    fields = _json_fields("username", "password")
    if fields is None:
        return jsonify({"error": "Username and password are required"}), 400
    username, password = fields

    users = _users()
    if not users.check_password(username, password):
        current_app.logger.info("failed password login for %s", username)
        return jsonify({"error": "Invalid credentials"}), 401

    record = users.get(username)
    session.clear()
    if record is not None and record.otp_enabled:
        session["pending_user"] = username
        return jsonify({"message": "OTP required", "otp_required": True, "user": username})

    session["user"] = username
    return jsonify({"message": "Logged in", "otp_required": False, "user": username})


@otp_bp.route("/2fa/verify", methods=["POST"])
def verify_second_factor():
    username = session.get("pending_user")
    if not username:
        return jsonify({"error": "No login waiting for a one-time code"}), 401
    fields = _json_fields("code")
    if fields is None:
        return jsonify({"error": "OTP code is required in JSON body"}), 400

    record = _users().get(username)
    if record is None or not record.otp_enabled:
        session.clear()
        return jsonify({"error": "Two-factor authentication is not enabled"}), 409

    if not _check_code(username, record.otp_secret, fields[0]):
        current_app.logger.info("invalid one-time code for %s", username)
        return jsonify({"error": "Invalid code", "valid": False}), 401

    session.clear()
    session["user"] = username
    current_app.logger.info("user %s passed two-factor login", username)
    return jsonify({"message": "Logged in", "valid": True, "user": username})


@otp_bp.route("/2fa/setup", methods=["POST"])
def setup_second_factor():
    record = _logged_in_user()
    if record is None:
        return jsonify({"error": "Login required"}), 401
    username = record.username
    if record.otp_enabled:
        return jsonify({"error": "Two-factor authentication is already enabled"}), 409

    settings = _settings()
    secret = _users().begin_enrollment(username)
    uri = build_uri(
        secret,
        username,
        issuer=settings.issuer,
        digits=settings.digits,
        period=settings.period,
        algorithm=settings.algorithm,
    )
    # shown once so the user can type it in if scanning fails
    return jsonify({
        "secret": encode_base32(secret),
        "otpauth_uri": uri,
        "qr_code": qr_png_data_uri(uri),
    })


@otp_bp.route("/2fa/confirm", methods=["POST"])
def confirm_second_factor():
    record = _logged_in_user()
    if record is None:
        return jsonify({"error": "Login required"}), 401
    username = record.username
    fields = _json_fields("code")
    if fields is None:
        return jsonify({"error": "OTP code is required in JSON body"}), 400

    users = _users()
    pending = record.pending_secret
    if pending is None:
        return jsonify({"error": "Call /api/2fa/setup first"}), 409
    if not _check_code(username, pending, fields[0]):
        return jsonify({"error": "Invalid code", "valid": False}), 401
    if not users.activate_pending(username, pending):
        return jsonify({"error": "Enrollment was restarted, scan the new code"}), 409

    current_app.logger.info("two-factor authentication enabled for %s", username)
    return jsonify({"message": "Two-factor authentication enabled", "otp_enabled": True})


@otp_bp.route("/2fa/disable", methods=["POST"])
def disable_second_factor():
    record = _logged_in_user()
    if record is None:
        return jsonify({"error": "Login required"}), 401
    username = record.username
    fields = _json_fields("code")
    if fields is None:
        return jsonify({"error": "OTP code is required in JSON body"}), 400

    users = _users()
    if not record.otp_enabled:
        return jsonify({"error": "Two-factor authentication is not enabled"}), 409
    if not _check_code(username, record.otp_secret, fields[0]):
        return jsonify({"error": "Invalid code", "valid": False}), 401

    users.disable_otp(username)
    _guard().forget(username)
    current_app.logger.info("two-factor authentication disabled for %s", username)
    return jsonify({"message": "Two-factor authentication disabled", "otp_enabled": False})


@otp_bp.route("/me", methods=["GET"])
def me():
    record = _logged_in_user()
    if record is None:
        return jsonify({"error": "Login required"}), 401
    return jsonify({"user": record.username, "otp_enabled": record.otp_enabled})


@otp_bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"message": "Logged out"})
