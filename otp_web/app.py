"""
FLASK APP ENTRY POINT - OTP REFERENCE BACKEND
=============================================

Application factory wiring the OTP engine into a small Flask API:
- CORS enabled for a separately served frontend
- users, OTP secrets and the TOTP replay guard live in app.extensions,
  one set per app instance (no module-level state)
- GET / lists the available endpoints

Run locally:
    OTP_WEB_SECRET_KEY=change-me flask --app otp_web run
"""

import os
from typing import Any, Mapping, Optional

from flask import Flask, jsonify
from flask_cors import CORS

from otp_engine.config import OtpSettings
from otp_engine.replay import TotpReplayGuard
from otp_web.routes import otp_bp
from otp_web.users import UserDirectory


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=os.environ.get("OTP_WEB_SECRET_KEY") or os.urandom(32),
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        OTP_SETTINGS=None,
    )
    if config:
        app.config.update(config)
    if app.config["OTP_SETTINGS"] is None:
        app.config["OTP_SETTINGS"] = OtpSettings.from_env()

    # Allow the frontend (other origin/port) to call the API with its cookie
    CORS(app, supports_credentials=True)

    app.extensions["otp_users"] = UserDirectory()
    app.extensions["otp_replay_guard"] = TotpReplayGuard()
    app.register_blueprint(otp_bp)

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "otp-engine reference backend",
            "endpoints": sorted(
                rule.rule for rule in app.url_map.iter_rules() if rule.rule.startswith("/api/")
            ),
        })

    return app


if __name__ == "__main__":
    create_app().run(host="127.0.0.1", port=5000)
