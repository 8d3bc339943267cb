"""
Reference Flask backend showing how an application calls otp_engine for
two-factor login. Not imported by otp_engine itself.
"""

from otp_web.app import create_app

__all__ = ["create_app"]
