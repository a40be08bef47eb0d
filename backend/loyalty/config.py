# backend/loyalty/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/loyalty.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///loyalty.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared secret for unattended (cron) calls to the expiration trigger.
    # Unset means only admin sessions may trigger expiration.
    CRON_SECRET = os.environ.get("CRON_SECRET") or None

    SESSION_COOKIE_NAME_POINTS = "loyalty_session"

    # Absolute and idle limits for login sessions
    SESSION_LIFETIME_HOURS = int(os.environ.get("SESSION_LIFETIME_HOURS", "24"))
    SESSION_IDLE_MINUTES = int(os.environ.get("SESSION_IDLE_MINUTES", "120"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Window used by the balance endpoint when reporting soon-to-expire points
    POINT_EXPIRY_WARNING_DAYS = int(os.environ.get("POINT_EXPIRY_WARNING_DAYS", "30"))
