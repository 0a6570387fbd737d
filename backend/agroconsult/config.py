# backend/agroconsult/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/agroconsult.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///agroconsult.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Base URL used when building link_url values for notifications
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")

    NOTIFICATION_PAGE_LIMIT = int(os.environ.get("NOTIFICATION_PAGE_LIMIT", "30"))
    NOTIFICATION_MAX_LIMIT = int(os.environ.get("NOTIFICATION_MAX_LIMIT", "100"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
