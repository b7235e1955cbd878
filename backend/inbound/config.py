# backend/inbound/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Production runs on PostgreSQL; local development falls back to SQLite
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///inbound.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Hysteresis window shared by the receiving pipeline and the standalone tracker
    PRESENCE_COOLDOWN_SECONDS = int(os.environ.get("PRESENCE_COOLDOWN_SECONDS", "60"))

    # Attempts for transient lock/deadlock failures on a single scan
    SCAN_RETRY_ATTEMPTS = int(os.environ.get("SCAN_RETRY_ATTEMPTS", "3"))

    # "signal" (in-process), "redis" (pub/sub), or "none"
    EVENT_PUBLISHER = os.environ.get("EVENT_PUBLISHER", "signal")
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    EVENT_CHANNEL_PREFIX = os.environ.get("EVENT_CHANNEL_PREFIX", "")

    # Seconds between keep-alive comments on the live event stream
    EVENT_STREAM_HEARTBEAT_SECONDS = int(os.environ.get("EVENT_STREAM_HEARTBEAT_SECONDS", "15"))
