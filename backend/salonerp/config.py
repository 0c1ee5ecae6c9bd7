# backend/salonerp/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///salonerp.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    APP_VERSION = os.environ.get("APP_VERSION", "0.1.0")

    # "remove" adjustments may drive stock below zero when enabled.
    # Transfers and sales never do.
    ALLOW_NEGATIVE_STOCK = _env_flag("ALLOW_NEGATIVE_STOCK", False)

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    # Generated staff logins are <username>@<STAFF_EMAIL_DOMAIN>
    STAFF_EMAIL_DOMAIN = os.environ.get("STAFF_EMAIL_DOMAIN", "salonerp.local")
