# backend/billiard_pos/config.py
from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/billiard_pos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///billiard_pos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Billing defaults, used until rates are saved through /api/settings
    DEFAULT_HOURLY_RATE = os.environ.get("DEFAULT_HOURLY_RATE", "150")
    DEFAULT_HALF_HOUR_RATE = os.environ.get("DEFAULT_HALF_HOUR_RATE", "100")
    DEFAULT_TABLE_COUNT = int(os.environ.get("DEFAULT_TABLE_COUNT", "8"))
    MAX_TABLE_COUNT = int(os.environ.get("MAX_TABLE_COUNT", "20"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₱")

    CORS_ALLOWED_ORIGINS = _csv(os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    ))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
