# backend/erp/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/erp.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///erp.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Comma-separated list of front-end origins allowed to call the API
    CORS_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080",
        ).split(",")
        if origin.strip()
    )

    # Completing a production order always credits the finished item.
    # When enabled it also debits every BOM material by quantity * units produced.
    PRODUCTION_CONSUME_MATERIALS = _env_flag("PRODUCTION_CONSUME_MATERIALS", False)

    # Bounded retry for stock read-modify-write conflicts
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))
    STOCK_RETRY_BACKOFF = float(os.environ.get("STOCK_RETRY_BACKOFF", "0.05"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    PRODUCTION_CONSUME_MATERIALS = False
    STOCK_RETRY_BACKOFF = 0.0
    LOG_LEVEL = "WARNING"
