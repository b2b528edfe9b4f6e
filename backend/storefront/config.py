# backend/storefront/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance folder unless DATABASE_URL points at Postgres/MySQL
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Payment slip uploads. None -> <instance_path>/uploads/slips
    SLIP_UPLOAD_DIR = os.environ.get("SLIP_UPLOAD_DIR")
    SLIP_URL_PREFIX = "/uploads/slips"
    SLIP_MAX_BYTES = _int_env("SLIP_MAX_BYTES", 10 * 1024 * 1024)
    # Small slack over the file cap for the other multipart fields
    MAX_CONTENT_LENGTH = SLIP_MAX_BYTES + 64 * 1024

    # "hard" removes row + file, "soft" stamps deleted_at
    SLIP_DELETE_MODE = os.environ.get("SLIP_DELETE_MODE", "hard")

    ORDER_CURRENCY = os.environ.get("ORDER_CURRENCY", "THB")

    AUTH_TOKEN_MAX_AGE = _int_env("AUTH_TOKEN_MAX_AGE", 24 * 60 * 60)

    DB_RETRY_ATTEMPTS = _int_env("DB_RETRY_ATTEMPTS", 3)
    DB_RETRY_BACKOFF = _float_env("DB_RETRY_BACKOFF", 0.1)

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
        ).split(",")
        if origin.strip()
    ]

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
