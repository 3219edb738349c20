# backend/billing/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/billing.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///billing.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Sale creation: fixed-window rate limit per user
    SALE_RATE_LIMIT_WINDOW_SECONDS = _env_int("SALE_RATE_LIMIT_WINDOW_SECONDS", 60)
    SALE_RATE_LIMIT_MAX_REQUESTS = _env_int("SALE_RATE_LIMIT_MAX_REQUESTS", 10)

    # Re-price/re-commit rounds when the catalog changes under a sale
    SALE_COMMIT_ATTEMPTS = _env_int("SALE_COMMIT_ATTEMPTS", 5)

    # Percentage applied when an invoice omits tax_rate
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "18")
