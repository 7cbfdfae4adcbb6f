# backend/codemarket/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file next to the instance by default; Postgres in production
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///codemarket.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Comma separated list of browser origins allowed to call the API
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]

    # Sessions roll forward on every request; idle window matches the old 30-day cookie
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "720"))
    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "2160"))

    # Paystack transaction verification
    PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY", "")
    PAYSTACK_BASE_URL = os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_TIMEOUT_SECONDS = float(os.environ.get("PAYSTACK_TIMEOUT_SECONDS", "10"))
    PAYSTACK_CURRENCY = os.environ.get("PAYSTACK_CURRENCY", "GHS")

    # When enabled, the order total is recomputed from catalog prices and
    # a client total that disagrees is rejected.
    CHECKOUT_ENFORCE_CATALOG_TOTAL = _env_flag("CHECKOUT_ENFORCE_CATALOG_TOTAL", False)
