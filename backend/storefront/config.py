# backend/storefront/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key (also signs identity tokens)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Checkout holds
    RESERVATION_DEFAULT_MINUTES = int(os.environ.get("RESERVATION_DEFAULT_MINUTES", "15"))
    RESERVATION_MAX_MINUTES = int(os.environ.get("RESERVATION_MAX_MINUTES", "1440"))

    # Put ordered quantities back on the shelf when an order leaves the live set
    RESTOCK_ON_DENIAL = _env_bool("RESTOCK_ON_DENIAL", True)
    RESTOCK_ON_CANCELLATION = _env_bool("RESTOCK_ON_CANCELLATION", True)

    # External notifier (email relay). Empty URL disables outbound delivery.
    NOTIFIER_WEBHOOK_URL = os.environ.get("NOTIFIER_WEBHOOK_URL", "")
    NOTIFIER_TIMEOUT_SECONDS = float(os.environ.get("NOTIFIER_TIMEOUT_SECONDS", "5"))

    # Identity tokens are issued by the external identity provider
    IDENTITY_TOKEN_MAX_AGE = int(os.environ.get("IDENTITY_TOKEN_MAX_AGE", str(60 * 60 * 12)))

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5500,http://127.0.0.1:5500,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    }


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    NOTIFIER_WEBHOOK_URL = ""
    LOG_LEVEL = "WARNING"
