# backend/packdesk/config.py
from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/packdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///packdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Identity token verification (signed by the external identity provider)
    IDENTITY_SECRET = os.environ.get("IDENTITY_SECRET", "dev-identity-secret-change-me")
    IDENTITY_ALGORITHMS = _csv(os.environ.get("IDENTITY_ALGORITHMS", "HS256"))
    IDENTITY_AUDIENCE = os.environ.get("IDENTITY_AUDIENCE") or None
    IDENTITY_ISSUER = os.environ.get("IDENTITY_ISSUER") or None
    # Custom claims are namespaced, e.g. "https://packdesk.app/roles"
    IDENTITY_CLAIM_NAMESPACE = os.environ.get("IDENTITY_CLAIM_NAMESPACE", "https://packdesk.app/")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    # Order creation throttle per (tenant, subject)
    ORDER_CREATE_RATE_LIMIT = int(os.environ.get("ORDER_CREATE_RATE_LIMIT", "30"))
    ORDER_CREATE_RATE_WINDOW_SECONDS = int(os.environ.get("ORDER_CREATE_RATE_WINDOW_SECONDS", "60"))
    RATE_LIMIT_BACKEND = os.environ.get("RATE_LIMIT_BACKEND", "memory")  # memory | database
