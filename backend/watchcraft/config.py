# backend/watchcraft/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/watchcraft.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///watchcraft.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Items with 0 < quantity <= threshold are reported as low stock
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "2"))

    # Mutating routes reject requests without an X-Actor-Id header
    REQUIRE_ACTOR_HEADER = _env_flag("REQUIRE_ACTOR_HEADER", "true")

    # Comma-separated browser origins allowed to call the API (none by default)
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get("CORS_ALLOWED_ORIGINS", "").split(",")
        if origin.strip()
    ]
