# backend/kasir/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kasir.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///kasir.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Optimistic-concurrency retry budget for ledger and shift writes
    KASIR_RETRY_ATTEMPTS = int(os.environ.get("KASIR_RETRY_ATTEMPTS", "5"))
    KASIR_RETRY_BACKOFF_SECONDS = float(os.environ.get("KASIR_RETRY_BACKOFF_SECONDS", "0.05"))

    KASIR_LOG_LEVEL = os.environ.get("KASIR_LOG_LEVEL", "INFO")
