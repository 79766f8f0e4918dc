# backend/retailcore/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailcore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retailcore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Transient DB failures (locks, deadlocks) are retried with exponential backoff
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    # Invoice numbers: INV-001-000042
    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "INV")
    INVOICE_NUMBER_PAD = int(os.environ.get("INVOICE_NUMBER_PAD", "6"))

    SYNC_MAX_BATCH_SIZE = int(os.environ.get("SYNC_MAX_BATCH_SIZE", "500"))
