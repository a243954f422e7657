# backend/agroledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/agroledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///agroledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Fallback card fee percentages when no credit_fee / debit_fee setting exists
    LEDGER_CREDIT_CARD_FEE_PERCENT = float(os.environ.get("LEDGER_CREDIT_CARD_FEE_PERCENT", "0"))
    LEDGER_DEBIT_CARD_FEE_PERCENT = float(os.environ.get("LEDGER_DEBIT_CARD_FEE_PERCENT", "0"))

    LEDGER_BACKUP_VERSION = "2.0"
    LEDGER_SUPPORTED_BACKUP_VERSIONS = frozenset({"2.0"})

    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))

    # Browser origins of the shop front-end (dev server and preview build)
    CORS_ALLOWED_ORIGINS = frozenset(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    )
