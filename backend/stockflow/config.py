# backend/stockflow/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Business rules (rates in basis points: 2000 = 20%)
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "2000"))
    MAX_DISCOUNT_RATE_BPS = int(os.environ.get("MAX_DISCOUNT_RATE_BPS", "5000"))
    MAX_ITEMS_PER_SALE = int(os.environ.get("MAX_ITEMS_PER_SALE", "100"))
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    # "abort" rejects the whole sale on a shortage, "backorder" records the shortfall
    STOCK_SHORTAGE_POLICY = os.environ.get("STOCK_SHORTAGE_POLICY", "abort")

    SALE_NUMBER_PREFIX = os.environ.get("SALE_NUMBER_PREFIX", "VTE")

    # Retries when the write lock cannot be acquired (nothing written yet)
    WRITE_LOCK_RETRY_ATTEMPTS = int(os.environ.get("WRITE_LOCK_RETRY_ATTEMPTS", "3"))
