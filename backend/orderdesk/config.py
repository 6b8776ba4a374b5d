# backend/orderdesk/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///orderdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Inventory
    DEFAULT_MINIMUM_STOCK = int(os.environ.get("DEFAULT_MINIMUM_STOCK", "10"))
    # Opt-in: decrement inventory rows when an order is confirmed
    DECREMENT_STOCK_ON_CONFIRM = _env_flag("DECREMENT_STOCK_ON_CONFIRM")

    # Invoices
    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "30"))
    INVOICE_PAYMENT_TERMS = os.environ.get("INVOICE_PAYMENT_TERMS", "Net 30")
    INVOICE_TERMS_AND_CONDITIONS = os.environ.get(
        "INVOICE_TERMS_AND_CONDITIONS",
        "Payment due within 30 days. Late fees may apply.",
    )

    # List endpoints
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    }
