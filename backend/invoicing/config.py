# backend/invoicing/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # SQLite DB stored in backend/instance/invoicing.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///invoicing.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Invoice numbers look like INV-202610-0001
    INVOICE_NUMBER_PREFIX = os.environ.get("INVOICE_NUMBER_PREFIX", "INV")
    INVOICE_NUMBER_PAD = int(os.environ.get("INVOICE_NUMBER_PAD", "4"))
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "INR")

    # Recurring invoices are generated when the invoice list is loaded
    RECURRING_SWEEP_ON_ACCESS = _env_bool("RECURRING_SWEEP_ON_ACCESS", True)

    # Total attempts for a ledger write that hits a concurrency conflict
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "2"))

    # Invoice statuses that count towards customer spend metrics
    CUSTOMER_METRICS_STATUSES = ("paid",)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Due date used when an invoice is created without one (days after issue)
    DEFAULT_DUE_DAYS = int(os.environ.get("DEFAULT_DUE_DAYS", "30"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    )
