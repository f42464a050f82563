# backend/medistore/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/medistore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///medistore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Analytics results are memoized per (store, window) for this long
    ANALYTICS_CACHE_TTL_SECONDS = int(os.environ.get("ANALYTICS_CACHE_TTL_SECONDS", "300"))
    # Wall-clock budget for a single billing-history scan
    ANALYTICS_SCAN_BUDGET_SECONDS = float(os.environ.get("ANALYTICS_SCAN_BUDGET_SECONDS", "10"))

    BILLING_RETRY_ATTEMPTS = int(os.environ.get("BILLING_RETRY_ATTEMPTS", "3"))
    BILLING_RETRY_BACKOFF = float(os.environ.get("BILLING_RETRY_BACKOFF", "0.05"))
    # Recompute bill totals server-side and reject tampered totals
    BILLING_VERIFY_TOTAL = _env_bool("BILLING_VERIFY_TOTAL", True)
    BILLING_TOTAL_TOLERANCE_CENTS = int(os.environ.get("BILLING_TOTAL_TOLERANCE_CENTS", "1"))

    # "medicine": one entry per med_id; "batch": one entry per (med_id, batch_number)
    STOCK_MATCH_POLICY = os.environ.get("STOCK_MATCH_POLICY", "medicine")

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip().rstrip("/")
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    )
