# backend/stationops/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stationops.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stationops.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shift reconciliation variance tiers (currency units, inclusive upper bounds)
    VARIANCE_YELLOW_THRESHOLD = os.environ.get("VARIANCE_YELLOW_THRESHOLD", "200")
    VARIANCE_RED_THRESHOLD = os.environ.get("VARIANCE_RED_THRESHOLD", "500")

    # Daily anomaly tiers (liters, inclusive lower bounds)
    DAILY_ANOMALY_WARNING_LITERS = os.environ.get("DAILY_ANOMALY_WARNING_LITERS", "10")
    DAILY_ANOMALY_CRITICAL_LITERS = os.environ.get("DAILY_ANOMALY_CRITICAL_LITERS", "50")

    # Used when neither the price book nor the daily record carries a price
    DEFAULT_RETAIL_PRICE = os.environ.get("DEFAULT_RETAIL_PRICE", "30.50")

    SHIFT_AUTO_LOCK_HOURS = int(os.environ.get("SHIFT_AUTO_LOCK_HOURS", "24"))

    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Bangkok")
