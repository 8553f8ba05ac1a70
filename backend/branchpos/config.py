# backend/branchpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/branchpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///branchpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Card terminal: "simulated" for local/dev, "http" for the terminal bridge
    PAYMENT_GATEWAY = os.environ.get("PAYMENT_GATEWAY", "simulated")
    PAYMENT_GATEWAY_URL = os.environ.get("PAYMENT_GATEWAY_URL", "http://127.0.0.1:8090")
    PAYMENT_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "60"))

    # Calendar-day filters ("sales of 2024-03-01") are evaluated in this zone
    LOCAL_TIMEZONE = os.environ.get("LOCAL_TIMEZONE", "America/Santiago")

    LOW_STOCK_THRESHOLD_DEFAULT = 5
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 200

    # Front-end origins allowed to call the API from a browser
    CORS_ORIGINS = tuple(
        o.strip() for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",") if o.strip()
    )
