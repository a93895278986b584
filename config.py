"""
config.py
Environment-driven settings (.env supported) and business constants.
"""

from __future__ import annotations

import os
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default) not in ("0", "false", "False", "")


DB_FILE = Path(os.getenv("MEMBERSHIP_DB_FILE", str(BASE_DIR / "membership.db")))
UPLOAD_DIR = Path(os.getenv("MEMBERSHIP_UPLOAD_DIR", str(BASE_DIR / "uploads")))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

ORG_NAME = os.getenv("ORG_NAME", "Indian Muslim Association")
CURRENCY = os.getenv("CURRENCY", "HKD")
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "$")

# Outgoing mail; the email settings page overrides these at runtime
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", SMTP_USER)
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "1")

WHATSAPP_DEFAULT_COUNTRY_CODE = os.getenv("WHATSAPP_DEFAULT_COUNTRY_CODE", "852")
WHATSAPP_STAGGER_SECONDS = float(os.getenv("WHATSAPP_STAGGER_SECONDS", "1.0"))

DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "owner@example.org")
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")

# Dashboard "expected annual" uses a flat figure per member, independent of
# the per-subscription rates below.
EXPECTED_ANNUAL_PER_MEMBER = 800
ANNUAL_MEMBER_RATE = 500
JANAZA_FUND_RATE = 250
LIFETIME_MEMBERSHIP_FEE = 5000

# Members without a creation date are treated as joining on this day in reports
REPORT_BASE_DATE = date(2025, 1, 1)

PAYMENT_DETAILS = {
    "fps": os.getenv("PAYMENT_FPS", "+852 9545 4447"),
    "bank_name": os.getenv("PAYMENT_BANK_NAME", "Bank of China"),
    "bank_account": os.getenv("PAYMENT_BANK_ACCOUNT", "012-968-2-013423-1"),
    "beneficiary": os.getenv(
        "PAYMENT_BENEFICIARY", "THE INDIAN MUSLIM ASSOCIATION (JAMA-ATH) LIMITED"
    ),
}
