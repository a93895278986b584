"""
utils.py
Parsing, dates, payment-method display names, validation, exports.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

import pandas as pd

import config
from models import MEMBER_STATUSES, SUBSCRIPTION_TYPES

ONLINE_PAYMENT = "Online Payment"
CASH = "Cash"
ONLINE_METHODS = frozenset(
    {"Screenshot", "Bank Transfer", "FPS", "PayMe", "Alipay", "Credit Card", ONLINE_PAYMENT}
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PERIOD_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")


def parse_date(value) -> date | None:
    """
    Lenient date parser used on ingestion. Accepts date/datetime objects, ISO strings
    (optionally with a time part) and "15 Jan 2025" style strings. Returns None when
    the value can't be read.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    for fmt in ("%d %b %Y", "%d %B %Y", "%b %d %Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(text.replace(",", ""), fmt).date()
        except ValueError:
            continue
    return None


def parse_datetime(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        d = parse_date(value)
        return datetime(d.year, d.month, d.day) if d else None


def add_months(start: date, months: int) -> date:
    """
    Add (or subtract) months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, datetime.max.time())


def year_from_period(period: str | None) -> int | None:
    match = _PERIOD_YEAR_RE.search(period or "")
    return int(match.group(0)) if match else None


def normalize_payment_method(method: str | None, paid_to_admin=None, paid_to_admin_name=None) -> str:
    """Collapse raw method strings into Cash / Online Payment / <raw> / N/A."""
    if paid_to_admin or paid_to_admin_name or method == "Cash to Admin":
        return CASH
    if method in ONLINE_METHODS:
        return ONLINE_PAYMENT
    return method or "N/A"


def display_method(record) -> str:
    """normalize_payment_method for any record carrying method/paid_to_admin fields."""
    return normalize_payment_method(
        getattr(record, "method", None),
        getattr(record, "paid_to_admin", None),
        getattr(record, "paid_to_admin_name", None),
    )


def normalize_phone(phone: str | None, default_cc: str | None = None) -> str:
    """Digits only, with the default country code prefixed when missing."""
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    cc = default_cc or config.WHATSAPP_DEFAULT_COUNTRY_CODE
    if digits.startswith("0"):
        return cc + digits.lstrip("0")
    if len(digits) <= 8 and not digits.startswith(cc):
        return cc + digits
    return digits


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match((email or "").strip()))


def validate_member_inputs(name: str, email: str, phone: str, status: str, subscription_type: str) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Name is required.")
    if not (email or "").strip():
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Email address is not valid.")
    if phone and not re.sub(r"\D", "", phone):
        errors.append("Phone must contain digits.")
    if status not in MEMBER_STATUSES:
        errors.append(f"Status must be one of {', '.join(MEMBER_STATUSES)}.")
    if subscription_type not in SUBSCRIPTION_TYPES:
        errors.append("Unknown subscription type.")
    return errors


def validate_amount(amount) -> list[str]:
    try:
        value = float(re.sub(r"[^0-9.\-]", "", str(amount)))
    except ValueError:
        return ["Amount must be numeric."]
    if value <= 0:
        return ["Amount must be > 0."]
    return []


def validate_invoice_inputs(member_id: str, period: str, amount, due: str) -> list[str]:
    errors: list[str] = []
    if not (member_id or "").strip():
        errors.append("Member is required.")
    if not (period or "").strip():
        errors.append("Period is required.")
    errors.extend(validate_amount(amount))
    if parse_date(due) is None:
        errors.append("Due date must be a valid ISO date (YYYY-MM-DD).")
    return errors


def validate_date_range(start: str | date, end: str | date) -> list[str]:
    sd, ed = parse_date(start), parse_date(end)
    if sd is None or ed is None:
        return ["Start/end dates must be valid ISO dates (YYYY-MM-DD)."]
    if ed < sd:
        return ["End date must not be before start date."]
    return []


def records_to_frame(records, columns: list[str] | None = None) -> pd.DataFrame:
    """DataFrame from dataclass records, Money/date values rendered for display."""
    rows = []
    for r in records:
        row = {}
        for key, value in vars(r).items():
            if hasattr(value, "cents"):
                value = value.format()
            elif isinstance(value, (date, datetime)):
                value = value.isoformat()
            row[key] = value
        if hasattr(r, "method"):
            row["method"] = display_method(r)
        rows.append(row)
    df = pd.DataFrame(rows)
    if df.empty and columns:
        return pd.DataFrame(columns=columns)
    if columns:
        return df[[c for c in columns if c in df.columns]]
    return df


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")
