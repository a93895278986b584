"""
models.py
Domain types (Money, entities, session context) and status/subscription constants.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import config

# Member lifecycle
MEMBER_ACTIVE = "Active"
MEMBER_INACTIVE = "Inactive"
MEMBER_PENDING = "Pending"
MEMBER_STATUSES = (MEMBER_ACTIVE, MEMBER_INACTIVE, MEMBER_PENDING)

INVOICE_UNPAID = "Unpaid"
INVOICE_PAID = "Paid"
INVOICE_OVERDUE = "Overdue"
INVOICE_STATUSES = (INVOICE_UNPAID, INVOICE_PAID, INVOICE_OVERDUE)
OUTSTANDING_STATUSES = frozenset({INVOICE_UNPAID, INVOICE_OVERDUE})

PAYMENT_PENDING = "Pending"
PAYMENT_COMPLETED = "Completed"
PAYMENT_PAID = "Paid"
PAYMENT_REJECTED = "Rejected"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_PAID, PAYMENT_REJECTED)
SETTLED_PAYMENT_STATUSES = frozenset({PAYMENT_COMPLETED, PAYMENT_PAID})

CHANNEL_EMAIL = "Email"
CHANNEL_WHATSAPP = "WhatsApp"

LOG_DELIVERED = "Delivered"
LOG_FAILED = "Failed"

# Two-phase delivery tracking for channels without receipts
DELIVERY_REQUESTED = "requested"
DELIVERY_CONFIRMED = "confirmed"

REMINDER_OVERDUE = "overdue"
REMINDER_UPCOMING = "upcoming"
REMINDER_SENT = "sent"
REMINDER_FAILED = "failed"

ROLE_OWNER = "Owner"
ROLE_FINANCE = "Finance Admin"
ROLE_ADMIN = "Admin"
ROLE_VIEWER = "Viewer"
ROLES = (ROLE_OWNER, ROLE_FINANCE, ROLE_ADMIN, ROLE_VIEWER)

# Subscription types and their yearly fees
ANNUAL_MEMBER = "Annual Member"
LIFETIME_JANAZA_FUND = "Lifetime Janaza Fund"
LIFETIME_MEMBER_JANAZA_FUND = "Lifetime Member + Janaza Fund"
SUBSCRIPTION_TYPES = (ANNUAL_MEMBER, LIFETIME_JANAZA_FUND, LIFETIME_MEMBER_JANAZA_FUND)

SUBSCRIPTION_FEES = {
    # type: (membership fee, janaza fee)
    ANNUAL_MEMBER: (config.ANNUAL_MEMBER_RATE, 0),
    LIFETIME_JANAZA_FUND: (0, config.JANAZA_FUND_RATE),
    LIFETIME_MEMBER_JANAZA_FUND: (config.LIFETIME_MEMBERSHIP_FEE, config.JANAZA_FUND_RATE),
}

_LEGACY_SUBSCRIPTION_LABELS = {
    "Yearly + Janaza Fund": ANNUAL_MEMBER,
    "Annual Member - HK$500": ANNUAL_MEMBER,
    "Lifetime": LIFETIME_MEMBER_JANAZA_FUND,
    "Lifetime Membership": LIFETIME_MEMBER_JANAZA_FUND,
    "Lifetime Janaza Fund Member": LIFETIME_JANAZA_FUND,
}


def normalize_subscription_type(raw: str | None) -> str:
    value = (raw or "").strip()
    if not value:
        return ANNUAL_MEMBER
    if value in SUBSCRIPTION_TYPES:
        return value
    if value in _LEGACY_SUBSCRIPTION_LABELS:
        return _LEGACY_SUBSCRIPTION_LABELS[value]
    lowered = value.lower()
    if "yearly" in lowered or "annual" in lowered:
        return ANNUAL_MEMBER
    if "janaza" in lowered and "lifetime" in lowered and "member" not in lowered:
        return LIFETIME_JANAZA_FUND
    if "lifetime" in lowered:
        return LIFETIME_MEMBER_JANAZA_FUND
    return ANNUAL_MEMBER


def annual_rate(subscription_type: str | None) -> int:
    """Recurring yearly amount: 500 for annual members, 250 for lifetime (Janaza fund only)."""
    normalized = normalize_subscription_type(subscription_type)
    if normalized == ANNUAL_MEMBER:
        return config.ANNUAL_MEMBER_RATE
    return config.JANAZA_FUND_RATE


def subscription_fees(subscription_type: str | None, lifetime_paid: bool = False) -> tuple[int, int]:
    """(membership_fee, janaza_fee) to invoice for one year."""
    normalized = normalize_subscription_type(subscription_type)
    membership_fee, janaza_fee = SUBSCRIPTION_FEES[normalized]
    if normalized == LIFETIME_MEMBER_JANAZA_FUND and lifetime_paid:
        membership_fee = 0
    return membership_fee, janaza_fee


_NON_NUMERIC = re.compile(r"[^0-9.]")


@dataclass(frozen=True, order=True)
class Money:
    """An amount held as integer minor units (cents)."""

    cents: int = 0
    currency: str = config.CURRENCY

    @classmethod
    def parse(cls, value) -> "Money":
        """
        Best-effort conversion from display strings ("$250.00", "HK$1,250"), numbers or None.
        Anything unparseable becomes zero.
        """
        if isinstance(value, Money):
            return value
        if value is None or isinstance(value, bool):
            return cls(0)
        if isinstance(value, (int, float, Decimal)):
            try:
                dec = Decimal(str(value))
            except InvalidOperation:
                return cls(0)
        else:
            cleaned = _NON_NUMERIC.sub("", str(value))
            if not cleaned:
                return cls(0)
            try:
                dec = Decimal(cleaned)
            except InvalidOperation:
                return cls(0)
        if not dec.is_finite():
            return cls(0)
        return cls(int((dec * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))

    @classmethod
    def from_amount(cls, amount: float | int) -> "Money":
        return cls.parse(amount)

    @property
    def amount(self) -> float:
        return self.cents / 100

    def __add__(self, other: "Money") -> "Money":
        return Money(self.cents + Money.parse(other).cents, self.currency)

    def __radd__(self, other) -> "Money":
        # lets sum() start from 0
        if other == 0:
            return self
        return self.__add__(other)

    def __bool__(self) -> bool:
        return self.cents != 0

    def format(self) -> str:
        return f"{config.CURRENCY_SYMBOL}{self.cents / 100:.2f}"

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    email: str = ""
    phone: str = ""
    status: str = MEMBER_PENDING
    balance: Money = Money()
    subscription_type: str = ANNUAL_MEMBER
    next_due: date | None = None
    last_payment: date | None = None
    created_at: date | None = None
    lifetime_paid: bool = False


@dataclass(frozen=True)
class Invoice:
    id: str
    member_id: str | None
    member_name: str = ""
    member_email: str = ""
    period: str = ""
    amount: Money = Money()
    status: str = INVOICE_UNPAID
    due: date | None = None
    method: str = ""
    reference: str = ""
    notes: str = ""
    screenshot: str | None = None
    paid_to_admin: str | None = None
    paid_to_admin_name: str | None = None


@dataclass(frozen=True)
class Payment:
    id: str
    member_id: str | None
    member: str = ""
    invoice_id: str | None = None
    amount: Money = Money()
    method: str = ""
    status: str = PAYMENT_PENDING
    date: date | None = None
    screenshot: str | None = None
    reference: str = ""
    paid_to_admin: str | None = None
    paid_to_admin_name: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None


@dataclass(frozen=True)
class Donation:
    id: int | None
    donor_name: str
    amount: Money = Money()
    is_member: bool = False
    member_id: str | None = None
    method: str = ""
    date: date | None = None
    reference: str = ""
    screenshot: str | None = None
    notes: str = ""


@dataclass(frozen=True)
class CommunicationLogEntry:
    id: int | None
    channel: str
    type: str
    member_id: str | None
    member_email: str
    member_name: str
    message: str
    status: str  # Delivered / Failed
    date: datetime
    delivery: str = DELIVERY_REQUESTED


@dataclass(frozen=True)
class ReminderLogEntry:
    id: int | None
    member_id: str
    member_email: str
    reminder_type: str  # overdue / upcoming
    amount: Money
    invoice_count: int
    sent_at: datetime
    status: str  # sent / failed
    channel: str = CHANNEL_EMAIL


@dataclass(frozen=True)
class PaymentMethod:
    id: int | None
    name: str
    details: str = ""
    visible: bool = True


@dataclass(frozen=True)
class AdminUser:
    id: int | None
    name: str
    email: str
    role: str = ROLE_VIEWER
    status: str = "Active"


@dataclass(frozen=True)
class SessionContext:
    """Identity of the signed-in admin, passed to every mutating operation."""

    admin_id: int | None
    admin_name: str
    role: str


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


@dataclass(frozen=True)
class Snapshot:
    """In-memory copy of the collections the engine works on."""

    members: tuple[Member, ...] = ()
    invoices: tuple[Invoice, ...] = ()
    payments: tuple[Payment, ...] = ()
    donations: tuple[Donation, ...] = ()
