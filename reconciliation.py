"""
reconciliation.py
Invoice/payment reconciliation: effective invoice status, member matching,
outstanding balances and invoice id sequencing.

Every function here is pure and works on snapshots loaded by store.py. Other
modules must go through effective_invoice_status / outstanding_invoices rather
than reading Invoice.status directly.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import replace
from datetime import date

import config
from models import (
    INVOICE_OVERDUE,
    INVOICE_PAID,
    INVOICE_UNPAID,
    OUTSTANDING_STATUSES,
    REMINDER_OVERDUE,
    REMINDER_UPCOMING,
    SETTLED_PAYMENT_STATUSES,
    Invoice,
    Member,
    Money,
    Payment,
)


def effective_invoice_status(invoice: Invoice, payments: Iterable[Payment]) -> str:
    """
    "Paid" when a Completed/Paid payment references the invoice, whatever the
    stored status says; otherwise the stored status.
    """
    for p in payments:
        if p.invoice_id and p.invoice_id == invoice.id and p.status in SETTLED_PAYMENT_STATUSES:
            return INVOICE_PAID
    return invoice.status


def with_effective_status(invoices: Iterable[Invoice], payments: Iterable[Payment]) -> list[Invoice]:
    """Copies of the invoices carrying their effective status, for display."""
    payments = list(payments)
    return [replace(inv, status=effective_invoice_status(inv, payments)) for inv in invoices]


def settled_invoice_ids(payments: Iterable[Payment]) -> set[str]:
    return {p.invoice_id for p in payments if p.invoice_id and p.status in SETTLED_PAYMENT_STATUSES}


def _same_text(a: str | None, b: str | None) -> bool:
    a, b = (a or "").strip().lower(), (b or "").strip().lower()
    return bool(a) and a == b


def invoice_matches_member(invoice: Invoice, member: Member) -> bool:
    """
    Invoices are linked by member_id. Legacy invoices without one fall back to
    email, then name. Two members sharing an email will both claim such invoices.
    """
    if invoice.member_id:
        return invoice.member_id.strip() == (member.id or "").strip()
    return _same_text(invoice.member_email, member.email) or _same_text(invoice.member_name, member.name)


def find_invoice_member(invoice: Invoice, members: Iterable[Member]) -> Member | None:
    """Resolve the owning member by id, email or name (in that order)."""
    members = list(members)
    if invoice.member_id:
        for m in members:
            if m.id == invoice.member_id:
                return m
    for m in members:
        if _same_text(invoice.member_email, m.email):
            return m
    for m in members:
        if _same_text(invoice.member_name, m.name):
            return m
    return None


def member_invoices(member: Member, invoices: Iterable[Invoice]) -> list[Invoice]:
    return [inv for inv in invoices if invoice_matches_member(inv, member)]


def outstanding_invoices(member: Member, invoices: Iterable[Invoice], payments: Iterable[Payment]) -> list[Invoice]:
    """The member's invoices whose effective status is Unpaid or Overdue."""
    settled = settled_invoice_ids(payments)
    return [
        inv
        for inv in member_invoices(member, invoices)
        if inv.id not in settled and inv.status in OUTSTANDING_STATUSES
    ]


def total_amount(invoices: Iterable[Invoice]) -> Money:
    return sum((inv.amount for inv in invoices), Money())


def member_outstanding_balance(member: Member, invoices: Iterable[Invoice], payments: Iterable[Payment]) -> Money:
    """Sum of the member's unpaid/overdue invoice amounts. Zero means fully settled."""
    total = total_amount(outstanding_invoices(member, invoices, payments))
    if total.cents < 0:
        return Money(0, total.currency)
    return total


def format_balance(total: Money) -> str:
    """Cached Member.balance projection: "$250.00 Outstanding" or "$0"."""
    if total.cents <= 0:
        return f"{config.CURRENCY_SYMBOL}0"
    return f"{total.format()} Outstanding"


def reminder_type(invoices: Iterable[Invoice]) -> str:
    return REMINDER_OVERDUE if any(inv.status == INVOICE_OVERDUE for inv in invoices) else REMINDER_UPCOMING


def invoices_to_mark_overdue(invoices: Iterable[Invoice], payments: Iterable[Payment], today: date) -> list[Invoice]:
    """Unpaid invoices past their due date that no settled payment covers."""
    settled = settled_invoice_ids(payments)
    return [
        inv
        for inv in invoices
        if inv.status == INVOICE_UNPAID and inv.due is not None and inv.due < today and inv.id not in settled
    ]


def next_sequence_id(prefix: str, existing_ids: Iterable[str], year: int, width: int = 3) -> str:
    """
    Next "<prefix>-<year>-<seq>" id: highest sequence already used for the year, plus one.

    >>> next_sequence_id("INV", ["INV-2025-001", "INV-2025-003"], 2025)
    'INV-2025-004'
    """
    pattern = re.compile(rf"^{re.escape(prefix)}-{year}-(\d+)$")
    highest = 0
    for existing in existing_ids:
        match = pattern.match((existing or "").strip())
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}-{year}-{highest + 1:0{width}d}"


def next_invoice_id(existing_ids: Iterable[str], year: int) -> str:
    return next_sequence_id("INV", existing_ids, year)
