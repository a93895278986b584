"""
billing.py
State transitions that touch more than one record: payment approval/rejection,
marking invoices paid, member approval, overdue refresh, next-year invoicing,
and the write-back of cached member balances.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime

import config
import store
from auth import require_role
from errors import NotFoundError, ValidationError
from models import (
    ANNUAL_MEMBER,
    INVOICE_OVERDUE,
    INVOICE_PAID,
    LIFETIME_JANAZA_FUND,
    LIFETIME_MEMBER_JANAZA_FUND,
    MEMBER_ACTIVE,
    MEMBER_PENDING,
    PAYMENT_COMPLETED,
    PAYMENT_PENDING,
    PAYMENT_REJECTED,
    Invoice,
    Member,
    Payment,
    SessionContext,
)
from reconciliation import format_balance, invoices_to_mark_overdue, member_invoices, member_outstanding_balance
import utils

logger = logging.getLogger(__name__)


def sync_member_balance(member_id: str) -> str:
    """
    Recompute the member's outstanding balance from invoices and payments and
    store it as the cached display string. Returns the stored string.
    """
    member = store.get_member(member_id)
    total = member_outstanding_balance(member, store.list_invoices(), store.list_payments())
    balance_text = format_balance(total)
    store.set_member_balance(member.id, balance_text)
    logger.info("Balance for member %s: %s", member.id, balance_text)
    return balance_text


def sync_all_balances() -> int:
    snapshot = store.load_snapshot()
    for member in snapshot.members:
        total = member_outstanding_balance(member, snapshot.invoices, snapshot.payments)
        store.set_member_balance(member.id, format_balance(total))
    return len(snapshot.members)


def _next_due_after(invoice: Invoice, today: date) -> date | None:
    """1 January of the year following the invoiced period."""
    year = utils.year_from_period(invoice.period)
    if year is not None:
        return date(year + 1, 1, 1)
    period = invoice.period.lower()
    if "yearly" in period or "lifetime" in period:
        return date(today.year + 1, 1, 1)
    return None


def _record_member_payment(member: Member, invoice: Invoice | None, today: date) -> None:
    changes = {"last_payment": today}
    if invoice is not None:
        next_due = _next_due_after(invoice, today)
        if next_due is not None:
            changes["next_due"] = next_due
        if (
            member.subscription_type == LIFETIME_MEMBER_JANAZA_FUND
            and not member.lifetime_paid
            and invoice.amount.amount >= config.LIFETIME_MEMBERSHIP_FEE
        ):
            changes["lifetime_paid"] = True
    store.save_member(replace(member, **changes), balance_text=format_balance(member.balance))


def _settle_invoice(invoice: Invoice, payment: Payment) -> Invoice:
    paid = replace(
        invoice,
        status=INVOICE_PAID,
        method=payment.method,
        reference=payment.reference,
        screenshot=payment.screenshot or invoice.screenshot,
        paid_to_admin=payment.paid_to_admin or invoice.paid_to_admin,
        paid_to_admin_name=payment.paid_to_admin_name or invoice.paid_to_admin_name,
    )
    store.save_invoice(paid)
    return paid


def approve_payment(ctx: SessionContext, payment_id: str) -> tuple[Payment, Invoice | None, Member]:
    """
    Pending -> Completed. The linked invoice becomes Paid, the member's next due
    date moves to the year after the invoiced period and the balance is re-synced.
    """
    require_role(ctx, "approve_payments")
    payment = store.get_payment(payment_id)
    if payment.status != PAYMENT_PENDING:
        raise ValidationError(f"Payment {payment_id} is already {payment.status}.")
    member = store.get_member(payment.member_id)
    invoice = store.get_invoice(payment.invoice_id) if payment.invoice_id else None

    approved = replace(
        payment,
        status=PAYMENT_COMPLETED,
        approved_by=ctx.admin_name or str(ctx.admin_id),
        approved_at=datetime.now(),
    )
    store.save_payment(approved)
    if invoice is not None:
        invoice = _settle_invoice(invoice, approved)
    _record_member_payment(member, invoice, date.today())
    sync_member_balance(member.id)

    logger.info("Payment %s approved by %s", payment_id, ctx.admin_name)
    return approved, invoice, store.get_member(member.id)


def reject_payment(ctx: SessionContext, payment_id: str, reason: str) -> Payment:
    require_role(ctx, "approve_payments")
    if not (reason or "").strip():
        raise ValidationError("A rejection reason is required.", field="reason")
    payment = store.get_payment(payment_id)
    if payment.status != PAYMENT_PENDING:
        raise ValidationError(f"Payment {payment_id} is already {payment.status}.")

    rejected = replace(
        payment,
        status=PAYMENT_REJECTED,
        rejected_by=ctx.admin_name or str(ctx.admin_id),
        rejected_at=datetime.now(),
        rejection_reason=reason.strip(),
    )
    store.save_payment(rejected)
    if payment.member_id:
        sync_member_balance(payment.member_id)
    logger.info("Payment %s rejected by %s: %s", payment_id, ctx.admin_name, reason)
    return rejected


def mark_invoice_paid(
    ctx: SessionContext,
    invoice_id: str,
    method: str,
    reference: str = "",
    paid_to_admin_name: str | None = None,
) -> tuple[Invoice, Payment]:
    """Admin-recorded payment: creates a Completed payment and settles the invoice in one step."""
    require_role(ctx, "approve_payments")
    invoice = store.get_invoice(invoice_id)
    if store.invoice_status(invoice) == INVOICE_PAID:
        raise ValidationError(f"Invoice {invoice_id} is already paid.")
    if not invoice.member_id:
        raise ValidationError(f"Invoice {invoice_id} is not linked to a member.")
    member = store.get_member(invoice.member_id)

    payment = store.create_payment(
        ctx,
        member.id,
        invoice.amount,
        method,
        invoice_id=invoice.id,
        reference=reference,
        paid_to_admin=str(ctx.admin_id) if paid_to_admin_name else None,
        paid_to_admin_name=paid_to_admin_name,
        status=PAYMENT_COMPLETED,
    )
    payment = replace(payment, approved_by=ctx.admin_name, approved_at=datetime.now())
    store.save_payment(payment)
    invoice = _settle_invoice(invoice, payment)
    _record_member_payment(member, invoice, date.today())
    sync_member_balance(member.id)
    logger.info("Invoice %s marked paid by %s", invoice_id, ctx.admin_name)
    return invoice, payment


def approve_member(ctx: SessionContext, member_id: str) -> Member:
    require_role(ctx, "approve_members")
    member = store.get_member(member_id)
    if member.status != MEMBER_PENDING:
        raise ValidationError(f"Member {member_id} is {member.status}, only Pending members can be approved.")
    approved = replace(member, status=MEMBER_ACTIVE)
    store.save_member(approved, balance_text=format_balance(member.balance))
    logger.info("Member %s approved by %s", member_id, ctx.admin_name)
    return approved


def refresh_overdue_invoices(today: date | None = None) -> int:
    """Flip Unpaid invoices past their due date to Overdue. Returns how many changed."""
    snapshot = store.load_snapshot()
    stale = invoices_to_mark_overdue(snapshot.invoices, snapshot.payments, today or date.today())
    touched = set()
    for inv in stale:
        store.save_invoice(replace(inv, status=INVOICE_OVERDUE))
        if inv.member_id:
            touched.add(inv.member_id)
    for member_id in touched:
        try:
            sync_member_balance(member_id)
        except NotFoundError:
            logger.warning("Overdue invoice references unknown member %s", member_id)
    if stale:
        logger.info("Marked %d invoice(s) overdue", len(stale))
    return len(stale)


def _period_label(member: Member, year: int) -> str:
    if member.subscription_type == ANNUAL_MEMBER:
        return f"{year} Annual Member Subscription"
    if member.subscription_type == LIFETIME_JANAZA_FUND:
        return f"{year} Lifetime Janaza Fund"
    if member.lifetime_paid:
        return f"{year} Lifetime Membership - Janaza Fund"
    return f"{year} Lifetime Membership - Full Payment"


def generate_yearly_invoices(ctx: SessionContext, year: int) -> list[Invoice]:
    """
    One Unpaid invoice per Active member for `year`, skipping members who
    already have an invoice whose period mentions that year.
    """
    require_role(ctx, "edit_records")
    snapshot = store.load_snapshot()
    created = []
    for member in snapshot.members:
        if member.status != MEMBER_ACTIVE:
            continue
        existing = member_invoices(member, snapshot.invoices)
        if any(utils.year_from_period(inv.period) == year for inv in existing):
            logger.debug("Skipping %s: invoice for %s already exists", member.id, year)
            continue
        invoice = store.create_invoice(
            ctx,
            member.id,
            _period_label(member, year),
            store.default_invoice_amount(member),
            date(year + 1, 1, 1),
            year=year,
        )
        sync_member_balance(member.id)
        created.append(invoice)
    logger.info("Generated %d invoice(s) for %s", len(created), year)
    return created
