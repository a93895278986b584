"""
store.py
Entity store: CRUD over the SQLite tables and conversion of rows into domain
objects. Amount and date columns are parsed here, once, on the way in.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from datetime import date, datetime, timedelta
from pathlib import Path

import config
import db
from auth import require_role
from errors import ImmutableRecordError, NotFoundError, ValidationError
from models import (
    DELIVERY_CONFIRMED,
    INVOICE_PAID,
    INVOICE_STATUSES,
    INVOICE_UNPAID,
    MEMBER_ACTIVE,
    PAYMENT_PENDING,
    PAYMENT_STATUSES,
    CommunicationLogEntry,
    Donation,
    Invoice,
    Member,
    Money,
    Payment,
    PaymentMethod,
    ReminderLogEntry,
    SessionContext,
    Snapshot,
    normalize_subscription_type,
    subscription_fees,
)
from reconciliation import effective_invoice_status, format_balance, next_invoice_id, next_sequence_id
import utils

logger = logging.getLogger(__name__)

MEMBER_ID_PREFIX = "IMA"

DEFAULT_EMAIL_TEMPLATE = {
    "subject": "Membership Renewal Reminder - {{org_name}}",
    "intro": "This is to formally remind you that the renewal of your {{org_name}} membership is due.",
}


def _text(value) -> str:
    return "" if value is None else str(value)


def _iso(value) -> str | None:
    if value is None:
        return None
    return value.isoformat()


# ---------- Row conversion ----------

def _member_from_row(row) -> Member:
    return Member(
        id=row["id"],
        name=row["name"],
        email=_text(row["email"]),
        phone=_text(row["phone"]),
        status=row["status"],
        balance=Money.parse(row["balance"]),
        subscription_type=normalize_subscription_type(row["subscription_type"]),
        next_due=utils.parse_date(row["next_due"]),
        last_payment=utils.parse_date(row["last_payment"]),
        created_at=utils.parse_date(row["created_at"]),
        lifetime_paid=bool(row["lifetime_paid"]),
    )


def _invoice_from_row(row) -> Invoice:
    return Invoice(
        id=row["id"],
        member_id=row["member_id"] or None,
        member_name=_text(row["member_name"]),
        member_email=_text(row["member_email"]),
        period=_text(row["period"]),
        amount=Money.parse(row["amount"]),
        status=row["status"],
        due=utils.parse_date(row["due"]),
        method=_text(row["method"]),
        reference=_text(row["reference"]),
        notes=_text(row["notes"]),
        screenshot=row["screenshot"],
        paid_to_admin=row["paid_to_admin"],
        paid_to_admin_name=row["paid_to_admin_name"],
    )


def _payment_from_row(row) -> Payment:
    return Payment(
        id=row["id"],
        member_id=row["member_id"] or None,
        member=_text(row["member"]),
        invoice_id=row["invoice_id"] or None,
        amount=Money.parse(row["amount"]),
        method=_text(row["method"]),
        status=row["status"],
        date=utils.parse_date(row["date"]),
        screenshot=row["screenshot"],
        reference=_text(row["reference"]),
        paid_to_admin=row["paid_to_admin"],
        paid_to_admin_name=row["paid_to_admin_name"],
        approved_by=row["approved_by"],
        approved_at=utils.parse_datetime(row["approved_at"]),
        rejected_by=row["rejected_by"],
        rejected_at=utils.parse_datetime(row["rejected_at"]),
        rejection_reason=row["rejection_reason"],
    )


def _donation_from_row(row) -> Donation:
    return Donation(
        id=row["id"],
        donor_name=row["donor_name"],
        amount=Money.parse(row["amount"]),
        is_member=bool(row["is_member"]),
        member_id=row["member_id"] or None,
        method=_text(row["method"]),
        date=utils.parse_date(row["date"]),
        reference=_text(row["reference"]),
        screenshot=row["screenshot"],
        notes=_text(row["notes"]),
    )


def _comm_from_row(row) -> CommunicationLogEntry:
    return CommunicationLogEntry(
        id=row["id"],
        channel=row["channel"],
        type=row["type"],
        member_id=row["member_id"],
        member_email=_text(row["member_email"]),
        member_name=_text(row["member_name"]),
        message=_text(row["message"]),
        status=row["status"],
        date=utils.parse_datetime(row["date"]),
        delivery=row["delivery"],
    )


def _reminder_from_row(row) -> ReminderLogEntry:
    return ReminderLogEntry(
        id=row["id"],
        member_id=row["member_id"],
        member_email=_text(row["member_email"]),
        reminder_type=row["reminder_type"],
        amount=Money.parse(row["amount"]),
        invoice_count=int(row["invoice_count"] or 0),
        sent_at=utils.parse_datetime(row["sent_at"]),
        status=row["status"],
        channel=row["channel"],
    )


def load_snapshot() -> Snapshot:
    return Snapshot(
        members=tuple(list_members()),
        invoices=tuple(list_invoices()),
        payments=tuple(list_payments()),
        donations=tuple(list_donations()),
    )


# ---------- Members ----------

def list_members(search: str = "", status_filter: str = "All") -> list[Member]:
    sql = "SELECT * FROM members WHERE 1=1"
    params = []

    if search.strip():
        sql += " AND (name LIKE ? OR email LIKE ? OR phone LIKE ? OR id LIKE ?)"
        like = f"%{search.strip()}%"
        params.extend([like, like, like, like])

    if status_filter not in ("", "All"):
        sql += " AND status = ?"
        params.append(status_filter)

    sql += " ORDER BY name ASC"
    return [_member_from_row(r) for r in db.fetch_all(sql, tuple(params))]


def get_member(member_id: str) -> Member:
    row = db.fetch_one("SELECT * FROM members WHERE id = ?", ((member_id or "").strip(),))
    if not row:
        raise NotFoundError("Member", member_id)
    return _member_from_row(row)


def next_member_id() -> str:
    highest = 0
    for row in db.fetch_all("SELECT id FROM members"):
        match = re.fullmatch(rf"{MEMBER_ID_PREFIX}(\d+)", row["id"])
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{MEMBER_ID_PREFIX}{highest + 1:04d}"


def create_member(
    ctx: SessionContext,
    name: str,
    email: str,
    phone: str = "",
    status: str = "Pending",
    subscription_type: str = "Annual Member",
    next_due: date | None = None,
    created_at: date | None = None,
) -> Member:
    require_role(ctx, "edit_records")
    errors = utils.validate_member_inputs(name, email, phone, status, subscription_type)
    if not errors and db.fetch_one("SELECT id FROM members WHERE lower(email) = lower(?)", (email.strip(),)):
        errors.append("A member with this email already exists.")
    if errors:
        raise ValidationError(errors)

    member = Member(
        id=next_member_id(),
        name=name.strip(),
        email=email.strip(),
        phone=phone.strip(),
        status=status,
        balance=Money(),
        subscription_type=subscription_type,
        next_due=next_due,
        created_at=created_at or date.today(),
    )
    db.execute(
        """
        INSERT INTO members(id, name, email, phone, status, balance, subscription_type, next_due, last_payment, created_at, lifetime_paid)
        VALUES(?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            member.id, member.name, member.email, member.phone, member.status, format_balance(member.balance),
            member.subscription_type, _iso(member.next_due), None, _iso(member.created_at), 0,
        ),
    )
    logger.info("Member %s (%s) created by %s", member.id, member.name, ctx.admin_name)
    return member


def update_member(ctx: SessionContext, member_id: str, **changes) -> Member:
    require_role(ctx, "edit_records")
    current = get_member(member_id)
    updated = replace(current, **changes)
    errors = utils.validate_member_inputs(
        updated.name, updated.email, updated.phone, updated.status, updated.subscription_type
    )
    if errors:
        raise ValidationError(errors)
    save_member(updated)
    return updated


def save_member(member: Member, balance_text: str | None = None) -> None:
    """Write every column of a member row. balance_text overrides the formatted balance."""
    db.execute(
        """
        UPDATE members SET name=?, email=?, phone=?, status=?, balance=?, subscription_type=?,
            next_due=?, last_payment=?, created_at=?, lifetime_paid=?
        WHERE id=?
        """,
        (
            member.name, member.email, member.phone, member.status,
            balance_text if balance_text is not None else format_balance(member.balance),
            member.subscription_type, _iso(member.next_due), _iso(member.last_payment),
            _iso(member.created_at), int(member.lifetime_paid), member.id,
        ),
    )


def set_member_balance(member_id: str, balance_text: str) -> None:
    db.execute("UPDATE members SET balance = ? WHERE id = ?", (balance_text, member_id))


def delete_member(ctx: SessionContext, member_id: str) -> None:
    require_role(ctx, "delete_members")
    if db.execute_rowcount("DELETE FROM members WHERE id = ?", (member_id,)) == 0:
        raise NotFoundError("Member", member_id)
    logger.warning("Member %s deleted by %s", member_id, ctx.admin_name)


# ---------- Invoices ----------

def list_invoices(member_id: str | None = None) -> list[Invoice]:
    if member_id:
        rows = db.fetch_all("SELECT * FROM invoices WHERE member_id = ? ORDER BY due DESC, id DESC", (member_id,))
    else:
        rows = db.fetch_all("SELECT * FROM invoices ORDER BY due DESC, id DESC")
    return [_invoice_from_row(r) for r in rows]


def get_invoice(invoice_id: str) -> Invoice:
    row = db.fetch_one("SELECT * FROM invoices WHERE id = ?", ((invoice_id or "").strip(),))
    if not row:
        raise NotFoundError("Invoice", invoice_id)
    return _invoice_from_row(row)


def invoice_status(invoice: Invoice) -> str:
    """Effective status, counting settled payments that reference the invoice."""
    return effective_invoice_status(invoice, list_payments())


def create_invoice(
    ctx: SessionContext,
    member_id: str,
    period: str,
    amount,
    due: date | str,
    notes: str = "",
    year: int | None = None,
) -> Invoice:
    require_role(ctx, "edit_records")
    errors = utils.validate_invoice_inputs(member_id, period, amount, _text(due))
    if errors:
        raise ValidationError(errors)
    member = get_member(member_id)

    existing = [r["id"] for r in db.fetch_all("SELECT id FROM invoices")]
    invoice = Invoice(
        id=next_invoice_id(existing, year or date.today().year),
        member_id=member.id,
        member_name=member.name,
        member_email=member.email,
        period=period.strip(),
        amount=Money.parse(amount),
        status=INVOICE_UNPAID,
        due=utils.parse_date(due),
        notes=notes.strip(),
    )
    insert_invoice(invoice)
    logger.info("Invoice %s (%s) created for %s by %s", invoice.id, invoice.amount, member.id, ctx.admin_name)
    return invoice


def insert_invoice(invoice: Invoice) -> None:
    db.execute(
        """
        INSERT INTO invoices(id, member_id, member_name, member_email, period, amount, status, due,
            method, reference, notes, screenshot, paid_to_admin, paid_to_admin_name, created_at)
        VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            invoice.id, invoice.member_id, invoice.member_name, invoice.member_email, invoice.period,
            invoice.amount.format(), invoice.status, _iso(invoice.due), invoice.method, invoice.reference,
            invoice.notes, invoice.screenshot, invoice.paid_to_admin, invoice.paid_to_admin_name,
            datetime.now().isoformat(timespec="seconds"),
        ),
    )


def save_invoice(invoice: Invoice) -> None:
    if invoice.status not in INVOICE_STATUSES:
        raise ValidationError(f"Invoice status must be one of {', '.join(INVOICE_STATUSES)}.")
    db.execute(
        """
        UPDATE invoices SET member_id=?, member_name=?, member_email=?, period=?, amount=?, status=?, due=?,
            method=?, reference=?, notes=?, screenshot=?, paid_to_admin=?, paid_to_admin_name=?
        WHERE id=?
        """,
        (
            invoice.member_id, invoice.member_name, invoice.member_email, invoice.period,
            invoice.amount.format(), invoice.status, _iso(invoice.due), invoice.method, invoice.reference,
            invoice.notes, invoice.screenshot, invoice.paid_to_admin, invoice.paid_to_admin_name, invoice.id,
        ),
    )


def update_invoice(ctx: SessionContext, invoice_id: str, **changes) -> Invoice:
    require_role(ctx, "edit_records")
    current = get_invoice(invoice_id)
    if invoice_status(current) == INVOICE_PAID and set(changes) - {"notes"}:
        raise ImmutableRecordError(f"Invoice {invoice_id} is paid and can no longer be edited")
    if "amount" in changes:
        changes["amount"] = Money.parse(changes["amount"])
    if "due" in changes:
        changes["due"] = utils.parse_date(changes["due"])
    updated = replace(current, **changes)
    save_invoice(updated)
    return updated


def delete_invoice(ctx: SessionContext, invoice_id: str) -> None:
    require_role(ctx, "edit_records")
    invoice = get_invoice(invoice_id)
    if invoice_status(invoice) == INVOICE_PAID:
        raise ImmutableRecordError(f"Invoice {invoice_id} is paid and cannot be deleted")
    db.execute("DELETE FROM invoices WHERE id = ?", (invoice_id,))
    logger.info("Invoice %s deleted by %s", invoice_id, ctx.admin_name)


def default_invoice_amount(member: Member) -> Money:
    membership_fee, janaza_fee = subscription_fees(member.subscription_type, member.lifetime_paid)
    return Money.from_amount(membership_fee + janaza_fee)


# ---------- Payments ----------

def list_payments(member_id: str | None = None, status: str | None = None) -> list[Payment]:
    sql = "SELECT * FROM payments WHERE 1=1"
    params = []
    if member_id:
        sql += " AND member_id = ?"
        params.append(member_id)
    if status:
        sql += " AND status = ?"
        params.append(status)
    sql += " ORDER BY date DESC, id DESC"
    return [_payment_from_row(r) for r in db.fetch_all(sql, tuple(params))]


def get_payment(payment_id: str) -> Payment:
    row = db.fetch_one("SELECT * FROM payments WHERE id = ?", ((payment_id or "").strip(),))
    if not row:
        raise NotFoundError("Payment", payment_id)
    return _payment_from_row(row)


def create_payment(
    ctx: SessionContext,
    member_id: str,
    amount,
    method: str,
    invoice_id: str | None = None,
    paid_on: date | str | None = None,
    reference: str = "",
    screenshot: str | None = None,
    paid_to_admin: str | None = None,
    paid_to_admin_name: str | None = None,
    status: str = PAYMENT_PENDING,
) -> Payment:
    require_role(ctx, "edit_records")
    errors = utils.validate_amount(amount)
    if not (method or "").strip():
        errors.append("Payment method is required.")
    if status not in PAYMENT_STATUSES:
        errors.append(f"Payment status must be one of {', '.join(PAYMENT_STATUSES)}.")
    if errors:
        raise ValidationError(errors)
    member = get_member(member_id)
    if invoice_id:
        get_invoice(invoice_id)

    paid_date = utils.parse_date(paid_on) or date.today()
    existing = [r["id"] for r in db.fetch_all("SELECT id FROM payments")]
    payment = Payment(
        id=next_sequence_id("PAY", existing, paid_date.year),
        member_id=member.id,
        member=member.name,
        invoice_id=invoice_id or None,
        amount=Money.parse(amount),
        method=method.strip(),
        status=status,
        date=paid_date,
        screenshot=screenshot,
        reference=reference.strip(),
        paid_to_admin=paid_to_admin,
        paid_to_admin_name=paid_to_admin_name,
    )
    db.execute(
        """
        INSERT INTO payments(id, member_id, member, invoice_id, amount, method, status, date, screenshot,
            reference, paid_to_admin, paid_to_admin_name)
        VALUES(?,?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            payment.id, payment.member_id, payment.member, payment.invoice_id, payment.amount.format(),
            payment.method, payment.status, _iso(payment.date), payment.screenshot, payment.reference,
            payment.paid_to_admin, payment.paid_to_admin_name,
        ),
    )
    logger.info("Payment %s (%s, %s) recorded for %s", payment.id, payment.amount, payment.status, member.id)
    return payment


def save_payment(payment: Payment) -> None:
    db.execute(
        """
        UPDATE payments SET status=?, method=?, reference=?, screenshot=?, approved_by=?, approved_at=?,
            rejected_by=?, rejected_at=?, rejection_reason=?
        WHERE id=?
        """,
        (
            payment.status, payment.method, payment.reference, payment.screenshot, payment.approved_by,
            _iso(payment.approved_at), payment.rejected_by, _iso(payment.rejected_at),
            payment.rejection_reason, payment.id,
        ),
    )


# ---------- Donations ----------

def list_donations() -> list[Donation]:
    return [_donation_from_row(r) for r in db.fetch_all("SELECT * FROM donations ORDER BY date DESC, id DESC")]


def create_donation(
    ctx: SessionContext,
    donor_name: str,
    amount,
    method: str,
    donated_on: date | str | None = None,
    member_id: str | None = None,
    reference: str = "",
    screenshot: str | None = None,
    notes: str = "",
) -> Donation:
    require_role(ctx, "edit_records")
    errors = utils.validate_amount(amount)
    if not (donor_name or "").strip():
        errors.append("Donor name is required.")
    if errors:
        raise ValidationError(errors)
    if member_id:
        get_member(member_id)

    donation = Donation(
        id=None,
        donor_name=donor_name.strip(),
        amount=Money.parse(amount),
        is_member=bool(member_id),
        member_id=member_id or None,
        method=(method or "").strip(),
        date=utils.parse_date(donated_on) or date.today(),
        reference=reference.strip(),
        screenshot=screenshot,
        notes=notes.strip(),
    )
    new_id = db.execute(
        """
        INSERT INTO donations(donor_name, is_member, member_id, amount, method, date, reference, screenshot, notes)
        VALUES(?,?,?,?,?,?,?,?,?)
        """,
        (
            donation.donor_name, int(donation.is_member), donation.member_id, donation.amount.format(),
            donation.method, _iso(donation.date), donation.reference, donation.screenshot, donation.notes,
        ),
    )
    return replace(donation, id=new_id)


def delete_donation(ctx: SessionContext, donation_id: int) -> None:
    require_role(ctx, "edit_records")
    if db.execute_rowcount("DELETE FROM donations WHERE id = ?", (donation_id,)) == 0:
        raise NotFoundError("Donation", donation_id)


# ---------- Communication log / reminder logs ----------

def append_communication_log(
    channel: str,
    type_: str,
    member: Member,
    message: str,
    status: str,
    delivery: str,
    when: datetime | None = None,
) -> CommunicationLogEntry:
    entry = CommunicationLogEntry(
        id=None,
        channel=channel,
        type=type_,
        member_id=member.id,
        member_email=member.email,
        member_name=member.name,
        message=message,
        status=status,
        date=when or datetime.now(),
        delivery=delivery,
    )
    new_id = db.execute(
        """
        INSERT INTO communication_log(channel, type, member_id, member_email, member_name, message, status, date, delivery)
        VALUES(?,?,?,?,?,?,?,?,?)
        """,
        (
            entry.channel, entry.type, entry.member_id, entry.member_email, entry.member_name,
            entry.message, entry.status, entry.date.isoformat(timespec="seconds"), entry.delivery,
        ),
    )
    return replace(entry, id=new_id)


def list_communication_log(limit: int = 200, channel: str | None = None) -> list[CommunicationLogEntry]:
    if channel:
        rows = db.fetch_all(
            "SELECT * FROM communication_log WHERE channel = ? ORDER BY date DESC, id DESC LIMIT ?", (channel, limit)
        )
    else:
        rows = db.fetch_all("SELECT * FROM communication_log ORDER BY date DESC, id DESC LIMIT ?", (limit,))
    return [_comm_from_row(r) for r in rows]


def confirm_delivery(log_id: int) -> None:
    """Second phase for receipt-less channels: the admin confirms the message went out."""
    if db.execute_rowcount("UPDATE communication_log SET delivery = ? WHERE id = ?", (DELIVERY_CONFIRMED, log_id)) == 0:
        raise NotFoundError("Communication log entry", log_id)


def add_reminder_log(entry: ReminderLogEntry) -> ReminderLogEntry:
    new_id = db.execute(
        """
        INSERT INTO reminder_logs(member_id, member_email, reminder_type, amount, invoice_count, sent_at, status, channel)
        VALUES(?,?,?,?,?,?,?,?)
        """,
        (
            entry.member_id, entry.member_email, entry.reminder_type, entry.amount.format(), entry.invoice_count,
            entry.sent_at.isoformat(timespec="seconds"), entry.status, entry.channel,
        ),
    )
    return replace(entry, id=new_id)


def list_reminder_logs(limit: int = 100) -> list[ReminderLogEntry]:
    rows = db.fetch_all("SELECT * FROM reminder_logs ORDER BY sent_at DESC, id DESC LIMIT ?", (limit,))
    return [_reminder_from_row(r) for r in rows]


def get_reminder_log(log_id: int) -> ReminderLogEntry:
    row = db.fetch_one("SELECT * FROM reminder_logs WHERE id = ?", (log_id,))
    if not row:
        raise NotFoundError("Reminder log", log_id)
    return _reminder_from_row(row)


def update_reminder_log(log_id: int, status: str, sent_at: datetime) -> None:
    db.execute(
        "UPDATE reminder_logs SET status = ?, sent_at = ? WHERE id = ?",
        (status, sent_at.isoformat(timespec="seconds"), log_id),
    )


def delete_reminder_log(ctx: SessionContext, log_id: int) -> None:
    require_role(ctx, "send_reminders")
    if db.execute_rowcount("DELETE FROM reminder_logs WHERE id = ?", (log_id,)) == 0:
        raise NotFoundError("Reminder log", log_id)


# ---------- Payment methods ----------

def list_payment_methods(visible_only: bool = False) -> list[PaymentMethod]:
    sql = "SELECT * FROM payment_methods"
    if visible_only:
        sql += " WHERE visible = 1"
    sql += " ORDER BY id ASC"
    return [
        PaymentMethod(id=r["id"], name=r["name"], details=_text(r["details"]), visible=bool(r["visible"]))
        for r in db.fetch_all(sql)
    ]


def save_payment_method(ctx: SessionContext, name: str, details: str = "", visible: bool = True) -> None:
    require_role(ctx, "manage_settings")
    if not name.strip():
        raise ValidationError("Payment method name is required.")
    db.execute(
        """
        INSERT INTO payment_methods(name, details, visible) VALUES(?,?,?)
        ON CONFLICT(name) DO UPDATE SET details=excluded.details, visible=excluded.visible
        """,
        (name.strip(), details.strip(), int(visible)),
    )


def delete_payment_method(ctx: SessionContext, method_id: int) -> None:
    require_role(ctx, "manage_settings")
    if db.execute_rowcount("DELETE FROM payment_methods WHERE id = ?", (method_id,)) == 0:
        raise NotFoundError("Payment method", method_id)


# ---------- Settings (organization, email) ----------

def _get_json_setting(key: str, default: dict) -> dict:
    raw = db.get_setting(key)
    if not raw:
        return dict(default)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable setting %s", key)
        return dict(default)
    return {**default, **value}


def get_org_info() -> dict:
    return _get_json_setting("organization_info", {"name": config.ORG_NAME, "email": "", "phone": "", "address": ""})


def save_org_info(ctx: SessionContext, **info) -> None:
    require_role(ctx, "manage_settings")
    db.set_setting("organization_info", json.dumps({**get_org_info(), **info}))


def get_email_settings() -> dict:
    return _get_json_setting(
        "email_settings",
        {
            "host": config.SMTP_HOST,
            "port": config.SMTP_PORT,
            "user": config.SMTP_USER,
            "password": config.SMTP_PASSWORD,
            "from_email": config.SMTP_FROM_EMAIL,
            "use_tls": config.SMTP_USE_TLS,
        },
    )


def save_email_settings(ctx: SessionContext, **settings) -> None:
    require_role(ctx, "manage_settings")
    if settings.get("user") and not utils.is_valid_email(settings["user"]):
        raise ValidationError("Email user must be a valid address.", field="user")
    db.set_setting("email_settings", json.dumps({**get_email_settings(), **settings}))


def get_email_template() -> dict:
    return _get_json_setting("email_template", DEFAULT_EMAIL_TEMPLATE)


def save_email_template(ctx: SessionContext, subject: str, intro: str) -> None:
    require_role(ctx, "manage_settings")
    if not subject.strip():
        raise ValidationError("Subject is required.", field="subject")
    db.set_setting("email_template", json.dumps({"subject": subject.strip(), "intro": intro.strip()}))


def save_screenshot(filename: str, data: bytes, upload_dir: Path | None = None) -> str:
    """Store an uploaded payment screenshot and return its path."""
    suffix = Path(filename).suffix.lower()
    if suffix not in (".png", ".jpg", ".jpeg", ".gif", ".webp"):
        raise ValidationError("Screenshot must be an image file.", field="screenshot")
    target_dir = Path(upload_dir or config.UPLOAD_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"screenshot-{datetime.now().strftime('%Y%m%d%H%M%S%f')}{suffix}"
    target.write_bytes(data)
    return str(target)


# ---------- Sample data ----------

def insert_sample_data(ctx: SessionContext) -> None:
    """
    Insert 3 members with invoices and a few payments (adds new rows each time).
    """
    today = date.today()
    year = today.year
    samples = [
        ("Ahmed Hassan", "ahmed@example.org", "+852 9123 4567", "Annual Member"),
        ("Fatima Khan", "fatima@example.org", "+852 9234 5678", "Lifetime Janaza Fund"),
        ("Omar Sheikh", "omar@example.org", "+852 9345 6789", "Lifetime Member + Janaza Fund"),
    ]
    suffix = next_member_id()[-4:]
    created = []
    for name, email, phone, sub in samples:
        local, domain = email.split("@")
        m = create_member(ctx, name, f"{local}+{suffix}@{domain}", phone, MEMBER_ACTIVE, sub, created_at=date(year, 1, 1))
        created.append(m)

    # First member paid, second unpaid, third overdue
    inv1 = create_invoice(ctx, created[0].id, f"{year} Annual Member Subscription", default_invoice_amount(created[0]), date(year, 12, 31))
    create_payment(ctx, created[0].id, inv1.amount, "FPS", invoice_id=inv1.id, paid_on=today, status="Completed")
    create_invoice(ctx, created[1].id, f"{year} Janaza Fund", default_invoice_amount(created[1]), date(year, 12, 31))
    inv3 = create_invoice(ctx, created[2].id, f"{year} Lifetime Membership", default_invoice_amount(created[2]), today - timedelta(days=10))
    save_invoice(replace(inv3, status="Overdue"))
    create_donation(ctx, "Anonymous", 100, "Cash", today)
