"""
reminders.py
Reminder dispatch: picks members with outstanding invoices, renders the
Email / WhatsApp message, hands it to a transport and records the outcome in
the communication log (and, for email, the reminder log).

Transports only deliver. Eligibility, message content and logging live here.
"""

from __future__ import annotations

import html
import logging
import smtplib
import time
import webbrowser
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import quote

import config
import store
from auth import require_role
from errors import NoOutstandingInvoices, TransportError, ValidationError
from models import (
    CHANNEL_EMAIL,
    CHANNEL_WHATSAPP,
    DELIVERY_CONFIRMED,
    DELIVERY_REQUESTED,
    INVOICE_OVERDUE,
    LIFETIME_MEMBER_JANAZA_FUND,
    LOG_DELIVERED,
    LOG_FAILED,
    REMINDER_FAILED,
    REMINDER_SENT,
    CommunicationLogEntry,
    Invoice,
    Member,
    Money,
    ReminderLogEntry,
    SessionContext,
    Snapshot,
)
from reconciliation import outstanding_invoices, reminder_type, total_amount
import utils

logger = logging.getLogger(__name__)

REMINDER_LOG_TYPE = "Payment Reminder"


# ---------- Transports ----------

class SmtpEmailTransport:
    """Sends HTML mail over SMTP using the saved email settings."""

    def __init__(self, settings: dict | None = None):
        settings = settings if settings is not None else store.get_email_settings()
        self.host = settings.get("host") or config.SMTP_HOST
        self.port = int(settings.get("port") or config.SMTP_PORT)
        self.user = settings.get("user") or ""
        self.password = settings.get("password") or ""
        self.from_email = settings.get("from_email") or self.user
        self.use_tls = bool(settings.get("use_tls", True))

    def is_configured(self) -> bool:
        return bool(self.user and self.password)

    def send(self, to_email: str, subject: str, html_body: str, text_body: str | None = None) -> None:
        if not self.is_configured():
            raise TransportError("Email not configured. Please configure email settings first.", channel=CHANNEL_EMAIL)
        if not utils.is_valid_email(to_email):
            raise TransportError(f"Invalid recipient address '{to_email}'", channel=CHANNEL_EMAIL)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{config.ORG_NAME} <{self.from_email}>"
        msg["To"] = to_email
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.user, self.password)
                server.sendmail(self.from_email, [to_email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"Failed to send email to {to_email}: {e}", channel=CHANNEL_EMAIL) from e
        logger.info("Email sent to %s: %s", to_email, subject)


def whatsapp_url(phone: str, message: str) -> str:
    return f"https://wa.me/{utils.normalize_phone(phone)}?text={quote(message)}"


class WhatsAppLauncher:
    """
    Opens a click-to-chat link per member. Nothing is sent programmatically:
    an admin has to press send in the opened chat.
    """

    def __init__(self, opener: Callable[[str], object] = webbrowser.open):
        self.opener = opener

    def send(self, phone: str, message: str) -> str:
        if not utils.normalize_phone(phone):
            raise TransportError("Member has no phone number", channel=CHANNEL_WHATSAPP)
        url = whatsapp_url(phone, message)
        if self.opener(url) is False:
            raise TransportError("Could not open WhatsApp chat window", channel=CHANNEL_WHATSAPP)
        return url


# ---------- Target selection / message building ----------

def select_bulk_targets(members: Sequence[Member], channel: str) -> list[Member]:
    """Members whose cached balance is positive; WhatsApp also needs a phone number."""
    targets = [m for m in members if m.balance.cents > 0]
    if channel == CHANNEL_WHATSAPP:
        targets = [m for m in targets if utils.normalize_phone(m.phone)]
    return targets


def _fill(template: str, values: dict) -> str:
    for key, value in values.items():
        template = template.replace("{{" + key + "}}", str(value))
    return template


def _payment_method_lines() -> list[tuple[str, str]]:
    methods = [(m.name, m.details) for m in store.list_payment_methods(visible_only=True) if m.details]
    if methods:
        return methods
    details = config.PAYMENT_DETAILS
    return [
        ("FPS", details["fps"]),
        ("Bank Transfer", f"{details['bank_name']} {details['bank_account']} ({details['beneficiary']})"),
    ]


def _invoice_year(invoices: Sequence[Invoice]) -> int:
    for inv in invoices:
        year = utils.year_from_period(inv.period)
        if year:
            return year
    return datetime.now().year


def build_email(member: Member, invoices: Sequence[Invoice], total_due: Money, template: dict | None = None) -> tuple[str, str]:
    """(subject, html body) for an email reminder."""
    template = template or store.get_email_template()
    org_name = store.get_org_info().get("name") or config.ORG_NAME
    values = {
        "member_name": member.name or "Member",
        "member_id": member.id,
        "org_name": org_name,
        "total_due": total_due.format(),
        "invoice_year": _invoice_year(invoices),
        "membership_category": member.subscription_type,
    }
    subject = _fill(template.get("subject", ""), values)
    if member.subscription_type == LIFETIME_MEMBER_JANAZA_FUND and member.lifetime_paid:
        subject = f"Janazah Fund Reminder - {org_name}"

    items = "".join(
        f'<li style="margin-bottom: 10px;"><strong>{html.escape(inv.period)}</strong>: {inv.amount.format()} '
        f'<span style="color: #666;">(Due: {inv.due.isoformat() if inv.due else "N/A"})</span> - '
        f'<strong style="color: {"#d32f2f" if inv.status == INVOICE_OVERDUE else "#f57c00"}">{inv.status}</strong></li>'
        for inv in invoices
    )
    methods = "".join(
        f'<p style="margin: 8px 0;"><strong>{html.escape(name)}:</strong> {html.escape(details)}</p>'
        for name, details in _payment_method_lines()
    )
    body = f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; line-height: 1.8;">
  <h2 style="color: #1a1a1a;">{html.escape(org_name)} - Payment Reminder</h2>
  <p>Dear {html.escape(values["member_name"])},</p>
  <p>Assalamu Alaikum wa Rahmatullahi wa Barakatuh.</p>
  <p>{html.escape(_fill(template.get("intro", ""), values))}</p>
  <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <p style="margin: 8px 0;">Membership ID: {html.escape(member.id)}</p>
    <p style="margin: 8px 0;">Membership Category: {html.escape(member.subscription_type)}</p>
    <ul>{items}</ul>
    <p style="margin: 8px 0;"><strong>Total due: {total_due.format()}</strong></p>
  </div>
  <div style="background: #e8f5e9; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3 style="margin-top: 0;">Payment Details:</h3>
    {methods}
  </div>
  <p>After making the payment, kindly send the payment reference or screenshot via WhatsApp for our records.</p>
  <p style="text-align: center; font-style: italic; color: #666;"><strong>{html.escape(org_name)}</strong></p>
</div>"""
    return subject, body


def build_whatsapp_message(member: Member, invoices: Sequence[Invoice], total_due: Money) -> str:
    org_name = store.get_org_info().get("name") or config.ORG_NAME
    lines = [
        f"*{org_name} - Payment Reminder*",
        "",
        f"Dear {member.name or 'Member'},",
        "",
        "Assalamu Alaikum. The following invoices are outstanding:",
    ]
    for inv in invoices:
        due = inv.due.isoformat() if inv.due else "N/A"
        lines.append(f"• {inv.period}: {inv.amount.format()} (Due: {due}) - {inv.status}")
    lines += ["", f"*Total due: {total_due.format()}*", "", "*Payment methods*"]
    lines += [f"• {name}: {details}" for name, details in _payment_method_lines()]
    lines += ["", "After paying, please reply with the payment reference or screenshot.", "JazakAllah Khair."]
    return "\n".join(lines)


def _summary(invoices: Sequence[Invoice], total_due: Money) -> str:
    return f"{reminder_type(invoices).title()} reminder: {len(invoices)} invoice(s), total {total_due.format()}"


# ---------- Dispatch ----------

@dataclass
class DispatchOutcome:
    member_id: str
    channel: str
    status: str
    log_entry: CommunicationLogEntry
    url: str | None = None
    error: str | None = None


@dataclass
class BulkDispatchResult:
    channel: str
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    outcomes: list[DispatchOutcome] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Reminders: {self.sent} sent, {self.failed} failed, {self.skipped} skipped"


class ReminderDispatcher:
    """
    Runs single and bulk reminder requests. Transports, the sleep function and
    the clock are injectable so runs can be driven without a network.
    """

    def __init__(
        self,
        email_transport: SmtpEmailTransport | None = None,
        whatsapp: WhatsAppLauncher | None = None,
        sleep: Callable[[float], None] = time.sleep,
        stagger_seconds: float = config.WHATSAPP_STAGGER_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._email_transport = email_transport
        self.whatsapp = whatsapp or WhatsAppLauncher()
        self.sleep = sleep
        self.stagger_seconds = stagger_seconds
        self.clock = clock

    @property
    def email_transport(self):
        if self._email_transport is None:
            self._email_transport = SmtpEmailTransport()
        return self._email_transport

    def _check_channel(self, channel: str) -> None:
        if channel not in (CHANNEL_EMAIL, CHANNEL_WHATSAPP):
            raise ValidationError(f"Unknown channel '{channel}'", field="channel")
        if channel == CHANNEL_EMAIL and not self.email_transport.is_configured():
            raise TransportError("Email not configured. Please configure email settings first.", channel=CHANNEL_EMAIL)

    def _dispatch(self, member: Member, invoices: list[Invoice], channel: str) -> DispatchOutcome:
        total_due = total_amount(invoices)
        url = None
        error = None
        try:
            if channel == CHANNEL_EMAIL:
                subject, body = build_email(member, invoices, total_due)
                self.email_transport.send(member.email, subject, body)
            else:
                url = self.whatsapp.send(member.phone, build_whatsapp_message(member, invoices, total_due))
            status = LOG_DELIVERED
        except TransportError as e:
            logger.error("%s reminder to %s failed: %s", channel, member.id, e.message)
            status, error = LOG_FAILED, e.message

        now = self.clock()
        # WhatsApp has no delivery receipt: the entry stays "requested" until confirmed
        delivery = DELIVERY_CONFIRMED if channel == CHANNEL_EMAIL and status == LOG_DELIVERED else DELIVERY_REQUESTED
        entry = store.append_communication_log(
            channel, REMINDER_LOG_TYPE, member, _summary(invoices, total_due), status, delivery, when=now
        )
        if channel == CHANNEL_EMAIL:
            store.add_reminder_log(
                ReminderLogEntry(
                    id=None,
                    member_id=member.id,
                    member_email=member.email,
                    reminder_type=reminder_type(invoices),
                    amount=total_due,
                    invoice_count=len(invoices),
                    sent_at=now,
                    status=REMINDER_SENT if status == LOG_DELIVERED else REMINDER_FAILED,
                    channel=channel,
                )
            )
        return DispatchOutcome(member.id, channel, status, entry, url=url, error=error)

    def send_reminder(self, ctx: SessionContext, member_id: str, channel: str = CHANNEL_EMAIL, snapshot: Snapshot | None = None) -> DispatchOutcome:
        """
        Remind one member. Raises NoOutstandingInvoices when nothing is owed and
        TransportError (after logging the failure) when delivery fails.
        """
        require_role(ctx, "send_reminders")
        self._check_channel(channel)
        snapshot = snapshot or store.load_snapshot()
        member = store.get_member(member_id)
        invoices = outstanding_invoices(member, snapshot.invoices, snapshot.payments)
        if not invoices:
            raise NoOutstandingInvoices(member.id)

        outcome = self._dispatch(member, invoices, channel)
        if outcome.status == LOG_FAILED:
            raise TransportError(outcome.error or "Reminder failed", channel=channel)
        logger.info("%s reminder sent to %s by %s", channel, member.id, ctx.admin_name)
        return outcome

    def send_bulk_reminders(self, ctx: SessionContext, channel: str = CHANNEL_EMAIL, snapshot: Snapshot | None = None) -> BulkDispatchResult:
        """
        Remind every member with a positive balance. One member's failure never
        stops the run; WhatsApp chats are opened stagger_seconds apart.
        """
        require_role(ctx, "send_reminders")
        self._check_channel(channel)
        snapshot = snapshot or store.load_snapshot()
        targets = select_bulk_targets(snapshot.members, channel)
        if not targets:
            raise NoOutstandingInvoices()

        result = BulkDispatchResult(channel=channel)
        dispatched = 0
        for member in targets:
            invoices = outstanding_invoices(member, snapshot.invoices, snapshot.payments)
            if not invoices:
                # cached balance is stale; nothing to remind about
                result.skipped += 1
                continue
            if channel == CHANNEL_WHATSAPP and dispatched:
                self.sleep(self.stagger_seconds)
            outcome = self._dispatch(member, invoices, channel)
            dispatched += 1
            result.outcomes.append(outcome)
            if outcome.status == LOG_DELIVERED:
                result.sent += 1
            else:
                result.failed += 1
        if not dispatched:
            raise NoOutstandingInvoices()
        logger.info("Bulk %s run by %s: %s", channel, ctx.admin_name, result.message)
        return result

    def retry_reminder(self, ctx: SessionContext, reminder_log_id: int) -> ReminderLogEntry:
        """Re-send the email behind a reminder log entry and update that entry."""
        require_role(ctx, "send_reminders")
        self._check_channel(CHANNEL_EMAIL)
        log = store.get_reminder_log(reminder_log_id)
        member = store.get_member(log.member_id)
        snapshot = store.load_snapshot()
        invoices = outstanding_invoices(member, snapshot.invoices, snapshot.payments)
        if not invoices:
            raise NoOutstandingInvoices(member.id)

        total_due = total_amount(invoices)
        subject, body = build_email(member, invoices, total_due)
        now = self.clock()
        try:
            self.email_transport.send(member.email, subject, body)
        except TransportError:
            store.update_reminder_log(log.id, REMINDER_FAILED, log.sent_at)
            store.append_communication_log(
                CHANNEL_EMAIL, REMINDER_LOG_TYPE, member, _summary(invoices, total_due), LOG_FAILED, DELIVERY_REQUESTED, when=now
            )
            raise
        store.update_reminder_log(log.id, REMINDER_SENT, now)
        store.append_communication_log(
            CHANNEL_EMAIL, REMINDER_LOG_TYPE, member, _summary(invoices, total_due), LOG_DELIVERED, DELIVERY_CONFIRMED, when=now
        )
        return store.get_reminder_log(log.id)

    def send_test_email(self, ctx: SessionContext, to_email: str) -> None:
        require_role(ctx, "manage_settings")
        self._check_channel(CHANNEL_EMAIL)
        org_name = store.get_org_info().get("name") or config.ORG_NAME
        self.email_transport.send(
            to_email,
            f"Test email - {org_name}",
            f"<p>Email settings for {html.escape(org_name)} are working.</p>",
            text_body=f"Email settings for {org_name} are working.",
        )
