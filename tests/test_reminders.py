from datetime import date, datetime

import pytest

import billing
import store
from errors import NoOutstandingInvoices, PermissionDeniedError, TransportError
from models import SessionContext
from reminders import ReminderDispatcher, SmtpEmailTransport, WhatsAppLauncher, build_email, whatsapp_url


class FakeEmailTransport:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []

    def is_configured(self):
        return True

    def send(self, to_email, subject, html_body, text_body=None):
        if to_email in self.fail_for:
            raise TransportError(f"Mailbox unavailable: {to_email}", channel="Email")
        self.sent.append((to_email, subject, html_body))


@pytest.fixture
def opened():
    return []


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def email():
    return FakeEmailTransport()


@pytest.fixture
def dispatcher(email, opened, sleeps):
    return ReminderDispatcher(
        email_transport=email,
        whatsapp=WhatsAppLauncher(opener=opened.append),
        sleep=sleeps.append,
        stagger_seconds=1.0,
        clock=lambda: datetime(2025, 6, 1, 10, 0),
    )


def owing_member(ctx, name, email_addr, phone="91234567", amount="$250.00"):
    m = store.create_member(ctx, name, email_addr, phone, "Active", "Annual Member")
    store.create_invoice(ctx, m.id, "2025 Annual Member Subscription", amount, date(2025, 12, 31), year=2025)
    billing.sync_member_balance(m.id)
    return m


def test_bulk_whatsapp_logs_each_member_with_stagger(owner, dispatcher, opened, sleeps):
    owing_member(owner, "Ahmed Hassan", "ahmed@example.org", "9123 4567")
    owing_member(owner, "Bilal Ali", "bilal@example.org", "+852 9876 5432")

    result = dispatcher.send_bulk_reminders(owner, "WhatsApp")

    assert result.sent == 2
    assert result.failed == 0
    log = store.list_communication_log(channel="WhatsApp")
    assert len(log) == 2
    assert all(e.status == "Delivered" and e.delivery == "requested" for e in log)
    assert sleeps == [1.0]
    assert len(opened) == 2
    assert all(url.startswith("https://wa.me/852") for url in opened)


def test_bulk_with_no_eligible_members_writes_nothing(owner, dispatcher, opened):
    store.create_member(owner, "Paid Up", "paid@example.org", "91234567", "Active")

    with pytest.raises(NoOutstandingInvoices):
        dispatcher.send_bulk_reminders(owner, "WhatsApp")

    assert store.list_communication_log() == []
    assert opened == []


def test_bulk_whatsapp_skips_members_without_phone(owner, dispatcher):
    owing_member(owner, "No Phone", "nophone@example.org", phone="")
    with pytest.raises(NoOutstandingInvoices):
        dispatcher.send_bulk_reminders(owner, "WhatsApp")


def test_bulk_email_failure_does_not_stop_the_run(owner, email, sleeps):
    email.fail_for = {"bilal@example.org"}
    dispatcher = ReminderDispatcher(email_transport=email, sleep=sleeps.append)
    owing_member(owner, "Ahmed Hassan", "ahmed@example.org")
    owing_member(owner, "Bilal Ali", "bilal@example.org")
    owing_member(owner, "Zaid Omar", "zaid@example.org")

    result = dispatcher.send_bulk_reminders(owner, "Email")

    assert (result.sent, result.failed) == (2, 1)
    assert sorted(to for to, _, _ in email.sent) == ["ahmed@example.org", "zaid@example.org"]
    statuses = sorted(e.status for e in store.list_communication_log(channel="Email"))
    assert statuses == ["Delivered", "Delivered", "Failed"]
    assert sorted(r.status for r in store.list_reminder_logs()) == ["failed", "sent", "sent"]
    assert sleeps == []


def test_stale_balance_is_skipped(owner, dispatcher):
    m = store.create_member(owner, "Stale", "stale@example.org", "91234567", "Active")
    store.set_member_balance(m.id, "$100.00 Outstanding")
    owing = owing_member(owner, "Ahmed Hassan", "ahmed@example.org")

    result = dispatcher.send_bulk_reminders(owner, "Email")

    assert result.skipped == 1
    assert result.sent == 1
    assert [e.member_id for e in store.list_communication_log()] == [owing.id]


def test_bulk_with_only_stale_balances_raises(owner, dispatcher):
    m = store.create_member(owner, "Stale", "stale@example.org", "91234567", "Active")
    store.set_member_balance(m.id, "$100.00 Outstanding")

    with pytest.raises(NoOutstandingInvoices):
        dispatcher.send_bulk_reminders(owner, "Email")
    assert store.list_communication_log() == []


def test_single_reminder_without_invoices_raises(owner, dispatcher):
    m = store.create_member(owner, "Paid Up", "paid@example.org", "91234567", "Active")
    with pytest.raises(NoOutstandingInvoices):
        dispatcher.send_reminder(owner, m.id, "Email")
    assert store.list_communication_log() == []


def test_single_email_reminder(owner, dispatcher, email):
    m = owing_member(owner, "Ahmed Hassan", "ahmed@example.org")

    outcome = dispatcher.send_reminder(owner, m.id, "Email")

    assert outcome.status == "Delivered"
    assert outcome.log_entry.delivery == "confirmed"
    to, subject, body = email.sent[0]
    assert to == "ahmed@example.org"
    assert subject == "Membership Renewal Reminder - Indian Muslim Association"
    assert "$250.00" in body
    logs = store.list_reminder_logs()
    assert len(logs) == 1
    assert logs[0].reminder_type == "upcoming"
    assert logs[0].invoice_count == 1


def test_single_failure_is_logged_then_raised(owner, dispatcher, email):
    m = owing_member(owner, "Ahmed Hassan", "ahmed@example.org")
    email.fail_for = {"ahmed@example.org"}

    with pytest.raises(TransportError):
        dispatcher.send_reminder(owner, m.id, "Email")

    log = store.list_communication_log()
    assert [e.status for e in log] == ["Failed"]


def test_retry_failed_reminder(owner, dispatcher, email):
    m = owing_member(owner, "Ahmed Hassan", "ahmed@example.org")
    email.fail_for = {"ahmed@example.org"}
    with pytest.raises(TransportError):
        dispatcher.send_reminder(owner, m.id, "Email")
    failed = store.list_reminder_logs()[0]
    assert failed.status == "failed"

    email.fail_for = set()
    retried = dispatcher.retry_reminder(owner, failed.id)

    assert retried.status == "sent"
    assert retried.sent_at == datetime(2025, 6, 1, 10, 0)


def test_unconfigured_email_fails_before_logging(owner, sleeps):
    owing_member(owner, "Ahmed Hassan", "ahmed@example.org")
    dispatcher = ReminderDispatcher(email_transport=SmtpEmailTransport({"user": "", "password": ""}), sleep=sleeps.append)

    with pytest.raises(TransportError):
        dispatcher.send_bulk_reminders(owner, "Email")
    assert store.list_communication_log() == []


def test_viewer_cannot_send(owner, dispatcher):
    m = owing_member(owner, "Ahmed Hassan", "ahmed@example.org")
    viewer = SessionContext(admin_id=5, admin_name="Read Only", role="Viewer")
    with pytest.raises(PermissionDeniedError):
        dispatcher.send_reminder(viewer, m.id, "WhatsApp")


def test_confirm_whatsapp_delivery(owner, dispatcher):
    m = owing_member(owner, "Ahmed Hassan", "ahmed@example.org")
    outcome = dispatcher.send_reminder(owner, m.id, "WhatsApp")
    assert outcome.log_entry.delivery == "requested"

    store.confirm_delivery(outcome.log_entry.id)
    assert store.list_communication_log()[0].delivery == "confirmed"


def test_whatsapp_url_encodes_message():
    assert whatsapp_url("9123 4567", "Hi *there*\nline") == "https://wa.me/85291234567?text=Hi%20%2Athere%2A%0Aline"


def test_email_body_escapes_member_name(owner):
    m = owing_member(owner, "Ahmed <b>Hassan</b>", "ahmed@example.org")
    invoices = store.list_invoices(m.id)
    subject, body = build_email(store.get_member(m.id), invoices, invoices[0].amount)
    assert "Ahmed &lt;b&gt;Hassan&lt;/b&gt;" in body
    assert "FPS" in body


def test_delete_reminder_log(owner, dispatcher):
    m = owing_member(owner, "Ahmed Hassan", "ahmed@example.org")
    dispatcher.send_reminder(owner, m.id, "Email")
    log = store.list_reminder_logs()[0]

    store.delete_reminder_log(owner, log.id)
    assert store.list_reminder_logs() == []
