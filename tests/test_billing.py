from dataclasses import replace
from datetime import date

import pytest

import billing
import store
from errors import ImmutableRecordError, PermissionDeniedError, ValidationError
from models import Money, SessionContext


@pytest.fixture
def member(owner):
    return store.create_member(owner, "Ahmed Hassan", "ahmed@example.org", "91234567", "Active", "Annual Member")


@pytest.fixture
def invoice(owner, member):
    inv = store.create_invoice(owner, member.id, "2025 Annual Member Subscription", "$500.00", date(2025, 12, 31), year=2025)
    billing.sync_member_balance(member.id)
    return inv


def test_create_invoice_syncs_cached_balance(invoice, member):
    assert invoice.id == "INV-2025-001"
    assert store.get_member(member.id).balance == Money.parse("500")
    assert store.get_member(member.id).balance.format() == "$500.00"


def test_approve_payment_settles_invoice_and_advances_due_date(owner, member, invoice):
    payment = store.create_payment(owner, member.id, "$500.00", "FPS", invoice_id=invoice.id, paid_on=date(2025, 3, 1))
    assert payment.id == "PAY-2025-001"
    assert payment.status == "Pending"

    approved, paid_invoice, updated = billing.approve_payment(owner, payment.id)

    assert approved.status == "Completed"
    assert approved.approved_by == owner.admin_name
    assert paid_invoice.status == "Paid"
    assert store.get_invoice(invoice.id).status == "Paid"
    assert updated.next_due == date(2026, 1, 1)
    assert updated.last_payment == date.today()
    assert updated.balance == Money(0)


def test_approve_twice_is_rejected(owner, member, invoice):
    payment = store.create_payment(owner, member.id, "500", "FPS", invoice_id=invoice.id)
    billing.approve_payment(owner, payment.id)
    with pytest.raises(ValidationError):
        billing.approve_payment(owner, payment.id)


def test_reject_payment_requires_reason(owner, member, invoice):
    payment = store.create_payment(owner, member.id, "500", "FPS", invoice_id=invoice.id)
    with pytest.raises(ValidationError):
        billing.reject_payment(owner, payment.id, "  ")

    rejected = billing.reject_payment(owner, payment.id, "Screenshot unreadable")
    assert rejected.status == "Rejected"
    assert store.get_payment(payment.id).rejection_reason == "Screenshot unreadable"
    assert store.get_invoice(invoice.id).status == "Unpaid"
    assert store.get_member(member.id).balance == Money.parse("500")


def test_admin_role_cannot_approve_payments(owner, member, invoice):
    payment = store.create_payment(owner, member.id, "500", "FPS", invoice_id=invoice.id)
    admin = SessionContext(admin_id=99, admin_name="Helper", role="Admin")
    with pytest.raises(PermissionDeniedError):
        billing.approve_payment(admin, payment.id)


def test_mark_invoice_paid_records_completed_payment(owner, member, invoice):
    paid, payment = billing.mark_invoice_paid(owner, invoice.id, "Cash to Admin", paid_to_admin_name="Owner")

    assert paid.status == "Paid"
    assert payment.status == "Completed"
    assert payment.invoice_id == invoice.id
    assert store.get_member(member.id).balance == Money(0)
    with pytest.raises(ValidationError):
        billing.mark_invoice_paid(owner, invoice.id, "FPS")


def test_paid_invoice_cannot_be_deleted_or_edited(owner, invoice):
    billing.mark_invoice_paid(owner, invoice.id, "FPS")
    with pytest.raises(ImmutableRecordError):
        store.delete_invoice(owner, invoice.id)
    with pytest.raises(ImmutableRecordError):
        store.update_invoice(owner, invoice.id, amount="1")
    assert store.update_invoice(owner, invoice.id, notes="receipt sent").notes == "receipt sent"


def test_invoice_settled_by_payment_is_immutable(owner, member, invoice):
    store.create_payment(owner, member.id, "500", "FPS", invoice_id=invoice.id, status="Completed")
    assert store.get_invoice(invoice.id).status == "Unpaid"
    assert store.invoice_status(store.get_invoice(invoice.id)) == "Paid"

    with pytest.raises(ImmutableRecordError):
        store.delete_invoice(owner, invoice.id)
    with pytest.raises(ImmutableRecordError):
        store.update_invoice(owner, invoice.id, amount="1")
    with pytest.raises(ValidationError):
        billing.mark_invoice_paid(owner, invoice.id, "FPS")
    assert len(store.list_payments(member.id)) == 1


def test_unpaid_invoice_can_be_deleted(owner, member, invoice):
    store.delete_invoice(owner, invoice.id)
    assert store.list_invoices(member.id) == []


def test_approve_member(owner):
    pending = store.create_member(owner, "New Person", "new@example.org", status="Pending")
    assert billing.approve_member(owner, pending.id).status == "Active"
    with pytest.raises(ValidationError):
        billing.approve_member(owner, pending.id)


def test_refresh_overdue_invoices(owner, member, invoice):
    assert billing.refresh_overdue_invoices(today=date(2025, 6, 1)) == 0
    assert billing.refresh_overdue_invoices(today=date(2026, 1, 2)) == 1
    assert store.get_invoice(invoice.id).status == "Overdue"
    assert billing.refresh_overdue_invoices(today=date(2026, 1, 2)) == 0


def test_refresh_skips_invoices_settled_by_payment(owner, member, invoice):
    payment = store.create_payment(owner, member.id, "500", "FPS", invoice_id=invoice.id, status="Completed")
    assert payment.status == "Completed"
    assert billing.refresh_overdue_invoices(today=date(2026, 1, 2)) == 0


def test_generate_yearly_invoices_skips_existing_year(owner, member, invoice):
    lifetime = store.create_member(owner, "Fatima Khan", "fatima@example.org", status="Active", subscription_type="Lifetime Janaza Fund")
    store.create_member(owner, "Pending Person", "pending@example.org", status="Pending")

    created = billing.generate_yearly_invoices(owner, 2025)

    assert [inv.member_id for inv in created] == [lifetime.id]
    assert created[0].amount == Money.parse("250")
    assert created[0].due == date(2026, 1, 1)
    assert created[0].period == "2025 Lifetime Janaza Fund"
    assert billing.generate_yearly_invoices(owner, 2025) == []


def test_lifetime_fee_payment_sets_lifetime_paid(owner):
    m = store.create_member(owner, "Omar Sheikh", "omar@example.org", status="Active", subscription_type="Lifetime Member + Janaza Fund")
    inv = store.create_invoice(owner, m.id, "2025 Lifetime Membership - Full Payment", store.default_invoice_amount(m), date(2025, 12, 31), year=2025)
    assert inv.amount == Money.parse("5250")

    billing.mark_invoice_paid(owner, inv.id, "Bank Transfer")
    updated = store.get_member(m.id)
    assert updated.lifetime_paid
    assert store.default_invoice_amount(updated) == Money.parse("250")


def test_sync_all_balances(owner, member, invoice):
    store.set_member_balance(member.id, "stale")
    assert billing.sync_all_balances() == 1
    assert store.get_member(member.id).balance == Money.parse("500")


def test_sample_data_then_sync(owner):
    store.insert_sample_data(owner)
    billing.sync_all_balances()
    members = store.list_members()
    assert len(members) == 3
    owing = sorted(m.name for m in members if m.balance.cents > 0)
    assert owing == ["Fatima Khan", "Omar Sheikh"]


def test_save_member_keeps_balance_text(owner, member, invoice):
    store.save_member(replace(store.get_member(member.id), phone="98765432"))
    assert store.get_member(member.id).balance == Money.parse("500")
