"""
app.py
Streamlit admin dashboard for the association's membership and finance records.
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from datetime import date, datetime

import pandas as pd
import streamlit as st

import auth
import billing
import config
import db
import reports
import store
import utils
from errors import MembershipError
from models import (
    CHANNEL_EMAIL,
    CHANNEL_WHATSAPP,
    DELIVERY_REQUESTED,
    INVOICE_PAID,
    MEMBER_PENDING,
    MEMBER_STATUSES,
    PAYMENT_PENDING,
    PAYMENT_STATUSES,
    REMINDER_FAILED,
    ROLES,
    SUBSCRIPTION_TYPES,
    DateRange,
)
from reconciliation import outstanding_invoices, with_effective_status
from reminders import ReminderDispatcher, WhatsAppLauncher

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

st.set_page_config(page_title=f"{config.ORG_NAME} - Admin", layout="wide")

MEMBER_COLUMNS = ["id", "name", "email", "phone", "status", "balance", "subscription_type", "next_due", "last_payment"]
INVOICE_COLUMNS = ["id", "member_id", "member_name", "period", "amount", "status", "due", "method", "reference"]
PAYMENT_COLUMNS = ["id", "member_id", "member", "invoice_id", "amount", "method", "status", "date", "reference"]
DONATION_COLUMNS = ["id", "donor_name", "amount", "member_id", "method", "date", "reference", "notes"]


def init_once():
    # Initialize DB + default Owner if needed
    if "db_ready" not in st.session_state:
        db.init_db(auth.hash_password(config.DEFAULT_ADMIN_PASSWORD))
        st.session_state.db_ready = True


def require_login():
    if "ctx" not in st.session_state:
        st.session_state.ctx = None


def logout():
    st.session_state.ctx = None
    st.session_state.pop("whatsapp_links", None)
    st.success("Logged out.")


def run_action(fn, *args, success: str | None = None, **kwargs):
    """Call a store/billing/reminder operation and report the outcome as a toast."""
    try:
        result = fn(*args, **kwargs)
    except MembershipError as e:
        logger.warning("%s failed: %s", getattr(fn, "__name__", fn), e.message)
        st.toast(e.message, icon="⚠️")
        st.error(e.message)
        return None
    if success:
        st.toast(success, icon="✅")
    return result if result is not None else True


def login_screen():
    st.title(f"🔐 {config.ORG_NAME} Admin Login")

    col1, col2 = st.columns([1, 1])
    with col1:
        email = st.text_input("Email", value=config.DEFAULT_ADMIN_EMAIL)
        password = st.text_input("Password", type="password")
        if st.button("Login", type="primary"):
            ctx = auth.login(email.strip(), password)
            if ctx:
                st.session_state.ctx = ctx
                st.rerun()
            else:
                st.error("Invalid email or password.")

    with col2:
        st.info(
            "First run creates a default Owner account:\n\n"
            f"- email: **{config.DEFAULT_ADMIN_EMAIL}**\n"
            "- password: as set in DEFAULT_ADMIN_PASSWORD\n\n"
            "You will be forced to change it on first login."
        )


def password_fields(key: str):
    new1 = st.text_input("New password", type="password", key=f"{key}_1")
    new2 = st.text_input("Confirm new password", type="password", key=f"{key}_2")
    return new1, new2


def update_password(new1: str, new2: str) -> bool:
    if new1 != new2:
        st.error("Passwords do not match.")
        return False
    return bool(run_action(auth.change_password, st.session_state.ctx.admin_id, new1, success="Password updated."))


def force_change_password_screen():
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1, new2 = password_fields("force_pw")
    if st.button("Update password", type="primary") and update_password(new1, new2):
        st.rerun()


def member_label(m) -> str:
    return f"{m.name} ({m.id})"


def dataframe(records, columns):
    st.dataframe(utils.records_to_frame(records, columns), use_container_width=True, hide_index=True)


# ---------- Pages ----------

def dashboard_page():
    st.header("📊 Dashboard")

    snapshot = store.load_snapshot()
    metrics = reports.dashboard_metrics(snapshot.members, snapshot.invoices, snapshot.payments, datetime.now())

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total collected", metrics.total_collected.format())
    c2.metric("Collected this month", metrics.collected_this_month.format())
    c3.metric("Collected this year", metrics.collected_this_year.format())
    c4.metric("Outstanding", metrics.total_outstanding.format())

    c5, c6, c7 = st.columns(3)
    c5.metric("Members", metrics.member_count)
    c6.metric("Members with overdue invoices", metrics.overdue_members)
    c7.metric("Expected annual", f"{config.CURRENCY_SYMBOL}{metrics.expected_annual:,}")

    st.divider()

    st.subheader("Collections, last 12 months")
    series = reports.monthly_collections_series(snapshot.payments, datetime.now())
    frame = reports.monthly_series_frame(series)
    st.bar_chart(frame, x="month", y="collected")

    st.subheader("Recent payments")
    recent = reports.recent_payments(snapshot.payments)
    if recent:
        dataframe(recent, PAYMENT_COLUMNS)
    else:
        st.caption("No payments recorded yet.")


def member_form(existing=None):
    ctx = st.session_state.ctx
    if existing:
        st.subheader(f"✏️ Edit Member ({existing.id})")
    else:
        st.subheader("➕ Add Member")

    key = existing.id if existing else "new"
    col1, col2, col3 = st.columns(3)
    with col1:
        name = st.text_input("Full name", value=existing.name if existing else "", key=f"name_{key}")
        email = st.text_input("Email", value=existing.email if existing else "", key=f"email_{key}")
    with col2:
        phone = st.text_input("Phone", value=existing.phone if existing else "", key=f"phone_{key}")
        subscription_type = st.selectbox(
            "Subscription type",
            options=SUBSCRIPTION_TYPES,
            index=SUBSCRIPTION_TYPES.index(existing.subscription_type) if existing else 0,
            key=f"sub_{key}",
        )
    with col3:
        status = st.selectbox(
            "Status",
            options=MEMBER_STATUSES,
            index=MEMBER_STATUSES.index(existing.status) if existing else MEMBER_STATUSES.index(MEMBER_PENDING),
            key=f"status_{key}",
        )
        next_due = st.date_input(
            "Next due date",
            value=existing.next_due if existing and existing.next_due else date(date.today().year + 1, 1, 1),
            key=f"due_{key}",
        )

    errors = utils.validate_member_inputs(name, email, phone, status, subscription_type)
    for e in errors:
        st.error(e)

    if st.button("Save", type="primary", disabled=bool(errors), key=f"save_{key}"):
        if existing:
            saved = run_action(
                store.update_member, ctx, existing.id,
                name=name.strip(), email=email.strip(), phone=phone.strip(), status=status,
                subscription_type=subscription_type, next_due=next_due, success="Member updated.",
            )
        else:
            saved = run_action(
                store.create_member, ctx, name, email, phone, status, subscription_type, next_due,
                success="Member added.",
            )
        if saved:
            st.rerun()


def members_page():
    ctx = st.session_state.ctx
    st.header("👥 Members")

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/email/phone/ID)")
        status_filter = st.selectbox("Status", ["All", *MEMBER_STATUSES])

    members = store.list_members(search=search, status_filter=status_filter)
    dataframe(members, MEMBER_COLUMNS)

    if not auth.can(ctx, "edit_records"):
        return

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select member")
        options = {member_label(m): m.id for m in members}
        selected = st.selectbox("Member", options=["(none)", *options.keys()])

    with colB:
        if selected != "(none)":
            member_id = options[selected]
            member = store.get_member(member_id)
            st.subheader("Member actions")
            c1, c2, c3, c4 = st.columns(4)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_member_id = member_id
                    st.rerun()
            with c2:
                if member.status == MEMBER_PENDING and auth.can(ctx, "approve_members"):
                    if st.button("Approve"):
                        if run_action(billing.approve_member, ctx, member_id, success="Member approved."):
                            st.rerun()
            with c3:
                if st.button("Recalculate balance"):
                    balance = run_action(billing.sync_member_balance, member_id)
                    if balance:
                        st.toast(f"Balance: {balance}")
                        st.rerun()
            with c4:
                if auth.can(ctx, "delete_members"):
                    delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
                    if st.button("Delete", type="secondary", disabled=not delete_confirm):
                        if run_action(store.delete_member, ctx, member_id, success="Member deleted."):
                            st.rerun()

    st.divider()

    if st.session_state.get("edit_member_id"):
        existing = run_action(store.get_member, st.session_state.edit_member_id)
        if existing:
            member_form(existing=existing)
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(existing=None)


def invoices_page():
    ctx = st.session_state.ctx
    st.header("🧾 Invoices")

    members = store.list_members()
    member_options = {member_label(m): m.id for m in members}
    filter_label = st.selectbox("Member", ["All", *member_options.keys()])
    invoices = with_effective_status(store.list_invoices(member_options.get(filter_label)), store.list_payments())
    dataframe(invoices, INVOICE_COLUMNS)

    if not auth.can(ctx, "edit_records"):
        return
    if not members:
        st.info("No members yet. Add a member first.")
        return

    st.divider()
    st.subheader("Create invoice")
    c1, c2, c3, c4 = st.columns(4)
    with c1:
        label = st.selectbox("For member", list(member_options.keys()), key="inv_member")
        member = store.get_member(member_options[label])
    with c2:
        year = st.number_input("Year", min_value=2000, max_value=2100, value=date.today().year, step=1)
        period = st.text_input("Period", value=f"{int(year)} {member.subscription_type}")
    with c3:
        amount = st.text_input("Amount", value=f"{store.default_invoice_amount(member).amount:.2f}")
    with c4:
        due = st.date_input("Due date", value=date(int(year), 12, 31))
    notes = st.text_input("Notes", value="")

    if st.button("Create invoice", type="primary"):
        created = run_action(
            store.create_invoice, ctx, member.id, period, amount, due, notes=notes, year=int(year),
            success="Invoice created.",
        )
        if created:
            billing.sync_member_balance(member.id)
            st.rerun()

    st.divider()
    st.subheader("Generate next year's invoices")
    gen_year = st.number_input("Invoice year", min_value=2000, max_value=2100, value=date.today().year + 1, step=1)
    if st.button("Generate invoices"):
        created = run_action(billing.generate_yearly_invoices, ctx, int(gen_year))
        if created is not None:
            st.toast(f"Generated {len(created)} invoice(s).")
            st.rerun()

    st.divider()
    st.subheader("Invoice actions")
    if not invoices:
        st.caption("No invoices.")
        return
    inv_options = {f"{inv.id} - {inv.member_name} - {inv.period} ({inv.status})": inv for inv in invoices}
    chosen = inv_options[st.selectbox("Invoice", list(inv_options.keys()))]

    c1, c2 = st.columns(2)
    with c1:
        if auth.can(ctx, "approve_payments") and chosen.status != INVOICE_PAID:
            methods = [m.name for m in store.list_payment_methods()] or ["Cash"]
            method = st.selectbox("Method", methods, key="mark_paid_method")
            reference = st.text_input("Reference", key="mark_paid_ref")
            cash_admin = st.text_input("Cash received by (admin name, optional)", key="mark_paid_admin")
            if st.button("Mark paid"):
                if run_action(
                    billing.mark_invoice_paid, ctx, chosen.id, method, reference,
                    paid_to_admin_name=cash_admin.strip() or None, success="Invoice marked paid.",
                ):
                    st.rerun()
    with c2:
        delete_confirm = st.checkbox("Confirm delete", value=False, key="inv_del_confirm")
        if st.button("Delete invoice", disabled=not delete_confirm):
            if run_action(store.delete_invoice, ctx, chosen.id, success="Invoice deleted."):
                if chosen.member_id:
                    run_action(billing.sync_member_balance, chosen.member_id)
                st.rerun()


def payments_page():
    ctx = st.session_state.ctx
    st.header("💳 Payments")

    status_filter = st.selectbox("Status", ["All", *PAYMENT_STATUSES])
    payments = store.list_payments(status=None if status_filter == "All" else status_filter)
    dataframe(payments, PAYMENT_COLUMNS)

    pending = store.list_payments(status=PAYMENT_PENDING)
    if pending and auth.can(ctx, "approve_payments"):
        st.divider()
        st.subheader(f"Pending approval ({len(pending)})")
        options = {f"{p.id} - {p.member} - {p.amount} ({utils.display_method(p)})": p for p in pending}
        chosen = options[st.selectbox("Payment", list(options.keys()))]
        if chosen.screenshot:
            st.image(chosen.screenshot, width=300)
        c1, c2 = st.columns(2)
        with c1:
            if st.button("Approve", type="primary"):
                if run_action(billing.approve_payment, ctx, chosen.id, success="Payment approved."):
                    st.rerun()
        with c2:
            reason = st.text_input("Rejection reason")
            if st.button("Reject"):
                if run_action(billing.reject_payment, ctx, chosen.id, reason, success="Payment rejected."):
                    st.rerun()

    if not auth.can(ctx, "edit_records"):
        return

    members = store.list_members()
    if not members:
        st.info("No members yet. Add a member first.")
        return

    st.divider()
    st.subheader("Record payment")
    member_options = {member_label(m): m.id for m in members}
    member_id = member_options[st.selectbox("Member", list(member_options.keys()), key="pay_member")]
    snapshot = store.load_snapshot()
    member = store.get_member(member_id)
    open_invoices = outstanding_invoices(member, snapshot.invoices, snapshot.payments)
    invoice_options = {"(none)": None, **{f"{inv.id} - {inv.period} ({inv.amount})": inv for inv in open_invoices}}

    c1, c2, c3, c4 = st.columns(4)
    with c1:
        invoice = invoice_options[st.selectbox("Invoice", list(invoice_options.keys()))]
    with c2:
        amount = st.text_input("Amount", value=f"{invoice.amount.amount:.2f}" if invoice else "250")
    with c3:
        methods = [m.name for m in store.list_payment_methods()] or ["Cash"]
        method = st.selectbox("Method", methods, key="pay_method")
    with c4:
        paid_on = st.date_input("Date", value=date.today())
    reference = st.text_input("Reference", value="")
    upload = st.file_uploader("Screenshot", type=["png", "jpg", "jpeg", "gif", "webp"])

    if st.button("Record payment", type="primary"):
        screenshot = None
        if upload is not None:
            screenshot = run_action(store.save_screenshot, upload.name, upload.getvalue())
            if not screenshot:
                return
        if run_action(
            store.create_payment, ctx, member_id, amount, method,
            invoice_id=invoice.id if invoice else None, paid_on=paid_on, reference=reference,
            screenshot=screenshot, success="Payment recorded, awaiting approval.",
        ):
            st.rerun()


def donations_page():
    ctx = st.session_state.ctx
    st.header("🤲 Donations")

    donations = store.list_donations()
    dataframe(donations, DONATION_COLUMNS)

    if not auth.can(ctx, "edit_records"):
        return

    st.divider()
    st.subheader("Record donation")
    members = store.list_members()
    member_options = {"(not a member)": None, **{member_label(m): m.id for m in members}}
    c1, c2, c3, c4 = st.columns(4)
    with c1:
        donor = st.text_input("Donor name")
        member_id = member_options[st.selectbox("Member", list(member_options.keys()), key="don_member")]
    with c2:
        amount = st.text_input("Amount", value="100")
    with c3:
        methods = [m.name for m in store.list_payment_methods()] or ["Cash"]
        method = st.selectbox("Method", methods, key="don_method")
    with c4:
        donated_on = st.date_input("Date", value=date.today(), key="don_date")
    reference = st.text_input("Reference", key="don_ref")
    notes = st.text_input("Notes", key="don_notes")

    if st.button("Record donation", type="primary"):
        if run_action(
            store.create_donation, ctx, donor, amount, method, donated_on, member_id,
            reference=reference, notes=notes, success="Donation recorded.",
        ):
            st.rerun()

    if donations:
        st.divider()
        options = {f"{d.id} - {d.donor_name} - {d.amount}": d.id for d in donations}
        chosen = options[st.selectbox("Donation", list(options.keys()))]
        confirm = st.checkbox("Confirm delete", key="don_del_confirm")
        if st.button("Delete donation", disabled=not confirm):
            if run_action(store.delete_donation, ctx, chosen, success="Donation deleted."):
                st.rerun()


def _dispatcher() -> ReminderDispatcher:
    links = st.session_state.setdefault("whatsapp_links", [])
    # Chats are opened from the browser, so the launcher only collects the links
    return ReminderDispatcher(whatsapp=WhatsAppLauncher(opener=links.append))


def reminders_page():
    ctx = st.session_state.ctx
    st.header("⏰ Reminders")

    dispatcher = _dispatcher()
    channel = st.radio("Channel", [CHANNEL_EMAIL, CHANNEL_WHATSAPP], horizontal=True)

    members = store.list_members()
    owing = [m for m in members if m.balance.cents > 0]
    st.caption(f"{len(owing)} member(s) with an outstanding balance.")
    dataframe(owing, ["id", "name", "email", "phone", "balance"])

    c1, c2 = st.columns(2)
    with c1:
        st.subheader("Single reminder")
        options = {member_label(m): m.id for m in members}
        if options:
            member_id = options[st.selectbox("Member", list(options.keys()), key="rem_member")]
            if st.button("Send reminder", type="primary"):
                outcome = run_action(dispatcher.send_reminder, ctx, member_id, channel)
                if outcome:
                    st.toast(f"Reminder {outcome.status.lower()} for {member_id}.", icon="✅")
    with c2:
        st.subheader("Bulk reminders")
        st.caption("WhatsApp chats open one second apart.")
        if st.button(f"Send to all owing members via {channel}"):
            result = run_action(dispatcher.send_bulk_reminders, ctx, channel)
            if result:
                st.toast(result.message, icon="📨")
                for outcome in result.outcomes:
                    if outcome.error:
                        st.error(f"{outcome.member_id}: {outcome.error}")

    links = st.session_state.get("whatsapp_links") or []
    if links:
        st.divider()
        st.subheader("Open WhatsApp chats")
        for i, url in enumerate(links):
            st.link_button(f"Open chat {i + 1}", url)
        if st.button("Clear links"):
            st.session_state.whatsapp_links = []
            st.rerun()

    st.divider()
    st.subheader("Communication log")
    log = store.list_communication_log()
    if log:
        dataframe(log, ["id", "channel", "type", "member_id", "member_name", "message", "status", "date", "delivery"])
        pending = [e for e in log if e.delivery == DELIVERY_REQUESTED and e.channel == CHANNEL_WHATSAPP]
        if pending:
            options = {f"{e.id} - {e.member_name} ({e.date:%Y-%m-%d %H:%M})": e.id for e in pending}
            chosen = options[st.selectbox("Confirm WhatsApp delivery", list(options.keys()))]
            if st.button("Mark as sent"):
                if run_action(store.confirm_delivery, chosen, success="Delivery confirmed."):
                    st.rerun()
    else:
        st.caption("Nothing sent yet.")

    st.subheader("Email reminder log")
    reminder_logs = store.list_reminder_logs()
    if reminder_logs:
        dataframe(reminder_logs, ["id", "member_id", "member_email", "reminder_type", "amount", "invoice_count", "sent_at", "status"])
        failed = [r for r in reminder_logs if r.status == REMINDER_FAILED]
        if failed:
            options = {f"{r.id} - {r.member_email}": r.id for r in failed}
            chosen = options[st.selectbox("Retry failed reminder", list(options.keys()))]
            if st.button("Retry"):
                if run_action(dispatcher.retry_reminder, ctx, chosen, success="Reminder re-sent."):
                    st.rerun()
        options = {f"{r.id} - {r.member_email} ({r.status})": r.id for r in reminder_logs}
        to_delete = options[st.selectbox("Remove log entry", list(options.keys()))]
        if st.button("Delete log entry"):
            if run_action(store.delete_reminder_log, ctx, to_delete, success="Log entry deleted."):
                st.rerun()
    else:
        st.caption("No email reminders yet.")


def reports_page():
    st.header("📈 Reports")

    today = date.today()
    c1, c2 = st.columns(2)
    with c1:
        start = st.date_input("From", value=date(today.year, 1, 1))
    with c2:
        end = st.date_input("To", value=today)

    errors = utils.validate_date_range(start, end)
    if errors:
        for e in errors:
            st.error(e)
        return

    snapshot = store.load_snapshot()
    stats = reports.report_stats(
        snapshot.members, snapshot.invoices, snapshot.donations, snapshot.payments, DateRange(start, end)
    )

    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Collected", stats.collected.format())
    m2.metric("Expected", stats.expected.format(), f"{stats.collection_rate}%")
    m3.metric("Outstanding", stats.outstanding.format())
    m4.metric("Average per active member", f"{config.CURRENCY_SYMBOL}{stats.average_per_member}")

    m5, m6, m7 = st.columns(3)
    m5.metric("Payments", f"{stats.payments_total.format()} ({stats.payments_count})")
    m6.metric("Donations", f"{stats.donations_total.format()} ({stats.donations_count})")
    m7.metric("Active members", stats.active_members)

    st.subheader("Payment methods")
    st.dataframe(pd.DataFrame(stats.method_mix), use_container_width=True, hide_index=True)

    st.divider()
    st.subheader("Exports")
    summary = reports.report_summary_frame(stats)
    series = reports.monthly_series_frame(reports.monthly_collections_series(snapshot.payments, datetime.now()))
    c1, c2, c3, c4, c5 = st.columns(5)
    c1.download_button(
        "Download report.csv", data=utils.to_csv_bytes(summary),
        file_name=f"report_{start}_{end}.csv", mime="text/csv",
    )
    c2.download_button(
        "Download members.csv", data=utils.to_csv_bytes(utils.records_to_frame(snapshot.members, MEMBER_COLUMNS)),
        file_name="members.csv", mime="text/csv",
    )
    c3.download_button(
        "Download payments.csv", data=utils.to_csv_bytes(utils.records_to_frame(snapshot.payments, PAYMENT_COLUMNS)),
        file_name="payments.csv", mime="text/csv",
    )
    c4.download_button(
        "Download invoices.csv", data=utils.to_csv_bytes(utils.records_to_frame(snapshot.invoices, INVOICE_COLUMNS)),
        file_name="invoices.csv", mime="text/csv",
    )
    c5.download_button(
        "Download monthly.csv", data=utils.to_csv_bytes(series), file_name="monthly_collections.csv", mime="text/csv",
    )


def settings_page():
    ctx = st.session_state.ctx
    st.header("⚙️ Settings")

    st.subheader("Change password")
    p1, p2 = password_fields("settings_pw")
    if st.button("Update password", type="primary"):
        update_password(p1, p2)

    st.divider()
    st.subheader("Admin accounts")
    admins = auth.list_admins()
    st.dataframe(pd.DataFrame([vars(a) for a in admins]), use_container_width=True, hide_index=True)
    with st.expander("Add admin"):
        name = st.text_input("Name", key="adm_name")
        email = st.text_input("Email", key="adm_email")
        password = st.text_input("Password", type="password", key="adm_pw")
        role = st.selectbox("Role", ROLES, index=ROLES.index("Admin"), key="adm_role")
        if st.button("Create admin"):
            if run_action(auth.create_admin, ctx, name, email, password, role, success="Admin created."):
                st.rerun()
    with st.expander("Change role / remove admin"):
        options = {f"{a.name} <{a.email}> ({a.role})": a.id for a in admins}
        admin_id = options[st.selectbox("Admin", list(options.keys()), key="adm_pick")]
        new_role = st.selectbox("New role", ROLES, key="adm_new_role")
        c1, c2 = st.columns(2)
        with c1:
            if st.button("Update role"):
                if run_action(auth.update_admin_role, ctx, admin_id, new_role, success="Role updated."):
                    st.rerun()
        with c2:
            if st.button("Delete admin"):
                if run_action(auth.delete_admin, ctx, admin_id, success="Admin deleted."):
                    st.rerun()

    st.divider()
    st.subheader("Payment methods")
    methods = store.list_payment_methods()
    st.dataframe(pd.DataFrame([vars(m) for m in methods]), use_container_width=True, hide_index=True)
    c1, c2, c3 = st.columns([1, 2, 1])
    with c1:
        pm_name = st.text_input("Method name", key="pm_name")
    with c2:
        pm_details = st.text_input("Details shown in reminders", key="pm_details")
    with c3:
        pm_visible = st.checkbox("Show in reminders", value=True, key="pm_visible")
    if st.button("Save payment method"):
        if run_action(store.save_payment_method, ctx, pm_name, pm_details, pm_visible, success="Payment method saved."):
            st.rerun()
    if methods:
        pm_options = {m.name: m.id for m in methods}
        pm_pick = st.selectbox("Remove method", list(pm_options.keys()), key="pm_pick")
        if st.button("Delete payment method"):
            if run_action(store.delete_payment_method, ctx, pm_options[pm_pick], success="Payment method deleted."):
                st.rerun()

    st.divider()
    st.subheader("Organization")
    org = store.get_org_info()
    org_name = st.text_input("Name", value=org.get("name", ""), key="org_name")
    org_email = st.text_input("Email", value=org.get("email", ""), key="org_email")
    org_phone = st.text_input("Phone", value=org.get("phone", ""), key="org_phone")
    org_address = st.text_input("Address", value=org.get("address", ""), key="org_address")
    if st.button("Save organization"):
        run_action(
            store.save_org_info, ctx, name=org_name, email=org_email, phone=org_phone, address=org_address,
            success="Organization saved.",
        )

    st.divider()
    st.subheader("Email settings")
    mail = store.get_email_settings()
    c1, c2 = st.columns(2)
    with c1:
        host = st.text_input("SMTP host", value=mail.get("host", ""))
        port = st.number_input("SMTP port", value=int(mail.get("port") or 587), step=1)
        use_tls = st.checkbox("Use STARTTLS", value=bool(mail.get("use_tls", True)))
    with c2:
        user = st.text_input("SMTP user", value=mail.get("user", ""))
        password = st.text_input("SMTP password", value=mail.get("password", ""), type="password")
        from_email = st.text_input("From address", value=mail.get("from_email", ""))
    if st.button("Save email settings"):
        run_action(
            store.save_email_settings, ctx, host=host, port=int(port), user=user, password=password,
            from_email=from_email, use_tls=use_tls, success="Email settings saved.",
        )
    test_to = st.text_input("Send a test email to")
    if st.button("Send test email"):
        run_action(_dispatcher().send_test_email, ctx, test_to, success="Test email sent.")

    template = store.get_email_template()
    subject = st.text_input("Reminder subject", value=template["subject"])
    intro = st.text_area("Reminder introduction", value=template["intro"])
    st.caption("Placeholders: {{member_name}}, {{member_id}}, {{org_name}}, {{total_due}}, {{invoice_year}}")
    if st.button("Save template"):
        run_action(store.save_email_template, ctx, subject, intro, success="Template saved.")

    st.divider()
    st.subheader("Sample data")
    st.caption("Insert 3 sample members with invoices and payments for testing (adds new rows each run).")
    if st.button("Insert sample data"):
        if run_action(store.insert_sample_data, ctx):
            billing.sync_all_balances()
            st.success("Sample data inserted.")
            st.rerun()


PAGES = {
    "Dashboard": dashboard_page,
    "Members": members_page,
    "Invoices": invoices_page,
    "Payments": payments_page,
    "Donations": donations_page,
    "Reminders": reminders_page,
    "Reports": reports_page,
    "Settings": settings_page,
}


def main_app():
    ctx = st.session_state.ctx
    st.sidebar.title(f"🕌 {config.ORG_NAME}")
    st.sidebar.caption(f"Logged in as: {ctx.admin_name} ({ctx.role})")

    pages = auth.visible_sections(ctx.role)
    if st.session_state.get("page") not in pages:
        st.session_state.page = pages[0]
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    PAGES[st.session_state.page]()


# --------- App entry ---------

def run():
    init_once()
    require_login()

    if st.session_state.ctx is None:
        login_screen()
        return

    # Force password change on first login after DB creation
    if db.is_force_password_change():
        force_change_password_screen()
        return

    billing.refresh_overdue_invoices()
    main_app()


if __name__ == "__main__":
    run()
