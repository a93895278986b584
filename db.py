"""
db.py
SQLite helpers + initialization (creates DB/tables, inserts default owner, etc.)
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime

import config

DB_FILE = config.DB_FILE

DEFAULT_PAYMENT_METHODS = [
    ("FPS", f"FPS: {config.PAYMENT_DETAILS['fps']}"),
    (
        "Bank Transfer",
        f"{config.PAYMENT_DETAILS['bank_name']} {config.PAYMENT_DETAILS['bank_account']} "
        f"({config.PAYMENT_DETAILS['beneficiary']})",
    ),
    ("PayMe", ""),
    ("Alipay", ""),
    ("Cash to Admin", "Hand cash to a committee admin"),
]


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def execute_rowcount(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.rowcount


def executemany(sql: str, seq_of_params: list[tuple]) -> None:
    with get_conn() as conn:
        conn.executemany(sql, seq_of_params)


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


def _create_tables() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS admin_users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'Viewer',
            status TEXT NOT NULL DEFAULT 'Active',
            created_at TEXT NOT NULL
        )
        """
    )

    # Amounts and balances are kept as display strings ("$250.00"); they are
    # parsed into Money when rows are loaded.
    execute(
        """
        CREATE TABLE IF NOT EXISTS members (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL DEFAULT '',
            phone TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL CHECK(status IN ('Active','Inactive','Pending')),
            balance TEXT NOT NULL DEFAULT '$0',
            subscription_type TEXT NOT NULL,
            next_due TEXT,
            last_payment TEXT,
            created_at TEXT,
            lifetime_paid INTEGER NOT NULL DEFAULT 0
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS invoices (
            id TEXT PRIMARY KEY,
            member_id TEXT,
            member_name TEXT NOT NULL DEFAULT '',
            member_email TEXT NOT NULL DEFAULT '',
            period TEXT NOT NULL DEFAULT '',
            amount TEXT NOT NULL DEFAULT '$0',
            status TEXT NOT NULL CHECK(status IN ('Unpaid','Paid','Overdue')),
            due TEXT,
            method TEXT NOT NULL DEFAULT '',
            reference TEXT NOT NULL DEFAULT '',
            notes TEXT NOT NULL DEFAULT '',
            screenshot TEXT,
            paid_to_admin TEXT,
            paid_to_admin_name TEXT,
            created_at TEXT
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS payments (
            id TEXT PRIMARY KEY,
            member_id TEXT,
            member TEXT NOT NULL DEFAULT '',
            invoice_id TEXT,
            amount TEXT NOT NULL DEFAULT '$0',
            method TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL CHECK(status IN ('Pending','Completed','Paid','Rejected')),
            date TEXT,
            screenshot TEXT,
            reference TEXT NOT NULL DEFAULT '',
            paid_to_admin TEXT,
            paid_to_admin_name TEXT,
            approved_by TEXT,
            approved_at TEXT,
            rejected_by TEXT,
            rejected_at TEXT,
            rejection_reason TEXT
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS donations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            donor_name TEXT NOT NULL,
            is_member INTEGER NOT NULL DEFAULT 0,
            member_id TEXT,
            amount TEXT NOT NULL DEFAULT '$0',
            method TEXT NOT NULL DEFAULT '',
            date TEXT,
            reference TEXT NOT NULL DEFAULT '',
            screenshot TEXT,
            notes TEXT NOT NULL DEFAULT ''
        )
        """
    )

    # Append-only audit trail of reminder attempts
    execute(
        """
        CREATE TABLE IF NOT EXISTS communication_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            channel TEXT NOT NULL CHECK(channel IN ('Email','WhatsApp')),
            type TEXT NOT NULL,
            member_id TEXT,
            member_email TEXT NOT NULL DEFAULT '',
            member_name TEXT NOT NULL DEFAULT '',
            message TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL CHECK(status IN ('Delivered','Failed')),
            date TEXT NOT NULL,
            delivery TEXT NOT NULL DEFAULT 'requested'
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS reminder_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            member_id TEXT NOT NULL,
            member_email TEXT NOT NULL DEFAULT '',
            reminder_type TEXT NOT NULL CHECK(reminder_type IN ('overdue','upcoming')),
            amount TEXT NOT NULL DEFAULT '$0',
            invoice_count INTEGER NOT NULL DEFAULT 0,
            sent_at TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('sent','failed')),
            channel TEXT NOT NULL DEFAULT 'Email'
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS payment_methods (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            details TEXT NOT NULL DEFAULT '',
            visible INTEGER NOT NULL DEFAULT 1
        )
        """
    )

    # Key/value settings: force password change, organization info, email settings
    execute(
        """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


def get_setting(key: str, default: str | None = None) -> str | None:
    row = fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
    if row:
        return str(row["value"])
    return default


def set_setting(key: str, value: str) -> None:
    execute(
        """
        INSERT INTO app_settings(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def init_db(default_admin_hash: str) -> None:
    """
    Initialize the database.
    - Create tables
    - Insert default Owner account if no admin exists
    - Force password change on first login
    - Seed the default payment methods
    """
    _create_tables()

    admin = fetch_one("SELECT id FROM admin_users LIMIT 1")
    if not admin:
        now = datetime.now().isoformat(timespec="seconds")
        execute(
            "INSERT INTO admin_users(name, email, password_hash, role, status, created_at) VALUES(?,?,?,?,?,?)",
            ("Owner", config.DEFAULT_ADMIN_EMAIL, default_admin_hash, "Owner", "Active", now),
        )
        set_setting("force_password_change", "1")
    else:
        # ensure setting exists
        if get_setting("force_password_change") is None:
            set_setting("force_password_change", "0")

    if not fetch_one("SELECT id FROM payment_methods LIMIT 1"):
        executemany(
            "INSERT INTO payment_methods(name, details, visible) VALUES(?,?,1)",
            DEFAULT_PAYMENT_METHODS,
        )


def is_force_password_change() -> bool:
    return get_setting("force_password_change") == "1"


def clear_force_password_change() -> None:
    set_setting("force_password_change", "0")
