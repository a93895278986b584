"""
auth.py
Authentication utilities (bcrypt hashing, verify, login, change password),
admin accounts and role checks.

This avoids passlib's bcrypt backend auto-detection issues on some Python 3.13 Windows setups.
"""

from __future__ import annotations

import logging
from datetime import datetime

import bcrypt

import db
from errors import NotFoundError, PermissionDeniedError, ValidationError
from models import ROLE_ADMIN, ROLE_FINANCE, ROLE_OWNER, ROLE_VIEWER, ROLES, AdminUser, SessionContext
import utils

logger = logging.getLogger(__name__)

# action -> roles allowed to perform it
PERMISSIONS = {
    "edit_records": {ROLE_OWNER, ROLE_FINANCE, ROLE_ADMIN},
    "approve_members": {ROLE_OWNER, ROLE_FINANCE, ROLE_ADMIN},
    "approve_payments": {ROLE_OWNER, ROLE_FINANCE},
    "send_reminders": {ROLE_OWNER, ROLE_FINANCE, ROLE_ADMIN},
    "delete_members": {ROLE_OWNER},
    "manage_admins": {ROLE_OWNER},
    "manage_settings": {ROLE_OWNER},
}

# Sidebar sections per role
SECTIONS = {
    ROLE_OWNER: ["Dashboard", "Members", "Invoices", "Payments", "Donations", "Reminders", "Reports", "Settings"],
    ROLE_FINANCE: ["Dashboard", "Members", "Invoices", "Payments", "Donations", "Reminders", "Reports"],
    ROLE_ADMIN: ["Dashboard", "Members", "Invoices", "Payments", "Donations", "Reminders"],
    ROLE_VIEWER: ["Dashboard", "Members", "Invoices", "Reports"],
}


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in SQLite).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def can(ctx: SessionContext | None, action: str) -> bool:
    return ctx is not None and ctx.role in PERMISSIONS.get(action, set())


def require_role(ctx: SessionContext | None, action: str) -> None:
    if not can(ctx, action):
        raise PermissionDeniedError(action.replace("_", " "), ctx.role if ctx else None)


def visible_sections(role: str) -> list[str]:
    return list(SECTIONS.get(role, SECTIONS[ROLE_VIEWER]))


def _admin_from_row(row) -> AdminUser:
    return AdminUser(id=row["id"], name=row["name"], email=row["email"], role=row["role"], status=row["status"])


def get_admin_by_email(email: str):
    return db.fetch_one("SELECT * FROM admin_users WHERE lower(email) = lower(?)", (email.strip(),))


def login(email: str, password: str) -> SessionContext | None:
    """Session context for valid credentials of an Active admin, else None."""
    admin = get_admin_by_email(email)
    if not admin or admin["status"] != "Active":
        return None
    if not verify_password(password, admin["password_hash"]):
        logger.info("Failed login for %s", email)
        return None
    return SessionContext(admin_id=admin["id"], admin_name=admin["name"], role=admin["role"])


def change_password(admin_id: int, new_password: str) -> None:
    if len(new_password) < 6:
        raise ValidationError("Password must be at least 6 characters.")
    new_hash = hash_password(new_password)
    db.execute("UPDATE admin_users SET password_hash = ? WHERE id = ?", (new_hash, admin_id))
    db.clear_force_password_change()


def list_admins() -> list[AdminUser]:
    return [_admin_from_row(r) for r in db.fetch_all("SELECT * FROM admin_users ORDER BY id ASC")]


def create_admin(ctx: SessionContext, name: str, email: str, password: str, role: str) -> AdminUser:
    require_role(ctx, "manage_admins")
    errors = []
    if not name.strip():
        errors.append("Name is required.")
    if not utils.is_valid_email(email):
        errors.append("Email address is not valid.")
    if len(password) < 6:
        errors.append("Password must be at least 6 characters.")
    if role not in ROLES:
        errors.append(f"Role must be one of {', '.join(ROLES)}.")
    if not errors and get_admin_by_email(email):
        errors.append("An admin with this email already exists.")
    if errors:
        raise ValidationError(errors)

    admin_id = db.execute(
        "INSERT INTO admin_users(name, email, password_hash, role, status, created_at) VALUES(?,?,?,?,?,?)",
        (name.strip(), email.strip(), hash_password(password), role, "Active", datetime.now().isoformat(timespec="seconds")),
    )
    logger.info("Admin %s created %s account for %s", ctx.admin_name, role, email)
    return AdminUser(id=admin_id, name=name.strip(), email=email.strip(), role=role)


def update_admin_role(ctx: SessionContext, admin_id: int, role: str, status: str = "Active") -> None:
    require_role(ctx, "manage_admins")
    if role not in ROLES:
        raise ValidationError(f"Role must be one of {', '.join(ROLES)}.")
    if admin_id == ctx.admin_id and role != ROLE_OWNER:
        raise ValidationError("You cannot remove your own Owner role.")
    if db.execute_rowcount("UPDATE admin_users SET role = ?, status = ? WHERE id = ?", (role, status, admin_id)) == 0:
        raise NotFoundError("Admin", admin_id)


def delete_admin(ctx: SessionContext, admin_id: int) -> None:
    require_role(ctx, "manage_admins")
    if admin_id == ctx.admin_id:
        raise ValidationError("You cannot delete your own account.")
    if db.execute_rowcount("DELETE FROM admin_users WHERE id = ?", (admin_id,)) == 0:
        raise NotFoundError("Admin", admin_id)
