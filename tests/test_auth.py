import pytest

import auth
import db
from errors import PermissionDeniedError, ValidationError
from models import SessionContext


def test_default_owner_can_log_in(database):
    ctx = auth.login("owner@example.org", "secret1")
    assert ctx is not None
    assert ctx.role == "Owner"
    assert auth.login("owner@example.org", "wrong") is None
    assert auth.login("nobody@example.org", "secret1") is None


def test_first_login_forces_password_change(owner):
    assert db.is_force_password_change()
    auth.change_password(owner.admin_id, "new-secret")
    assert not db.is_force_password_change()
    assert auth.login("owner@example.org", "new-secret") is not None


def test_short_password_rejected(owner):
    with pytest.raises(ValidationError):
        auth.change_password(owner.admin_id, "123")


def test_permissions_by_role():
    finance = SessionContext(1, "F", "Finance Admin")
    admin = SessionContext(2, "A", "Admin")
    viewer = SessionContext(3, "V", "Viewer")

    assert auth.can(finance, "approve_payments")
    assert not auth.can(admin, "approve_payments")
    assert auth.can(admin, "send_reminders")
    assert not auth.can(viewer, "edit_records")
    assert not auth.can(None, "edit_records")
    with pytest.raises(PermissionDeniedError):
        auth.require_role(viewer, "send_reminders")


def test_visible_sections():
    assert "Settings" in auth.visible_sections("Owner")
    assert "Settings" not in auth.visible_sections("Finance Admin")
    assert auth.visible_sections("Viewer") == ["Dashboard", "Members", "Invoices", "Reports"]
    assert auth.visible_sections("Unknown") == auth.visible_sections("Viewer")


def test_owner_manages_admins(owner):
    created = auth.create_admin(owner, "Treasurer", "treasurer@example.org", "secret2", "Finance Admin")
    assert auth.login("treasurer@example.org", "secret2").role == "Finance Admin"

    with pytest.raises(ValidationError):
        auth.create_admin(owner, "Dup", "TREASURER@example.org", "secret2", "Admin")

    auth.update_admin_role(owner, created.id, "Viewer")
    assert auth.login("treasurer@example.org", "secret2").role == "Viewer"

    with pytest.raises(ValidationError):
        auth.delete_admin(owner, owner.admin_id)
    auth.delete_admin(owner, created.id)
    assert [a.email for a in auth.list_admins()] == ["owner@example.org"]


def test_non_owner_cannot_create_admins(database):
    finance = SessionContext(7, "F", "Finance Admin")
    with pytest.raises(PermissionDeniedError):
        auth.create_admin(finance, "X", "x@example.org", "secret2", "Admin")
