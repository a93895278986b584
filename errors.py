"""
errors.py
Exception hierarchy shared by the store, billing and reminder modules.

Pages catch MembershipError and show `message` as a toast.
"""

from __future__ import annotations

from typing import Any


class MembershipError(Exception):
    """Base class for every error the admin dashboard reports to the user."""

    error_code = "MEMBERSHIP_ERROR"

    def __init__(self, message: str = "An unexpected error occurred", *, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        result = {"error": self.error_code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(MembershipError):
    """Raised when form input fails validation. Carries every message found."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str] | str, *, field: str | None = None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        details: dict[str, Any] = {"errors": self.errors}
        if field:
            details["field"] = field
        super().__init__("; ".join(self.errors) or "Validation failed", details=details)


class NotFoundError(MembershipError):
    error_code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: Any):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} not found", details={"entity": entity, "id": str(identifier)})


class PermissionDeniedError(MembershipError):
    error_code = "PERMISSION_DENIED"

    def __init__(self, action: str, role: str | None):
        super().__init__(
            f"Role '{role or 'unknown'}' is not allowed to {action}",
            details={"action": action, "role": role},
        )


class ImmutableRecordError(MembershipError):
    """Raised when attempting to delete or rewrite a settled record (e.g. a Paid invoice)."""

    error_code = "IMMUTABLE_RECORD"


class TransportError(MembershipError):
    """Raised when an outbound email/WhatsApp hand-off fails."""

    error_code = "TRANSPORT_ERROR"

    def __init__(self, message: str, *, channel: str | None = None):
        super().__init__(message, details={"channel": channel} if channel else None)
        self.channel = channel


class NoOutstandingInvoices(MembershipError):
    error_code = "NO_OUTSTANDING_INVOICES"

    def __init__(self, member_id: str | None = None):
        if member_id:
            message = f"Member {member_id} has no outstanding invoices"
        else:
            message = "No members with outstanding invoices"
        super().__init__(message, details={"member_id": member_id} if member_id else None)
        self.member_id = member_id
