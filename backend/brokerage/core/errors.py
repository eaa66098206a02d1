"""
Domain error taxonomy.

Every error raised by the service layer carries an explicit ``ErrorKind``.
The HTTP layer picks the response status from that kind alone; messages are
for humans and are never inspected to decide how to respond.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Classification of domain failures."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"

    @property
    def status_code(self) -> int:
        """HTTP status code used when this kind reaches the API boundary."""
        return _STATUS_BY_KIND[self]


_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INTERNAL: 500,
}


class DomainError(Exception):
    """
    Base exception for all domain errors.

    Args:
        message: Human readable description
        kind: Error classification, defaults to the class-level kind
        details: Structured data returned to the client (e.g. offending fields)
        **context: Extra data for logs only
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[ErrorKind] = None,
        details: Optional[dict[str, Any]] = None,
        **context: Any,
    ):
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.details = details or {}
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error body."""
        body: dict[str, Any] = {"error": self.message, "kind": self.kind.value}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(DomainError):
    """Raised when the request clashes with the current state."""

    kind = ErrorKind.CONFLICT


class ValidationError(DomainError):
    """Raised when a payload is malformed or breaks a business rule."""

    kind = ErrorKind.VALIDATION


class UnauthorizedError(DomainError):
    """Raised when no trustworthy actor identity is available."""

    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(DomainError):
    """Raised when the actor may not perform the operation."""

    kind = ErrorKind.FORBIDDEN


class LockedError(ForbiddenError):
    """Raised when a lock flag blocks a mutation."""

    pass


class InternalError(DomainError):
    """Raised when persistence or another dependency fails."""

    kind = ErrorKind.INTERNAL


class InvalidFieldsError(ValidationError):
    """Raised when a field patch contains keys outside the allow-list."""

    def __init__(self, fields: list[str], **context: Any):
        super().__init__(
            "Request contains fields that cannot be updated",
            details={"fields": sorted(fields)},
            **context,
        )
        self.fields = sorted(fields)


def check_allowed_fields(
    fields: dict[str, Any], allowed: frozenset[str], **context: Any
) -> None:
    """
    Reject a patch containing keys outside ``allowed``.

    Raises:
        InvalidFieldsError: If any key is not allowed
        ValidationError: If the patch is empty
    """
    invalid = [key for key in fields if key not in allowed]
    if invalid:
        raise InvalidFieldsError(invalid, **context)
    if not fields:
        raise ValidationError("No fields to update", **context)
