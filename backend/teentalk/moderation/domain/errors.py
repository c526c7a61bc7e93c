"""Typed failures raised by the trust and moderation services."""

from __future__ import annotations


class ModerationError(Exception):
    """Base class for failures surfaced to trigger and API callers."""

    code = "internal"

    def __init__(self, message: str = "", **details: object) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details


class InvalidArgument(ModerationError):
    code = "invalid_argument"


class NotFound(ModerationError):
    code = "not_found"


class PermissionDenied(ModerationError):
    code = "permission_denied"


class InternalError(ModerationError):
    code = "internal"


class TransactionConflict(ModerationError):
    """A transaction observed a concurrent write and must be retried."""

    code = "aborted"
