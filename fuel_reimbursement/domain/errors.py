"""Error taxonomy shared by every layer of the reimbursement engine."""
from __future__ import annotations


class ReimbursementError(Exception):
    """Base class for all errors raised deliberately by the engine."""


class InputError(ReimbursementError):
    """A single telemetry row could not be interpreted; the row is skipped."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        super().__init__(message)
        self.line_number = line_number


class UnreadableInputError(InputError):
    """The telemetry input as a whole could not be read."""


class ValidationError(ReimbursementError):
    """An operation was rejected before any state was changed."""


class NotFoundError(ReimbursementError):
    """A referenced collaborator, record or external id does not exist."""


class ConflictError(ReimbursementError):
    """The target already exists and the caller has not confirmed an overwrite."""


class ConnectivityError(ReimbursementError):
    """The external system of record could not be reached."""


class AuditError(ReimbursementError):
    """An audit entry could not be written."""


class StorageError(ReimbursementError):
    """The local store rejected or could not complete a write."""
