"""Error taxonomy shared by the exam lifecycle services.

Each error carries the HTTP status a transport layer should answer with.
"""
from typing import Any, Optional


class CBTError(Exception):
    status_code = 500

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(CBTError):
    """Referenced exam, submission or account does not exist."""
    status_code = 404


class ConflictError(CBTError):
    """A conditional update lost its precondition, or a uniqueness constraint fired.

    Losing the auto-submit race is an expected outcome and is never logged as an error.
    """
    status_code = 409


class ExamNotActiveError(ConflictError):
    pass


class ValidationError(CBTError):
    status_code = 422


class PermissionDeniedError(CBTError):
    status_code = 403


class NotificationError(CBTError):
    """Notifier dispatch failed. Logged by the caller, never propagated."""
    status_code = 502


class StoreUnavailableError(CBTError):
    """The store could not be reached; the current sweep is aborted."""
    status_code = 503
