"""Exceptions raised by DinnerTableMatch."""
from __future__ import annotations


class DinnerTableError(Exception):
    """Base exception for the package."""

    code = "error"

    def __init__(self, message: str = "Operation failed"):
        self.message = message
        super().__init__(self.message)


class StoreError(DinnerTableError):
    """The document store could not complete a read or write."""

    code = "store_unavailable"

    def __init__(self, message: str = "Document store unavailable"):
        super().__init__(message)


class StoreConflictError(StoreError):
    """A batch precondition failed because another client wrote first."""

    code = "conflict"

    def __init__(self, message: str = "Tables changed concurrently, reload and retry"):
        super().__init__(message)


class PermissionDeniedError(DinnerTableError):
    """The caller's role does not allow the operation."""

    code = "forbidden"

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class OperationInProgressError(DinnerTableError):
    """A mutation is already pending for this client."""

    code = "busy"

    def __init__(self, message: str = "Another table operation is still pending"):
        super().__init__(message)


class InvalidSettingsError(DinnerTableError, ValueError):
    """Settings values are out of range."""

    code = "invalid_settings"

    def __init__(self, message: str = "Invalid settings"):
        super().__init__(message)
