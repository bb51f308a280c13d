"""
Exception hierarchy for depsync.

All public exceptions inherit from DepsyncError so callers can catch every
depsync failure in one place without swallowing unrelated errors.

    DepsyncError
    ├── ConfigurationError      bad parameters, always fatal
    ├── ResolutionError         unreadable upstream dependency tree
    └── ExportError             backend failures
        ├── ExportConnectionError   backend unreachable after retries
        ├── TransactionError        write failed, transaction rolled back
        ├── ConstraintError         backend rejected the data
        └── AuthError               backend rejected the credentials
"""

from typing import List, Optional


class DepsyncError(Exception):
    """Base exception for all depsync errors."""


class ConfigurationError(DepsyncError):
    """
    Raised when the export configuration is invalid.

    Never retried and never downgraded to a warning by the
    fail-on-error policy.

    Attributes:
        errors: Every validation message that was collected.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        super().__init__(message)


class ResolutionError(DepsyncError):
    """Raised when the upstream dependency tree cannot be read or is malformed."""


class ExportError(DepsyncError):
    """Raised when a backend operation fails."""


class ExportConnectionError(ExportError):
    """
    Raised when the backend stays unreachable after every retry attempt.

    Attributes:
        attempts: Number of attempts that were made.
    """

    def __init__(self, message: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message)


class TransactionError(ExportError):
    """Raised when a write fails mid-transaction. The transaction has been rolled back."""


class ConstraintError(ExportError):
    """Raised when the backend rejects data (constraint violation, malformed query)."""


class AuthError(ExportError):
    """Raised when the backend rejects the credentials or denies access."""
