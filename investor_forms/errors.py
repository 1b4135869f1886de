"""
Exception hierarchy for form persistence and workflow failures.

Field validation problems are never raised; they are returned as data in a
ValidationResult. Everything here describes a failure to persist, load or
submit a record, or an operation refused before any backend call.
"""

from typing import Any, Dict, Optional


class FormError(Exception):
    """Base exception for all form workflow errors."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging and API responses."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
        }


class PreconditionError(FormError):
    """
    An operation was refused locally before contacting the backend.

    Raised for submit without a created record, submit with outstanding
    validation errors, and saving a later page before the record exists.
    """

    def __init__(self, message: str, *, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.reason = reason
        super().__init__(message, details=details)


class PersistenceError(FormError):
    """Base class for backend record failures."""


class TransientPersistenceError(PersistenceError):
    """Network or server failure that may succeed when retried."""


class PersistedSaveFailure(PersistenceError):
    """A save exhausted its retry budget."""

    def __init__(self, message: str, *, attempts: int, last_error: Optional[BaseException] = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message, details={'attempts': attempts})


class RecordNotFoundError(PersistenceError):
    """No record with the requested id exists for the form type."""


class RecordConflictError(PersistenceError):
    """The record is in a state that does not allow the operation."""


class RecordValidationError(PersistenceError):
    """The stored record failed whole-form validation on submit."""

    def __init__(self, message: str, *, errors: Dict[str, str]) -> None:
        self.errors = errors
        super().__init__(message, details={'errors': errors})


class InvalidPageError(PersistenceError):
    """The page number does not exist on the form."""


class LoadFailure(FormError):
    """Fetching an existing record failed."""


# Backend failures a retry cannot fix
NON_RETRYABLE_ERRORS = (
    PreconditionError,
    RecordNotFoundError,
    RecordConflictError,
    RecordValidationError,
    InvalidPageError,
)
