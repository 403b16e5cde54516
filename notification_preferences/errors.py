"""
Notification preference error hierarchy.

Provides:
- PreferenceError: base for all preference failures
- PreferenceValidationError: a partial update or payload failed validation
- PreferenceSaveError: the store rejected a write (always surfaced)
- PreferenceLoadError: the stored record could not be read (always recovered)
"""

from typing import Any, Optional

from pydantic import ValidationError


class PreferenceError(Exception):
    """Base exception for preference engine failures."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class PreferenceValidationError(PreferenceError):
    """Raised when an update would produce an invalid preference aggregate."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            details=details,
        )


class PreferenceSaveError(PreferenceError):
    """
    Raised when persisting preferences fails.

    The in-memory cache is left as it was before the failed save.
    """

    def __init__(self, storage_key: str, cause: Optional[Exception] = None):
        self.storage_key = storage_key
        self.cause = cause
        super().__init__(
            code="PREFERENCES_SAVE_FAILED",
            message="Failed to save preferences",
            details={"storage_key": storage_key},
        )


class PreferenceLoadError(PreferenceError):
    """Raised internally when a stored record is unreadable or malformed."""

    def __init__(self, storage_key: str, detail: str):
        self.storage_key = storage_key
        self.detail = detail
        super().__init__(
            code="PREFERENCES_LOAD_FAILED",
            message=f"Failed to load preferences from {storage_key}: {detail}",
            details={"storage_key": storage_key},
        )


def validation_details(exc: ValidationError) -> dict[str, Any]:
    """JSON-safe details for a pydantic ValidationError."""
    return {
        "errors": [
            {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
            for e in exc.errors(include_url=False)
        ]
    }
