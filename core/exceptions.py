# =============================================================================
# Custom Exceptions for Nine Picture Grid
# =============================================================================

import traceback
from typing import Any, Dict, Optional


class GridAppError(Exception):
    """Base exception class for Nine Picture Grid."""
    pass


class ValidationError(GridAppError):
    """Raised when user input fails validation (wrong file type, missing file, bad slot)."""
    pass


class SlotBusyError(ValidationError):
    """Raised when an action targets a slot that already has one in flight."""
    pass


class AuthenticationError(GridAppError):
    """Raised when there is no valid session or the auth service rejects a call."""

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class BackendServiceError(GridAppError):
    """Raised when a call to the backend service fails."""

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None,
                 details: Any = None):
        super().__init__(message)
        self.status = status
        self.code = code
        self.details = details


class LocalStorageError(GridAppError):
    """Raised when local persistence cannot be read or written."""
    pass


class ConfigurationError(GridAppError):
    """Raised when configuration is invalid."""
    pass


def describe_error(exc: BaseException) -> Dict[str, Any]:
    """Diagnostic payload attached to error log entries."""
    info: Dict[str, Any] = {
        "error": str(exc) or exc.__class__.__name__,
        "name": exc.__class__.__name__,
    }
    for attr in ("status", "code", "details"):
        value = getattr(exc, attr, None)
        if value is not None:
            info[attr] = value
    if exc.__traceback__ is not None:
        info["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return info
