from enum import Enum
from typing import Any, Dict, Optional

PREVIEW_LIMIT = 200


def truncate(text: Any, limit: int = PREVIEW_LIMIT) -> str:
    """Return at most `limit` characters of `text`, marking the cut."""
    text = text if isinstance(text, str) else repr(text)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class ErrorCategory(str, Enum):
    """Closed set of failure categories surfaced to callers."""
    BAD_REQUEST = "bad_request"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_INVALID = "upstream_invalid"
    INTERNAL = "internal"

    @property
    def http_status(self) -> int:
        return {
            ErrorCategory.BAD_REQUEST: 400,
            ErrorCategory.UPSTREAM_UNAVAILABLE: 503,
            ErrorCategory.UPSTREAM_INVALID: 502,
            ErrorCategory.INTERNAL: 500,
        }[self]


class GenUIError(Exception):
    """Base exception class for the generation pipeline."""
    category = ErrorCategory.INTERNAL

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(GenUIError):
    """Raised when a configuration value is missing or outside its limits."""
    category = ErrorCategory.BAD_REQUEST


class RequestValidationError(GenUIError):
    """Raised when a generation request is malformed."""
    category = ErrorCategory.BAD_REQUEST


class SerializationError(GenUIError):
    """Raised when request input cannot be canonically serialized."""
    category = ErrorCategory.BAD_REQUEST


# --- Provider selection ---

class SelectionError(GenUIError):
    category = ErrorCategory.UPSTREAM_UNAVAILABLE


class UnknownProviderError(SelectionError):
    """Raised when a provider name is not registered."""


class NoModelAvailableError(SelectionError):
    """Raised when no catalog model fits the memory budget."""


class ProviderUnavailableError(SelectionError):
    """Raised when availability probing finds no usable backend."""


# --- Provider calls ---

class ProviderError(GenUIError):
    category = ErrorCategory.UPSTREAM_UNAVAILABLE
    retryable = False


class ProviderTimeoutError(ProviderError, TimeoutError):
    """The backend did not answer within the call deadline."""
    retryable = True


class BackendError(ProviderError):
    """The backend reported a failure or could not be reached."""
    retryable = True


class ResponseShapeError(ProviderError):
    """The backend answered, but without a usable text field."""
    category = ErrorCategory.UPSTREAM_INVALID


# --- Output contract ---

class ContractViolation(GenUIError):
    """Base for output contract failures; `field` names the failing clause."""
    category = ErrorCategory.UPSTREAM_INVALID

    def __init__(self, message: str, field: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.field = field


class InvalidFormatError(ContractViolation):
    """Raw output is not parseable JSON."""


class NotAnObjectError(ContractViolation):
    """Parsed output (or a nested section) is not a JSON object."""


class MissingFieldError(ContractViolation):
    """A required field is absent."""


class FieldTypeError(ContractViolation):
    """A field is present but of the wrong type."""


class CacheError(GenUIError):
    """Raised when the cache store malfunctions. Never fatal to generation."""


def categorize(exc: BaseException) -> ErrorCategory:
    if isinstance(exc, GenUIError):
        return exc.category
    return ErrorCategory.INTERNAL


def error_payload(exc: BaseException) -> Dict[str, Any]:
    """User-visible error body with bounded diagnostic detail."""
    category = categorize(exc)
    payload: Dict[str, Any] = {
        "error": category.value,
        "type": type(exc).__name__,
        "message": truncate(str(exc)),
    }
    field = getattr(exc, "field", None)
    if field:
        payload["field"] = field
    return payload
