"""
Error hierarchy for the token vault.

Each error class carries its own ErrorCode and HTTP-style status; call sites
may override either. Errors log themselves when constructed, so callers only
decide whether to propagate or degrade.

Context values must never include token material or key bytes.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

_thread_local = threading.local()


class ErrorCode(str, Enum):
    """Stable codes surfaced in to_dict() and logs."""

    # System (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONFIGURATION_ERROR = "1003"

    # Input (2xxx)
    VALIDATION_FAILED = "2000"
    INVALID_FORMAT = "2001"

    # Lookup (3xxx)
    NOT_FOUND = "3000"

    # Security (4xxx)
    AUTHENTICATION_FAILED = "4005"


class BaseError(Exception):
    """Root of the hierarchy: code, status, context and correlation id."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        error_code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **context: Any,
    ):
        self.message = message or self.default_message
        if error_code is not None:
            self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
        self.cause = cause
        self.error_id = str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc).isoformat()

        self.context: Dict[str, Any] = dict(context, error_id=self.error_id)
        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id
        if cause is not None:
            self.context["cause"] = {
                "type": type(cause).__name__,
                "message": str(cause),
                "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
            }

        super().__init__(self.message)
        self._log()

    def public_context(self) -> Dict[str, Any]:
        """Context without the cause, error id and correlation id."""
        hidden = ("cause", "error_id", "correlation_id")
        return {k: v for k, v in self.context.items() if k not in hidden}

    def _log(self) -> None:
        # The logger reads config; import late so config can import this module
        from .utils.logger import get_logger

        extra = {
            "error_id": self.error_id,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "context": self.public_context(),
        }
        if "correlation_id" in self.context:
            extra["correlation_id"] = self.context["correlation_id"]

        text = f"{type(self).__name__} [{self.error_code.value}]: {self.message}"
        if self.status_code >= 500:
            get_logger().error(text, extra=extra, exc_info=self.cause)
        else:
            get_logger().warning(text, extra=extra)

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """Response body for API callers. The cause traceback is never included."""
        body: Dict[str, Any] = {
            "id": self.error_id,
            "code": self.error_code.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": self.public_context(),
        }
        if "correlation_id" in self.context:
            body["correlation_id"] = self.context["correlation_id"]
        if include_cause and "cause" in self.context:
            cause = self.context["cause"]
            body["cause"] = {"type": cause["type"], "message": cause["message"]}
        return {"error": body}

    def add_context(self, **kwargs: Any) -> "BaseError":
        self.context.update(kwargs)
        return self


class RepositoryError(BaseError):
    """A database operation failed."""

    error_code = ErrorCode.DATABASE_ERROR
    default_message = "Database operation failed"


class ValidationError(BaseError):
    error_code = ErrorCode.VALIDATION_FAILED
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None, **kwargs: Any):
        if field:
            kwargs["field"] = field
        super().__init__(message, **kwargs)


class ConfigurationError(BaseError):
    """Required configuration is absent or invalid. Not retryable."""

    error_code = ErrorCode.CONFIGURATION_ERROR
    default_message = "Invalid configuration"

    def __init__(self, message: Optional[str] = None, setting: Optional[str] = None, **kwargs: Any):
        if setting:
            kwargs["setting"] = setting
        super().__init__(message, **kwargs)


class TokenCipherError(BaseError):
    """A stored token could not be decoded or decrypted."""


class MalformedPayloadError(TokenCipherError):
    """Not the three-field payload structure, or a field has the wrong length."""

    error_code = ErrorCode.INVALID_FORMAT
    status_code = 422
    default_message = "Malformed encrypted payload"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None, **kwargs: Any):
        if field:
            kwargs["field"] = field
        super().__init__(message, **kwargs)


class AuthenticationFailureError(TokenCipherError):
    """GCM tag verification failed: tampered data, wrong key or wrong nonce."""

    error_code = ErrorCode.AUTHENTICATION_FAILED
    status_code = 401
    default_message = "Encrypted payload failed authentication"


class IntegrationNotConnectedError(BaseError):
    """No usable token for the requested provider."""

    error_code = ErrorCode.NOT_FOUND
    status_code = 404
    default_message = "Integration not connected"


def not_found(
    resource_type: str, cause: Optional[BaseException] = None, **identifiers: Any
) -> RepositoryError:
    """RepositoryError with NOT_FOUND and status 404, naming the identifiers."""
    message = f"{resource_type} not found"
    if identifiers:
        message += ": " + ", ".join(f"{k}={v}" for k, v in identifiers.items())
    return RepositoryError(
        message,
        error_code=ErrorCode.NOT_FOUND,
        status_code=404,
        cause=cause,
        resource_type=resource_type,
        **identifiers,
    )


def validation_failed(
    field: str, value: Any, reason: str, cause: Optional[BaseException] = None
) -> ValidationError:
    """ValidationError for one field; the value is recorded as its str()."""
    return ValidationError(
        f"Validation failed for {field}: {reason}",
        field=field,
        cause=cause,
        value=str(value),
        reason=reason,
    )


def set_correlation_id(correlation_id: str) -> None:
    _thread_local.correlation_id = correlation_id


def get_correlation_id() -> Optional[str]:
    return getattr(_thread_local, "correlation_id", None)


def clear_correlation_id() -> None:
    if hasattr(_thread_local, "correlation_id"):
        del _thread_local.correlation_id
