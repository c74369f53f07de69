"""
Consolidated ShopifyCatalog Exception Hierarchy

All errors raised by the client core live here so callers can catch one
family and still tell transient failures apart from terminal ones.

Architecture:
- ShopifyCatalogException: base class with message, details and error code
- Configuration/validation errors raised before any request is made
- RequestError family raised while executing a logical request; each carries
  the request descriptor, resource type and attempt count once known
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional, List

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Failure categories the retry policy reasons about"""

    TRANSPORT = "transport"
    RATE_LIMITED = "rate_limited"
    SERVER = "server"
    CLIENT = "client"
    MALFORMED = "malformed"
    CANCELLED = "cancelled"


# =============================================================================
# Base Exception Classes
# =============================================================================


class ShopifyCatalogException(Exception):
    """Base exception for all ShopifyCatalog errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {"error_code": self.error_code, "message": self.message, "details": self.details}


class ConfigurationError(ShopifyCatalogException):
    """Raised when client configuration is invalid or missing."""

    def __init__(self, message: str, config_field: Optional[str] = None):
        super().__init__(message, error_code="CONFIGURATION_ERROR")
        self.config_field = config_field

        if config_field:
            self.details.update({"config_field": config_field})


class ResourceTypeNotRegisteredError(ConfigurationError):
    """Raised when a resource type tag has no registered schema."""

    def __init__(self, resource_type: str):
        super().__init__(f"Resource type '{resource_type}' is not registered")
        self.error_code = "RESOURCE_TYPE_NOT_REGISTERED"
        self.resource_type = resource_type
        self.details.update({"resource_type": resource_type})


class ValidationError(ShopifyCatalogException):
    """Raised when caller input is incomplete, e.g. a missing path parameter."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        super().__init__(message, error_code="VALIDATION_ERROR")
        self.missing_fields = missing_fields or []

        if missing_fields:
            self.details.update({"missing_fields": missing_fields})


# =============================================================================
# Request Errors
# =============================================================================


class RequestError(ShopifyCatalogException):
    """Base class for failures of a logical request."""

    kind: ErrorKind = ErrorKind.CLIENT
    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message, error_code=error_code or "REQUEST_ERROR")
        self.status_code = status_code
        self.response_data = response_data or {}
        self.resource_type: Optional[str] = None
        self.request = None
        self.attempts = 0

        if status_code is not None:
            self.details.update({"status_code": status_code})

    def attach_context(self, request, attempts: int) -> "RequestError":
        """Record which request failed and after how many attempts."""
        self.request = request
        self.resource_type = getattr(request, "resource_type", None)
        self.attempts = attempts
        self.details.update(
            {
                "resource_type": self.resource_type,
                "method": getattr(request, "method", None),
                "endpoint": getattr(request, "endpoint", None),
                "attempts": attempts,
            }
        )
        return self


class TransportError(RequestError):
    """Raised when the connection fails or no response arrives."""

    kind = ErrorKind.TRANSPORT
    retryable = True

    def __init__(self, message: str = "Network error", **kwargs):
        kwargs.setdefault("error_code", "TRANSPORT_ERROR")
        super().__init__(message, **kwargs)


class RequestTimeoutError(TransportError):
    """Raised when an exchange or the logical request deadline times out."""

    def __init__(self, message: str = "Request timeout", timeout_duration: Optional[float] = None, **kwargs):
        kwargs.setdefault("error_code", "TIMEOUT_ERROR")
        super().__init__(message, **kwargs)
        self.timeout_duration = timeout_duration

        if timeout_duration is not None:
            self.details.update({"timeout_duration": timeout_duration})


class RateLimitRejected(RequestError):
    """Raised when the platform answers 429 Too Many Requests."""

    kind = ErrorKind.RATE_LIMITED
    retryable = True

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None, **kwargs):
        kwargs.setdefault("status_code", 429)
        kwargs.setdefault("error_code", "RATE_LIMIT_ERROR")
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        # Backoff chosen by the governor when the server sent no Retry-After
        self.throttle_delay: Optional[float] = None

        if retry_after is not None:
            self.details.update({"retry_after": retry_after})


class ServerError(RequestError):
    """Raised when the platform returns a 5xx status."""

    kind = ErrorKind.SERVER
    retryable = True

    def __init__(self, message: str = "Server error", **kwargs):
        kwargs.setdefault("error_code", "SERVER_ERROR")
        super().__init__(message, **kwargs)


class ClientError(RequestError):
    """Raised for 4xx statuses other than 429; never retried."""

    kind = ErrorKind.CLIENT

    def __init__(self, message: str = "Client error", **kwargs):
        kwargs.setdefault("error_code", "CLIENT_ERROR")
        super().__init__(message, **kwargs)


class AuthenticationError(ClientError):
    """Raised when the access token is missing, invalid or lacks scope."""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        kwargs.setdefault("status_code", 401)
        kwargs.setdefault("error_code", "AUTHENTICATION_ERROR")
        super().__init__(message, **kwargs)


class ResourceNotFoundError(ClientError):
    """Raised when the requested resource does not exist."""

    def __init__(self, message: str = "Resource not found", resource_id: Optional[Any] = None, **kwargs):
        kwargs.setdefault("status_code", 404)
        kwargs.setdefault("error_code", "RESOURCE_NOT_FOUND")
        super().__init__(message, **kwargs)
        self.resource_id = resource_id

        if resource_id is not None:
            self.details.update({"resource_id": resource_id})


class CodecError(RequestError):
    """Raised when a payload cannot be mapped to or from a record."""

    kind = ErrorKind.MALFORMED

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "CODEC_ERROR")
        super().__init__(message, **kwargs)


class MalformedPayloadError(CodecError):
    """Raised when a payload is not valid structured data for the declared shape."""

    def __init__(self, message: str, resource_type: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "MALFORMED_PAYLOAD")
        super().__init__(message, **kwargs)
        self.resource_type = resource_type

        if resource_type:
            self.details.update({"resource_type": resource_type})


class RetriesExhausted(RequestError):
    """Raised when the retry budget (attempts or deadline) is used up."""

    def __init__(self, last_error: RequestError, attempts: int, reason: str = "max attempts reached"):
        super().__init__(
            f"Request failed after {attempts} attempt(s) ({reason}). Last error: {last_error.message}",
            status_code=last_error.status_code,
            response_data=last_error.response_data,
            error_code="RETRIES_EXHAUSTED",
        )
        self.kind = last_error.kind
        self.last_error = last_error
        self.attempts = attempts
        self.details.update({"last_error": last_error.to_dict(), "reason": reason})


class RequestCancelledError(RequestError):
    """Raised when a caller cancels a logical request through its token."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Request cancelled", reason: Optional[str] = None):
        super().__init__(message, error_code="REQUEST_CANCELLED")
        self.reason = reason

        if reason:
            self.details.update({"reason": reason})


# =============================================================================
# Exception Logging Helpers
# =============================================================================


def log_exception(exception: Exception, context: Optional[str] = None, extra_info: Optional[Dict[str, Any]] = None):
    """
    Centralized exception logging with consistent format.

    Args:
        exception: The exception to log
        context: Additional context about where the exception occurred
        extra_info: Additional information to include in the log
    """
    if isinstance(exception, ShopifyCatalogException):
        log_data = {
            "error_code": exception.error_code,
            "error_message": exception.message,  # LogRecord reserves "message"
            "details": exception.details,
            "context": context,
        }

        if extra_info:
            log_data.update(extra_info)

        logger.error(f"ShopifyCatalog Error: {exception.message}", extra=log_data)
    else:
        log_data = {
            "exception_type": type(exception).__name__,
            "error_message": str(exception),
            "context": context,
        }

        if extra_info:
            log_data.update(extra_info)

        logger.error(f"Unexpected Error: {str(exception)}", extra=log_data)
