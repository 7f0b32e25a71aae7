"""
Shared error handling for hcache.

Every failure surfaced by a cache is a CacheException. Callers are expected
to treat KeyNotFoundError as a normal miss and everything else as a failed
operation.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class CacheException(Exception):
    """Base exception for cache errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


def _describe(error: Optional[BaseException]) -> Dict[str, Any]:
    if error is None:
        return {}
    return {
        "original_error": str(error),
        "original_error_type": type(error).__name__,
    }


class KeyNotFoundError(CacheException):
    """Raised by get when the key is absent or has expired."""

    def __init__(self, key: str, cache_name: Optional[str] = None, store_key: Optional[str] = None):
        self.key = key
        details: Dict[str, Any] = {"key": key}
        if cache_name is not None:
            details["cache"] = cache_name
        if store_key is not None:
            details["store_key"] = store_key
        super().__init__("CACHE_KEY_NOT_FOUND", f"Cache key not found: {key}", details)


class SerializationError(CacheException):
    """Marshal or unmarshal of a cache value failed."""

    def __init__(
        self,
        message: str,
        operation: str,
        value_type: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.operation = operation
        self.original_error = original_error
        details: Dict[str, Any] = {"operation": operation}
        if value_type:
            details["value_type"] = value_type
        details.update(_describe(original_error))
        super().__init__("CACHE_SERIALIZATION_ERROR", message, details)


class StoreError(CacheException):
    """The backing store failed to execute an operation."""

    def __init__(
        self,
        operation: str,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        message: Optional[str] = None,
        code: str = "CACHE_STORE_ERROR",
    ):
        self.operation = operation
        self.key = key
        self.original_error = original_error
        details: Dict[str, Any] = {"operation": operation}
        if key is not None:
            details["key"] = key
        details.update(_describe(original_error))
        if message is None:
            message = f"Cache store operation '{operation}' failed"
            if original_error is not None:
                message = f"{message}: {original_error}"
        super().__init__(code, message, details)


class StoreTimeoutError(StoreError):
    """A store operation did not finish within its deadline."""

    def __init__(
        self,
        operation: str,
        timeout_seconds: Optional[float] = None,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.timeout_seconds = timeout_seconds
        if timeout_seconds is not None:
            message = f"Cache store operation '{operation}' timed out after {timeout_seconds}s"
        else:
            message = f"Cache store operation '{operation}' timed out"
        super().__init__(
            operation,
            key=key,
            original_error=original_error,
            message=message,
            code="CACHE_STORE_TIMEOUT",
        )
        if timeout_seconds is not None:
            self.details["timeout_seconds"] = timeout_seconds
