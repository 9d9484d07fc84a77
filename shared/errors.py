"""
Shared error handling for the cache layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class CacheLayerException(Exception):
    """Base exception for the cache layer."""

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


class StoreError(CacheLayerException):
    """Any failure talking to the key-value store."""


class StoreUnavailable(StoreError):
    """Store could not be reached in time (refused, closed, timed out)."""

    def __init__(self, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class StoreProtocolError(StoreError):
    """Store answered with an error or a reply we could not interpret."""

    def __init__(self, message: str = "Store protocol error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_PROTOCOL_ERROR", message, details)


class ConfigurationError(CacheLayerException):
    """Invalid or missing configuration."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)
