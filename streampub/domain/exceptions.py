"""Domain-specific exceptions for the publish pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import PublishError, PublishRequest


class StreamPubError(Exception):
    """Base exception for all streampub errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(StreamPubError):
    """Domain validation errors."""

    pass


class SerializationError(StreamPubError):
    """Serialization/deserialization errors."""

    pass


class TransportError(StreamPubError):
    """Transport is not started or the broker connection is unavailable."""

    pass


class PublishFailedError(StreamPubError):
    """A single publish did not produce an acknowledgement."""

    def __init__(self, message: str, request: PublishRequest | None = None):
        super().__init__(message)
        self.request = request
        if request is not None:
            self.details["subject"] = request.subject
            self.details["correlation_token"] = request.correlation_token


class BackpressureTimeoutError(PublishFailedError):
    """Raised when the pending window stayed full longer than allowed."""

    def __init__(
        self,
        request: PublishRequest | None = None,
        max_pending: int | None = None,
        timeout: float | None = None,
    ):
        super().__init__(
            f"Pending window full ({max_pending} in flight) for {timeout}s",
            request=request,
        )
        self.max_pending = max_pending
        self.timeout = timeout
        self.details["max_pending"] = max_pending
        self.details["timeout"] = timeout


class AckTimeoutError(PublishFailedError):
    """Raised when no outcome arrived before the deadline.

    The request stays in the pending set unless the timeout came from the
    expiry sweep; a late acknowledgement is still correlated.
    """

    def __init__(self, request: PublishRequest | None = None, timeout: float | None = None):
        super().__init__(f"No acknowledgement received within {timeout}s", request=request)
        self.timeout = timeout
        self.details["timeout"] = timeout


class BrokerRejectedError(PublishFailedError):
    """Raised when the broker refused the publish or a client-side failure resolved it."""

    def __init__(self, error: PublishError):
        super().__init__(
            f"Publish rejected [{error.error_code}]: {error.error_text}",
            request=error.request,
        )
        self.error = error
        self.error_code = error.error_code
        self.error_text = error.error_text
        self.details["error_code"] = error.error_code


class StaleAckError(StreamPubError):
    """An outcome arrived for a correlation token that is not pending.

    Never escapes the correlator; it is logged and discarded there.
    """

    def __init__(self, correlation_token: str):
        super().__init__(
            f"No pending publish for correlation token '{correlation_token}'",
            details={"correlation_token": correlation_token},
        )
        self.correlation_token = correlation_token
