"""Domain layer - Publish requests, outcomes and error taxonomy."""

from .enums import ErrorCode, PublishMode
from .exceptions import (
    AckTimeoutError,
    BackpressureTimeoutError,
    BrokerRejectedError,
    PublishFailedError,
    SerializationError,
    StaleAckError,
    StreamPubError,
    TransportError,
    ValidationError,
)
from .models import (
    DrainResult,
    PublishAck,
    PublishError,
    PublishExpectations,
    PublishOutcome,
    PublishRequest,
    new_correlation_token,
)
from .patterns import SubjectPatterns
from .types import ErrorHandler, OutcomeCallback

__all__ = [
    "AckTimeoutError",
    "BackpressureTimeoutError",
    "BrokerRejectedError",
    "DrainResult",
    "ErrorCode",
    "ErrorHandler",
    "OutcomeCallback",
    "PublishAck",
    "PublishError",
    "PublishExpectations",
    "PublishFailedError",
    "PublishMode",
    "PublishOutcome",
    "PublishRequest",
    "SerializationError",
    "StaleAckError",
    "StreamPubError",
    "SubjectPatterns",
    "TransportError",
    "ValidationError",
    "new_correlation_token",
]
