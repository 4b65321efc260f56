"""Domain enums for type safety and consistency.

This module centralizes the enumeration types used across the publisher,
preventing string literal errors in outcome handling.
"""

from enum import Enum


class PublishMode(str, Enum):
    """How the caller consumes the outcome of a publish.

    Both modes share one submission path; they differ only in whether the
    caller awaits the outcome or receives a deferred handle.
    """

    SYNC = "sync"  # Caller awaits the ack before returning
    ASYNC = "async"  # Caller receives a future immediately after acceptance


class ErrorCode(str, Enum):
    """Client-side error codes attached to a PublishError.

    Broker rejections keep the broker's own code (for example ``"10071"``);
    these codes cover failures that originate on the client.
    """

    ACK_TIMEOUT = "ack_timeout"  # No outcome arrived before the expiry deadline
    SEND_FAILED = "send_failed"  # Transport could not hand the request to the broker
    NO_RESPONDERS = "no_responders"  # No stream is bound to the subject
    MALFORMED_ACK = "malformed_ack"  # Reply could not be decoded
    CLOSED = "closed"  # Publisher closed before an outcome arrived
