"""Domain models using Pydantic for validation."""

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import PublishMode
from .patterns import SubjectPatterns


def new_correlation_token() -> str:
    """Mint a correlation token that is safe to embed in a subject token."""
    return uuid.uuid4().hex


class PublishExpectations(BaseModel):
    """Constraints evaluated by the broker before it accepts a message.

    The client never checks these itself; it only attaches them to the
    request and surfaces a rejection as a PublishError.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
        strict=True,
        json_schema_extra={
            "example": {
                "msg_id": "order-42",
                "expected_stream": "ORDERS",
                "expected_last_seq": 41,
            }
        },
    )

    msg_id: str | None = Field(default=None, min_length=1, description="Deduplication ID")
    expected_stream: str | None = Field(default=None, min_length=1)
    expected_last_seq: int | None = Field(default=None, ge=0)
    expected_last_subject_seq: int | None = Field(default=None, ge=0)
    expected_last_msg_id: str | None = Field(default=None, min_length=1)

    def is_empty(self) -> bool:
        """Whether no constraint is set."""
        return all(value is None for value in self.model_dump().values())


class PublishRequest(BaseModel):
    """A single message submitted to the pipeline.

    Immutable once created. The correlation token is minted on construction
    and keys the request in the pending set until its outcome arrives.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        strict=True,
    )

    subject: str = Field(..., min_length=1, description="Publish subject")
    payload: bytes = Field(default=b"", description="Message body")
    correlation_token: str = Field(default_factory=new_correlation_token, min_length=1)
    expectations: PublishExpectations | None = Field(default=None)
    headers: dict[str, str] = Field(default_factory=dict, description="Extra message headers")
    mode: PublishMode = Field(default=PublishMode.ASYNC)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("subject")
    @classmethod
    def validate_subject(cls, v: str) -> str:
        """Publish subjects must be literal dot-separated tokens."""
        if not SubjectPatterns.is_valid_publish_subject(v):
            raise ValueError(
                f"Invalid subject '{v}'. Must be dot-separated tokens without "
                "whitespace or wildcards (e.g., 'orders.created')"
            )
        return v

    @field_validator("correlation_token")
    @classmethod
    def validate_correlation_token(cls, v: str) -> str:
        """Tokens become the last token of a reply subject."""
        if "." in v or any(c.isspace() for c in v) or v in ("*", ">"):
            raise ValueError(f"Invalid correlation token '{v}'")
        return v

    @property
    def msg_id(self) -> str | None:
        """Deduplication ID, if the caller supplied one."""
        return self.expectations.msg_id if self.expectations else None

    def with_new_token(self, created_at: datetime | None = None) -> "PublishRequest":
        """Copy of this request under a freshly minted correlation token.

        Used for explicit resubmission; the original token may still be
        resolved by a late acknowledgement.
        """
        return self.model_copy(
            update={
                "correlation_token": new_correlation_token(),
                "mode": PublishMode.ASYNC,
                "created_at": created_at or datetime.now(UTC),
            }
        )


class PublishAck(BaseModel):
    """Acknowledgement of a message persisted by the broker."""

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)

    stream: str = Field(..., min_length=1, description="Stream that stored the message")
    seq: int = Field(..., ge=1, description="Per-stream sequence number")
    duplicate: bool = Field(default=False, description="Collapsed by deduplication ID")
    domain: str | None = Field(default=None, description="JetStream domain, if any")


class PublishError(BaseModel):
    """Terminal failure outcome for a request."""

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)

    request: PublishRequest | None = Field(
        default=None,
        description="Original request; attached by the correlator when the transport omits it",
    )
    error_code: str = Field(..., min_length=1)
    error_text: str = Field(default="")


PublishOutcome = PublishAck | PublishError


class DrainResult(BaseModel):
    """Result of waiting for every pending publish to complete."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    complete: bool
    still_pending: list[PublishRequest] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when nothing was left pending."""
        return self.complete and not self.still_pending
