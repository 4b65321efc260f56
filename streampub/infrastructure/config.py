"""Configuration objects for the infrastructure layer."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..domain.models import PublishRequest
from ..domain.patterns import SubjectPatterns


class NATSConnectionConfig(BaseModel):
    """Strongly-typed configuration for the NATS publish transport.

    Connection establishment itself belongs to nats-py; this object only
    carries the parameters handed to ``nats.connect`` plus the JetStream and
    reply-inbox settings the transport needs.
    """

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        strict=True,
        validate_assignment=True,
    )

    servers: list[str] = Field(
        default_factory=lambda: ["nats://localhost:4222"],
        min_length=1,
        description="List of NATS server URLs",
    )
    name: str | None = Field(default=None, description="Client connection name")
    max_reconnect_attempts: int = Field(
        default=10,
        ge=-1,
        description="Maximum reconnection attempts (-1 retries forever)",
    )
    reconnect_time_wait: float = Field(
        default=2.0,
        gt=0,
        description="Time to wait between reconnection attempts in seconds",
    )
    js_domain: str | None = Field(
        default=None,
        description="JetStream domain for multi-tenancy",
    )
    inbox_prefix: str = Field(
        default="_INBOX",
        min_length=1,
        description="Prefix under which per-transport reply inboxes are created",
    )
    use_msgpack: bool = Field(
        default=True,
        description="Serialize model payloads with MessagePack instead of JSON",
    )

    @field_validator("servers")
    @classmethod
    def validate_servers(cls, v: list[str]) -> list[str]:
        """Validate server URLs format."""
        for server in v:
            if not server.startswith(("nats://", "tls://", "ws://", "wss://")):
                raise ValueError(
                    f"Invalid server URL: {server}. "
                    "Must start with nats://, tls://, ws://, or wss://"
                )
        return v

    @field_validator("inbox_prefix")
    @classmethod
    def validate_inbox_prefix(cls, v: str) -> str:
        """The prefix is published to, so it must be a literal subject."""
        if not SubjectPatterns.is_valid_publish_subject(v):
            raise ValueError(f"Invalid inbox prefix: {v}")
        return v

    @classmethod
    def from_env(cls, **overrides: Any) -> NATSConnectionConfig:
        """Build a config from NATS_URL (comma-separated) and NATS_JS_DOMAIN."""
        values: dict[str, Any] = {}
        if url := os.getenv("NATS_URL"):
            values["servers"] = [s.strip() for s in url.split(",") if s.strip()]
        if js_domain := os.getenv("NATS_JS_DOMAIN"):
            values["js_domain"] = js_domain
        values.update(overrides)
        return cls(**values)

    def to_connection_params(self) -> dict[str, Any]:
        """Convert to keyword arguments for ``nats.connect``."""
        params: dict[str, Any] = {
            "servers": self.servers,
            "max_reconnect_attempts": self.max_reconnect_attempts,
            "reconnect_time_wait": self.reconnect_time_wait,
            "inbox_prefix": self.inbox_prefix,
        }
        if self.name:
            params["name"] = self.name
        return params


class LogContext(BaseModel):
    """Structured fields attached to transport log lines.

    Passed to LoggerPort calls as keyword arguments via ``to_dict``.
    """

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    component: str | None = Field(default=None, description="Component generating the log")
    operation: str | None = Field(default=None, description="Operation being performed")
    subject: str | None = Field(default=None, description="Publish subject")
    correlation_token: str | None = Field(default=None, description="Pending request token")
    msg_id: str | None = Field(default=None, description="Deduplication ID, if any")
    error_code: str | None = Field(default=None, description="Broker or exception error code")
    error_type: str | None = Field(default=None, description="Qualified exception type")

    @classmethod
    def for_request(
        cls, request: PublishRequest, operation: str, component: str | None = None
    ) -> LogContext:
        return cls(
            component=component,
            operation=operation,
            subject=request.subject,
            correlation_token=request.correlation_token,
            msg_id=request.msg_id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Non-empty fields, including any extras."""
        return {k: v for k, v in self.model_dump().items() if v is not None}

    def with_error(self, error: BaseException) -> LogContext:
        """Copy of this context describing ``error``.

        Domain errors keep their own code; anything else is labelled by class.
        """
        error_type = type(error)
        return self.model_copy(
            update={
                "error_code": getattr(error, "error_code", None) or error_type.__name__,
                "error_type": f"{error_type.__module__}.{error_type.__name__}",
            }
        )
