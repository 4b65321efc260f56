"""Publish pipeline - synchronous and asynchronous publishing over one submission path."""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from streampub.domain.enums import ErrorCode, PublishMode
from streampub.domain.exceptions import (
    AckTimeoutError,
    SerializationError,
    TransportError,
)
from streampub.domain.models import (
    DrainResult,
    PublishAck,
    PublishError,
    PublishExpectations,
    PublishRequest,
)
from streampub.infrastructure.in_memory_metrics import InMemoryMetrics

from .ack_correlator import AckCorrelator
from .pending_window import PendingEntry, PendingWindow

if TYPE_CHECKING:
    from streampub.ports.clock import ClockPort
    from streampub.ports.logger import LoggerPort
    from streampub.ports.metrics import MetricsPort
    from streampub.ports.serializer import SerializerPort
    from streampub.ports.transport import PublishTransportPort

CONTENT_TYPE_HEADER = "Content-Type"


class PublisherConfig(BaseModel):
    """Configuration DTO for the publish pipeline."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    max_pending_async: int = Field(default=4000, ge=1, description="Pending window size")
    publish_timeout: float = Field(
        default=5.0, ge=0, description="Seconds a synchronous publish waits for its ack"
    )
    backpressure_timeout: float | None = Field(
        default=None,
        ge=0,
        description="Seconds a submission waits for a window slot; None uses publish_timeout",
    )
    ack_expiry: float | None = Field(
        default=None,
        gt=0,
        description="Seconds after which unacknowledged publishes are expired; None disables",
    )
    sweep_interval: float = Field(default=1.0, gt=0, description="Seconds between expiry sweeps")
    error_handler: Callable[..., Any] | None = Field(
        default=None,
        exclude=True,
        description="Called with (PublishError, PublishRequest) for failed async publishes",
    )

    @model_validator(mode="after")
    def validate_sweep(self) -> PublisherConfig:
        """Sweeping slower than the expiry would let entries linger past their deadline."""
        if self.ack_expiry is not None and self.sweep_interval > self.ack_expiry:
            raise ValueError("sweep_interval must not exceed ack_expiry")
        return self

    @property
    def effective_backpressure_timeout(self) -> float:
        if self.backpressure_timeout is None:
            return self.publish_timeout
        return self.backpressure_timeout

    @classmethod
    def from_env(cls, **overrides: Any) -> PublisherConfig:
        """Build a config from STREAMPUB_* environment variables."""
        values: dict[str, Any] = {}
        if max_pending := os.getenv("STREAMPUB_MAX_PENDING"):
            values["max_pending_async"] = int(max_pending)
        if publish_timeout := os.getenv("STREAMPUB_PUBLISH_TIMEOUT"):
            values["publish_timeout"] = float(publish_timeout)
        if ack_expiry := os.getenv("STREAMPUB_ACK_EXPIRY"):
            values["ack_expiry"] = float(ack_expiry)
        values.update(overrides)
        return cls(**values)


class Publisher:
    """Flow-controlled publisher that tracks acknowledgements by correlation token.

    ``publish`` blocks the calling task until the ack arrives; ``publish_async``
    returns a future as soon as the request is accepted into the pending window.
    Both go through the same submission path and are resolved by the same
    correlator. Failed publishes are never resent automatically; use
    ``resubmit`` for explicit, caller-driven retries.
    """

    def __init__(
        self,
        transport: PublishTransportPort,
        config: PublisherConfig | None = None,
        *,
        logger: LoggerPort | None = None,
        metrics: MetricsPort | None = None,
        clock: ClockPort | None = None,
        serializer: SerializerPort | None = None,
    ) -> None:
        """Initialize the publisher.

        Args:
            transport: Broker transport used to send requests and receive outcomes
            config: Pipeline configuration. If not provided, uses defaults.
            logger: Optional logger port
            metrics: Optional metrics port. If not provided, uses in-memory metrics.
            clock: Optional clock used to stamp requests for expiry
            serializer: Serializer for pydantic payloads
        """
        self._transport = transport
        self._config = config or PublisherConfig()
        self._logger = logger
        self._metrics = metrics or InMemoryMetrics()
        self._clock = clock
        self._serializer = serializer

        self._window = PendingWindow(self._config.max_pending_async, self._metrics, logger)
        self._correlator = AckCorrelator(
            self._window,
            self._metrics,
            logger,
            error_handler=self._config.error_handler,
        )
        self._sweeper: asyncio.Task | None = None

    @property
    def config(self) -> PublisherConfig:
        return self._config

    @property
    def pending_count(self) -> int:
        return self._window.pending_count

    @property
    def correlator(self) -> AckCorrelator:
        return self._correlator

    @property
    def metrics(self) -> MetricsPort:
        return self._metrics

    @property
    def is_started(self) -> bool:
        return self._transport.is_started

    def pending_requests(self) -> list[PublishRequest]:
        """Requests still waiting for an outcome, in submission order."""
        return self._window.snapshot()

    # Lifecycle
    async def start(self) -> None:
        """Start receiving outcomes and, if configured, the expiry sweep."""
        await self._transport.start(self._correlator.resolve)
        if self._config.ack_expiry is not None and self._sweeper is None:
            max_age = timedelta(seconds=self._config.ack_expiry)
            self._sweeper = asyncio.create_task(self._sweep_loop(max_age))
        if self._logger:
            self._logger.info(
                "Publisher started",
                max_pending=self._config.max_pending_async,
                publish_timeout=self._config.publish_timeout,
            )

    async def close(self, drain_timeout: float | None = None) -> DrainResult | None:
        """Stop the publisher, optionally draining pending publishes first.

        Once the transport is closed no outcome can arrive, so every request
        still pending is failed with a ``closed`` error: its future raises and
        the error observer sees it. Observer calls are finished before this
        returns.

        Args:
            drain_timeout: If given, wait up to this many seconds for pending
                publishes before closing the transport.

        Returns:
            The drain result when a drain was requested, otherwise None. Its
            ``still_pending`` lists the requests that were then failed.
        """
        result = None
        if drain_timeout is not None:
            result = await self.await_all_complete(drain_timeout)

        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None

        await self._transport.close()
        abandoned = await self._fail_pending("publisher closed before an outcome arrived")
        await self._correlator.flush_observers()

        if self._logger:
            self._logger.info("Publisher closed", abandoned=abandoned)
        return result

    async def __aenter__(self) -> Publisher:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close(drain_timeout=self._config.publish_timeout)

    # Publishing
    async def publish(
        self,
        subject: str,
        payload: bytes | BaseModel = b"",
        expectations: PublishExpectations | None = None,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> PublishAck:
        """Publish and wait for the broker's acknowledgement.

        Raises:
            BackpressureTimeoutError: If the pending window stayed full
            AckTimeoutError: If no outcome arrived within ``timeout``. The
                request stays pending and a late outcome is still correlated.
            BrokerRejectedError: If the broker refused the message
        """
        timeout = self._config.publish_timeout if timeout is None else timeout
        request = self._build_request(subject, payload, expectations, headers, PublishMode.SYNC)

        with self._metrics.timer("publish.sync"):
            entry = await self._submit(request)
            try:
                return await asyncio.wait_for(asyncio.shield(entry.future), timeout)
            except TimeoutError:
                self._metrics.increment("publish.ack_timeouts")
                if self._logger:
                    self._logger.warning(
                        "Timed out waiting for publish ack",
                        subject=subject,
                        correlation_token=request.correlation_token,
                        timeout=timeout,
                    )
                raise AckTimeoutError(request=request, timeout=timeout) from None

    async def publish_async(
        self,
        subject: str,
        payload: bytes | BaseModel = b"",
        expectations: PublishExpectations | None = None,
        *,
        headers: dict[str, str] | None = None,
    ) -> asyncio.Future[PublishAck]:
        """Publish without waiting for the acknowledgement.

        Suspends only while the pending window is full.

        Returns:
            Future resolved with the PublishAck, or failed with a PublishFailedError
        """
        request = self._build_request(subject, payload, expectations, headers, PublishMode.ASYNC)
        entry = await self._submit(request)
        return entry.future

    async def resubmit(self, request: PublishRequest) -> asyncio.Future[PublishAck]:
        """Explicitly republish a request under a fresh correlation token.

        Expectations travel with the copy, so a deduplication ID lets the broker
        collapse the retry if the original was in fact stored.
        """
        retry = request.with_new_token(created_at=self._now())
        self._metrics.increment("publish.resubmitted")
        entry = await self._submit(retry)
        return entry.future

    async def await_all_complete(self, timeout: float | None = None) -> DrainResult:
        """Wait for every pending publish to resolve.

        On timeout the unresolved requests are reported, not discarded;
        the caller decides whether to retry or drop them.
        """
        if await self._window.wait_empty(timeout):
            return DrainResult(complete=True)

        still_pending = self._window.snapshot()
        if still_pending and self._logger:
            self._logger.warning(
                "Drain timed out with publishes still pending",
                still_pending=len(still_pending),
                timeout=timeout,
            )
        return DrainResult(complete=not still_pending, still_pending=still_pending)

    # Internals
    async def _submit(self, request: PublishRequest) -> PendingEntry:
        if not self._transport.is_started:
            raise TransportError("Publisher is not started")

        entry = await self._window.submit(
            request, timeout=self._config.effective_backpressure_timeout
        )
        try:
            await self._transport.send(request)
        except Exception as e:
            if self._logger:
                self._logger.error(
                    "Transport send failed",
                    subject=request.subject,
                    correlation_token=request.correlation_token,
                    error=str(e),
                )
            await self._correlator.resolve(
                request.correlation_token,
                PublishError(
                    request=request,
                    error_code=ErrorCode.SEND_FAILED.value,
                    error_text=str(e),
                ),
            )
        return entry

    def _build_request(
        self,
        subject: str,
        payload: bytes | BaseModel,
        expectations: PublishExpectations | None,
        headers: dict[str, str] | None,
        mode: PublishMode,
    ) -> PublishRequest:
        body = self._encode(payload)
        headers = dict(headers or {})
        if isinstance(payload, BaseModel):
            headers.setdefault(CONTENT_TYPE_HEADER, self._serializer.content_type)
        return PublishRequest(
            subject=subject,
            payload=body,
            expectations=expectations,
            headers=headers,
            mode=mode,
            created_at=self._now(),
        )

    def _encode(self, payload: bytes | BaseModel) -> bytes:
        if isinstance(payload, BaseModel):
            if self._serializer is None:
                raise SerializationError("No serializer configured for model payloads")
            return self._serializer.serialize(payload)
        if isinstance(payload, bytearray | memoryview):
            return bytes(payload)
        return payload

    def _now(self) -> datetime:
        return self._clock.now() if self._clock else datetime.now(UTC)

    async def _fail_pending(self, reason: str) -> int:
        abandoned = 0
        for request in self._window.snapshot():
            error = PublishError(
                request=request, error_code=ErrorCode.CLOSED.value, error_text=reason
            )
            if await self._correlator.resolve(request.correlation_token, error):
                abandoned += 1
        if abandoned and self._logger:
            self._logger.warning("Failed publishes still pending at close", count=abandoned)
        return abandoned

    async def _sweep_loop(self, max_age: timedelta) -> None:
        while True:
            await asyncio.sleep(self._config.sweep_interval)
            try:
                await self._correlator.sweep(self._now(), max_age)
            except Exception as e:
                if self._logger:
                    self._logger.exception("Expiry sweep failed", exc_info=e)
