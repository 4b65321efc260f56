"""Pending window controller - bounds the number of unacknowledged publishes.

The window owns the pending set. Every accepted request takes exactly one
slot and every resolved outcome frees exactly one slot; both happen under
the same condition lock so size checks, inserts and removals never interleave.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from streampub.domain.exceptions import (
    BackpressureTimeoutError,
    StaleAckError,
    ValidationError,
)
from streampub.domain.models import PublishAck, PublishRequest

if TYPE_CHECKING:
    from streampub.ports.logger import LoggerPort
    from streampub.ports.metrics import MetricsPort


def _mark_exception_retrieved(future: asyncio.Future) -> None:
    # Outcomes of abandoned futures (timed out callers) must not warn on GC
    if not future.cancelled():
        future.exception()


@dataclass
class PendingEntry:
    """A request that has been accepted and is waiting for its outcome."""

    request: PublishRequest
    future: asyncio.Future[PublishAck] = field(repr=False)

    def __post_init__(self) -> None:
        self.future.add_done_callback(_mark_exception_retrieved)

    @property
    def correlation_token(self) -> str:
        return self.request.correlation_token


class PendingWindow:
    """Bounded pending set with cooperative backpressure."""

    def __init__(
        self,
        max_pending: int,
        metrics: MetricsPort,
        logger: LoggerPort | None = None,
    ) -> None:
        """Initialize the window.

        Args:
            max_pending: Maximum number of in-flight requests
            metrics: Metrics port for pending gauge and backpressure counters
            logger: Optional logger
        """
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._max_pending = max_pending
        self._metrics = metrics
        self._logger = logger
        self._pending: dict[str, PendingEntry] = {}
        self._changed = asyncio.Condition()

    @property
    def max_pending(self) -> int:
        return self._max_pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _has_capacity(self) -> bool:
        return len(self._pending) < self._max_pending

    def __contains__(self, correlation_token: object) -> bool:
        return correlation_token in self._pending

    async def submit(self, request: PublishRequest, timeout: float | None = None) -> PendingEntry:
        """Accept a request into the pending set, waiting for a free slot.

        Args:
            request: Request keyed by its correlation token
            timeout: Seconds to wait for a slot; None waits indefinitely

        Returns:
            The pending entry whose future will carry the outcome

        Raises:
            BackpressureTimeoutError: If no slot freed up within ``timeout``
            ValidationError: If the correlation token is already pending
        """
        async with self._changed:
            if not self._has_capacity():
                self._metrics.increment("publish.backpressure.waits")
                if self._logger:
                    self._logger.debug(
                        "Pending window full, waiting for a slot",
                        max_pending=self._max_pending,
                        correlation_token=request.correlation_token,
                    )
                try:
                    await asyncio.wait_for(self._changed.wait_for(self._has_capacity), timeout)
                except TimeoutError:
                    self._metrics.increment("publish.backpressure.timeouts")
                    raise BackpressureTimeoutError(
                        request=request, max_pending=self._max_pending, timeout=timeout
                    ) from None

            if request.correlation_token in self._pending:
                raise ValidationError(
                    f"Correlation token '{request.correlation_token}' is already pending",
                    details={"correlation_token": request.correlation_token},
                )

            entry = PendingEntry(
                request=request,
                future=asyncio.get_running_loop().create_future(),
            )
            self._pending[request.correlation_token] = entry
            self._metrics.increment("publish.accepted")
            self._metrics.gauge("publish.pending", len(self._pending))
            return entry

    async def release(self, correlation_token: str) -> PendingEntry:
        """Remove an entry and free its slot.

        Raises:
            StaleAckError: If the token is not pending (already resolved or unknown)
        """
        async with self._changed:
            entry = self._pending.pop(correlation_token, None)
            if entry is None:
                raise StaleAckError(correlation_token)
            self._metrics.gauge("publish.pending", len(self._pending))
            self._changed.notify_all()
            return entry

    async def wait_empty(self, timeout: float | None = None) -> bool:
        """Wait until nothing is pending.

        Returns:
            True if the set emptied, False if ``timeout`` elapsed first.
            Pending entries are left untouched either way.
        """
        async with self._changed:
            if not self._pending:
                return True
            try:
                await asyncio.wait_for(self._changed.wait_for(lambda: not self._pending), timeout)
            except TimeoutError:
                return False
            return True

    def snapshot(self) -> list[PublishRequest]:
        """Pending requests in submission order."""
        return [entry.request for entry in self._pending.values()]

    def expired(self, cutoff: datetime) -> list[PublishRequest]:
        """Pending requests created at or before ``cutoff``."""
        return [
            entry.request
            for entry in self._pending.values()
            if entry.request.created_at <= cutoff
        ]
