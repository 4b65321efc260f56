"""Acknowledgement correlator - routes broker outcomes back to their callers.

Outcomes are matched by correlation token only. The broker may acknowledge
out of submission order, and the same outcome may be delivered twice, so
nothing here assumes FIFO or exactly-once delivery from the transport.
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from streampub.domain.enums import ErrorCode, PublishMode
from streampub.domain.exceptions import (
    AckTimeoutError,
    BrokerRejectedError,
    PublishFailedError,
    StaleAckError,
)
from streampub.domain.models import PublishAck, PublishError, PublishOutcome, PublishRequest

if TYPE_CHECKING:
    from streampub.domain.types import ErrorHandler
    from streampub.ports.logger import LoggerPort
    from streampub.ports.metrics import MetricsPort

    from .pending_window import PendingEntry, PendingWindow


class AckCorrelator:
    """Resolves pending entries from asynchronously arriving outcomes."""

    def __init__(
        self,
        window: PendingWindow,
        metrics: MetricsPort,
        logger: LoggerPort | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        """Initialize the correlator.

        Args:
            window: Pending window that owns the pending set
            metrics: Metrics port for ack/error/stale counters
            logger: Optional logger for anomalies
            error_handler: Observer invoked for every failed async publish
        """
        self._window = window
        self._metrics = metrics
        self._logger = logger
        self._error_handler = error_handler
        self._observer_tasks: set[asyncio.Task] = set()

    @property
    def pending_observers(self) -> int:
        """Error observer calls scheduled but not finished yet."""
        return len(self._observer_tasks)

    def set_error_handler(self, handler: ErrorHandler | None) -> None:
        """Replace the error observer."""
        self._error_handler = handler

    async def resolve(self, correlation_token: str, outcome: PublishOutcome) -> bool:
        """Deliver an outcome to the request pending under ``correlation_token``.

        Returns:
            True if a pending request was resolved, False if the outcome was stale.
        """
        try:
            entry = await self._window.release(correlation_token)
        except StaleAckError as e:
            self._metrics.increment("publish.stale")
            if self._logger:
                self._logger.warning(
                    "Discarding outcome for unknown correlation token",
                    outcome_type=type(outcome).__name__,
                    **e.details,
                )
            return False

        if isinstance(outcome, PublishError) and outcome.request is None:
            outcome = outcome.model_copy(update={"request": entry.request})

        try:
            self._deliver(entry, outcome)
        except Exception as e:
            # The slot is already freed; a broken outcome only affects its own request
            if self._logger:
                self._logger.exception(
                    "Failed to deliver publish outcome",
                    exc_info=e,
                    correlation_token=correlation_token,
                )
            if not entry.future.done():
                entry.future.set_exception(
                    PublishFailedError(f"Outcome could not be delivered: {e}", entry.request)
                )

        if isinstance(outcome, PublishError) and entry.request.mode is PublishMode.ASYNC:
            self._schedule_observer(outcome, entry.request)
        return True

    async def flush_observers(self) -> None:
        """Wait until every scheduled error observer call has finished.

        Observer calls may resubmit and so schedule further calls; those are
        waited for as well.
        """
        while self._observer_tasks:
            await asyncio.gather(*list(self._observer_tasks), return_exceptions=True)

    def _schedule_observer(self, error: PublishError, request: PublishRequest) -> None:
        # Runs in its own task, never on the stack that resolved the request
        if self._error_handler is None:
            return
        task = asyncio.create_task(self._notify_error_handler(error, request))
        self._observer_tasks.add(task)
        task.add_done_callback(self._observer_tasks.discard)

    def _deliver(self, entry: PendingEntry, outcome: PublishOutcome) -> None:
        if isinstance(outcome, PublishAck):
            self._metrics.increment("publish.acks")
            if outcome.duplicate:
                self._metrics.increment("publish.duplicates")
        else:
            self._metrics.increment("publish.errors")
            self._metrics.increment(f"publish.errors.{outcome.error_code}")

        if entry.future.done():
            # Caller cancelled its handle; the slot is still released exactly once
            if self._logger:
                self._logger.debug(
                    "Outcome arrived for a cancelled publish",
                    correlation_token=entry.correlation_token,
                )
            return

        if isinstance(outcome, PublishAck):
            entry.future.set_result(outcome)
        else:
            entry.future.set_exception(self._to_exception(outcome))

    @staticmethod
    def _to_exception(error: PublishError) -> PublishFailedError:
        if error.error_code == ErrorCode.ACK_TIMEOUT.value:
            exc: PublishFailedError = AckTimeoutError(request=error.request)
            exc.details["error_text"] = error.error_text
            return exc
        return BrokerRejectedError(error)

    async def _notify_error_handler(self, error: PublishError, request: PublishRequest) -> None:
        if self._error_handler is None:
            return
        try:
            result = self._error_handler(error, request)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            if self._logger:
                self._logger.exception(
                    "Publish error handler raised",
                    exc_info=e,
                    correlation_token=request.correlation_token,
                    error_code=error.error_code,
                )

    async def sweep(self, now: datetime, max_age: timedelta) -> int:
        """Resolve every request pending longer than ``max_age`` as timed out.

        Returns:
            Number of requests that were expired by this pass
        """
        expired = 0
        for request in self._window.expired(now - max_age):
            error = PublishError(
                request=request,
                error_code=ErrorCode.ACK_TIMEOUT.value,
                error_text=f"no acknowledgement within {max_age.total_seconds()}s",
            )
            if await self.resolve(request.correlation_token, error):
                expired += 1

        if expired:
            self._metrics.increment("publish.expired", expired)
            if self._logger:
                self._logger.warning("Expired unacknowledged publishes", count=expired)
        return expired
