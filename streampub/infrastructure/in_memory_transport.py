"""In-memory transport - PublishTransportPort backed by an InMemoryBroker."""

from __future__ import annotations

import asyncio
import contextlib

from ..domain.exceptions import TransportError
from ..domain.models import PublishOutcome, PublishRequest
from ..domain.types import OutcomeCallback
from ..ports.logger import LoggerPort
from ..ports.transport import PublishTransportPort
from .in_memory_broker import InMemoryBroker


class InMemoryTransport(PublishTransportPort):
    """Transport that evaluates requests against an in-process broker.

    Outcomes are never delivered inside ``send``: each one is handed to the
    receive callback from its own task after ``ack_delay`` seconds, which
    mirrors a network round trip. With ``hold_outcomes=True`` outcomes are
    parked instead and released explicitly, so callers can control timing
    and ordering.
    """

    def __init__(
        self,
        broker: InMemoryBroker | None = None,
        *,
        ack_delay: float = 0.0,
        hold_outcomes: bool = False,
        logger: LoggerPort | None = None,
    ) -> None:
        self._broker = broker or InMemoryBroker()
        self._ack_delay = ack_delay
        self._hold_outcomes = hold_outcomes
        self._logger = logger
        self._on_outcome: OutcomeCallback | None = None
        self._held: dict[str, PublishOutcome] = {}
        self._deliveries: set[asyncio.Task] = set()
        self.sent: list[PublishRequest] = []
        self.fail_sends: Exception | None = None

    @property
    def broker(self) -> InMemoryBroker:
        return self._broker

    @property
    def is_started(self) -> bool:
        return self._on_outcome is not None

    async def start(self, on_outcome: OutcomeCallback) -> None:
        self._on_outcome = on_outcome

    async def send(self, request: PublishRequest) -> None:
        if self._on_outcome is None:
            raise TransportError("In-memory transport is not started")
        if self.fail_sends is not None:
            raise self.fail_sends

        self.sent.append(request)
        outcome = self._broker.store(request)
        if self._hold_outcomes:
            self._held[request.correlation_token] = outcome
        else:
            self._schedule(request.correlation_token, outcome, self._ack_delay)

    async def close(self) -> None:
        for task in list(self._deliveries):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._deliveries.clear()
        self._on_outcome = None

    # Test and simulation controls
    def held_tokens(self) -> list[str]:
        """Tokens whose outcomes are parked, in send order."""
        return list(self._held)

    async def release(self, *tokens: str) -> None:
        """Deliver the parked outcomes for ``tokens`` in the given order."""
        for token in tokens:
            outcome = self._held.pop(token)
            await self._deliver(token, outcome)

    async def release_all(self, reverse: bool = False) -> int:
        """Deliver every parked outcome, newest first when ``reverse`` is set."""
        tokens = self.held_tokens()
        if reverse:
            tokens.reverse()
        await self.release(*tokens)
        return len(tokens)

    async def inject(self, correlation_token: str, outcome: PublishOutcome) -> None:
        """Deliver an arbitrary outcome, e.g. a replayed or unknown ack."""
        await self._deliver(correlation_token, outcome)

    async def drain_deliveries(self) -> None:
        """Wait for every scheduled delivery to run."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    def _schedule(self, token: str, outcome: PublishOutcome, delay: float) -> None:
        task = asyncio.create_task(self._deliver_later(token, outcome, delay))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver_later(self, token: str, outcome: PublishOutcome, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._deliver(token, outcome)

    async def _deliver(self, token: str, outcome: PublishOutcome) -> None:
        if self._on_outcome is None:
            return
        try:
            await self._on_outcome(token, outcome)
        except Exception as e:
            if self._logger:
                self._logger.exception(
                    "Outcome callback failed", exc_info=e, correlation_token=token
                )
