"""Transport port - the narrow interface to the broker.

The pipeline only needs to hand a request to the broker and to be told,
later and on another flow, which outcome belongs to which correlation token.
Connection management and stream administration stay outside this port.
"""

from abc import ABC, abstractmethod

from ..domain.models import PublishRequest
from ..domain.types import OutcomeCallback


class PublishTransportPort(ABC):
    """Abstract send/receive channel to a broker endpoint."""

    @abstractmethod
    async def start(self, on_outcome: OutcomeCallback) -> None:
        """Begin receiving outcomes.

        Args:
            on_outcome: Awaited once per outcome with (correlation_token, outcome).
                Outcomes may arrive in any order.
        """
        ...

    @abstractmethod
    async def send(self, request: PublishRequest) -> None:
        """Send a request; the outcome is delivered later through ``on_outcome``.

        Raises:
            TransportError: If the transport is not started or not connected.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving outcomes and release transport resources."""
        ...

    @property
    @abstractmethod
    def is_started(self) -> bool:
        """Whether outcomes are currently being received."""
        ...
