"""Contract tests for PublishTransportPort implementations.

These tests define the contract that every transport must satisfy so the
pipeline can treat them interchangeably.
"""

import asyncio
from abc import ABC, abstractmethod

import pytest
import pytest_asyncio

from streampub.domain.exceptions import TransportError
from streampub.domain.models import PublishAck, PublishError
from streampub.infrastructure.in_memory_broker import InMemoryBroker
from streampub.infrastructure.in_memory_transport import InMemoryTransport
from streampub.ports.transport import PublishTransportPort
from tests.builders import PublishRequestBuilder


class TransportContractTest(ABC):
    """Abstract base class for PublishTransportPort contract tests.

    Concrete test classes provide ``create_transport`` returning an unstarted
    transport whose broker has a stream bound to ``contract.>``.
    """

    @abstractmethod
    async def create_transport(self) -> PublishTransportPort:
        """Create an unstarted transport for testing."""
        ...

    @pytest_asyncio.fixture
    async def transport(self):
        transport = await self.create_transport()
        yield transport
        await transport.close()

    @staticmethod
    async def collect(transport: PublishTransportPort) -> tuple[list, asyncio.Event]:
        outcomes: list = []
        arrived = asyncio.Event()

        async def on_outcome(token, outcome):
            outcomes.append((token, outcome))
            arrived.set()

        await transport.start(on_outcome)
        return outcomes, arrived

    @pytest.mark.asyncio
    async def test_not_started_initially(self, transport):
        assert not transport.is_started

    @pytest.mark.asyncio
    async def test_send_before_start_fails(self, transport):
        with pytest.raises(TransportError):
            await transport.send(PublishRequestBuilder().with_subject("contract.a").build())

    @pytest.mark.asyncio
    async def test_outcome_carries_token(self, transport):
        outcomes, arrived = await self.collect(transport)
        request = PublishRequestBuilder().with_subject("contract.a").build()

        await transport.send(request)
        await asyncio.wait_for(arrived.wait(), 5.0)

        token, outcome = outcomes[0]
        assert token == request.correlation_token
        assert isinstance(outcome, PublishAck)
        assert outcome.seq >= 1

    @pytest.mark.asyncio
    async def test_unbound_subject_yields_error(self, transport):
        outcomes, arrived = await self.collect(transport)
        request = PublishRequestBuilder().with_subject("unbound.subject").build()

        await transport.send(request)
        await asyncio.wait_for(arrived.wait(), 5.0)

        token, outcome = outcomes[0]
        assert token == request.correlation_token
        assert isinstance(outcome, PublishError)

    @pytest.mark.asyncio
    async def test_close_stops_receiving(self, transport):
        await self.collect(transport)

        await transport.close()

        assert not transport.is_started


class TestInMemoryTransportContract(TransportContractTest):
    """InMemoryTransport satisfies the transport contract."""

    async def create_transport(self) -> PublishTransportPort:
        broker = InMemoryBroker()
        broker.add_stream("CONTRACT", ["contract.>"])
        return InMemoryTransport(broker, ack_delay=0.001)
