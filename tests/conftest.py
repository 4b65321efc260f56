"""Pytest configuration and shared fixtures."""

import os
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from streampub.application.publisher import Publisher, PublisherConfig
from streampub.infrastructure.in_memory_broker import InMemoryBroker
from streampub.infrastructure.in_memory_metrics import InMemoryMetrics
from streampub.infrastructure.in_memory_transport import InMemoryTransport


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    mock = MagicMock()
    mock.info = MagicMock()
    mock.warning = MagicMock()
    mock.error = MagicMock()
    mock.debug = MagicMock()
    mock.exception = MagicMock()
    return mock


@pytest.fixture
def mock_transport():
    """Create a mock transport that accepts every send."""
    mock = AsyncMock()
    mock.is_started = True
    mock.start = AsyncMock()
    mock.send = AsyncMock()
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def mock_nats_client():
    """Create a mock NATS client."""
    mock = MagicMock()
    mock.is_connected = True
    mock.new_inbox = MagicMock(return_value="_INBOX.test")
    mock.subscribe = AsyncMock(return_value=AsyncMock())
    mock.publish = AsyncMock()
    mock.close = AsyncMock()
    mock.jetstream = MagicMock()
    return mock


@pytest.fixture
def metrics():
    """Fresh in-memory metrics."""
    return InMemoryMetrics()


@pytest.fixture
def broker():
    """In-memory broker with an ORDERS stream bound to orders.>."""
    broker = InMemoryBroker()
    broker.add_stream("ORDERS", ["orders.>"])
    return broker


@pytest.fixture
def held_transport(broker):
    """Transport that parks outcomes until the test releases them."""
    return InMemoryTransport(broker, hold_outcomes=True)


@pytest_asyncio.fixture
async def publisher(broker, metrics, mock_logger):
    """Started publisher that acknowledges immediately."""
    transport = InMemoryTransport(broker)
    publisher = Publisher(
        transport,
        PublisherConfig(max_pending_async=16, publish_timeout=1.0),
        logger=mock_logger,
        metrics=metrics,
    )
    await publisher.start()

    yield publisher

    await publisher.close()


@pytest.fixture(scope="session")
def nats_container():
    """Start NATS container for integration tests."""
    # Skip if explicitly disabled
    if os.getenv("SKIP_INTEGRATION_TESTS", "").lower() == "true":
        pytest.skip("Integration tests disabled")

    # Use existing NATS if available
    if os.getenv("NATS_URL"):
        yield os.getenv("NATS_URL")
        return

    try:
        from testcontainers.nats import NatsContainer

        container = NatsContainer("nats:2.10-alpine")
        container.with_command("-js")  # Enable JetStream
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    # Wait for NATS to be ready
    time.sleep(2)

    nats_url = f"nats://localhost:{container.get_exposed_port(4222)}"
    yield nats_url

    container.stop()
