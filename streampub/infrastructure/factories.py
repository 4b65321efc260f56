"""Factory classes for the infrastructure layer."""

from __future__ import annotations

from typing import TypeVar

import nats
from nats.aio.client import Client as NATSClient
from pydantic import BaseModel

from ..application.publisher import Publisher, PublisherConfig
from ..ports.clock import ClockPort
from ..ports.logger import LoggerPort
from ..ports.metrics import MetricsPort
from ..ports.serializer import SerializerPort
from .config import NATSConnectionConfig
from .in_memory_broker import InMemoryBroker
from .in_memory_metrics import InMemoryMetrics
from .in_memory_transport import InMemoryTransport
from .nats_transport import NATSPublishTransport
from .serialization import (
    deserialize_from_json,
    deserialize_from_msgpack,
    serialize_to_json,
    serialize_to_msgpack,
)
from .simple_logger import SimpleLogger
from .system_clock import SystemClock

T = TypeVar("T", bound=BaseModel)


class JSONSerializer:
    """JSON serializer implementation."""

    content_type = "application/json"

    def serialize(self, obj: BaseModel) -> bytes:
        return serialize_to_json(obj)

    def deserialize(self, data: bytes, model_class: type[T]) -> T:
        return deserialize_from_json(data, model_class)


class MessagePackSerializer:
    """MessagePack serializer implementation."""

    content_type = "application/msgpack"

    def serialize(self, obj: BaseModel) -> bytes:
        return serialize_to_msgpack(obj)

    def deserialize(self, data: bytes, model_class: type[T]) -> T:
        return deserialize_from_msgpack(data, model_class)


class SerializationFactory:
    """Single point of configuration for payload serialization."""

    @staticmethod
    def create_serializer(use_msgpack: bool = True) -> SerializerPort:
        """Create a serializer based on configuration.

        Args:
            use_msgpack: Whether to use MessagePack (True) or JSON (False)

        Returns:
            Configured serializer instance
        """
        if use_msgpack:
            return MessagePackSerializer()
        return JSONSerializer()


class PublisherFactory:
    """Wires a Publisher to a transport and starts it."""

    @staticmethod
    async def create_nats_publisher(
        nats_config: NATSConnectionConfig | None = None,
        publisher_config: PublisherConfig | None = None,
        *,
        logger: LoggerPort | None = None,
        metrics: MetricsPort | None = None,
        clock: ClockPort | None = None,
        nc: NATSClient | None = None,
    ) -> Publisher:
        """Return a started publisher on a NATS connection.

        Without ``nc`` a new connection is opened from ``nats_config`` and
        closing the publisher closes it. A caller-supplied ``nc`` stays open.
        """
        nats_config = nats_config or NATSConnectionConfig()
        logger = logger or SimpleLogger()
        metrics = metrics or InMemoryMetrics()

        owns_connection = nc is None
        if nc is None:
            nc = await nats.connect(**nats_config.to_connection_params())
        transport = NATSPublishTransport(
            nc, owns_connection=owns_connection, logger=logger, metrics=metrics
        )
        publisher = Publisher(
            transport,
            publisher_config,
            logger=logger,
            metrics=metrics,
            clock=clock or SystemClock(),
            serializer=SerializationFactory.create_serializer(nats_config.use_msgpack),
        )
        try:
            await publisher.start()
        except Exception:
            if owns_connection:
                await nc.close()
            raise
        return publisher

    @staticmethod
    async def create_in_memory_publisher(
        publisher_config: PublisherConfig | None = None,
        *,
        broker: InMemoryBroker | None = None,
        ack_delay: float = 0.0,
        use_msgpack: bool = True,
        logger: LoggerPort | None = None,
        metrics: MetricsPort | None = None,
        clock: ClockPort | None = None,
    ) -> Publisher:
        """Return a started publisher backed by an in-process broker."""
        transport = InMemoryTransport(broker, ack_delay=ack_delay, logger=logger)
        publisher = Publisher(
            transport,
            publisher_config,
            logger=logger,
            metrics=metrics or InMemoryMetrics(),
            clock=clock or SystemClock(),
            serializer=SerializationFactory.create_serializer(use_msgpack),
        )
        await publisher.start()
        return publisher
