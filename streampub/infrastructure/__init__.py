"""Infrastructure layer - Concrete implementations of ports.

Factories live in ``streampub.infrastructure.factories``; they depend on the
application layer and are therefore not imported here.
"""

from .config import LogContext, NATSConnectionConfig
from .in_memory_broker import InMemoryBroker, InMemoryStream
from .in_memory_metrics import InMemoryMetrics
from .in_memory_transport import InMemoryTransport
from .nats_transport import NATSPublishTransport
from .simple_logger import SimpleLogger
from .system_clock import SystemClock

__all__ = [
    "InMemoryBroker",
    "InMemoryMetrics",
    "InMemoryStream",
    "InMemoryTransport",
    "LogContext",
    "NATSConnectionConfig",
    "NATSPublishTransport",
    "SimpleLogger",
    "SystemClock",
]
