"""Metrics port.

The pipeline reports through this interface only. Names it emits:

- counters: ``publish.accepted``, ``publish.acks``, ``publish.duplicates``,
  ``publish.errors``, ``publish.errors.<code>``, ``publish.stale``,
  ``publish.ack_timeouts``, ``publish.expired``, ``publish.resubmitted``,
  ``publish.backpressure.waits``, ``publish.backpressure.timeouts``
- gauges: ``publish.pending``
- timers: ``publish.sync`` (milliseconds)
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any


class MetricsPort(ABC):
    """Counters, gauges and timing summaries."""

    @abstractmethod
    def increment(self, name: str, value: int = 1) -> None:
        """Add ``value`` to a counter."""
        ...

    @abstractmethod
    def gauge(self, name: str, value: float) -> None:
        """Set a gauge to its current value."""
        ...

    @abstractmethod
    def record(self, name: str, value: float) -> None:
        """Add an observation to a summary."""
        ...

    @abstractmethod
    def timer(self, name: str) -> AbstractContextManager[Any]:
        """Context manager recording the block's duration in milliseconds."""
        ...

    @abstractmethod
    def get_all(self) -> dict[str, Any]:
        """Snapshot of every metric."""
        ...

    @abstractmethod
    def reset(self) -> None: ...
