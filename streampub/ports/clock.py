"""Clock port.

Requests are stamped with ``now()`` when they are built, and the expiry
sweep compares those stamps against ``now()`` again, so tests can age
pending requests without sleeping.
"""

from abc import ABC, abstractmethod
from datetime import datetime


class ClockPort(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time. Must be timezone-aware, preferably UTC."""
        ...
