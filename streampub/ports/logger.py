"""Logger port used by the pipeline and its transports."""

from abc import ABC, abstractmethod
from typing import Any


class LoggerPort(ABC):
    """Structured logging interface.

    Fields such as ``correlation_token``, ``subject`` or ``error_code`` are
    passed as keyword arguments; implementations decide how to render them.
    """

    @abstractmethod
    def debug(self, message: str, **kwargs: Any) -> None: ...

    @abstractmethod
    def info(self, message: str, **kwargs: Any) -> None: ...

    @abstractmethod
    def warning(self, message: str, **kwargs: Any) -> None: ...

    @abstractmethod
    def error(self, message: str, **kwargs: Any) -> None: ...

    @abstractmethod
    def exception(self, message: str, exc_info: Exception | None = None, **kwargs: Any) -> None:
        """Log ``exc_info`` (or the exception being handled) with its traceback."""
        ...

    def is_debug_enabled(self) -> bool:
        """Whether debug lines would be emitted.

        Lets per-ack code paths skip building debug fields. Defaults to True.
        """
        return True
