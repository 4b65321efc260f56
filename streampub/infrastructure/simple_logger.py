"""Simple logger implementation on top of the standard logging module."""

import logging
from typing import Any

from ..ports.logger import LoggerPort

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Formatter that appends structured fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {
            key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRIBUTES
        }
        if not fields:
            return line
        rendered = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        return f"{line} | {rendered}"


class SimpleLogger(LoggerPort):
    """Logger port backed by ``logging.getLogger(name)``.

    Keyword arguments become record attributes through ``extra`` and are
    rendered by StructuredFormatter, so correlation tokens and subjects show
    up on every line that mentions a publish.
    """

    def __init__(self, name: str = "streampub", level: int = logging.INFO):
        """Initialize the logger.

        Args:
            name: Logger name (default: "streampub")
            level: Logging level (default: INFO)
        """
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level)

        # Add console handler if not already present
        if not self._logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                StructuredFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            self._logger.addHandler(handler)

    def is_debug_enabled(self) -> bool:
        return self._logger.isEnabledFor(logging.DEBUG)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, extra=kwargs)

    def exception(self, message: str, exc_info: Exception | None = None, **kwargs: Any) -> None:
        self._logger.exception(message, exc_info=exc_info or True, extra=kwargs)
