"""Ports layer - Interfaces for external communication."""

from .clock import ClockPort
from .logger import LoggerPort
from .metrics import MetricsPort
from .serializer import SerializerPort
from .transport import PublishTransportPort

__all__ = [
    "ClockPort",
    "LoggerPort",
    "MetricsPort",
    "PublishTransportPort",
    "SerializerPort",
]
