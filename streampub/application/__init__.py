"""Application layer - Pending window, acknowledgement correlation and the publish pipeline."""

from .ack_correlator import AckCorrelator
from .pending_window import PendingEntry, PendingWindow
from .publisher import Publisher, PublisherConfig

__all__ = ["AckCorrelator", "PendingEntry", "PendingWindow", "Publisher", "PublisherConfig"]
