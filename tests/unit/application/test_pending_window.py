"""Tests for the pending window controller."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from streampub.application.pending_window import PendingWindow
from streampub.domain.exceptions import (
    BackpressureTimeoutError,
    StaleAckError,
    ValidationError,
)
from streampub.infrastructure.in_memory_metrics import InMemoryMetrics
from tests.builders import PublishRequestBuilder


def make_request(**kwargs):
    builder = PublishRequestBuilder()
    if "token" in kwargs:
        builder.with_token(kwargs["token"])
    if "created_at" in kwargs:
        builder.created_at(kwargs["created_at"])
    return builder.build()


class TestPendingWindowBasics:
    """Submission and release without contention."""

    def test_rejects_non_positive_size(self):
        """A window must hold at least one request."""
        with pytest.raises(ValueError):
            PendingWindow(0, InMemoryMetrics())

    @pytest.mark.asyncio
    async def test_submit_tracks_request(self):
        """Accepted requests are counted and keyed by token."""
        metrics = InMemoryMetrics()
        window = PendingWindow(4, metrics)
        request = make_request()

        entry = await window.submit(request)

        assert entry.request is request
        assert entry.correlation_token == request.correlation_token
        assert not entry.future.done()
        assert window.pending_count == 1
        assert request.correlation_token in window
        assert metrics.counter("publish.accepted") == 1
        assert metrics.gauge_value("publish.pending") == 1

    @pytest.mark.asyncio
    async def test_release_frees_slot(self):
        """Releasing returns the entry and shrinks the pending set."""
        metrics = InMemoryMetrics()
        window = PendingWindow(4, metrics)
        entry = await window.submit(make_request())

        released = await window.release(entry.correlation_token)

        assert released is entry
        assert window.pending_count == 0
        assert metrics.gauge_value("publish.pending") == 0

    @pytest.mark.asyncio
    async def test_release_twice_is_stale(self):
        """A slot is freed exactly once."""
        window = PendingWindow(4, InMemoryMetrics())
        entry = await window.submit(make_request())
        await window.release(entry.correlation_token)

        with pytest.raises(StaleAckError):
            await window.release(entry.correlation_token)
        assert window.pending_count == 0

    @pytest.mark.asyncio
    async def test_release_unknown_token(self):
        """Unknown tokens never touch the pending set."""
        window = PendingWindow(4, InMemoryMetrics())
        await window.submit(make_request())

        with pytest.raises(StaleAckError) as exc_info:
            await window.release("never-issued")

        assert exc_info.value.correlation_token == "never-issued"
        assert window.pending_count == 1

    @pytest.mark.asyncio
    async def test_duplicate_token_rejected(self):
        """The same token cannot be pending twice."""
        window = PendingWindow(4, InMemoryMetrics())
        await window.submit(make_request(token="same"))

        with pytest.raises(ValidationError):
            await window.submit(make_request(token="same"))
        assert window.pending_count == 1

    @pytest.mark.asyncio
    async def test_snapshot_in_submission_order(self):
        """Snapshots list requests oldest first."""
        window = PendingWindow(4, InMemoryMetrics())
        requests = [make_request() for _ in range(3)]
        for request in requests:
            await window.submit(request)

        assert window.snapshot() == requests

    @pytest.mark.asyncio
    async def test_expired(self):
        """Only requests at or before the cutoff are expired."""
        now = datetime.now(UTC)
        window = PendingWindow(4, InMemoryMetrics())
        old = make_request(created_at=now - timedelta(seconds=30))
        fresh = make_request(created_at=now)
        await window.submit(old)
        await window.submit(fresh)

        assert window.expired(now - timedelta(seconds=10)) == [old]
        assert window.expired(now) == [old, fresh]


class TestBackpressure:
    """Behaviour when the window is full."""

    @pytest.mark.asyncio
    async def test_submit_blocks_until_release(self):
        """A full window suspends the submitter until a slot frees."""
        metrics = InMemoryMetrics()
        window = PendingWindow(2, metrics)
        first = await window.submit(make_request())
        await window.submit(make_request())

        waiter = asyncio.create_task(window.submit(make_request()))
        await asyncio.sleep(0.01)
        assert not waiter.done()
        assert window.pending_count == 2

        await window.release(first.correlation_token)
        entry = await asyncio.wait_for(waiter, 1.0)

        assert entry.correlation_token in window
        assert window.pending_count == 2
        assert metrics.counter("publish.backpressure.waits") == 1

    @pytest.mark.asyncio
    async def test_submit_times_out(self):
        """Waiting longer than the timeout raises BackpressureTimeoutError."""
        metrics = InMemoryMetrics()
        window = PendingWindow(1, metrics)
        await window.submit(make_request())
        request = make_request()

        with pytest.raises(BackpressureTimeoutError) as exc_info:
            await window.submit(request, timeout=0.01)

        assert exc_info.value.request is request
        assert exc_info.value.max_pending == 1
        assert request.correlation_token not in window
        assert window.pending_count == 1
        assert metrics.counter("publish.backpressure.timeouts") == 1

    @pytest.mark.asyncio
    async def test_pending_never_exceeds_max(self):
        """Concurrent submitters never push the count past the limit."""
        window = PendingWindow(3, InMemoryMetrics())
        observed = []

        async def submitter():
            entry = await window.submit(make_request())
            observed.append(window.pending_count)
            await asyncio.sleep(0)
            await window.release(entry.correlation_token)

        await asyncio.gather(*(submitter() for _ in range(50)))

        assert max(observed) <= 3
        assert window.pending_count == 0


class TestWaitEmpty:
    """Draining the window."""

    @pytest.mark.asyncio
    async def test_empty_window_returns_immediately(self):
        """Nothing pending means the drain is complete, even with a zero timeout."""
        window = PendingWindow(2, InMemoryMetrics())

        assert await window.wait_empty(0) is True

    @pytest.mark.asyncio
    async def test_waits_for_last_release(self):
        """The drain completes when the last entry is released."""
        window = PendingWindow(2, InMemoryMetrics())
        entry = await window.submit(make_request())

        async def release_later():
            await asyncio.sleep(0.01)
            await window.release(entry.correlation_token)

        releaser = asyncio.create_task(release_later())
        assert await window.wait_empty(1.0) is True
        await releaser

    @pytest.mark.asyncio
    async def test_timeout_leaves_entries(self):
        """A drain timeout reports failure and discards nothing."""
        window = PendingWindow(2, InMemoryMetrics())
        entry = await window.submit(make_request())

        assert await window.wait_empty(0.01) is False
        assert entry.correlation_token in window
        assert not entry.future.done()
