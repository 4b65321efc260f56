"""Tests for the NATS publish transport using a mocked nats-py client."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from streampub.domain.enums import ErrorCode
from streampub.domain.exceptions import TransportError
from streampub.domain.models import PublishAck, PublishError
from streampub.infrastructure.nats_transport import (
    NATSPublishTransport,
    build_headers,
    decode_reply,
)
from tests.builders import PublishRequestBuilder


def reply(data=b"", headers=None, subject="_INBOX.test.tok"):
    msg = MagicMock()
    msg.subject = subject
    msg.data = data
    msg.headers = headers
    return msg


def ack_json(**fields):
    return json.dumps(fields).encode()


class TestBuildHeaders:
    """Expectation headers."""

    def test_no_expectations(self):
        request = PublishRequestBuilder().with_headers(trace="t-1").build()

        assert build_headers(request) == {"trace": "t-1"}

    def test_all_expectations(self):
        request = (
            PublishRequestBuilder()
            .with_expectations(
                msg_id="m-1",
                expected_stream="ORDERS",
                expected_last_seq=4,
                expected_last_subject_seq=2,
                expected_last_msg_id="m-0",
            )
            .build()
        )

        assert build_headers(request) == {
            "Nats-Msg-Id": "m-1",
            "Nats-Expected-Stream": "ORDERS",
            "Nats-Expected-Last-Sequence": "4",
            "Nats-Expected-Last-Subject-Sequence": "2",
            "Nats-Expected-Last-Msg-Id": "m-0",
        }

    def test_zero_sequence_is_sent(self):
        """An expected sequence of 0 means an empty stream, not absent."""
        request = PublishRequestBuilder().with_expectations(expected_last_seq=0).build()

        assert build_headers(request) == {"Nats-Expected-Last-Sequence": "0"}


class TestDecodeReply:
    """JetStream ack decoding."""

    def test_ack(self):
        outcome = decode_reply(reply(ack_json(stream="ORDERS", seq=12, domain="hub")))

        assert outcome == PublishAck(stream="ORDERS", seq=12, duplicate=False, domain="hub")

    def test_duplicate_ack(self):
        outcome = decode_reply(reply(ack_json(stream="ORDERS", seq=3, duplicate=True)))

        assert outcome.duplicate is True

    def test_error_reply(self):
        data = ack_json(
            error={"code": 400, "err_code": 10071, "description": "wrong last sequence: 3"}
        )

        outcome = decode_reply(reply(data))

        assert isinstance(outcome, PublishError)
        assert outcome.error_code == "10071"
        assert outcome.error_text == "wrong last sequence: 3"
        assert outcome.request is None

    def test_error_reply_without_err_code(self):
        outcome = decode_reply(reply(ack_json(error={"code": 503, "description": "unavailable"})))

        assert outcome.error_code == "503"

    def test_no_responders_status(self):
        outcome = decode_reply(reply(headers={"Status": "503"}))

        assert outcome.error_code == ErrorCode.NO_RESPONDERS.value

    def test_other_status(self):
        outcome = decode_reply(reply(headers={"Status": "408", "Description": "Request Timeout"}))

        assert outcome.error_code == "408"
        assert outcome.error_text == "Request Timeout"

    @pytest.mark.parametrize(
        "data",
        [b"", b"not json", ack_json(stream="ORDERS"), ack_json(stream="ORDERS", seq=0), b"[]"],
    )
    def test_malformed(self, data):
        outcome = decode_reply(reply(data))

        assert isinstance(outcome, PublishError)
        assert outcome.error_code == ErrorCode.MALFORMED_ACK.value


class TestNATSPublishTransport:
    """Send and receive through the mocked client."""

    @pytest.mark.asyncio
    async def test_start_subscribes_to_inbox_wildcard(self, mock_nats_client, mock_logger):
        transport = NATSPublishTransport(mock_nats_client, logger=mock_logger)

        await transport.start(AsyncMock())

        assert transport.is_started
        assert transport.inbox_prefix == "_INBOX.test"
        subject = mock_nats_client.subscribe.await_args.args[0]
        assert subject == "_INBOX.test.*"
        mock_logger.info.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_requires_connection(self, mock_nats_client):
        mock_nats_client.is_connected = False
        transport = NATSPublishTransport(mock_nats_client)

        with pytest.raises(TransportError):
            await transport.start(AsyncMock())

    @pytest.mark.asyncio
    async def test_send_before_start(self, mock_nats_client):
        transport = NATSPublishTransport(mock_nats_client)

        with pytest.raises(TransportError):
            await transport.send(PublishRequestBuilder().build())

    @pytest.mark.asyncio
    async def test_send_publishes_with_reply_and_headers(self, mock_nats_client):
        transport = NATSPublishTransport(mock_nats_client)
        await transport.start(AsyncMock())
        request = PublishRequestBuilder().with_payload(b"body").with_msg_id("m-1").build()

        await transport.send(request)

        mock_nats_client.publish.assert_awaited_once_with(
            "orders.created",
            b"body",
            reply=f"_INBOX.test.{request.correlation_token}",
            headers={"Nats-Msg-Id": "m-1"},
        )

    @pytest.mark.asyncio
    async def test_send_without_headers(self, mock_nats_client):
        transport = NATSPublishTransport(mock_nats_client)
        await transport.start(AsyncMock())

        await transport.send(PublishRequestBuilder().build())

        assert mock_nats_client.publish.await_args.kwargs["headers"] is None

    @pytest.mark.asyncio
    async def test_send_when_disconnected(self, mock_nats_client):
        transport = NATSPublishTransport(mock_nats_client)
        await transport.start(AsyncMock())
        mock_nats_client.is_connected = False

        with pytest.raises(TransportError):
            await transport.send(PublishRequestBuilder().build())

    @pytest.mark.asyncio
    async def test_publish_failure_raises_transport_error(self, mock_nats_client, mock_logger):
        transport = NATSPublishTransport(mock_nats_client, logger=mock_logger)
        await transport.start(AsyncMock())
        mock_nats_client.publish.side_effect = OSError("socket closed")
        request = PublishRequestBuilder().build()

        with pytest.raises(TransportError) as exc_info:
            await transport.send(request)

        assert isinstance(exc_info.value.__cause__, OSError)
        kwargs = mock_logger.error.call_args.kwargs
        assert kwargs["correlation_token"] == request.correlation_token
        assert kwargs["error_code"] == "OSError"

    @pytest.mark.asyncio
    async def test_reply_routed_by_token(self, mock_nats_client):
        on_outcome = AsyncMock()
        transport = NATSPublishTransport(mock_nats_client)
        await transport.start(on_outcome)
        handler = mock_nats_client.subscribe.await_args.kwargs["cb"]

        await handler(reply(ack_json(stream="ORDERS", seq=1), subject="_INBOX.test.abc"))

        on_outcome.assert_awaited_once_with("abc", PublishAck(stream="ORDERS", seq=1))

    @pytest.mark.asyncio
    async def test_unroutable_reply_dropped(self, mock_nats_client, mock_logger):
        on_outcome = AsyncMock()
        transport = NATSPublishTransport(mock_nats_client, logger=mock_logger)
        await transport.start(on_outcome)
        handler = mock_nats_client.subscribe.await_args.kwargs["cb"]

        await handler(reply(ack_json(stream="ORDERS", seq=1), subject="_INBOX.test.a.b"))

        on_outcome.assert_not_awaited()
        mock_logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_callback_failure_keeps_subscription(self, mock_nats_client, mock_logger):
        on_outcome = AsyncMock(side_effect=[RuntimeError("boom"), None])
        transport = NATSPublishTransport(mock_nats_client, logger=mock_logger)
        await transport.start(on_outcome)
        handler = mock_nats_client.subscribe.await_args.kwargs["cb"]

        await handler(reply(ack_json(stream="ORDERS", seq=1), subject="_INBOX.test.a"))
        await handler(reply(ack_json(stream="ORDERS", seq=2), subject="_INBOX.test.b"))

        assert on_outcome.await_count == 2
        mock_logger.exception.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, mock_nats_client):
        subscription = AsyncMock()
        mock_nats_client.subscribe.return_value = subscription
        transport = NATSPublishTransport(mock_nats_client)
        await transport.start(AsyncMock())

        await transport.close()

        subscription.unsubscribe.assert_awaited_once()
        mock_nats_client.close.assert_not_awaited()
        assert not transport.is_started

    @pytest.mark.asyncio
    async def test_close_owned_connection(self, mock_nats_client):
        transport = NATSPublishTransport(mock_nats_client, owns_connection=True)
        await transport.start(AsyncMock())

        await transport.close()

        mock_nats_client.close.assert_awaited_once()


class TestReplyLogging:
    """Debug logging of refused publishes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("enabled", [True, False])
    async def test_rejection_logged_only_when_debug_enabled(
        self, mock_nats_client, mock_logger, enabled
    ):
        mock_logger.is_debug_enabled.return_value = enabled
        transport = NATSPublishTransport(mock_nats_client, logger=mock_logger)
        await transport.start(AsyncMock())
        handler = mock_nats_client.subscribe.await_args.kwargs["cb"]
        rejection = json.dumps(
            {"error": {"code": 400, "err_code": 10071, "description": "wrong last sequence: 1"}}
        ).encode()

        await handler(reply(rejection, subject="_INBOX.test.tok"))

        assert mock_logger.debug.called is enabled
