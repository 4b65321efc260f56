"""NATS transport - Concrete PublishTransportPort for JetStream publishing."""

from __future__ import annotations

from nats.aio.client import Client as NATSClient
from nats.aio.msg import Msg
from nats.aio.subscription import Subscription
from pydantic import BaseModel, ConfigDict, ValidationError

from ..domain.enums import ErrorCode
from ..domain.exceptions import SerializationError, TransportError
from ..domain.models import PublishAck, PublishError, PublishOutcome, PublishRequest
from ..domain.patterns import SubjectPatterns
from ..domain.types import OutcomeCallback
from ..ports.logger import LoggerPort
from ..ports.metrics import MetricsPort
from ..ports.transport import PublishTransportPort
from .config import LogContext
from .in_memory_metrics import InMemoryMetrics
from .serialization import deserialize_from_json

# Header names understood by the JetStream server
MSG_ID_HEADER = "Nats-Msg-Id"
EXPECTED_STREAM_HEADER = "Nats-Expected-Stream"
EXPECTED_LAST_SEQ_HEADER = "Nats-Expected-Last-Sequence"
EXPECTED_LAST_SUBJECT_SEQ_HEADER = "Nats-Expected-Last-Subject-Sequence"
EXPECTED_LAST_MSG_ID_HEADER = "Nats-Expected-Last-Msg-Id"
STATUS_HEADER = "Status"
DESCRIPTION_HEADER = "Description"

NO_RESPONDERS_STATUS = "503"

_EXPECTATION_HEADERS = (
    ("msg_id", MSG_ID_HEADER),
    ("expected_stream", EXPECTED_STREAM_HEADER),
    ("expected_last_seq", EXPECTED_LAST_SEQ_HEADER),
    ("expected_last_subject_seq", EXPECTED_LAST_SUBJECT_SEQ_HEADER),
    ("expected_last_msg_id", EXPECTED_LAST_MSG_ID_HEADER),
)


class JetStreamApiError(BaseModel):
    """Error object embedded in a negative publish acknowledgement."""

    model_config = ConfigDict(extra="ignore")

    code: int
    err_code: int | None = None
    description: str = ""


class JetStreamPubAckReply(BaseModel):
    """Wire shape of the JSON reply JetStream sends for a publish."""

    model_config = ConfigDict(extra="ignore")

    stream: str | None = None
    seq: int | None = None
    duplicate: bool = False
    domain: str | None = None
    error: JetStreamApiError | None = None


def build_headers(request: PublishRequest) -> dict[str, str]:
    """Caller headers plus the JetStream headers for the request's expectations."""
    headers = dict(request.headers)
    expectations = request.expectations
    if expectations is not None:
        for field_name, header in _EXPECTATION_HEADERS:
            value = getattr(expectations, field_name)
            if value is not None:
                headers[header] = str(value)
    return headers


def decode_reply(msg: Msg) -> PublishOutcome:
    """Turn a JetStream reply into an outcome.

    The returned PublishError carries no request; the correlator attaches the
    pending request it belongs to.
    """
    headers = msg.headers or {}
    status = headers.get(STATUS_HEADER)
    if status == NO_RESPONDERS_STATUS:
        return PublishError(
            error_code=ErrorCode.NO_RESPONDERS.value,
            error_text="no responders available for request",
        )
    if status and not msg.data:
        description = headers.get(DESCRIPTION_HEADER, "")
        return PublishError(error_code=str(status), error_text=description)

    try:
        reply = deserialize_from_json(msg.data, JetStreamPubAckReply)
    except SerializationError as e:
        return PublishError(error_code=ErrorCode.MALFORMED_ACK.value, error_text=e.message)

    if reply.error is not None:
        return PublishError(
            error_code=str(reply.error.err_code or reply.error.code),
            error_text=reply.error.description,
        )
    if reply.stream is None or reply.seq is None:
        return PublishError(
            error_code=ErrorCode.MALFORMED_ACK.value,
            error_text="acknowledgement is missing stream or sequence",
        )

    try:
        return PublishAck(
            stream=reply.stream,
            seq=reply.seq,
            duplicate=reply.duplicate,
            domain=reply.domain,
        )
    except ValidationError as e:
        return PublishError(error_code=ErrorCode.MALFORMED_ACK.value, error_text=str(e))


class NATSPublishTransport(PublishTransportPort):
    """Publishes with a reply subject per request and routes JetStream acks.

    Every request is published with the reply subject
    ``<inbox>.<correlation_token>`` where ``<inbox>`` is unique to this
    transport. A single wildcard subscription receives all acknowledgements,
    so the correlation token is recovered from the reply subject alone and
    acks may arrive in any order.
    """

    def __init__(
        self,
        nc: NATSClient,
        *,
        owns_connection: bool = False,
        logger: LoggerPort | None = None,
        metrics: MetricsPort | None = None,
    ):
        """Initialize the transport.

        Args:
            nc: Connected nats-py client
            owns_connection: Close ``nc`` when the transport is closed
            logger: Optional logger port
            metrics: Optional metrics port. If not provided, uses in-memory metrics.
        """
        self._nc = nc
        self._owns_connection = owns_connection
        self._logger = logger
        self._metrics = metrics or InMemoryMetrics()
        self._on_outcome: OutcomeCallback | None = None
        self._subscription: Subscription | None = None
        self._inbox_prefix: str | None = None

    @property
    def is_started(self) -> bool:
        return self._subscription is not None

    @property
    def inbox_prefix(self) -> str | None:
        return self._inbox_prefix

    async def start(self, on_outcome: OutcomeCallback) -> None:
        if self._subscription is not None:
            self._on_outcome = on_outcome
            return
        if not self._nc.is_connected:
            raise TransportError("NATS connection is not available")

        self._on_outcome = on_outcome
        # new_inbox() honours the inbox_prefix the connection was created with
        self._inbox_prefix = self._nc.new_inbox()
        self._subscription = await self._nc.subscribe(
            SubjectPatterns.reply_wildcard(self._inbox_prefix), cb=self._handle_reply
        )

        if self._logger:
            log_ctx = LogContext(
                operation="start", component="NATSPublishTransport", inbox=self._inbox_prefix
            )
            self._logger.info("Listening for publish acknowledgements", **log_ctx.to_dict())

    async def send(self, request: PublishRequest) -> None:
        if self._subscription is None or self._inbox_prefix is None:
            raise TransportError("NATS transport is not started")
        if not self._nc.is_connected:
            raise TransportError(
                "NATS connection is not available",
                details={"subject": request.subject},
            )

        headers = build_headers(request)
        try:
            await self._nc.publish(
                request.subject,
                request.payload,
                reply=SubjectPatterns.reply_subject(self._inbox_prefix, request.correlation_token),
                headers=headers or None,
            )
        except Exception as e:
            self._metrics.increment("nats.publish_failures")
            if self._logger:
                log_ctx = LogContext.for_request(request, "send", "NATSPublishTransport")
                self._logger.error("NATS publish failed", **log_ctx.with_error(e).to_dict())
            raise TransportError(
                f"Failed to publish to {request.subject}: {e}",
                details={"subject": request.subject},
            ) from e
        self._metrics.increment("nats.published")

    async def close(self) -> None:
        if self._subscription is not None:
            try:
                await self._subscription.unsubscribe()
            except Exception as e:
                if self._logger:
                    log_ctx = LogContext(operation="close", component="NATSPublishTransport")
                    self._logger.warning(
                        "Failed to unsubscribe ack inbox", **log_ctx.with_error(e).to_dict()
                    )
            self._subscription = None
        self._on_outcome = None

        if self._owns_connection and self._nc.is_connected:
            await self._nc.close()

        if self._logger:
            log_ctx = LogContext(operation="close", component="NATSPublishTransport")
            self._logger.info("Publish transport closed", **log_ctx.to_dict())

    async def _handle_reply(self, msg: Msg) -> None:
        if self._inbox_prefix is None or self._on_outcome is None:
            return

        token = SubjectPatterns.token_from_reply(self._inbox_prefix, msg.subject)
        if token is None:
            self._metrics.increment("nats.unroutable_replies")
            if self._logger:
                self._logger.warning("Reply without a correlation token", reply_subject=msg.subject)
            return

        outcome = decode_reply(msg)
        if isinstance(outcome, PublishError) and self._logger and self._logger.is_debug_enabled():
            self._logger.debug(
                "Publish refused by broker",
                correlation_token=token,
                error_code=outcome.error_code,
                error_text=outcome.error_text,
            )

        try:
            await self._on_outcome(token, outcome)
        except Exception as e:
            # Keep the subscription alive for the remaining replies
            if self._logger:
                self._logger.exception(
                    "Outcome callback failed", exc_info=e, correlation_token=token
                )

