"""In-memory stand-in for a JetStream server.

Stores messages in named streams, assigns per-stream sequence numbers,
collapses duplicates by deduplication ID and enforces publish expectations
with the same error codes and texts a JetStream server returns. Intended
for tests and local development.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from ..domain.enums import ErrorCode
from ..domain.exceptions import ValidationError
from ..domain.models import PublishAck, PublishError, PublishOutcome, PublishRequest
from ..domain.patterns import SubjectPatterns

# JetStream API error codes
ERR_STREAM_NOT_MATCH = "10060"
ERR_WRONG_LAST_MSG_ID = "10070"
ERR_WRONG_LAST_SEQUENCE = "10071"


@dataclass
class StoredMessage:
    seq: int
    subject: str
    payload: bytes
    headers: dict[str, str]
    msg_id: str | None = None


@dataclass
class InMemoryStream:
    """A named, ordered log bound to one or more subject filters."""

    name: str
    subjects: list[str]
    duplicate_window: float = 120.0
    messages: list[StoredMessage] = field(default_factory=list)
    last_seq: int = 0
    last_msg_id: str | None = None
    _last_seq_by_subject: dict[str, int] = field(default_factory=dict)
    _msg_ids: dict[str, tuple[int, float]] = field(default_factory=dict)

    def accepts(self, subject: str) -> bool:
        return any(SubjectPatterns.matches(pattern, subject) for pattern in self.subjects)

    def last_subject_seq(self, subject: str) -> int:
        return self._last_seq_by_subject.get(subject, 0)

    def duplicate_of(self, msg_id: str, now: float) -> int | None:
        """Sequence of the message stored under ``msg_id`` within the window."""
        self._msg_ids = {
            key: (seq, stored_at)
            for key, (seq, stored_at) in self._msg_ids.items()
            if now - stored_at < self.duplicate_window
        }
        hit = self._msg_ids.get(msg_id)
        return hit[0] if hit else None

    def append(self, request: PublishRequest, now: float) -> int:
        self.last_seq += 1
        msg_id = request.msg_id
        self.messages.append(
            StoredMessage(
                seq=self.last_seq,
                subject=request.subject,
                payload=request.payload,
                headers=dict(request.headers),
                msg_id=msg_id,
            )
        )
        self._last_seq_by_subject[request.subject] = self.last_seq
        if msg_id:
            self._msg_ids[msg_id] = (self.last_seq, now)
            self.last_msg_id = msg_id
        return self.last_seq


class InMemoryBroker:
    """Evaluates publish requests against in-memory streams."""

    def __init__(self, domain: str | None = None) -> None:
        self._streams: dict[str, InMemoryStream] = {}
        self._domain = domain

    def add_stream(
        self, name: str, subjects: list[str], duplicate_window: float = 120.0
    ) -> InMemoryStream:
        """Create a stream bound to the given subject filters."""
        if name in self._streams:
            raise ValidationError(f"Stream '{name}' already exists", details={"stream": name})
        for pattern in subjects:
            if not SubjectPatterns.is_valid_filter(pattern):
                raise ValidationError(f"Invalid subject filter '{pattern}'")
        stream = InMemoryStream(
            name=name, subjects=list(subjects), duplicate_window=duplicate_window
        )
        self._streams[name] = stream
        return stream

    def stream(self, name: str) -> InMemoryStream:
        return self._streams[name]

    def stream_for(self, subject: str) -> InMemoryStream | None:
        for stream in self._streams.values():
            if stream.accepts(subject):
                return stream
        return None

    def store(self, request: PublishRequest) -> PublishOutcome:
        """Persist a request or explain why it was refused."""
        stream = self.stream_for(request.subject)
        if stream is None:
            return PublishError(
                request=request,
                error_code=ErrorCode.NO_RESPONDERS.value,
                error_text=f"no stream matches subject '{request.subject}'",
            )

        now = time.monotonic()
        expectations = request.expectations

        if expectations and expectations.msg_id:
            seq = stream.duplicate_of(expectations.msg_id, now)
            if seq is not None:
                return PublishAck(stream=stream.name, seq=seq, duplicate=True, domain=self._domain)

        if expectations:
            if expectations.expected_stream and expectations.expected_stream != stream.name:
                return self._reject(
                    request, ERR_STREAM_NOT_MATCH, "expected stream does not match"
                )
            if (
                expectations.expected_last_seq is not None
                and expectations.expected_last_seq != stream.last_seq
            ):
                return self._reject(
                    request, ERR_WRONG_LAST_SEQUENCE, f"wrong last sequence: {stream.last_seq}"
                )
            if expectations.expected_last_subject_seq is not None:
                last = stream.last_subject_seq(request.subject)
                if expectations.expected_last_subject_seq != last:
                    return self._reject(
                        request, ERR_WRONG_LAST_SEQUENCE, f"wrong last sequence: {last}"
                    )
            if (
                expectations.expected_last_msg_id is not None
                and expectations.expected_last_msg_id != stream.last_msg_id
            ):
                last_msg_id = stream.last_msg_id or ""
                return self._reject(
                    request, ERR_WRONG_LAST_MSG_ID, f"wrong last msg ID: {last_msg_id}"
                )

        seq = stream.append(request, now)
        return PublishAck(stream=stream.name, seq=seq, duplicate=False, domain=self._domain)

    @staticmethod
    def _reject(request: PublishRequest, code: str, text: str) -> PublishError:
        return PublishError(request=request, error_code=code, error_text=text)
