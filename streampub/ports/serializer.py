"""Serializer port for turning pydantic payloads into message bodies."""

from typing import Protocol, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class SerializerPort(Protocol):
    """Encodes model payloads; ``content_type`` is sent as the Content-Type header."""

    content_type: str

    def serialize(self, obj: BaseModel) -> bytes: ...

    def deserialize(self, data: bytes, model_class: type[T]) -> T: ...
