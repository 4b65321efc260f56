"""Serialization utilities for JSON and MessagePack payloads."""

import json
from typing import TypeVar

import msgpack
from pydantic import BaseModel

from ..domain.exceptions import SerializationError

T = TypeVar("T", bound=BaseModel)


def serialize_to_msgpack(obj: BaseModel) -> bytes:
    """Serialize a Pydantic model to MessagePack bytes."""
    try:
        # JSON mode turns datetimes and enums into msgpack-friendly primitives
        data = obj.model_dump(mode="json")
        return bytes(msgpack.packb(data, use_bin_type=True))
    except Exception as e:
        raise SerializationError(f"Failed to serialize to msgpack: {e}") from e


def deserialize_from_msgpack(data: bytes, model_class: type[T]) -> T:
    """Deserialize MessagePack bytes to a Pydantic model."""
    try:
        unpacked = msgpack.unpackb(data, raw=False)
        return model_class.model_validate(unpacked)
    except Exception as e:
        raise SerializationError(f"Failed to deserialize from msgpack: {e}") from e


def serialize_to_json(obj: BaseModel) -> bytes:
    """Serialize a Pydantic model to JSON bytes."""
    try:
        return obj.model_dump_json().encode()
    except Exception as e:
        raise SerializationError(f"Failed to serialize to JSON: {e}") from e


def deserialize_from_json(data: bytes, model_class: type[T]) -> T:
    """Deserialize JSON bytes to a Pydantic model.

    Raises:
        SerializationError: On empty input, invalid JSON or a schema mismatch
    """
    try:
        json_str = data.decode() if isinstance(data, bytes) else data
        if not json_str or json_str.isspace():
            raise SerializationError("Empty or whitespace-only JSON data")
        return model_class.model_validate(json.loads(json_str))
    except SerializationError:
        raise
    except json.JSONDecodeError as e:
        raise SerializationError(f"Invalid JSON format: {e}") from e
    except Exception as e:
        raise SerializationError(f"Failed to deserialize from JSON: {e}") from e
