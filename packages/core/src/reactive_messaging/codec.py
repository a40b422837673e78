"""JsonPayloadCodec: JSON wire format with typed decoding through pydantic."""

from __future__ import annotations

import dataclasses
import json
import logging
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from .ports.codec import IPayloadCodec
from .primitives.exceptions import DecodeError, EncodeError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


def _json_serializer(obj: Any) -> Any:
    """Serialize pydantic models, dataclasses, datetimes and sets."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def is_untyped(target: Any) -> bool:
    """True when *target* does not ask for any conversion."""
    return target is None or target is Any or target is object


class JsonPayloadCodec(IPayloadCodec):
    """UTF-8 JSON codec.

    ``decode`` validates the parsed document against *target* with a pydantic
    ``TypeAdapter``, so models, dataclasses, typed dicts and plain builtins
    all work as mediator parameter types.
    """

    content_type = JSON_CONTENT_TYPE

    def encode(self, payload: Any) -> bytes:
        try:
            return json.dumps(payload, default=_json_serializer).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodeError(
                f"Cannot encode payload of type {type(payload).__name__}: {e}"
            ) from e

    def decode(self, data: bytes | str, target: Any) -> Any:
        try:
            text = data.decode("utf-8") if isinstance(data, bytes) else data
            document = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Payload is not valid JSON: {e}") from e
        if is_untyped(target):
            return document
        try:
            return _adapter(target).validate_python(document)
        except ValidationError as e:
            name = getattr(target, "__name__", repr(target))
            raise DecodeError(f"Cannot decode payload as {name}: {e}") from e
        except TypeError as e:
            # Target type pydantic cannot build a schema for.
            raise DecodeError(f"Unsupported payload type {target!r}: {e}") from e


__all__ = ["JSON_CONTENT_TYPE", "JsonPayloadCodec", "is_untyped"]
