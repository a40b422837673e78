"""Mediator shape vocabulary and type-hint inspection helpers."""

from __future__ import annotations

import collections.abc
import enum
import typing
from typing import Any

from ..message import Message


class Shape(str, enum.Enum):
    PROCESSOR = "PROCESSOR"
    SUBSCRIBER = "SUBSCRIBER"
    PUBLISHER = "PUBLISHER"
    CONSUMER = "CONSUMER"


class Consumption(str, enum.Enum):
    STREAM_OF_MESSAGE = "STREAM_OF_MESSAGE"
    STREAM_OF_PAYLOAD = "STREAM_OF_PAYLOAD"
    MESSAGE = "MESSAGE"
    PAYLOAD = "PAYLOAD"
    NONE = "NONE"

    @property
    def is_stream(self) -> bool:
        return self in (Consumption.STREAM_OF_MESSAGE, Consumption.STREAM_OF_PAYLOAD)

    @property
    def is_message(self) -> bool:
        return self in (Consumption.STREAM_OF_MESSAGE, Consumption.MESSAGE)


class Production(str, enum.Enum):
    STREAM_OF_MESSAGE = "STREAM_OF_MESSAGE"
    STREAM_OF_PAYLOAD = "STREAM_OF_PAYLOAD"
    MESSAGE = "MESSAGE"
    PAYLOAD = "PAYLOAD"
    NONE = "NONE"

    @property
    def is_stream(self) -> bool:
        return self in (Production.STREAM_OF_MESSAGE, Production.STREAM_OF_PAYLOAD)


class AckPolicy(str, enum.Enum):
    PRE = "PRE"
    POST = "POST"
    MANUAL = "MANUAL"
    NONE = "NONE"


class MergePolicy(str, enum.Enum):
    NONE = "NONE"
    MERGE = "MERGE"
    CONCAT = "CONCAT"


_STREAM_ORIGINS = (
    collections.abc.AsyncIterator,
    collections.abc.AsyncIterable,
    collections.abc.AsyncGenerator,
)


def is_stream_type(hint: Any) -> bool:
    """True for ``AsyncIterator``/``AsyncIterable``/``AsyncGenerator`` hints."""
    origin = typing.get_origin(hint) or hint
    return origin in _STREAM_ORIGINS


def stream_item(hint: Any) -> Any:
    """Item type of a stream hint, ``Any`` when not parameterised."""
    args = typing.get_args(hint)
    return args[0] if args else Any


def is_message_type(hint: Any) -> bool:
    origin = typing.get_origin(hint) or hint
    return isinstance(origin, type) and issubclass(origin, Message)


def message_payload_type(hint: Any) -> Any:
    """``T`` for ``Message[T]``, ``Any`` for a bare ``Message``."""
    args = typing.get_args(hint)
    return args[0] if args else Any


def is_none_type(hint: Any) -> bool:
    return hint is None or hint is type(None)


__all__ = [
    "AckPolicy",
    "Consumption",
    "MergePolicy",
    "Production",
    "Shape",
    "is_message_type",
    "is_none_type",
    "is_stream_type",
    "message_payload_type",
    "stream_item",
]
