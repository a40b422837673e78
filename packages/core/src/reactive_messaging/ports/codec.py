"""IPayloadCodec: conversion between payload objects and wire bytes."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IPayloadCodec(Protocol):
    """
    Port for payload serialization.

    Implementations raise :class:`~reactive_messaging.primitives.EncodeError`
    and :class:`~reactive_messaging.primitives.DecodeError` on failure.
    """

    content_type: str

    def encode(self, payload: Any) -> bytes: ...

    def decode(self, data: bytes | str, target: Any) -> Any: ...
