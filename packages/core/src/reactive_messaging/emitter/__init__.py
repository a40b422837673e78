"""Emitters: imperative producers with overflow policies."""

from __future__ import annotations

from .emitter import Emitter, EmitterSpec, EmitterState
from .overflow import (
    DEFAULT_BUFFER_SIZE,
    OverflowBuffer,
    OverflowSpec,
    OverflowStrategy,
)

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "Emitter",
    "EmitterSpec",
    "EmitterState",
    "OverflowBuffer",
    "OverflowSpec",
    "OverflowStrategy",
]
