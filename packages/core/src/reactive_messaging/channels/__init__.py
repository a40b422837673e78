"""Named channel endpoints."""

from __future__ import annotations

from .registry import ChannelRegistry

__all__ = ["ChannelRegistry"]
