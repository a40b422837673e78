"""Adapters implementing the core ports."""

from __future__ import annotations

from .memory import InMemoryBeanRegistry, MappingConfigSource

__all__ = ["InMemoryBeanRegistry", "MappingConfigSource"]
