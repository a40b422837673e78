"""Connector registration."""

from __future__ import annotations

from .registry import ConnectorRegistry, connector, connector_name

__all__ = ["ConnectorRegistry", "connector", "connector_name"]
