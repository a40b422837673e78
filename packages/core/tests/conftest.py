"""Pytest fixtures for reactive_messaging core tests."""

from __future__ import annotations

import pytest

from reactive_messaging.adapters.memory import MappingConfigSource
from reactive_messaging.channels import ChannelRegistry
from reactive_messaging.connectors import ConnectorRegistry
from reactive_messaging.mediators import MediatorManager


@pytest.fixture
def config() -> MappingConfigSource:
    return MappingConfigSource()


@pytest.fixture
def channels() -> ChannelRegistry:
    return ChannelRegistry()


@pytest.fixture
def connectors() -> ConnectorRegistry:
    return ConnectorRegistry()


@pytest.fixture
def manager(
    channels: ChannelRegistry,
    connectors: ConnectorRegistry,
    config: MappingConfigSource,
) -> MediatorManager:
    return MediatorManager(channels, connectors, config)

