"""Pytest fixtures for JMS connector tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from reactive_messaging.codec import JsonPayloadCodec
from reactive_messaging.config import ConnectorConfig
from reactive_messaging_jms import (
    JmsSinkConfig,
    JmsSource,
    JmsSourceConfig,
    RetryPolicy,
    WorkerPool,
    open_context,
)
from reactive_messaging_jms.memory import InMemoryBroker, InMemoryConnectionFactory

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


def _source_config(channel: str = "in", **values: Any) -> JmsSourceConfig:
    """Build a source config from dashed ``messaging.incoming.*`` keys."""
    raw = {key.replace("_", "-"): str(value) for key, value in values.items()}
    return JmsSourceConfig.from_connector_config(
        ConnectorConfig(channel, "incoming", raw)
    )


def _sink_config(channel: str = "out", **values: Any) -> JmsSinkConfig:
    raw = {key.replace("_", "-"): str(value) for key, value in values.items()}
    return JmsSinkConfig.from_connector_config(
        ConnectorConfig(channel, "outgoing", raw)
    )


@pytest.fixture
def make_source_config() -> Callable[..., JmsSourceConfig]:
    return _source_config


@pytest.fixture
def make_sink_config() -> Callable[..., JmsSinkConfig]:
    return _sink_config


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def factory(broker: InMemoryBroker) -> InMemoryConnectionFactory:
    return InMemoryConnectionFactory(broker)


@pytest.fixture
def codec() -> JsonPayloadCodec:
    return JsonPayloadCodec()


@pytest.fixture
def retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture
def pool() -> Iterator[WorkerPool]:
    workers = WorkerPool(max_workers=4)
    workers.start()
    yield workers
    workers.shutdown(wait=False)


@pytest.fixture
def make_source(
    factory: InMemoryConnectionFactory,
    codec: JsonPayloadCodec,
    pool: WorkerPool,
    retry: RetryPolicy,
) -> Callable[..., JmsSource]:
    def make(config: JmsSourceConfig | None = None) -> JmsSource:
        resolved = config or _source_config(destination="Q1")
        return JmsSource(
            resolved,
            open_context(factory, resolved),
            lambda: open_context(factory, resolved),
            codec,
            pool,
            retry,
        )

    return make
