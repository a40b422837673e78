"""JmsConnector: materializes channels on JMS-style brokers.

Usage::

    runtime = ReactiveMessaging({
        "messaging.incoming.orders.connector": "smallrye-jms",
        "messaging.incoming.orders.destination": "orders",
    })
    runtime.beans.add(InMemoryConnectionFactory(broker), name="local")
    runtime.connectors.register(JmsConnector(runtime.beans, runtime.config))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reactive_messaging.codec import JsonPayloadCodec
from reactive_messaging.connectors import connector

from .config import JmsSinkConfig, JmsSourceConfig
from .retry import RetryPolicy
from .session import open_context, select_factory
from .sink import JmsSink
from .source import JmsSource
from .workers import get_worker_pool, set_worker_pool

if TYPE_CHECKING:
    from reactive_messaging.config import ConnectorConfig
    from reactive_messaging.ports.beans import IBeanRegistry
    from reactive_messaging.ports.codec import IPayloadCodec
    from reactive_messaging.ports.config import IConfigSource

    from .workers import WorkerPool

logger = logging.getLogger(__name__)

CONNECTOR_NAME = "smallrye-jms"


@connector(CONNECTOR_NAME)
class JmsConnector:
    """Inbound and outbound connector for JMS-style brokers.

    Connection factories are looked up in the bean registry for every
    channel. Each channel gets its own broker session.
    """

    def __init__(
        self,
        beans: IBeanRegistry,
        config: IConfigSource | None = None,
        codec: IPayloadCodec | None = None,
        pool: WorkerPool | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.beans = beans
        self.config = config
        self.codec: IPayloadCodec = codec if codec is not None else JsonPayloadCodec()
        self._owns_pool = pool is None
        self.pool = pool if pool is not None else get_worker_pool(config)
        self.retry = retry if retry is not None else RetryPolicy.from_config(config)

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        self.pool.start()

    def close(self) -> None:
        if self._owns_pool:
            self.pool.shutdown(wait=False)
            set_worker_pool(None)

    # ── Channels ─────────────────────────────────────────────────

    def get_publisher(self, config: ConnectorConfig) -> JmsSource:
        """Open a session for incoming channel ``config.channel``.

        Raises:
            UnknownSessionModeError, InvalidConfigValueError: bad channel keys.
            NoConnectionFactoryError, NamedFactoryNotFoundError,
            AmbiguousFactoryError: the factory cannot be chosen.
        """
        source_config = JmsSourceConfig.from_connector_config(config)
        factory = select_factory(self.beans, source_config.connection_factory_name)
        context = open_context(factory, source_config)
        logger.debug("Materialized incoming JMS channel %r", config.channel)
        return JmsSource(
            source_config,
            context,
            lambda: open_context(factory, source_config),
            self.codec,
            self.pool,
            self.retry,
        )

    def get_subscriber(self, config: ConnectorConfig) -> JmsSink:
        sink_config = JmsSinkConfig.from_connector_config(config)
        factory = select_factory(self.beans, sink_config.connection_factory_name)
        context = open_context(factory, sink_config)
        logger.debug("Materialized outgoing JMS channel %r", config.channel)
        return JmsSink(sink_config, context, self.codec, self.pool)

    def __repr__(self) -> str:
        return f"JmsConnector({self.pool!r})"


__all__ = ["CONNECTOR_NAME", "JmsConnector"]
