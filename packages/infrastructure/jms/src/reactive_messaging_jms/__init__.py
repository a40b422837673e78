"""reactive-messaging-jms: JMS-style broker connector for reactive-messaging."""

from __future__ import annotations

from .config import JmsChannelConfig, JmsSinkConfig, JmsSourceConfig
from .connector import CONNECTOR_NAME, JmsConnector
from .exceptions import (
    IllegalStateJmsError,
    InvalidSelectorError,
    JmsClientError,
    WorkerPoolExhaustedError,
)
from .message import CLASSNAME_PROPERTY, CONTENT_TYPE_PROPERTY, IncomingJmsMessage
from .metadata import JMS_METADATA_KEY, JmsMetadata
from .ports import (
    BodyType,
    DeliveryMode,
    Destination,
    DestinationType,
    IConnectionFactory,
    IJmsConsumer,
    IJmsContext,
    IJmsProducer,
    JmsMessage,
    SessionMode,
)
from .retry import RetryPolicy
from .session import open_context, parse_session_mode, select_factory
from .sink import JmsSink
from .source import BindingState, JmsSource
from .workers import WorkerPool, get_worker_pool, set_worker_pool

__all__ = [
    "CLASSNAME_PROPERTY",
    "CONNECTOR_NAME",
    "CONTENT_TYPE_PROPERTY",
    "JMS_METADATA_KEY",
    "BindingState",
    "BodyType",
    "DeliveryMode",
    "Destination",
    "DestinationType",
    "IConnectionFactory",
    "IJmsConsumer",
    "IJmsContext",
    "IJmsProducer",
    "IllegalStateJmsError",
    "IncomingJmsMessage",
    "InvalidSelectorError",
    "JmsChannelConfig",
    "JmsClientError",
    "JmsConnector",
    "JmsMessage",
    "JmsMetadata",
    "JmsSink",
    "JmsSinkConfig",
    "JmsSource",
    "JmsSourceConfig",
    "RetryPolicy",
    "SessionMode",
    "WorkerPool",
    "WorkerPoolExhaustedError",
    "get_worker_pool",
    "open_context",
    "parse_session_mode",
    "select_factory",
    "set_worker_pool",
]
