"""Connector factory ports: materialize channels from configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import ConnectorConfig
    from .streams import IPublisher, ISubscriber


@runtime_checkable
class IIncomingConnectorFactory(Protocol):
    """
    Port for connectors able to feed a channel from an external transport.

    Each call must return an independent publisher owning its own resources.
    Publishers that hold resources expose ``async close()``.
    """

    def get_publisher(self, config: ConnectorConfig) -> IPublisher: ...


@runtime_checkable
class IOutgoingConnectorFactory(Protocol):
    """
    Port for connectors able to forward a channel to an external transport.

    Each call must return an independent subscriber owning its own resources.
    Subscribers that hold resources expose ``async close()``.
    """

    def get_subscriber(self, config: ConnectorConfig) -> ISubscriber: ...
