"""Ports of the synchronous, blocking JMS-style broker client.

The connector only talks to brokers through these protocols. Every method
may block and is therefore called from the worker pool, never from the
event loop.
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class SessionMode(enum.IntEnum):
    SESSION_TRANSACTED = 0
    AUTO_ACKNOWLEDGE = 1
    CLIENT_ACKNOWLEDGE = 2
    DUPS_OK_ACKNOWLEDGE = 3


class DeliveryMode(enum.IntEnum):
    NON_PERSISTENT = 1
    PERSISTENT = 2


class DestinationType(str, enum.Enum):
    QUEUE = "queue"
    TOPIC = "topic"


class Destination(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: DestinationType = DestinationType.QUEUE

    def __str__(self) -> str:
        return f"{self.type.value}://{self.name}"


class BodyType(str, enum.Enum):
    TEXT = "TEXT"
    BYTES = "BYTES"
    OBJECT = "OBJECT"


def default_properties_factory() -> dict[str, Any]:
    return {}


@dataclass
class JmsMessage:
    """A broker message: typed body, headers and application properties.

    ``OBJECT`` bodies carry a primitive (``int``, ``float``, ``bool``).
    Headers mirror the JMS header set; the broker assigns ``message_id``,
    ``timestamp`` and ``destination`` on send.
    """

    body: Any = None
    body_type: BodyType = BodyType.TEXT
    properties: dict[str, Any] = field(default_factory=default_properties_factory)
    message_id: str | None = None
    timestamp: int | None = None
    correlation_id: str | None = None
    reply_to: Destination | None = None
    destination: Destination | None = None
    delivery_mode: DeliveryMode = DeliveryMode.PERSISTENT
    priority: int = 4
    expiration: int = 0
    delivery_time: int = 0
    redelivered: bool = False
    type: str | None = None

    def copy(self) -> JmsMessage:
        return copy.deepcopy(self)


@runtime_checkable
class IJmsConsumer(Protocol):
    def receive(self, timeout: float | None = None) -> JmsMessage | None:
        """
        Block until a message arrives.

        Returns ``None`` when *timeout* elapses or the consumer (or its
        context) is closed. Raises ``JmsClientError`` on broker failure.
        """
        ...

    def close(self) -> None: ...


@runtime_checkable
class IJmsProducer(Protocol):
    def send(
        self,
        destination: Destination,
        message: JmsMessage,
        *,
        delivery_mode: DeliveryMode | None = None,
        priority: int | None = None,
        time_to_live: int | None = None,
        delivery_delay: int | None = None,
        disable_message_id: bool = False,
        disable_message_timestamp: bool = False,
    ) -> None: ...


@runtime_checkable
class IJmsContext(Protocol):
    """A broker session. Not shared between bindings."""

    session_mode: SessionMode

    def create_queue(self, name: str) -> Destination: ...

    def create_topic(self, name: str) -> Destination: ...

    def create_consumer(
        self, destination: Destination, selector: str | None = None
    ) -> IJmsConsumer: ...

    def create_producer(self) -> IJmsProducer: ...

    def acknowledge(self) -> None:
        """Acknowledge every message consumed so far (CLIENT_ACKNOWLEDGE)."""
        ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None:
        """Close the session; unblocks pending ``receive`` calls."""
        ...


@runtime_checkable
class IConnectionFactory(Protocol):
    def create_context(
        self,
        session_mode: SessionMode,
        username: str | None = None,
        password: str | None = None,
    ) -> IJmsContext: ...


__all__ = [
    "BodyType",
    "DeliveryMode",
    "Destination",
    "DestinationType",
    "IConnectionFactory",
    "IJmsConsumer",
    "IJmsContext",
    "IJmsProducer",
    "JmsMessage",
    "SessionMode",
]
