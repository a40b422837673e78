"""In-memory broker implementing the JMS client ports."""

from __future__ import annotations

from .broker import InMemoryBroker, InMemoryConsumer, InMemoryContext, InMemoryProducer
from .factory import InMemoryConnectionFactory
from .selector import Selector

__all__ = [
    "InMemoryBroker",
    "InMemoryConnectionFactory",
    "InMemoryConsumer",
    "InMemoryContext",
    "InMemoryProducer",
    "Selector",
]
