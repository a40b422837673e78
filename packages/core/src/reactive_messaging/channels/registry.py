"""Channel registry: the named producers, subscribers and emitters of the graph."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..primitives.exceptions import (
    DuplicateConsumerError,
    DuplicateProducerError,
    RegistryFrozenError,
)

if TYPE_CHECKING:
    from ..emitter import Emitter
    from ..ports.streams import IPublisher, ISubscriber

logger = logging.getLogger(__name__)


def _check_name(name: str) -> str:
    if not isinstance(name, str) or not name:
        raise ValueError(f"Channel name must be a non-empty string, got {name!r}")
    return name


class ChannelRegistry:
    """Name-keyed store of channel endpoints.

    Names are matched exactly (case-sensitive, never trimmed). Each name has
    at most one publisher, one subscriber and one emitter. Once the graph is
    running the registry is frozen and any further registration raises
    :class:`RegistryFrozenError`.
    """

    def __init__(self) -> None:
        self._publishers: dict[str, IPublisher] = {}
        self._subscribers: dict[str, ISubscriber] = {}
        self._emitters: dict[str, Emitter] = {}
        self._frozen = False

    # ── Registration ─────────────────────────────────────────────

    def register_incoming(self, name: str, publisher: IPublisher) -> IPublisher:
        self._ensure_mutable(name)
        _check_name(name)
        if name in self._publishers:
            raise DuplicateProducerError(name, "publisher already registered")
        self._publishers[name] = publisher
        logger.debug("Registered publisher for channel %s -> %r", name, publisher)
        return publisher

    def register_subscriber(self, name: str, subscriber: ISubscriber) -> ISubscriber:
        self._ensure_mutable(name)
        _check_name(name)
        if name in self._subscribers:
            raise DuplicateConsumerError(name, "subscriber already registered")
        self._subscribers[name] = subscriber
        logger.debug("Registered subscriber for channel %s -> %r", name, subscriber)
        return subscriber

    def register_emitter(self, name: str, emitter: Emitter) -> Emitter:
        self._ensure_mutable(name)
        _check_name(name)
        if name in self._emitters:
            raise DuplicateProducerError(name, "emitter already registered")
        self._emitters[name] = emitter
        logger.debug("Registered emitter for channel %s", name)
        return emitter

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _ensure_mutable(self, name: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register channel {name!r}: the channel graph is running"
            )

    # ── Lookup ───────────────────────────────────────────────────

    def get_incoming_names(self) -> set[str]:
        return set(self._publishers)

    def get_outgoing_names(self) -> set[str]:
        return set(self._subscribers)

    def get_emitter_names(self) -> set[str]:
        return set(self._emitters)

    def get_publisher(self, name: str) -> IPublisher | None:
        return self._publishers.get(name)

    def get_subscriber(self, name: str) -> ISubscriber | None:
        return self._subscribers.get(name)

    def get_emitter(self, name: str) -> Emitter | None:
        return self._emitters.get(name)


__all__ = ["ChannelRegistry"]
