"""Emitter: lets imperative application code push into a channel."""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ..instrumentation import fire_and_forget_hook, get_hook_registry
from ..message import Message
from ..primitives.exceptions import DuplicateConsumerError
from .overflow import OverflowBuffer, OverflowSpec

if TYPE_CHECKING:
    from concurrent.futures import Future

    from .overflow import OverflowStrategy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EmitterState(str, enum.Enum):
    UNCONNECTED = "UNCONNECTED"
    CONNECTED = "CONNECTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class EmitterSpec:
    """Declaration of an emitter to create when the graph is built."""

    channel: str
    overflow: OverflowSpec = field(default_factory=OverflowSpec.none)
    broadcast: bool = False


class Emitter(Generic[T]):
    """Imperative producer for a channel.

    The emitter is the channel's publisher: its single subscription is the
    downstream that drains the overflow buffer. ``send`` may be called from
    any thread and returns a :class:`concurrent.futures.Future` resolved once
    the downstream has taken the item (or the overflow policy decided its
    fate).
    """

    def __init__(self, channel: str, overflow: OverflowSpec | None = None) -> None:
        if not channel:
            raise ValueError("Emitter channel name must be a non-empty string")
        self.channel = channel
        self._buffer = OverflowBuffer(channel, overflow or OverflowSpec.none())
        self._state = EmitterState.UNCONNECTED
        self._connected = False
        self._state_lock = threading.Lock()

    @property
    def overflow(self) -> OverflowSpec:
        return self._buffer.spec

    @property
    def strategy(self) -> OverflowStrategy:
        return self._buffer.spec.strategy

    @property
    def state(self) -> EmitterState:
        return self._state

    def is_connected(self) -> bool:
        return self._connected

    def has_requests(self) -> bool:
        """True while the downstream is waiting for an item."""
        return self._buffer.has_requests

    def buffered(self) -> int:
        return len(self._buffer)

    # ── Producer API ─────────────────────────────────────────────────

    def send(self, item: T | Message[T]) -> Future[None]:
        """Send a payload (wrapped in a new message) or a message as is."""
        message = item if isinstance(item, Message) else Message(item)
        registry = get_hook_registry()
        if registry.has_hooks():
            fire_and_forget_hook(
                registry, f"emitter.send.{self.channel}", {"channel": self.channel}
            )
        future = self._buffer.offer(message)
        if self._buffer.terminated:
            self._set_state(EmitterState.FAILED)
        return future

    def complete(self) -> None:
        """End the stream once every buffered item has been delivered."""
        logger.debug("Emitter for channel %s completed", self.channel)
        self._set_state(EmitterState.COMPLETED)
        self._buffer.complete()

    def fail(self, error: BaseException) -> None:
        """Terminate the stream; buffered items are discarded."""
        logger.debug("Emitter for channel %s failed: %s", self.channel, error)
        self._set_state(EmitterState.FAILED)
        self._buffer.fail(error)

    # ── Publisher API ────────────────────────────────────────────────

    def __aiter__(self) -> _EmitterSubscription:
        with self._state_lock:
            if self._connected:
                raise DuplicateConsumerError(
                    self.channel, "emitter accepts one subscriber"
                )
            self._connected = True
            if self._state is EmitterState.UNCONNECTED:
                self._state = EmitterState.CONNECTED
        logger.debug("Emitter for channel %s connected", self.channel)
        return _EmitterSubscription(self)

    def _set_state(self, state: EmitterState) -> None:
        with self._state_lock:
            if self._state in (EmitterState.UNCONNECTED, EmitterState.CONNECTED):
                self._state = state

    def __repr__(self) -> str:
        return (
            f"Emitter(channel={self.channel!r}, "
            f"overflow={self.strategy.value}, state={self._state.value})"
        )


class _EmitterSubscription:
    def __init__(self, emitter: Emitter[Any]) -> None:
        self._emitter = emitter

    def __aiter__(self) -> _EmitterSubscription:
        return self

    async def __anext__(self) -> Message[Any]:
        try:
            return await self._emitter._buffer.__anext__()
        except StopAsyncIteration:
            raise
        except Exception:
            self._emitter._set_state(EmitterState.FAILED)
            raise

    async def aclose(self) -> None:
        if not self._emitter._buffer.terminated:
            self._emitter._set_state(EmitterState.CANCELLED)
        await self._emitter._buffer.aclose()


__all__ = ["Emitter", "EmitterSpec", "EmitterState"]
