"""Pull-based stream plumbing: single subscription, merge, concat, multicast.

Streams are plain async iterators of :class:`~reactive_messaging.message.Message`.
Demand is the consumer awaiting ``__anext__``; nothing here reads ahead by
more than one item per upstream, so backpressure flows through unchanged.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .primitives.exceptions import DuplicateConsumerError

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

    from .message import Message

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END = object()


async def aclose(iterator: Any) -> None:
    """Close an async iterator if it supports ``aclose``."""
    close = getattr(iterator, "aclose", None)
    if close is not None:
        await close()


def subscribe(publisher: AsyncIterable[T]) -> AsyncIterator[T]:
    """Open a subscription on *publisher* (synchronously)."""
    return publisher.__aiter__()


async def iterate(iterator: AsyncIterator[T]) -> AsyncIterator[T]:
    """Pull from an already opened subscription without opening it again."""
    while True:
        try:
            item = await iterator.__anext__()
        except StopAsyncIteration:
            return
        yield item


class SingleSubscriptionPublisher(Generic[T]):
    """Publisher built lazily from a factory, accepting exactly one subscriber.

    The factory runs when the subscription is opened, so the upstream graph
    is only built once something actually consumes this channel.
    """

    def __init__(self, name: str, factory: Callable[[], AsyncIterator[T]]) -> None:
        self.name = name
        self._factory = factory
        self._subscribed = False

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    def __aiter__(self) -> AsyncIterator[T]:
        if self._subscribed:
            raise DuplicateConsumerError(self.name, "publisher accepts one subscriber")
        self._subscribed = True
        return self._factory()

    def __repr__(self) -> str:
        return f"SingleSubscriptionPublisher({self.name!r})"


async def concat(iterators: list[AsyncIterator[T]]) -> AsyncIterator[T]:
    """Drain each iterator fully before moving on to the next one."""
    try:
        for iterator in iterators:
            async for item in iterate(iterator):
                yield item
    finally:
        for iterator in iterators:
            await aclose(iterator)


async def merge(iterators: list[AsyncIterator[T]]) -> AsyncIterator[T]:
    """Interleave several iterators, preserving the order of each one.

    Each upstream is pumped by its own task through a single-slot queue. The
    first upstream failure cancels the others and is re-raised downstream.
    """
    if len(iterators) == 1:
        try:
            async for item in iterate(iterators[0]):
                yield item
        finally:
            await aclose(iterators[0])
        return

    queue: asyncio.Queue[tuple[Any, BaseException | None]] = asyncio.Queue(maxsize=1)

    async def pump(iterator: AsyncIterator[T]) -> None:
        try:
            async for item in iterate(iterator):
                await queue.put((item, None))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            await queue.put((None, exc))
            return
        finally:
            await aclose(iterator)
        await queue.put((_END, None))

    tasks = [asyncio.create_task(pump(iterator)) for iterator in iterators]
    remaining = len(tasks)
    try:
        while remaining:
            item, error = await queue.get()
            if error is not None:
                raise error
            if item is _END:
                remaining -= 1
                continue
            yield item
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class _MulticastSubscription:
    def __init__(self, owner: Multicast) -> None:
        self._owner = owner
        self.queue: asyncio.Queue[tuple[Any, BaseException | None]] = asyncio.Queue(
            maxsize=1
        )
        self.active = True

    def __aiter__(self) -> _MulticastSubscription:
        return self

    async def __anext__(self) -> Message[Any]:
        if not self.active:
            raise StopAsyncIteration
        await self._owner._ensure_started()
        item, error = await self.queue.get()
        if error is not None:
            self.active = False
            raise error
        if item is _END:
            self.active = False
            raise StopAsyncIteration
        return item  # type: ignore[no-any-return]

    async def aclose(self) -> None:
        if self.active:
            self.active = False
            await self._owner._detach(self)


class Multicast:
    """Broadcast publisher: fans one upstream out to a fixed number of subscribers.

    The upstream subscription is opened at construction, but it is pulled
    only once every expected subscriber has subscribed and one of them asks
    for an item. Each item is handed to every active subscriber through a
    single-slot queue, so the slowest subscriber dictates the pace of all of
    them.
    """

    def __init__(
        self,
        name: str,
        source: AsyncIterator[Message[Any]],
        subscribers: int,
    ) -> None:
        if subscribers < 1:
            raise ValueError("subscribers must be >= 1")
        self.name = name
        self._source = source
        self._expected = subscribers
        self._subscriptions: list[_MulticastSubscription] = []
        self._pump: asyncio.Task[None] | None = None
        self._all_subscribed: asyncio.Event | None = None

    @property
    def expected_subscribers(self) -> int:
        return self._expected

    def __aiter__(self) -> AsyncIterator[Message[Any]]:
        if len(self._subscriptions) >= self._expected:
            raise DuplicateConsumerError(
                self.name, f"broadcast configured for {self._expected} subscriber(s)"
            )
        subscription = _MulticastSubscription(self)
        self._subscriptions.append(subscription)
        if len(self._subscriptions) == self._expected and self._all_subscribed:
            self._all_subscribed.set()
        return subscription

    async def _ensure_started(self) -> None:
        if self._pump is not None:
            return
        if len(self._subscriptions) < self._expected:
            if self._all_subscribed is None:
                self._all_subscribed = asyncio.Event()
            await self._all_subscribed.wait()
        if self._pump is None:
            self._pump = asyncio.create_task(
                self._run(), name=f"multicast:{self.name}"
            )

    async def _run(self) -> None:
        try:
            async for item in iterate(self._source):
                targets = [s for s in self._subscriptions if s.active]
                if not targets:
                    break
                for subscription in targets:
                    await subscription.queue.put((item, None))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.debug("Broadcast %s upstream failed: %s", self.name, exc)
            for subscription in self._subscriptions:
                if subscription.active:
                    await subscription.queue.put((None, exc))
            return
        finally:
            await aclose(self._source)
        for subscription in self._subscriptions:
            if subscription.active:
                await subscription.queue.put((_END, None))

    async def _detach(self, subscription: _MulticastSubscription) -> None:
        # Unblock the pump if it waits on the departing subscriber.
        with contextlib.suppress(asyncio.QueueEmpty):
            subscription.queue.get_nowait()
        if any(s.active for s in self._subscriptions):
            return
        if self._pump is not None:
            self._pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump
        else:
            await aclose(self._source)

    def __repr__(self) -> str:
        return f"Multicast({self.name!r}, subscribers={self._expected})"


class CallbackSubscriber:
    """Subscriber invoking an async callback for every message."""

    def __init__(self, callback: Callable[[Message[Any]], Awaitable[None]]) -> None:
        self._callback = callback

    async def consume(self, stream: AsyncIterator[Message[Any]]) -> None:
        async for message in iterate(stream):
            await self._callback(message)


__all__ = [
    "CallbackSubscriber",
    "Multicast",
    "SingleSubscriptionPublisher",
    "aclose",
    "concat",
    "iterate",
    "merge",
    "subscribe",
]
