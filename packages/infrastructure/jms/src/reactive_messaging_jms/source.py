"""JmsSource: the publisher behind an incoming JMS channel.

A receive loop runs on a reserved worker thread and blocks in
``receive()``. Each broker message crosses into the event loop through a
single-slot handoff; the loop does not receive again until the slot has
been drained. In ``CLIENT_ACKNOWLEDGE`` and ``SESSION_TRANSACTED`` modes it
also waits for the previous message to be acked or nacked, so an ack or a
rollback always applies to exactly one message.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import enum
import logging
import threading
from typing import TYPE_CHECKING, Any

from reactive_messaging.message import AckState
from reactive_messaging.primitives.exceptions import (
    BrokerIOError,
    DuplicateConsumerError,
    ReactiveMessagingFlowError,
    StreamClosedError,
)

from .exceptions import JmsClientError
from .message import IncomingJmsMessage
from .ports import DestinationType, SessionMode

if TYPE_CHECKING:
    from collections.abc import Callable

    from reactive_messaging.ports.codec import IPayloadCodec

    from .config import JmsChannelConfig, JmsSourceConfig
    from .ports import Destination, IJmsConsumer, IJmsContext
    from .retry import RetryPolicy
    from .workers import WorkerPool

logger = logging.getLogger(__name__)

WORKER_STOP_TIMEOUT = 5.0


class BindingState(str, enum.Enum):
    OPEN = "OPEN"
    DRAINING = "DRAINING"
    CLOSED = "CLOSED"


def resolve_destination(
    context: IJmsContext, config: JmsChannelConfig
) -> Destination:
    if config.destination_type is DestinationType.TOPIC:
        return context.create_topic(config.destination_name)
    return context.create_queue(config.destination_name)


class _Failure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


_END: Any = object()


class _Handoff:
    """Single-slot transfer from the receive thread to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        self._lock = threading.Lock()
        self._future: concurrent.futures.Future[None] | None = None
        self._pending: Any = None
        self._closed = False

    async def _transfer(self, item: Any) -> None:
        await self._queue.put(item)
        await self._queue.join()

    def put(self, item: Any) -> bool:
        """Block the calling thread until the event loop has taken *item*.

        Returns False when the handoff was closed before that happened.
        """
        with self._lock:
            if self._closed:
                return False
            try:
                future = asyncio.run_coroutine_threadsafe(
                    self._transfer(item), self._loop
                )
            except RuntimeError:
                return False
            self._pending = item
            self._future = future
        try:
            future.result()
        except concurrent.futures.CancelledError:
            return False
        return True

    def finish(self, item: Any) -> None:
        """Hand over a final marker without waiting for it to be taken."""
        with self._lock:
            if self._closed:
                return
        try:
            self._loop.call_soon_threadsafe(self._offer, item)
        except RuntimeError:
            logger.debug("Event loop closed before the end of stream was delivered")

    def _offer(self, item: Any) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.debug("Dropping end marker, handoff slot is occupied")

    async def get(self) -> Any:
        item = await self._queue.get()
        with self._lock:
            if self._pending is item:
                self._pending = None
        self._queue.task_done()
        return item

    def close(self) -> Any:
        """Stop accepting items and wake the consumer with the end marker.

        Runs on the event loop. Returns the item that was never taken, if any.
        """
        with self._lock:
            self._closed = True
            future, self._future = self._future, None
            pending, self._pending = self._pending, None
        if future is not None:
            future.cancel()
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        self._queue.put_nowait(_END)
        return pending


class JmsSource:
    """Publisher of one incoming JMS channel. Accepts a single subscriber."""

    def __init__(
        self,
        config: JmsSourceConfig,
        context: IJmsContext | None,
        reopen: Callable[[], IJmsContext],
        codec: IPayloadCodec,
        pool: WorkerPool,
        retry: RetryPolicy,
    ) -> None:
        self.config = config
        self.channel = config.channel
        self.state = BindingState.OPEN
        self._context = context
        self._reopen = reopen
        self._codec = codec
        self._pool = pool
        self._retry = retry
        self._consumer: IJmsConsumer | None = None
        self._handoff: _Handoff | None = None
        self._worker: concurrent.futures.Future[Any] | None = None
        self._subscribed = False
        self._closing = threading.Event()
        self._lock = threading.Lock()
        self._in_flight: IncomingJmsMessage | None = None
        self._waits_for_settlement = config.session_mode in (
            SessionMode.CLIENT_ACKNOWLEDGE,
            SessionMode.SESSION_TRANSACTED,
        )

    # ── Subscription ─────────────────────────────────────────────

    def __aiter__(self) -> _JmsSubscription:
        if self._subscribed:
            raise DuplicateConsumerError(
                self.channel, "a JMS source accepts a single subscriber"
            )
        self._subscribed = True
        return _JmsSubscription(self)

    async def _next(self) -> IncomingJmsMessage:
        if self.state is not BindingState.OPEN:
            raise StopAsyncIteration
        if self._handoff is None:
            self._handoff = _Handoff(asyncio.get_running_loop())
            self._worker = self._pool.submit_dedicated(self._receive_loop)
            logger.info(
                "Receiving from %s for channel %r", self._describe(), self.channel
            )
        item = await self._handoff.get()
        if item is _END:
            self.state = BindingState.CLOSED
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self.state = BindingState.CLOSED
            raise item.error
        return item  # type: ignore[no-any-return]

    async def aclose(self) -> None:
        await self.close()

    # ── Worker thread ────────────────────────────────────────────

    def _receive_loop(self) -> None:
        handoff = self._handoff
        assert handoff is not None
        failures = 0
        try:
            while not self._closing.is_set():
                try:
                    context, consumer = self._ensure_consumer()
                    raw = consumer.receive()
                except JmsClientError as e:
                    if self._closing.is_set():
                        break
                    failures += 1
                    if not self._retry.should_retry(failures):
                        logger.error(
                            "Giving up on channel %r after %d failed attempt(s): %s",
                            self.channel,
                            failures,
                            e,
                        )
                        handoff.finish(
                            _Failure(
                                BrokerIOError(
                                    f"Receive failed on channel {self.channel!r}: {e}",
                                    e,
                                )
                            )
                        )
                        return
                    logger.warning(
                        "Receive failed on channel %r (attempt %d/%d), "
                        "reopening the session: %s",
                        self.channel,
                        failures,
                        self._retry.max_attempts,
                        e,
                    )
                    self._discard_context()
                    if not self._retry.wait_before_retry(failures, self._closing):
                        break
                    continue
                if raw is None:
                    break
                failures = 0
                message = IncomingJmsMessage(raw, context, self._codec, self._pool)
                with self._lock:
                    if self._closing.is_set():
                        break
                    self._in_flight = message
                if not handoff.put(message):
                    break
                if self._waits_for_settlement:
                    message.settled.wait()
        except Exception as e:
            logger.exception("Receive loop of channel %r failed", self.channel)
            error = (
                e
                if isinstance(e, ReactiveMessagingFlowError)
                else BrokerIOError(f"Receive loop of {self.channel!r} failed: {e}", e)
            )
            handoff.finish(_Failure(error))
            return
        handoff.finish(_END)
        logger.debug("Receive loop of channel %r stopped", self.channel)

    def _ensure_consumer(self) -> tuple[IJmsContext, IJmsConsumer]:
        with self._lock:
            context, consumer = self._context, self._consumer
        if context is None:
            context = self._reopen()
        if consumer is None:
            consumer = context.create_consumer(
                resolve_destination(context, self.config), self.config.selector
            )
        with self._lock:
            self._context, self._consumer = context, consumer
        return context, consumer

    def _discard_context(self) -> None:
        with self._lock:
            context, self._context, self._consumer = self._context, None, None
        if context is not None:
            try:
                context.close()
            except JmsClientError as e:
                logger.debug(
                    "Ignoring failure closing session of %r: %s", self.channel, e
                )

    # ── Shutdown ─────────────────────────────────────────────────

    async def close(self) -> None:
        """Stop receiving, nack the in-flight message and close the session."""
        if self.state is BindingState.CLOSED and self._worker is None:
            return
        self.state = BindingState.DRAINING
        logger.info("Closing JMS source of channel %r", self.channel)
        with self._lock:
            self._closing.set()
            in_flight, self._in_flight = self._in_flight, None
        pending = self._handoff.close() if self._handoff is not None else None
        error = StreamClosedError(f"Channel {self.channel!r} was closed")
        unsettled = [pending] if pending is not None else []
        if in_flight is not None and in_flight is not pending:
            unsettled.append(in_flight)
        for message in unsettled:
            if message.ack_state is AckState.PENDING:
                try:
                    await message.nack(error)
                except Exception:
                    logger.exception("Failed to nack in-flight message on close")
            message.settled.set()
        await self._run_blocking(self._discard_context)
        worker, self._worker = self._worker, None
        if worker is not None:
            done, _ = await asyncio.wait(
                {asyncio.wrap_future(worker)}, timeout=WORKER_STOP_TIMEOUT
            )
            if not done:
                logger.warning("Receive loop of %r did not stop in time", self.channel)
        self.state = BindingState.CLOSED
        logger.info("JMS source of channel %r closed", self.channel)

    async def _run_blocking(self, fn: Callable[[], None]) -> None:
        if self._pool.started:
            await self._pool.run(fn)
        else:
            fn()

    def _describe(self) -> str:
        return f"{self.config.destination_type.value}://{self.config.destination_name}"

    def __repr__(self) -> str:
        return f"JmsSource({self.channel!r}, {self._describe()}, {self.state.value})"


class _JmsSubscription:
    def __init__(self, source: JmsSource) -> None:
        self._source = source

    def __aiter__(self) -> _JmsSubscription:
        return self

    async def __anext__(self) -> IncomingJmsMessage:
        return await self._source._next()

    async def aclose(self) -> None:
        await self._source.close()


__all__ = ["BindingState", "JmsSource", "resolve_destination"]
