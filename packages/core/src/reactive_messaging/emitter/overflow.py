"""Overflow policies and the thread-safe buffer sitting behind an emitter."""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from ..primitives.exceptions import (
    EmitterOverflowError,
    InvalidConfigValueError,
    StreamClosedError,
)

if TYPE_CHECKING:
    from ..message import Message

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 256


class OverflowStrategy(str, enum.Enum):
    BUFFER = "BUFFER"
    UNBOUNDED_BUFFER = "UNBOUNDED_BUFFER"
    DROP = "DROP"
    FAIL = "FAIL"
    LATEST = "LATEST"
    NONE = "NONE"


class OverflowSpec(BaseModel):
    """What an emitter does when the application outruns the downstream.

    ``NONE`` means "apply the default", which is ``FAIL`` with a capacity of
    256. ``BUFFER`` and ``FAIL`` without an explicit capacity also use 256.
    """

    model_config = ConfigDict(frozen=True)

    strategy: OverflowStrategy = OverflowStrategy.NONE
    capacity: int | None = Field(default=None, ge=0)

    @classmethod
    def buffer(cls, capacity: int = DEFAULT_BUFFER_SIZE) -> OverflowSpec:
        return cls(strategy=OverflowStrategy.BUFFER, capacity=capacity)

    @classmethod
    def unbounded(cls) -> OverflowSpec:
        return cls(strategy=OverflowStrategy.UNBOUNDED_BUFFER)

    @classmethod
    def drop(cls) -> OverflowSpec:
        return cls(strategy=OverflowStrategy.DROP)

    @classmethod
    def fail(cls, capacity: int = DEFAULT_BUFFER_SIZE) -> OverflowSpec:
        return cls(strategy=OverflowStrategy.FAIL, capacity=capacity)

    @classmethod
    def latest(cls) -> OverflowSpec:
        return cls(strategy=OverflowStrategy.LATEST)

    @classmethod
    def none(cls) -> OverflowSpec:
        return cls(strategy=OverflowStrategy.NONE)

    @classmethod
    def parse(cls, value: str, capacity: int | None = None) -> OverflowSpec:
        """Build an overflow spec from a value such as ``"buffer"``."""
        try:
            strategy = OverflowStrategy(value.strip().upper())
        except ValueError:
            expected = ", ".join(s.value for s in OverflowStrategy)
            raise InvalidConfigValueError("overflow", value, expected) from None
        return cls(strategy=strategy, capacity=capacity)

    def resolved(self) -> OverflowSpec:
        """Return the effective overflow spec, with defaults applied."""
        if self.strategy is OverflowStrategy.NONE:
            return OverflowSpec.fail(DEFAULT_BUFFER_SIZE)
        if (
            self.strategy in (OverflowStrategy.BUFFER, OverflowStrategy.FAIL)
            and self.capacity is None
        ):
            return OverflowSpec(strategy=self.strategy, capacity=DEFAULT_BUFFER_SIZE)
        return self


_COMPLETED = object()


class OverflowBuffer:
    """Hand-off between application threads and the asyncio consumer.

    Producers call :meth:`offer` from any thread. The consumer is the async
    iterator side (``__anext__``). The downstream has "requested" an item
    exactly while it is awaiting ``__anext__`` with an empty buffer; an item
    offered at that moment is always accepted. Otherwise the overflow policy
    decides.
    """

    def __init__(self, channel: str, spec: OverflowSpec) -> None:
        self.channel = channel
        self.spec = spec.resolved()
        self._lock = threading.Lock()
        self._queue: deque[tuple[Message[Any], Future[None]]] = deque()
        self._waiting = False
        self._terminal: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup = asyncio.Event()

    # ── Producer side ────────────────────────────────────────────────

    def offer(self, message: Message[Any]) -> Future[None]:
        future: Future[None] = Future()
        released: list[tuple[Future[None], BaseException | None]] = []
        with self._lock:
            if self._terminal is not None:
                released.append((future, self._closed_error()))
            elif self._waiting:
                self._queue.append((message, future))
                self._waiting = False
                self._wake()
            else:
                self._apply_policy(message, future, released)
        _release(released)
        return future

    def _apply_policy(
        self,
        message: Message[Any],
        future: Future[None],
        released: list[tuple[Future[None], BaseException | None]],
    ) -> None:
        strategy = self.spec.strategy
        if strategy is OverflowStrategy.UNBOUNDED_BUFFER:
            self._queue.append((message, future))
        elif strategy is OverflowStrategy.DROP:
            logger.debug("Dropping item on channel %s (no demand)", self.channel)
            released.append((future, None))
        elif strategy is OverflowStrategy.LATEST:
            while self._queue:
                _, superseded = self._queue.popleft()
                released.append((superseded, None))
            self._queue.append((message, future))
        else:
            capacity = self.spec.capacity or 0
            if len(self._queue) < capacity:
                self._queue.append((message, future))
                return
            error = EmitterOverflowError(self.channel, capacity)
            logger.warning(
                "Emitter buffer for channel %s overflowed (capacity %d)",
                self.channel,
                capacity,
            )
            released.append((future, error))
            self._terminate(error, released)

    def complete(self) -> None:
        with self._lock:
            if self._terminal is None:
                self._terminal = _COMPLETED
                self._wake()

    def fail(self, error: BaseException) -> None:
        released: list[tuple[Future[None], BaseException | None]] = []
        with self._lock:
            if self._terminal is None:
                self._terminate(error, released)
        _release(released)

    def _terminate(
        self,
        error: BaseException,
        released: list[tuple[Future[None], BaseException | None]],
    ) -> None:
        self._terminal = error
        while self._queue:
            _, pending = self._queue.popleft()
            released.append((pending, error))
        self._wake()

    def _closed_error(self) -> BaseException:
        if self._terminal is _COMPLETED:
            return StreamClosedError(f"Emitter for channel {self.channel!r} completed")
        return StreamClosedError(
            f"Emitter for channel {self.channel!r} failed: {self._terminal}"
        )

    def _wake(self) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._wakeup.set)

    # ── Consumer side ────────────────────────────────────────────────

    @property
    def has_requests(self) -> bool:
        return self._waiting

    @property
    def terminated(self) -> bool:
        return self._terminal is not None

    def __len__(self) -> int:
        return len(self._queue)

    def __aiter__(self) -> OverflowBuffer:
        return self

    async def __anext__(self) -> Message[Any]:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        while True:
            with self._lock:
                if self._queue:
                    message, future = self._queue.popleft()
                    break
                if self._terminal is _COMPLETED:
                    raise StopAsyncIteration
                if self._terminal is not None:
                    raise self._terminal
                self._waiting = True
                self._wakeup.clear()
            await self._wakeup.wait()
        if not future.done():
            future.set_result(None)
        return message

    async def aclose(self) -> None:
        released: list[tuple[Future[None], BaseException | None]] = []
        with self._lock:
            self._waiting = False
            if self._terminal is None:
                self._terminate(
                    StreamClosedError(
                        f"Downstream of channel {self.channel!r} cancelled"
                    ),
                    released,
                )
        _release(released)


def _release(released: list[tuple[Future[None], BaseException | None]]) -> None:
    for future, error in released:
        if future.done():
            continue
        if error is None:
            future.set_result(None)
        else:
            future.set_exception(error)
