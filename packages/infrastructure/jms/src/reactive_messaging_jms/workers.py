"""WorkerPool: the threads every blocking broker call runs on.

One pool is shared by all JMS bindings of a process. Receive loops reserve
a thread for their whole life; acknowledgements, commits and sends borrow
one per call. At least one thread always stays available for the latter.
Threads are started on demand and exit after ``ttl`` seconds without work.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import queue
import threading
from concurrent.futures import Executor, Future
from typing import TYPE_CHECKING, Any, TypeVar

from reactive_messaging.config import global_float, global_int

from .exceptions import WorkerPoolExhaustedError

if TYPE_CHECKING:
    from collections.abc import Callable

    from reactive_messaging.ports.config import IConfigSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_POOL_SIZE_KEY = "smallrye.jms.threads.max-pool-size"
TTL_KEY = "smallrye.jms.threads.ttl"
DEFAULT_MAX_POOL_SIZE = 10
DEFAULT_TTL = 60.0


class _WorkItem:
    __slots__ = ("future", "fn", "args", "kwargs")

    def __init__(
        self,
        future: Future[Any],
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        self.future = future
        self.fn = fn
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.fn(*self.args, **self.kwargs)
        except BaseException as exc:
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)


class _ElasticExecutor(Executor):
    """Executor whose threads exit once idle for ``ttl`` seconds.

    ``_idle`` counts waiting threads minus the queued items already promised
    to them. A submit claims one of them, starts a new thread, or leaves the
    item ``_unclaimed`` for the next thread that finishes its work.
    """

    def __init__(self, max_workers: int, ttl: float, prefix: str) -> None:
        self._max_workers = max_workers
        self._ttl = ttl
        self._prefix = prefix
        self._queue: queue.SimpleQueue[_WorkItem | None] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._threads: set[threading.Thread] = set()
        self._idle = 0
        self._unclaimed = 0
        self._counter = 0
        self._shutdown = False

    @property
    def thread_count(self) -> int:
        with self._lock:
            return len(self._threads)

    def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> Future[T]:
        future: Future[T] = Future()
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new work after shutdown")
            self._queue.put(_WorkItem(future, fn, args, kwargs))
            if self._idle > 0:
                self._idle -= 1
            elif len(self._threads) < self._max_workers:
                self._spawn()
            else:
                self._unclaimed += 1
        return future

    def _spawn(self) -> None:
        self._counter += 1
        thread = threading.Thread(
            target=self._work,
            name=f"{self._prefix}-{self._counter}",
            daemon=True,
        )
        self._threads.add(thread)
        thread.start()

    def _work(self) -> None:
        item = self._queue.get()
        while item is not None:
            item.run()
            del item
            item = self._next_item()
        with self._lock:
            self._threads.discard(threading.current_thread())
        logger.debug("Worker thread %s exiting", threading.current_thread().name)

    def _next_item(self) -> _WorkItem | None:
        current = threading.current_thread()
        with self._lock:
            if self._shutdown:
                return None
            if self._unclaimed:
                self._unclaimed -= 1
                return self._queue.get_nowait()
            self._idle += 1
        try:
            return self._queue.get(timeout=self._ttl)
        except queue.Empty:
            pass
        with self._lock:
            try:
                return self._queue.get_nowait()
            except queue.Empty:
                self._idle -= 1
                # Leave the set before releasing the lock so no submit counts
                # on this thread.
                self._threads.discard(current)
                return None

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        with self._lock:
            self._shutdown = True
            threads = list(self._threads)
        if cancel_futures:
            while True:
                try:
                    item = self._queue.get_nowait()
                except queue.Empty:
                    break
                if item is not None:
                    item.future.cancel()
        for _ in threads:
            self._queue.put(None)
        if wait:
            for thread in threads:
                if thread is not threading.current_thread():
                    thread.join()


class WorkerPool:
    """Thread pool with explicit ``start()``/``shutdown()``.

    Threads are created lazily up to ``max_workers`` and retired after
    ``ttl`` idle seconds.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_POOL_SIZE,
        ttl: float = DEFAULT_TTL,
        thread_name_prefix: str = "jms-worker",
    ) -> None:
        if max_workers < 2:
            raise ValueError("max_workers must be >= 2")
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self.max_workers = max_workers
        self.ttl = ttl
        self._prefix = thread_name_prefix
        self._executor: _ElasticExecutor | None = None
        self._lock = threading.Lock()
        self._reserved = 0

    @classmethod
    def from_config(cls, source: IConfigSource | None) -> WorkerPool:
        if source is None:
            return cls()
        return cls(
            max_workers=global_int(source, MAX_POOL_SIZE_KEY, DEFAULT_MAX_POOL_SIZE),
            ttl=global_float(source, TTL_KEY, DEFAULT_TTL),
        )

    @property
    def started(self) -> bool:
        return self._executor is not None

    @property
    def reserved(self) -> int:
        return self._reserved

    @property
    def thread_count(self) -> int:
        """Number of live worker threads."""
        executor = self._executor
        return 0 if executor is None else executor.thread_count

    def start(self) -> None:
        with self._lock:
            if self._executor is None:
                self._executor = _ElasticExecutor(
                    self.max_workers, self.ttl, self._prefix
                )
                logger.info(
                    "JMS worker pool started (max %d threads, ttl %.1fs)",
                    self.max_workers,
                    self.ttl,
                )

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
            self._reserved = 0
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)
            logger.info("JMS worker pool stopped")

    def _require(self) -> _ElasticExecutor:
        executor = self._executor
        if executor is None:
            raise RuntimeError("WorkerPool is not started")
        return executor

    def submit_dedicated(self, fn: Callable[..., Any], *args: Any) -> Future[Any]:
        """Run a long-lived loop on a reserved thread.

        Raises:
            WorkerPoolExhaustedError: if reserving would leave no thread
                for short broker calls.
        """
        with self._lock:
            if self._reserved >= self.max_workers - 1:
                raise WorkerPoolExhaustedError(self.max_workers)
            self._reserved += 1
        try:
            future = self._require().submit(fn, *args)
        except BaseException:
            self._unreserve()
            raise
        future.add_done_callback(lambda _f: self._unreserve())
        return future

    def _unreserve(self) -> None:
        with self._lock:
            self._reserved = max(0, self._reserved - 1)

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run one blocking broker call and await its result."""
        loop = asyncio.get_running_loop()
        if kwargs:
            fn = functools.partial(fn, **kwargs)
        return await loop.run_in_executor(self._require(), fn, *args)

    def __repr__(self) -> str:
        return (
            f"WorkerPool(max_workers={self.max_workers}, "
            f"reserved={self._reserved}, started={self.started})"
        )


_pool: WorkerPool | None = None


def get_worker_pool(source: IConfigSource | None = None) -> WorkerPool:
    """Return the process-wide pool, creating an unstarted one from *source*."""
    global _pool
    if _pool is None:
        _pool = WorkerPool.from_config(source)
    return _pool


def set_worker_pool(pool: WorkerPool | None) -> None:
    global _pool
    _pool = pool


__all__ = [
    "DEFAULT_MAX_POOL_SIZE",
    "DEFAULT_TTL",
    "MAX_POOL_SIZE_KEY",
    "TTL_KEY",
    "WorkerPool",
    "get_worker_pool",
    "set_worker_pool",
]
