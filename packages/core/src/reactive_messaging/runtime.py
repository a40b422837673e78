"""ReactiveMessaging: one object bundling registry, manager and validator.

Usage::

    runtime = ReactiveMessaging({"messaging.incoming.in.connector": "jms"})
    runtime.connectors.register(JmsConnector(runtime.beans, runtime.config))
    runtime.add_bean(Pipeline())
    await runtime.start()
    ...
    await runtime.shutdown()
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import signal
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .adapters.memory import InMemoryBeanRegistry, MappingConfigSource
from .channels.registry import ChannelRegistry
from .codec import JsonPayloadCodec
from .connectors.registry import ConnectorRegistry
from .emitter import EmitterSpec, OverflowSpec
from .mediators.manager import MediatorManager
from .primitives.exceptions import (
    BrokerIOError,
    DeploymentError,
    ReactiveMessagingError,
    StreamClosedError,
)
from .streams import aclose, subscribe
from .validation.deployment import DeploymentValidator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from .emitter import Emitter
    from .mediators.descriptor import MediatorDescriptor
    from .message import Message
    from .ports.beans import IBeanRegistry
    from .ports.codec import IPayloadCodec
    from .ports.config import IConfigSource

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1
EXIT_RUNTIME_FAILURE = 2


class ChannelReference:
    """Handle returned by :meth:`ReactiveMessaging.inject_channel`.

    Iterating it yields the channel's messages once the runtime has started.
    A declared reference counts as a consumer of its channel from startup
    on. On a broadcast channel every consumer advances at the pace of the
    slowest one, so a reference that is not going to be read must be
    released with :meth:`aclose`.
    """

    def __init__(self, name: str, description: str) -> None:
        self.name = name
        self.description = description
        self._subscription: AsyncIterator[Message[Any]] | None = None
        self._closed = False

    @property
    def resolved(self) -> bool:
        return self._subscription is not None

    def _bind(self, subscription: AsyncIterator[Message[Any]]) -> None:
        self._subscription = subscription

    def __aiter__(self) -> AsyncIterator[Message[Any]]:
        if self._closed:
            raise StreamClosedError(f"Channel reference {self.name!r} was closed")
        if self._subscription is None:
            raise StreamClosedError(
                f"Channel reference {self.name!r} is not connected; "
                "start the runtime first"
            )
        return self._subscription

    async def aclose(self) -> None:
        """Stop consuming the channel."""
        self._closed = True
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await aclose(subscription)

    def __repr__(self) -> str:
        return f"ChannelReference({self.name!r}, resolved={self.resolved})"


class ReactiveMessaging:
    """Host-side entry point of the runtime."""

    def __init__(
        self,
        config: IConfigSource | Mapping[str, Any] | None = None,
        beans: IBeanRegistry | None = None,
        connectors: ConnectorRegistry | None = None,
        codec: IPayloadCodec | None = None,
    ) -> None:
        if config is None or isinstance(config, Mapping):
            config = MappingConfigSource(config)
        self.config: IConfigSource = config
        if beans is None:
            beans = InMemoryBeanRegistry()
        self.beans: IBeanRegistry = beans
        self.connectors = connectors if connectors is not None else ConnectorRegistry()
        self.codec: IPayloadCodec = codec if codec is not None else JsonPayloadCodec()
        self.registry = ChannelRegistry()
        self.manager = MediatorManager(self.registry, self.connectors, self.config)
        self.validator = DeploymentValidator(self.registry)
        self._channel_refs: list[ChannelReference] = []
        self._emitters: dict[str, Emitter[Any]] = {}
        self._started = False
        self._stopped = False

    # ── Declaration ──────────────────────────────────────────────

    def add_bean(
        self, instance: Any, bean_id: str | None = None
    ) -> list[MediatorDescriptor]:
        """Register every decorated method of *instance* as a mediator."""
        self._ensure_not_started("add a bean")
        return self.manager.analyze_bean(instance, bean_id)

    def inject_channel(self, name: str, description: str = "") -> ChannelReference:
        self._ensure_not_started("inject a channel")
        reference = ChannelReference(name, description or f"channel {name!r}")
        self.validator.expect_channel(name, reference.description)
        self.manager.expect_channel(name)
        self._channel_refs.append(reference)
        return reference

    def inject_emitter(
        self,
        name: str,
        overflow: OverflowSpec | None = None,
        broadcast: bool = False,
        description: str = "",
    ) -> Emitter[Any]:
        """Return the emitter of channel *name*, creating it on first use."""
        self._ensure_not_started("inject an emitter")
        self.validator.expect_emitter(name, description or f"emitter {name!r}")
        existing = self._emitters.get(name)
        if existing is not None:
            return existing
        spec = EmitterSpec(name, overflow or OverflowSpec.none(), broadcast)
        (emitter,) = self.manager.initialize_emitters([spec])
        self._emitters[name] = emitter
        return emitter

    def _ensure_not_started(self, action: str) -> None:
        if self._started:
            raise RuntimeError(f"Cannot {action} once the runtime has started")

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Start connectors, wire the graph and validate injection points.

        Raises:
            DeploymentError: with every wiring and connector problem found.
        """
        if self._started:
            return
        logger.info("Starting reactive messaging runtime")
        for connector in self.connectors:
            await _call_optional(connector, "start")
        try:
            try:
                await self.manager.initialize_and_run()
            except DeploymentError as e:
                report = self.validator.validate(
                    self.manager.produced_channels, self.manager.consumed_channels
                )
                if report.is_valid:
                    raise
                raise DeploymentError([*e.problems, *report.problems]) from e
            for reference in self._channel_refs:
                publisher = self.manager.get_channel(reference.name)
                if publisher is not None:
                    reference._bind(subscribe(publisher))
            self.validator.validate().raise_if_invalid()
        except BaseException:
            if self.manager.started:
                await self.manager.shutdown(0)
            await self._stop_connectors()
            raise
        self._started = True
        logger.info("Reactive messaging runtime started")

    async def shutdown(self, timeout: float | None = None) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self.manager.started:
            await self.manager.shutdown(timeout)
        await self._stop_connectors()
        logger.info("Reactive messaging runtime stopped")

    async def _stop_connectors(self) -> None:
        for connector in self.connectors:
            try:
                await _call_optional(connector, "close")
            except Exception:
                logger.exception("Failed to close connector %r", connector)

    async def serve(self, stop_event: asyncio.Event | None = None) -> int:
        """Run until *stop_event* is set or every terminal has ended.

        Returns the process exit code: ``0`` after a graceful stop, ``2`` when
        the graph ended because of unrecoverable broker failures.
        """
        await self.start()
        stop = stop_event or asyncio.Event()
        stopper = asyncio.create_task(stop.wait(), name="reactive-messaging:stop")
        watched: set[asyncio.Task[Any]] = {stopper}
        terminals = self.manager.tasks
        if terminals:
            watched.add(
                asyncio.create_task(
                    self.manager.wait_terminated(),
                    name="reactive-messaging:terminals",
                )
            )
        try:
            await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in watched:
                task.cancel()
            await asyncio.gather(*watched, return_exceptions=True)
        exit_code = self._exit_code()
        await self.shutdown()
        return exit_code

    def _exit_code(self) -> int:
        tasks = self.manager.tasks
        if not tasks or self.manager.running():
            return EXIT_OK
        failures = self.manager.failures()
        if failures and len(failures) == len(tasks) and all(
            isinstance(f, BrokerIOError) for f in failures
        ):
            logger.error("All channels lost their broker sessions")
            return EXIT_RUNTIME_FAILURE
        return EXIT_OK


async def _call_optional(target: Any, method: str) -> None:
    func = getattr(target, method, None)
    if func is None:
        return
    result = func()
    if inspect.isawaitable(result):
        await result


async def _run(factory: Callable[[], Any]) -> int:
    try:
        runtime = factory()
        if inspect.isawaitable(runtime):
            runtime = await runtime
        await runtime.start()
    except ReactiveMessagingError as e:
        logger.error("Startup failed: %s", e)
        return EXIT_STARTUP_FAILURE
    except Exception:
        logger.exception("Startup failed")
        return EXIT_STARTUP_FAILURE

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop.set)
    try:
        return await runtime.serve(stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)


def run_standalone(factory: Callable[[], Any]) -> int:
    """Run the runtime built by *factory* until SIGINT/SIGTERM.

    Returns ``0`` after a graceful shutdown, ``1`` when startup failed and
    ``2`` on an unrecoverable runtime error.
    """
    return asyncio.run(_run(factory))


__all__ = [
    "EXIT_OK",
    "EXIT_RUNTIME_FAILURE",
    "EXIT_STARTUP_FAILURE",
    "ChannelReference",
    "ReactiveMessaging",
    "run_standalone",
]
