"""MediatorManager: builds the channel graph and runs its terminal consumers.

Producers of a channel are emitters, publishers registered by the host,
mediator outputs and, when nothing internal produces it, an inbound
connector. Consumers are mediators, host subscribers, injected channel
references and configured outbound connectors. The graph is checked as a
whole and every problem is reported in a single :class:`DeploymentError`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..config import (
    BROADCAST_KEY,
    CONNECTOR_KEY,
    DEFAULT_SHUTDOWN_TIMEOUT,
    SHUTDOWN_TIMEOUT_KEY,
    ConnectorConfig,
    global_float,
)
from ..emitter import Emitter, EmitterSpec
from ..ports.connectors import IIncomingConnectorFactory, IOutgoingConnectorFactory
from ..primitives.exceptions import (
    ConnectorInitError,
    DeploymentError,
    DuplicateConsumerError,
    DuplicateProducerError,
    MissingRequiredKeyError,
    ReactiveMessagingError,
    UnknownConnectorError,
    UnresolvedIncomingError,
    UnresolvedOutgoingError,
)
from ..streams import Multicast, SingleSubscriptionPublisher, concat, merge, subscribe
from .descriptor import scan_bean
from .invoker import MediatorInvoker
from .shapes import MergePolicy, Shape

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Coroutine, Iterable

    from ..channels.registry import ChannelRegistry
    from ..connectors.registry import ConnectorRegistry
    from ..message import Message
    from ..ports.config import IConfigSource
    from ..ports.streams import IPublisher, ISubscriber
    from .descriptor import MediatorDescriptor

logger = logging.getLogger(__name__)


@dataclass
class _Producer:
    label: str
    broadcast: bool
    open: Callable[[], AsyncIterator[Message[Any]]]
    mediator: bool = False


@dataclass
class _Consumer:
    label: str
    descriptor: MediatorDescriptor | None = None
    injected: bool = False


class MediatorManager:
    """Owns the mediators of an application and the graph connecting them."""

    def __init__(
        self,
        registry: ChannelRegistry,
        connectors: ConnectorRegistry,
        config: IConfigSource,
    ) -> None:
        self._registry = registry
        self._connectors = connectors
        self._config = config
        self._shutdown_timeout = global_float(
            config, SHUTDOWN_TIMEOUT_KEY, DEFAULT_SHUTDOWN_TIMEOUT
        )
        self._mediators: dict[tuple[str, str], tuple[MediatorDescriptor, Any]] = {}
        self._emitter_specs: dict[str, EmitterSpec] = {}
        self._demands: list[str] = []
        self._channels: dict[str, IPublisher] = {}
        self._merge_policies: dict[str, MergePolicy] = {}
        self._consumer_counts: dict[str, int] = {}
        self._producers: dict[str, list[_Producer]] = {}
        self._inbound: list[Any] = []
        self._outbound: list[tuple[str, ISubscriber]] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._started = False
        # Channel names the analysis found producers and consumers for.
        self.produced_channels: set[str] = set()
        self.consumed_channels: set[str] = set()

    # ── Registration ─────────────────────────────────────────────

    def analyze(self, descriptor: MediatorDescriptor, bean_instance: Any) -> None:
        if descriptor.key in self._mediators:
            logger.warning(
                "Replacing previously analyzed mediator %s", descriptor.label
            )
        self._mediators[descriptor.key] = (descriptor, bean_instance)
        logger.debug("Analyzed mediator %r", descriptor)

    def analyze_bean(
        self, instance: Any, bean_id: str | None = None
    ) -> list[MediatorDescriptor]:
        descriptors = list(scan_bean(instance, bean_id))
        for descriptor in descriptors:
            self.analyze(descriptor, instance)
        return descriptors

    def initialize_emitters(
        self, emitter_specs: Iterable[EmitterSpec]
    ) -> list[Emitter]:
        emitters: list[Emitter] = []
        for spec in emitter_specs:
            emitter: Emitter[Any] = Emitter(spec.channel, spec.overflow)
            self._registry.register_emitter(spec.channel, emitter)
            self._emitter_specs[spec.channel] = spec
            emitters.append(emitter)
        return emitters

    def expect_channel(self, name: str) -> None:
        """Declare an injected channel reference consuming *name*."""
        self._demands.append(name)

    @property
    def descriptors(self) -> list[MediatorDescriptor]:
        return [d for d, _ in self._mediators.values()]

    @property
    def started(self) -> bool:
        return self._started

    def get_channel(self, name: str) -> IPublisher | None:
        return self._channels.get(name) or self._registry.get_publisher(name)

    # ── Graph construction ───────────────────────────────────────

    async def initialize_and_run(self) -> None:
        if self._started:
            raise RuntimeError("The channel graph is already running")
        problems: list[BaseException] = []
        producers: dict[str, list[_Producer]] = defaultdict(list)
        consumers: dict[str, list[_Consumer]] = defaultdict(list)
        self._collect_internal(producers, consumers)

        for name, readers in list(consumers.items()):
            if producers.get(name):
                continue
            if self._incoming_configured(name):
                self.produced_channels.add(name)
                producer = self._materialize_incoming(name, problems)
                if producer is not None:
                    producers[name].append(producer)
            elif any(not c.injected for c in readers):
                # Injected references are reported by the deployment validator.
                problems.append(UnresolvedIncomingError(name))

        for name, writers in list(producers.items()):
            self._materialize_outgoing(name, consumers, problems)
            if not consumers.get(name) and any(p.mediator for p in writers):
                problems.append(UnresolvedOutgoingError(name))

        for name, writers in producers.items():
            readers = consumers.get(name, [])
            if not readers:
                continue
            if len(writers) > 1 and not all(
                c.descriptor is not None
                and c.descriptor.merge_policy is not MergePolicy.NONE
                for c in readers
            ):
                problems.append(
                    DuplicateProducerError(
                        name, "producers: " + ", ".join(p.label for p in writers)
                    )
                )
            if len(readers) > 1 and not all(p.broadcast for p in writers):
                problems.append(
                    DuplicateConsumerError(
                        name, "consumers: " + ", ".join(c.label for c in readers)
                    )
                )

        self.produced_channels.update(n for n, w in producers.items() if w)
        self.consumed_channels.update(n for n, r in consumers.items() if r)
        if problems:
            await self._close_bindings()
            raise DeploymentError(problems)

        self._producers = dict(producers)
        for name, readers in consumers.items():
            self._consumer_counts[name] = len(readers)
            policies = {
                c.descriptor.merge_policy for c in readers if c.descriptor is not None
            }
            concat_only = policies == {MergePolicy.CONCAT}
            self._merge_policies[name] = (
                MergePolicy.CONCAT if concat_only else MergePolicy.MERGE
            )

        try:
            for name in consumers:
                if producers.get(name):
                    self._channel(name)
            self._start_terminals()
        except ReactiveMessagingError as e:
            await self._abort()
            raise DeploymentError([e]) from e
        self._registry.freeze()
        self._started = True
        logger.info(
            "Channel graph started: %d mediator(s), %d channel(s), %d terminal(s)",
            len(self._mediators),
            len(self._channels),
            len(self._tasks),
        )

    def _collect_internal(
        self,
        producers: dict[str, list[_Producer]],
        consumers: dict[str, list[_Consumer]],
    ) -> None:
        for name in sorted(self._registry.get_emitter_names()):
            emitter = self._registry.get_emitter(name)
            spec = self._emitter_specs.get(name)
            producers[name].append(
                _Producer(
                    f"emitter:{name}",
                    spec.broadcast if spec else False,
                    lambda e=emitter: subscribe(e),
                )
            )
        for name in sorted(self._registry.get_incoming_names()):
            publisher = self._registry.get_publisher(name)
            producers[name].append(
                _Producer(
                    f"publisher:{name}",
                    isinstance(publisher, Multicast),
                    lambda p=publisher: subscribe(p),
                )
            )
        for descriptor, _ in self._mediators.values():
            if descriptor.outgoing is not None:
                producers[descriptor.outgoing].append(
                    _Producer(
                        descriptor.label,
                        descriptor.broadcast,
                        lambda d=descriptor: self._open_output(d),
                        mediator=True,
                    )
                )
            for name in descriptor.incoming:
                consumers[name].append(_Consumer(descriptor.label, descriptor))
        for name in sorted(self._registry.get_outgoing_names()):
            consumers[name].append(_Consumer(f"subscriber:{name}"))
        for name in self._demands:
            consumers[name].append(_Consumer(f"injection:{name}", injected=True))

    def _incoming_configured(self, name: str) -> bool:
        return bool(ConnectorConfig.from_source(self._config, "incoming", name))

    def _materialize_incoming(
        self, name: str, problems: list[BaseException]
    ) -> _Producer | None:
        config = ConnectorConfig.from_source(self._config, "incoming", name)
        try:
            connector = config.require(CONNECTOR_KEY)
            factory = self._connectors.get(connector)
            if not isinstance(factory, IIncomingConnectorFactory):
                raise TypeError(f"Connector {connector!r} cannot read channels")
            broadcast = config.get_bool(BROADCAST_KEY)
            publisher = factory.get_publisher(config)
        except (MissingRequiredKeyError, UnknownConnectorError) as e:
            problems.append(e)
            return None
        except Exception as e:  # noqa: BLE001
            logger.error("Cannot materialize incoming channel %s: %s", name, e)
            problems.append(ConnectorInitError(name, e))
            return None
        self._inbound.append(publisher)
        logger.debug("Materialized incoming channel %s with %s", name, connector)
        return _Producer(
            f"connector:{connector}",
            broadcast,
            lambda p=publisher: subscribe(p),
        )

    def _materialize_outgoing(
        self,
        name: str,
        consumers: dict[str, list[_Consumer]],
        problems: list[BaseException],
    ) -> None:
        config = ConnectorConfig.from_source(self._config, "outgoing", name)
        if not config:
            return
        self.consumed_channels.add(name)
        try:
            connector = config.require(CONNECTOR_KEY)
            factory = self._connectors.get(connector)
            if not isinstance(factory, IOutgoingConnectorFactory):
                raise TypeError(f"Connector {connector!r} cannot write channels")
            subscriber = factory.get_subscriber(config)
        except (MissingRequiredKeyError, UnknownConnectorError) as e:
            problems.append(e)
            return
        except Exception as e:  # noqa: BLE001
            logger.error("Cannot materialize outgoing channel %s: %s", name, e)
            problems.append(ConnectorInitError(name, e))
            return
        self._outbound.append((name, subscriber))
        consumers[name].append(_Consumer(f"connector:{connector}"))
        logger.debug("Materialized outgoing channel %s with %s", name, connector)

    def _channel(self, name: str) -> IPublisher:
        existing = self._channels.get(name)
        if existing is not None:
            return existing
        count = self._consumer_counts.get(name, 1)
        publisher: IPublisher
        if count > 1:
            publisher = Multicast(name, self._open_upstream(name), count)
        else:
            publisher = SingleSubscriptionPublisher(
                name, lambda: self._open_upstream(name)
            )
        self._channels[name] = publisher
        if self._registry.get_publisher(name) is None:
            self._registry.register_incoming(name, publisher)
        return publisher

    def _open_upstream(self, name: str) -> AsyncIterator[Message[Any]]:
        iterators = [producer.open() for producer in self._producers.get(name, [])]
        if self._merge_policies.get(name) is MergePolicy.CONCAT:
            return concat(iterators)
        return merge(iterators)

    def _open_input(
        self, descriptor: MediatorDescriptor
    ) -> AsyncIterator[Message[Any]]:
        iterators = [subscribe(self._channel(name)) for name in descriptor.incoming]
        if len(iterators) == 1:
            return iterators[0]
        if descriptor.merge_policy is MergePolicy.CONCAT:
            return concat(iterators)
        return merge(iterators)

    def _open_output(
        self, descriptor: MediatorDescriptor
    ) -> AsyncIterator[Message[Any]]:
        upstream = self._open_input(descriptor) if descriptor.incoming else None
        return MediatorInvoker(descriptor).output(upstream)

    # ── Terminals ────────────────────────────────────────────────

    def _start_terminals(self) -> None:
        for descriptor, _ in self._mediators.values():
            if descriptor.shape in (Shape.SUBSCRIBER, Shape.CONSUMER):
                upstream = self._open_input(descriptor)
                self._spawn(
                    f"mediator:{descriptor.label}",
                    MediatorInvoker(descriptor).drain(upstream),
                )
        for name in sorted(self._registry.get_outgoing_names()):
            subscriber = self._registry.get_subscriber(name)
            if subscriber is not None and name in self._channels:
                self._spawn(
                    f"subscriber:{name}",
                    subscriber.consume(subscribe(self._channels[name])),
                )
        for name, subscriber in self._outbound:
            if name in self._channels:
                self._spawn(
                    f"connector:{name}",
                    subscriber.consume(subscribe(self._channels[name])),
                )

    def _spawn(self, name: str, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(self._on_terminal_done)
        self._tasks.append(task)

    @staticmethod
    def _on_terminal_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            logger.debug("Terminal %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Terminal %s failed: %s", task.get_name(), exc, exc_info=exc
            )
        else:
            logger.debug("Terminal %s completed", task.get_name())

    # ── Lifecycle ────────────────────────────────────────────────

    @property
    def tasks(self) -> list[asyncio.Task[None]]:
        return list(self._tasks)

    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def failures(self) -> list[BaseException]:
        return [
            t.exception()  # type: ignore[misc]
            for t in self._tasks
            if t.done() and not t.cancelled() and t.exception() is not None
        ]

    async def wait_terminated(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop ingress, let in-flight messages drain, then force-close."""
        deadline = self._shutdown_timeout if timeout is None else timeout
        logger.info("Shutting down channel graph (timeout=%.1fs)", deadline)
        for name in sorted(self._registry.get_emitter_names()):
            emitter = self._registry.get_emitter(name)
            if emitter is not None:
                emitter.complete()
        for binding in self._inbound:
            await _close(binding)
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=deadline)
            if still_running:
                logger.warning(
                    "Cancelling %d terminal(s) still running after %.1fs",
                    len(still_running),
                    deadline,
                )
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)
        for _, subscriber in self._outbound:
            await _close(subscriber)
        self._inbound.clear()
        self._outbound.clear()

    async def _abort(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self._close_bindings()

    async def _close_bindings(self) -> None:
        for binding in self._inbound:
            await _close(binding)
        for _, subscriber in self._outbound:
            await _close(subscriber)
        self._inbound.clear()
        self._outbound.clear()


async def _close(resource: Any) -> None:
    close = getattr(resource, "close", None)
    if close is None:
        return
    try:
        result = close()
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Failed to close %r", resource)


__all__ = ["MediatorManager"]
