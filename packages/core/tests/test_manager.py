from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator  # noqa: TC003
from typing import Any

import pytest

from reactive_messaging.adapters.memory import MappingConfigSource
from reactive_messaging.channels import ChannelRegistry
from reactive_messaging.connectors import ConnectorRegistry
from reactive_messaging.emitter import EmitterSpec, EmitterState, OverflowSpec
from reactive_messaging.mediators import (
    MediatorManager,
    broadcast,
    incoming,
    merge,
    outgoing,
)
from reactive_messaging.message import Message
from reactive_messaging.primitives.exceptions import (
    DeploymentError,
    EmitterOverflowError,
    RegistryFrozenError,
    StreamClosedError,
)
from reactive_messaging.streams import CallbackSubscriber


# ── Beans ────────────────────────────────────────────────────────


class Numbers:
    @outgoing("numbers")
    async def numbers(self) -> AsyncIterator[int]:
        for n in (1, 2, 3):
            yield n


class Doubler:
    @incoming("numbers")
    @outgoing("doubled")
    def double(self, value: int) -> int:
        return value * 2


class Sink:
    def __init__(self) -> None:
        self.received: list[Any] = []

    @incoming("doubled")
    async def store(self, value: int) -> None:
        self.received.append(value)


class GhostReader:
    @incoming("ghost")
    async def read(self, value: int) -> None:
        return None


class NowhereWriter:
    @outgoing("nowhere")
    async def write(self) -> AsyncIterator[int]:
        yield 1


class MoreNumbers:
    @outgoing("numbers")
    async def more(self) -> AsyncIterator[int]:
        for n in (10, 20):
            yield n


class NumbersSink:
    def __init__(self) -> None:
        self.received: list[int] = []

    @incoming("numbers")
    async def store(self, value: int) -> None:
        self.received.append(value)


class MergingSink:
    def __init__(self) -> None:
        self.received: list[int] = []

    @incoming("numbers")
    @merge
    async def store(self, value: int) -> None:
        self.received.append(value)


class BroadcastNumbers:
    @outgoing("numbers")
    @broadcast
    async def numbers(self) -> AsyncIterator[int]:
        for n in (1, 2, 3):
            yield n


class OtherNumbersSink:
    def __init__(self) -> None:
        self.received: list[int] = []

    @incoming("numbers")
    async def keep(self, value: int) -> None:
        self.received.append(value)


class SlowOrders:
    def __init__(self) -> None:
        self.received: list[int] = []

    @incoming("orders")
    async def handle(self, order: int) -> None:
        await asyncio.sleep(0.002)
        self.received.append(order)


# ── Host endpoints and connectors ────────────────────────────────


class ListPublisher:
    def __init__(self, items: list[Any]) -> None:
        self.items = items
        self.closed = False

    def __aiter__(self) -> AsyncIterator[Message[Any]]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[Message[Any]]:
        for item in self.items:
            yield Message(item)

    async def close(self) -> None:
        self.closed = True


class CollectingSubscriber:
    def __init__(self) -> None:
        self.received: list[Any] = []
        self.closed = False

    async def consume(self, stream: AsyncIterator[Message[Any]]) -> None:
        async for message in stream:
            self.received.append(message.payload)
            await message.ack()

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    def __init__(self, items: list[Any] | None = None) -> None:
        self.items = items or []
        self.publishers: list[ListPublisher] = []
        self.subscribers: list[CollectingSubscriber] = []

    def get_publisher(self, config: Any) -> ListPublisher:
        publisher = ListPublisher(self.items)
        self.publishers.append(publisher)
        return publisher

    def get_subscriber(self, config: Any) -> CollectingSubscriber:
        subscriber = CollectingSubscriber()
        self.subscribers.append(subscriber)
        return subscriber


class BrokenConnector:
    def get_publisher(self, config: Any) -> Any:
        raise ConnectionRefusedError("broker down")


# ── Wiring ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_pipeline_runs_to_completion(manager: MediatorManager) -> None:
    sink = Sink()
    manager.analyze_bean(Numbers())
    manager.analyze_bean(Doubler())
    manager.analyze_bean(sink)

    await manager.initialize_and_run()
    await asyncio.wait_for(manager.wait_terminated(), timeout=2)

    assert sink.received == [2, 4, 6]
    assert not manager.running()
    assert manager.failures() == []


@pytest.mark.asyncio
async def test_registry_is_frozen_once_running(
    manager: MediatorManager, channels: ChannelRegistry
) -> None:
    manager.analyze_bean(Numbers())
    manager.analyze_bean(NumbersSink())
    await manager.initialize_and_run()

    with pytest.raises(RegistryFrozenError):
        channels.register_incoming("late", ListPublisher([]))
    with pytest.raises(RuntimeError, match="already running"):
        await manager.initialize_and_run()
    await manager.shutdown(1)


@pytest.mark.asyncio
async def test_unresolved_incoming(manager: MediatorManager) -> None:
    manager.analyze_bean(GhostReader())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert excinfo.value.kinds() == ["UNRESOLVED_INCOMING"]
    assert "ghost" in str(excinfo.value)


@pytest.mark.asyncio
async def test_unresolved_outgoing(manager: MediatorManager) -> None:
    manager.analyze_bean(NowhereWriter())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert excinfo.value.kinds() == ["UNRESOLVED_OUTGOING"]


@pytest.mark.asyncio
async def test_every_problem_is_reported_at_once(manager: MediatorManager) -> None:
    manager.analyze_bean(GhostReader())
    manager.analyze_bean(NowhereWriter())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert sorted(excinfo.value.kinds()) == [
        "UNRESOLVED_INCOMING",
        "UNRESOLVED_OUTGOING",
    ]


@pytest.mark.asyncio
async def test_two_producers_need_a_merge(manager: MediatorManager) -> None:
    manager.analyze_bean(Numbers())
    manager.analyze_bean(MoreNumbers())
    manager.analyze_bean(NumbersSink())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert excinfo.value.kinds() == ["DUPLICATE_PRODUCER"]


@pytest.mark.asyncio
async def test_merge_interleaves_producers(manager: MediatorManager) -> None:
    sink = MergingSink()
    manager.analyze_bean(Numbers())
    manager.analyze_bean(MoreNumbers())
    manager.analyze_bean(sink)

    await manager.initialize_and_run()
    await asyncio.wait_for(manager.wait_terminated(), timeout=2)

    assert sorted(sink.received) == [1, 2, 3, 10, 20]
    assert [n for n in sink.received if n < 10] == [1, 2, 3]


@pytest.mark.asyncio
async def test_two_consumers_need_a_broadcast(manager: MediatorManager) -> None:
    manager.analyze_bean(Numbers())
    manager.analyze_bean(NumbersSink())
    manager.analyze_bean(OtherNumbersSink())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert excinfo.value.kinds() == ["DUPLICATE_CONSUMER"]


@pytest.mark.asyncio
async def test_broadcast_delivers_to_every_consumer(manager: MediatorManager) -> None:
    first, second = NumbersSink(), OtherNumbersSink()
    manager.analyze_bean(BroadcastNumbers())
    manager.analyze_bean(first)
    manager.analyze_bean(second)

    await manager.initialize_and_run()
    await asyncio.wait_for(manager.wait_terminated(), timeout=2)

    assert first.received == [1, 2, 3]
    assert second.received == [1, 2, 3]


@pytest.mark.asyncio
async def test_host_publisher_and_subscriber(
    manager: MediatorManager, channels: ChannelRegistry
) -> None:
    collected = CollectingSubscriber()
    channels.register_incoming("numbers", ListPublisher([5, 6]))
    channels.register_subscriber("doubled", collected)
    manager.analyze_bean(Doubler())

    await manager.initialize_and_run()
    await asyncio.wait_for(manager.wait_terminated(), timeout=2)

    assert collected.received == [10, 12]


@pytest.mark.asyncio
async def test_callback_subscriber(
    manager: MediatorManager, channels: ChannelRegistry
) -> None:
    seen: list[int] = []

    async def record(message: Message[Any]) -> None:
        seen.append(message.payload)

    channels.register_subscriber("numbers", CallbackSubscriber(record))
    manager.analyze_bean(Numbers())

    await manager.initialize_and_run()
    await asyncio.wait_for(manager.wait_terminated(), timeout=2)

    assert seen == [1, 2, 3]


# ── Connectors ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_connectors_materialize_both_directions(
    manager: MediatorManager,
    connectors: ConnectorRegistry,
    config: MappingConfigSource,
) -> None:
    fake = FakeConnector([1, 2])
    connectors.register(fake, "fake")
    config.set("messaging.incoming.numbers.connector", "fake")
    config.set("messaging.outgoing.doubled.connector", "fake")
    manager.analyze_bean(Doubler())

    await manager.initialize_and_run()
    await asyncio.wait_for(manager.wait_terminated(), timeout=2)
    await manager.shutdown(1)

    assert fake.subscribers[0].received == [2, 4]
    assert fake.publishers[0].closed
    assert fake.subscribers[0].closed


@pytest.mark.asyncio
async def test_internal_producer_wins_over_connector(
    manager: MediatorManager,
    connectors: ConnectorRegistry,
    config: MappingConfigSource,
) -> None:
    fake = FakeConnector([99])
    connectors.register(fake, "fake")
    config.set("messaging.incoming.numbers.connector", "fake")
    sink = NumbersSink()
    manager.analyze_bean(Numbers())
    manager.analyze_bean(sink)

    await manager.initialize_and_run()
    await asyncio.wait_for(manager.wait_terminated(), timeout=2)

    assert sink.received == [1, 2, 3]
    assert fake.publishers == []


@pytest.mark.asyncio
async def test_unknown_connector(
    manager: MediatorManager, config: MappingConfigSource
) -> None:
    config.set("messaging.incoming.numbers.connector", "kafka")
    manager.analyze_bean(NumbersSink())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert excinfo.value.kinds() == ["UNKNOWN_CONNECTOR"]


@pytest.mark.asyncio
async def test_incoming_keys_without_a_connector(
    manager: MediatorManager, config: MappingConfigSource
) -> None:
    config.set("messaging.incoming.numbers.destination", "Q1")
    manager.analyze_bean(NumbersSink())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert excinfo.value.kinds() == ["MISSING_REQUIRED_KEY"]
    assert "connector" in str(excinfo.value)


@pytest.mark.asyncio
async def test_outgoing_keys_without_a_connector(
    manager: MediatorManager, config: MappingConfigSource
) -> None:
    config.set("messaging.outgoing.doubled.destination", "Q2")
    manager.analyze_bean(Numbers())
    manager.analyze_bean(Doubler())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert "MISSING_REQUIRED_KEY" in excinfo.value.kinds()


@pytest.mark.asyncio
async def test_connector_failure_is_wrapped(
    manager: MediatorManager,
    connectors: ConnectorRegistry,
    config: MappingConfigSource,
) -> None:
    connectors.register(BrokenConnector(), "broken")
    config.set("messaging.incoming.numbers.connector", "broken")
    manager.analyze_bean(NumbersSink())
    with pytest.raises(DeploymentError) as excinfo:
        await manager.initialize_and_run()
    assert excinfo.value.kinds() == ["CONNECTOR_INIT", "ConnectionRefusedError"]


# ── Emitters and shutdown ────────────────────────────────────────


@pytest.mark.asyncio
async def test_default_overflow_fails_a_flooding_emitter(
    manager: MediatorManager,
) -> None:
    orders = SlowOrders()
    (emitter,) = manager.initialize_emitters(
        [EmitterSpec("orders", OverflowSpec.none())]
    )
    manager.analyze_bean(orders)
    await manager.initialize_and_run()
    await asyncio.sleep(0.01)

    futures = [emitter.send(i) for i in range(1000)]
    await asyncio.wait_for(manager.wait_terminated(), timeout=5)

    assert emitter.state is EmitterState.FAILED
    assert 0 <= len(orders.received) <= 256
    errors = [f.exception() for f in futures if f.done() and f.exception()]
    assert any(isinstance(e, EmitterOverflowError) for e in errors)
    assert any(isinstance(e, StreamClosedError) for e in errors)
    assert all(f.done() for f in futures)
    (failure,) = manager.failures()
    assert isinstance(failure, EmitterOverflowError)


@pytest.mark.asyncio
async def test_shutdown_completes_emitters_and_drains(
    manager: MediatorManager,
) -> None:
    orders = SlowOrders()
    (emitter,) = manager.initialize_emitters(
        [EmitterSpec("orders", OverflowSpec.buffer(10))]
    )
    manager.analyze_bean(orders)
    await manager.initialize_and_run()
    for i in range(3):
        emitter.send(i)

    await manager.shutdown(2)

    assert orders.received == [0, 1, 2]
    assert emitter.state is EmitterState.COMPLETED
    assert not manager.running()


class Stuck:
    @incoming("orders")
    async def handle(self, order: int) -> None:
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_shutdown_cancels_terminals_after_timeout(
    channels: ChannelRegistry, connectors: ConnectorRegistry
) -> None:
    manager = MediatorManager(
        channels,
        connectors,
        MappingConfigSource({"smallrye.messaging.shutdown-timeout": "0.05"}),
    )
    (emitter,) = manager.initialize_emitters([EmitterSpec("orders", OverflowSpec())])
    manager.analyze_bean(Stuck())
    await manager.initialize_and_run()
    emitter.send(1)
    await asyncio.sleep(0.01)

    await manager.shutdown()

    assert all(task.cancelled() for task in manager.tasks)
