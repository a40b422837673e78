from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest
from pydantic import BaseModel

from reactive_messaging.message import AckState
from reactive_messaging.primitives.exceptions import (
    BrokerIOError,
    DecodeError,
    DuplicateConsumerError,
)
from reactive_messaging_jms import (
    CONTENT_TYPE_PROPERTY,
    BindingState,
    BodyType,
    IncomingJmsMessage,
    JmsSource,
    SessionMode,
    WorkerPoolExhaustedError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from reactive_messaging_jms.memory import (
        InMemoryBroker,
        InMemoryConnectionFactory,
    )


class Price(BaseModel):
    symbol: str
    amount: float


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


async def _next(stream: AsyncIterator[IncomingJmsMessage]) -> IncomingJmsMessage:
    return await asyncio.wait_for(stream.__anext__(), timeout=2)


@pytest.mark.asyncio
async def test_receives_in_order(
    broker: InMemoryBroker, make_source: Callable[..., JmsSource]
) -> None:
    for n in range(3):
        broker.send("Q1", f"m{n}")
    source = make_source()
    stream = source.__aiter__()
    try:
        bodies = [(await _next(stream)).payload for _ in range(3)]
    finally:
        await source.close()
    assert bodies == ["m0", "m1", "m2"]
    assert source.state is BindingState.CLOSED


@pytest.mark.asyncio
async def test_receive_loop_respects_demand(
    broker: InMemoryBroker, make_source: Callable[..., JmsSource]
) -> None:
    total = 10
    for n in range(total):
        broker.send("Q1", n)
    source = make_source()
    stream = source.__aiter__()
    try:
        first = await _next(stream)
        assert first.payload == 0
        # One message handed over, one held by the blocked receive loop.
        await eventually(lambda: broker.depth("Q1") == total - 2)
        await asyncio.sleep(0.05)
        assert broker.depth("Q1") == total - 2
    finally:
        await source.close()


@pytest.mark.asyncio
async def test_single_subscriber(make_source: Callable[..., JmsSource]) -> None:
    source = make_source()
    source.__aiter__()
    with pytest.raises(DuplicateConsumerError):
        source.__aiter__()
    await source.close()


@pytest.mark.asyncio
async def test_subscription_can_be_iterated_directly(
    broker: InMemoryBroker, make_source: Callable[..., JmsSource]
) -> None:
    broker.send("Q1", "a")
    broker.send("Q1", "b")
    source = make_source()
    subscription = source.__aiter__()
    bodies: list[str] = []
    try:
        async for message in subscription:
            bodies.append(message.payload)
            if len(bodies) == 2:
                break
    finally:
        await subscription.aclose()

    assert bodies == ["a", "b"]
    assert source.state is BindingState.CLOSED


@pytest.mark.asyncio
async def test_metadata_mirrors_broker_headers(
    broker: InMemoryBroker, make_source: Callable[..., JmsSource]
) -> None:
    sent = broker.send(
        "Q1", "hello", {"region": "eu"}, correlation_id="corr-1", type="Greeting"
    )
    source = make_source()
    try:
        message = await _next(source.__aiter__())
    finally:
        await source.close()
    metadata = message.jms_metadata
    assert metadata.message_id == sent.message_id
    assert metadata.correlation_id == "corr-1"
    assert metadata.type == "Greeting"
    assert metadata.get_property("region") == "eu"
    assert metadata.destination is not None
    assert metadata.destination.name == "Q1"
    assert message.metadata["jms"] is metadata


@pytest.mark.asyncio
async def test_json_bodies_decode_to_the_declared_type(
    broker: InMemoryBroker, make_source: Callable[..., JmsSource]
) -> None:
    broker.send(
        "Q1",
        b'{"symbol": "ACME", "amount": 12.5}',
        {CONTENT_TYPE_PROPERTY: "application/json"},
        body_type=BodyType.BYTES,
    )
    broker.send("Q1", "plain text")
    broker.send("Q1", b"not json", {CONTENT_TYPE_PROPERTY: "application/json"})
    source = make_source()
    stream = source.__aiter__()
    try:
        json_message = await _next(stream)
        text_message = await _next(stream)
        broken = await _next(stream)
    finally:
        await source.close()

    assert json_message.is_json
    assert json_message.payload_as(Price) == Price(symbol="ACME", amount=12.5)
    assert json_message.payload_as(Any) == b'{"symbol": "ACME", "amount": 12.5}'
    assert text_message.payload_as(Price) == "plain text"
    with pytest.raises(DecodeError):
        broken.payload_as(Price)


@pytest.mark.asyncio
async def test_selector_filters_messages(
    broker: InMemoryBroker,
    make_source: Callable[..., JmsSource],
    make_source_config: Callable[..., Any],
) -> None:
    broker.send("Q1", "blue", {"color": "blue"})
    broker.send("Q1", "red", {"color": "red"})
    source = make_source(make_source_config(destination="Q1", selector="color = 'red'"))
    try:
        message = await _next(source.__aiter__())
    finally:
        await source.close()
    assert message.payload == "red"
    assert [m.body for m in broker.messages("Q1")] == ["blue"]


# ── Session modes ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_client_acknowledge_waits_for_each_ack(
    broker: InMemoryBroker,
    factory: InMemoryConnectionFactory,
    make_source: Callable[..., JmsSource],
    make_source_config: Callable[..., Any],
) -> None:
    for n in range(3):
        broker.send("Q1", n)
    source = make_source(
        make_source_config(destination="Q1", session_mode="client_acknowledge")
    )
    stream = source.__aiter__()
    try:
        first = await _next(stream)
        await asyncio.sleep(0.05)
        assert broker.depth("Q1") == 2

        await first.ack()
        second = await _next(stream)
        await second.ack()
    finally:
        await source.close()

    assert (first.payload, second.payload) == (0, 1)
    assert factory.contexts[0].acknowledged == 2
    assert broker.depth("Q1") == 1


@pytest.mark.asyncio
async def test_transacted_nack_rolls_back_and_redelivers(
    broker: InMemoryBroker,
    factory: InMemoryConnectionFactory,
    make_source: Callable[..., JmsSource],
    make_source_config: Callable[..., Any],
) -> None:
    broker.send("Q1", "payment")
    source = make_source(
        make_source_config(destination="Q1", session_mode="session_transacted")
    )
    stream = source.__aiter__()
    try:
        first = await _next(stream)
        await first.nack(ValueError("declined"))
        retried = await _next(stream)
        await retried.ack()
    finally:
        await source.close()

    assert first.ack_state is AckState.NACKED
    assert retried.payload == "payment"
    assert retried.jms_metadata.redelivered
    context = factory.contexts[0]
    assert (context.rollbacks, context.commits) == (1, 1)
    assert broker.depth("Q1") == 0


@pytest.mark.asyncio
async def test_auto_acknowledge_ack_is_a_no_op(
    broker: InMemoryBroker,
    factory: InMemoryConnectionFactory,
    make_source: Callable[..., JmsSource],
) -> None:
    broker.send("Q1", "x")
    source = make_source()
    try:
        message = await _next(source.__aiter__())
        await message.ack()
    finally:
        await source.close()
    assert factory.contexts[0].session_mode is SessionMode.AUTO_ACKNOWLEDGE
    assert factory.contexts[0].acknowledged == 0
    assert message.settled.is_set()


# ── Failures and shutdown ────────────────────────────────────────


@pytest.mark.asyncio
async def test_receive_failures_reopen_the_session(
    broker: InMemoryBroker,
    factory: InMemoryConnectionFactory,
    make_source: Callable[..., JmsSource],
) -> None:
    broker.send("Q1", "after-outage")
    broker.fail_receives(2)
    source = make_source()
    try:
        message = await _next(source.__aiter__())
    finally:
        await source.close()
    assert message.payload == "after-outage"
    assert len(factory.contexts) == 3
    assert factory.contexts[0].closed


@pytest.mark.asyncio
async def test_exhausted_retries_end_the_stream_with_broker_io(
    broker: InMemoryBroker,
    factory: InMemoryConnectionFactory,
    make_source: Callable[..., JmsSource],
) -> None:
    broker.fail_receives(5)
    source = make_source()
    with pytest.raises(BrokerIOError, match="Receive failed"):
        await _next(source.__aiter__())
    assert source.state is BindingState.CLOSED
    await source.close()


@pytest.mark.asyncio
async def test_close_nacks_the_in_flight_message(
    broker: InMemoryBroker,
    factory: InMemoryConnectionFactory,
    make_source: Callable[..., JmsSource],
    make_source_config: Callable[..., Any],
) -> None:
    broker.send("Q1", "a")
    broker.send("Q1", "b")
    source = make_source(
        make_source_config(destination="Q1", session_mode="client_acknowledge")
    )
    stream = source.__aiter__()
    message = await _next(stream)

    await asyncio.wait_for(source.close(), timeout=2)

    assert message.ack_state is AckState.NACKED
    assert source.state is BindingState.CLOSED
    assert factory.contexts[0].closed
    assert [m.body for m in broker.messages("Q1")] == ["a", "b"]
    assert broker.messages("Q1")[0].redelivered
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_close_wakes_a_waiting_subscriber(
    make_source: Callable[..., JmsSource],
) -> None:
    source = make_source()
    stream = source.__aiter__()
    pending = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0.05)

    await asyncio.wait_for(source.close(), timeout=2)

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, timeout=1)


@pytest.mark.asyncio
async def test_pool_exhaustion_fails_the_first_pull(
    make_source: Callable[..., JmsSource],
) -> None:
    sources = [make_source() for _ in range(4)]
    streams = [s.__aiter__() for s in sources]
    pulls = [asyncio.ensure_future(s.__anext__()) for s in streams[:3]]
    await asyncio.sleep(0.01)
    try:
        with pytest.raises(WorkerPoolExhaustedError):
            await _next(streams[3])
    finally:
        for source in sources:
            await source.close()
        for pull in pulls:
            pull.cancel()
        await asyncio.gather(*pulls, return_exceptions=True)
