from __future__ import annotations

import asyncio

import pytest

from reactive_messaging.emitter import (
    DEFAULT_BUFFER_SIZE,
    OverflowBuffer,
    OverflowSpec,
    OverflowStrategy,
)
from reactive_messaging.message import Message
from reactive_messaging.primitives.exceptions import (
    EmitterOverflowError,
    InvalidConfigValueError,
    StreamClosedError,
)


def test_none_resolves_to_fail_with_default_capacity() -> None:
    spec = OverflowSpec.none().resolved()
    assert spec.strategy is OverflowStrategy.FAIL
    assert spec.capacity == DEFAULT_BUFFER_SIZE == 256


def test_buffer_without_capacity_defaults_to_256() -> None:
    spec = OverflowSpec(strategy=OverflowStrategy.BUFFER).resolved()
    assert spec.capacity == 256


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("buffer", OverflowStrategy.BUFFER),
        ("UNBOUNDED_BUFFER", OverflowStrategy.UNBOUNDED_BUFFER),
        ("Drop", OverflowStrategy.DROP),
        ("latest", OverflowStrategy.LATEST),
        ("NONE", OverflowStrategy.NONE),
    ],
)
def test_parse_is_case_insensitive(raw: str, expected: OverflowStrategy) -> None:
    assert OverflowSpec.parse(raw).strategy is expected


def test_parse_rejects_unknown_strategy() -> None:
    with pytest.raises(InvalidConfigValueError):
        OverflowSpec.parse("SPILL")


@pytest.mark.asyncio
async def test_buffer_overflow_fails_new_and_pending_items() -> None:
    buffer = OverflowBuffer("out", OverflowSpec.buffer(2))
    first = buffer.offer(Message(1))
    second = buffer.offer(Message(2))
    third = buffer.offer(Message(3))

    assert isinstance(third.exception(), EmitterOverflowError)
    assert isinstance(first.exception(), EmitterOverflowError)
    assert isinstance(second.exception(), EmitterOverflowError)
    assert buffer.terminated
    with pytest.raises(EmitterOverflowError):
        await buffer.__anext__()


@pytest.mark.asyncio
async def test_item_offered_while_consumer_waits_is_always_accepted() -> None:
    buffer = OverflowBuffer("out", OverflowSpec.fail(0))
    reader = asyncio.create_task(buffer.__anext__())
    await asyncio.sleep(0)
    assert buffer.has_requests

    future = buffer.offer(Message("x"))
    message = await reader
    assert message.payload == "x"
    assert future.done() and future.exception() is None


@pytest.mark.asyncio
async def test_drop_discards_items_without_demand() -> None:
    buffer = OverflowBuffer("out", OverflowSpec.drop())
    dropped = buffer.offer(Message(1))
    assert dropped.done() and dropped.exception() is None
    assert len(buffer) == 0

    reader = asyncio.create_task(buffer.__anext__())
    await asyncio.sleep(0)
    buffer.offer(Message(2))
    assert (await reader).payload == 2


@pytest.mark.asyncio
async def test_latest_keeps_only_newest_item() -> None:
    buffer = OverflowBuffer("out", OverflowSpec.latest())
    superseded = buffer.offer(Message(1))
    buffer.offer(Message(2))
    buffer.offer(Message(3))

    assert superseded.done()
    assert len(buffer) == 1
    assert (await buffer.__anext__()).payload == 3


@pytest.mark.asyncio
async def test_unbounded_buffer_never_overflows() -> None:
    buffer = OverflowBuffer("out", OverflowSpec.unbounded())
    for i in range(1000):
        buffer.offer(Message(i))
    buffer.complete()

    payloads = [m.payload async for m in buffer]
    assert payloads == list(range(1000))


@pytest.mark.asyncio
async def test_complete_drains_buffer_then_stops() -> None:
    buffer = OverflowBuffer("out", OverflowSpec.buffer(4))
    buffer.offer(Message("a"))
    buffer.complete()

    assert [m.payload async for m in buffer] == ["a"]
    rejected = buffer.offer(Message("late"))
    assert isinstance(rejected.exception(), StreamClosedError)


@pytest.mark.asyncio
async def test_offer_from_another_thread_wakes_consumer() -> None:
    buffer = OverflowBuffer("out", OverflowSpec.buffer(8))
    reader = asyncio.create_task(buffer.__anext__())
    await asyncio.sleep(0)

    await asyncio.to_thread(buffer.offer, Message("threaded"))
    message = await asyncio.wait_for(reader, timeout=1)
    assert message.payload == "threaded"


@pytest.mark.asyncio
async def test_aclose_cancels_pending_items() -> None:
    buffer = OverflowBuffer("out", OverflowSpec.buffer(4))
    pending = buffer.offer(Message("a"))
    await buffer.aclose()
    assert isinstance(pending.exception(), StreamClosedError)
