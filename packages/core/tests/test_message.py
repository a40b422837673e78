from __future__ import annotations

import asyncio

import pytest

from reactive_messaging.message import AckState, Acknowledgement, Message


@pytest.mark.asyncio
async def test_ack_runs_callback_once() -> None:
    calls: list[str] = []

    async def on_ack() -> None:
        calls.append("ack")

    message = Message("hello", ack=on_ack)
    await message.ack()
    await message.ack()

    assert calls == ["ack"]
    assert message.ack_state is AckState.ACKED


@pytest.mark.asyncio
async def test_nack_after_ack_returns_first_outcome() -> None:
    calls: list[str] = []
    message = Message(
        1,
        ack=lambda: calls.append("ack"),
        nack=lambda e: calls.append(f"nack:{e}"),
    )

    await message.ack()
    await message.nack(RuntimeError("late"))

    assert calls == ["ack"]
    assert message.ack_state is AckState.ACKED


@pytest.mark.asyncio
async def test_ack_after_nack_is_ignored() -> None:
    calls: list[str] = []
    message = Message(
        1,
        ack=lambda: calls.append("ack"),
        nack=lambda e: calls.append("nack"),
    )
    error = ValueError("boom")

    await message.nack(error)
    await message.ack()

    assert calls == ["nack"]
    assert message.ack_state is AckState.NACKED
    assert message.acknowledgement.failure is error


@pytest.mark.asyncio
async def test_concurrent_ack_and_nack_settle_once() -> None:
    calls: list[str] = []
    gate = asyncio.Event()

    async def on_ack() -> None:
        await gate.wait()
        calls.append("ack")

    message = Message("x", ack=on_ack, nack=lambda e: calls.append("nack"))
    ack_task = asyncio.create_task(message.ack())
    await asyncio.sleep(0)
    nack_task = asyncio.create_task(message.nack(RuntimeError("x")))
    await asyncio.sleep(0)
    assert not nack_task.done()

    gate.set()
    await asyncio.gather(ack_task, nack_task)
    assert calls == ["ack"]


@pytest.mark.asyncio
async def test_failing_callback_is_reraised_to_every_caller() -> None:
    def on_ack() -> None:
        raise RuntimeError("commit failed")

    message = Message("x", ack=on_ack)
    with pytest.raises(RuntimeError, match="commit failed"):
        await message.ack()
    with pytest.raises(RuntimeError, match="commit failed"):
        await message.ack()


@pytest.mark.asyncio
async def test_derived_messages_share_acknowledgement() -> None:
    calls: list[str] = []
    original = Message("a", {"k": 1}, ack=lambda: calls.append("ack"))

    derived = original.with_payload("A").with_metadata(extra=True)
    await derived.ack()

    assert calls == ["ack"]
    assert original.ack_state is AckState.ACKED
    assert derived.payload == "A"
    assert dict(derived.metadata) == {"k": 1, "extra": True}


def test_metadata_is_read_only() -> None:
    message = Message.of("payload", source="test")
    with pytest.raises(TypeError):
        message.metadata["source"] = "other"  # type: ignore[index]


def test_payload_as_returns_payload_by_default() -> None:
    assert Message(42).payload_as(str) == 42


def test_acknowledgement_starts_pending() -> None:
    ack = Acknowledgement()
    assert ack.state is AckState.PENDING
    assert ack.failure is None
