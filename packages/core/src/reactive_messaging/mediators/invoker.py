"""Turn a mediator descriptor into stream transformations.

Each shape becomes either an output stream (PROCESSOR, PUBLISHER) or a
draining coroutine (SUBSCRIBER, CONSUMER). Every call into application code
goes through the instrumentation hook pipeline under the operation name
``mediator.invoke.<bean>.<method>``.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

from ..instrumentation import get_hook_registry
from ..message import Acknowledgement, Message
from ..primitives.exceptions import ReactiveMessagingFlowError
from ..streams import aclose, iterate
from .shapes import AckPolicy, Consumption, Shape

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .descriptor import MediatorDescriptor

logger = logging.getLogger(__name__)


class _PayloadStream:
    """Expose a stream of messages to the application as a stream of payloads.

    ``PRE`` acknowledges each message before handing out its payload. ``POST``
    acknowledges a message when the application asks for the next one, and
    the last one when the stream completes.
    """

    def __init__(
        self, upstream: AsyncIterator[Message[Any]], descriptor: MediatorDescriptor
    ) -> None:
        self._upstream = upstream
        self._policy = descriptor.ack_policy
        self._payload_type = descriptor.payload_type
        self.in_flight: Message[Any] | None = None

    def __aiter__(self) -> _PayloadStream:
        return self

    async def __anext__(self) -> Any:
        await self._settle_previous()
        message = await self._upstream.__anext__()
        if self._policy is AckPolicy.PRE:
            await message.ack()
        else:
            self.in_flight = message
        try:
            return message.payload_as(self._payload_type)
        except ReactiveMessagingFlowError as e:
            await self.fail(e)
            raise

    async def _settle_previous(self) -> None:
        previous, self.in_flight = self.in_flight, None
        if previous is not None and self._policy is AckPolicy.POST:
            await previous.ack()

    async def finish(self) -> None:
        await self._settle_previous()

    async def fail(self, error: BaseException) -> None:
        current, self.in_flight = self.in_flight, None
        if current is not None:
            await current.nack(error)

    async def aclose(self) -> None:
        await aclose(self._upstream)


class MediatorInvoker:
    """Runs one mediator against its input stream."""

    def __init__(self, descriptor: MediatorDescriptor) -> None:
        self.descriptor = descriptor
        self.operation = (
            f"mediator.invoke.{descriptor.bean_id}.{descriptor.method_name}"
        )
        self._attributes: dict[str, Any] = {
            "bean": descriptor.bean_id,
            "method": descriptor.method_name,
            "shape": descriptor.shape.value,
            "channel": descriptor.incoming[0]
            if descriptor.incoming
            else descriptor.outgoing,
            "outgoing": descriptor.outgoing,
        }

    async def invoke(self, *args: Any) -> Any:
        """Call the method through the hook pipeline, awaiting coroutine results."""
        method = self.descriptor.method

        async def call() -> Any:
            result = method(*args)
            if inspect.isawaitable(result):
                result = await result
            return result

        return await get_hook_registry().execute_all(
            self.operation, dict(self._attributes), call
        )

    # ── Output side ──────────────────────────────────────────────

    def output(
        self, upstream: AsyncIterator[Message[Any]] | None
    ) -> AsyncIterator[Message[Any]]:
        """Stream produced by a PROCESSOR or PUBLISHER."""
        d = self.descriptor
        if d.shape is Shape.PUBLISHER:
            if d.production.is_stream:
                return self._from_stream_result(None)
            return self._per_pull()
        if d.shape is not Shape.PROCESSOR or upstream is None:
            raise TypeError(f"{d.label} does not produce a stream")
        if d.consumption.is_stream:
            return self._from_stream_result(upstream)
        return self._per_item(upstream)

    def _wrap(self, item: Any, origin: Message[Any] | None = None) -> Message[Any]:
        if origin is None:
            return item if isinstance(item, Message) else Message(item)
        post = self.descriptor.ack_policy is AckPolicy.POST
        if isinstance(item, Message):
            if post and item.acknowledgement is not origin.acknowledgement:
                return _chained(item, origin)
            return item
        if post:
            return origin.with_payload(item)
        return Message(item, origin.metadata)

    async def _open_result(self, *args: Any) -> AsyncIterator[Any]:
        result = await self.invoke(*args)
        if not hasattr(result, "__aiter__"):
            raise TypeError(
                f"{self.descriptor.label} must return an async iterable, "
                f"got {type(result).__name__}"
            )
        return result.__aiter__()  # type: ignore[no-any-return]

    async def _from_stream_result(
        self, upstream: AsyncIterator[Message[Any]] | None
    ) -> AsyncIterator[Message[Any]]:
        d = self.descriptor
        payloads: _PayloadStream | None = None
        if upstream is None:
            argument: tuple[Any, ...] = ()
        elif d.consumption is Consumption.STREAM_OF_PAYLOAD:
            payloads = _PayloadStream(upstream, d)
            argument = (payloads,)
        else:
            argument = (upstream,)
        results: AsyncIterator[Any] | None = None
        try:
            results = await self._open_result(*argument)
            async for item in results:
                yield self._wrap(item)
            if payloads is not None:
                await payloads.finish()
        except Exception as e:
            if payloads is not None:
                await payloads.fail(e)
            logger.exception("Stream mediator %s failed", d.label)
            raise
        finally:
            if results is not None:
                await aclose(results)
            if upstream is not None:
                await aclose(upstream)

    async def _per_pull(self) -> AsyncIterator[Message[Any]]:
        while True:
            result = await self.invoke()
            if result is None:
                logger.debug(
                    "Publisher %s returned None, completing", self.descriptor.label
                )
                return
            yield self._wrap(result)

    async def _per_item(
        self, upstream: AsyncIterator[Message[Any]]
    ) -> AsyncIterator[Message[Any]]:
        d = self.descriptor
        try:
            async for message in iterate(upstream):
                result = await self._apply(message)
                if result is _SKIP:
                    continue
                if d.production.is_stream:
                    async for message_out in self._flatten(message, result):
                        yield message_out
                    continue
                if result is None:
                    if d.ack_policy is AckPolicy.POST:
                        await message.ack()
                    continue
                yield self._wrap(result, message)
        finally:
            await aclose(upstream)

    async def _flatten(
        self, origin: Message[Any], result: Any
    ) -> AsyncIterator[Message[Any]]:
        if result is None:
            items: AsyncIterator[Any] | None = None
        else:
            items = result.__aiter__()
        try:
            if items is not None:
                async for item in items:
                    yield item if isinstance(item, Message) else Message(
                        item, origin.metadata
                    )
        except Exception as e:
            await origin.nack(e)
            raise
        finally:
            if items is not None:
                await aclose(items)
        if self.descriptor.ack_policy is AckPolicy.POST:
            await origin.ack()

    # ── Terminal side ────────────────────────────────────────────

    async def drain(self, upstream: AsyncIterator[Message[Any]]) -> None:
        """Run a SUBSCRIBER or CONSUMER until its input completes."""
        d = self.descriptor
        if d.shape is Shape.CONSUMER:
            try:
                async for message in iterate(upstream):
                    result = await self._apply(message)
                    if result is not _SKIP and d.ack_policy is AckPolicy.POST:
                        await message.ack()
            finally:
                await aclose(upstream)
            return
        if d.shape is not Shape.SUBSCRIBER:
            raise TypeError(f"{d.label} is not a terminal mediator")
        payloads: _PayloadStream | None = None
        argument: Any = upstream
        if d.consumption is Consumption.STREAM_OF_PAYLOAD:
            payloads = _PayloadStream(upstream, d)
            argument = payloads
        try:
            await self.invoke(argument)
            if payloads is not None:
                await payloads.finish()
        except Exception as e:
            if payloads is not None:
                await payloads.fail(e)
            logger.exception("Subscriber %s failed", d.label)
            raise
        finally:
            await aclose(upstream)

    async def _apply(self, message: Message[Any]) -> Any:
        """Invoke a per-item mediator on one message.

        Application errors nack the message and yield ``_SKIP``; flow errors
        nack it and propagate, terminating the stream.
        """
        d = self.descriptor
        if d.ack_policy is AckPolicy.PRE:
            await message.ack()
        try:
            if d.consumption is Consumption.MESSAGE:
                argument = message
            else:
                argument = message.payload_as(d.payload_type)
            return await self.invoke(argument)
        except ReactiveMessagingFlowError as e:
            await message.nack(e)
            raise
        except Exception as e:
            logger.exception(
                "Mediator %s failed on message from %s", d.label, d.incoming
            )
            await message.nack(e)
            return _SKIP


def _chained(produced: Message[Any], origin: Message[Any]) -> Message[Any]:
    """Copy of *produced* whose ack and nack also settle *origin*."""

    async def on_ack() -> None:
        await produced.ack()
        await origin.ack()

    async def on_nack(error: BaseException) -> None:
        await produced.nack(error)
        await origin.nack(error)

    return Message(
        produced.payload,
        produced.metadata,
        acknowledgement=Acknowledgement(on_ack, on_nack),
    )


class _Skip:
    def __repr__(self) -> str:
        return "<skip>"


_SKIP: Any = _Skip()


__all__ = ["MediatorInvoker"]
