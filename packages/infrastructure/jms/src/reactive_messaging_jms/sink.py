"""JmsSink: the subscriber behind an outgoing JMS channel."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from reactive_messaging.primitives.exceptions import BrokerIOError, EncodeError
from reactive_messaging.streams import aclose, iterate

from .exceptions import JmsClientError
from .message import CLASSNAME_PROPERTY, CONTENT_TYPE_PROPERTY
from .metadata import JMS_METADATA_KEY, JmsMetadata
from .ports import BodyType, Destination, JmsMessage, SessionMode
from .source import BindingState, resolve_destination

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from reactive_messaging.message import Message
    from reactive_messaging.ports.codec import IPayloadCodec

    from .config import JmsSinkConfig
    from .ports import IJmsContext, IJmsProducer
    from .workers import WorkerPool

logger = logging.getLogger(__name__)

_BODY_PROPERTIES = (CONTENT_TYPE_PROPERTY, CLASSNAME_PROPERTY)


def class_name(payload: Any) -> str:
    cls = type(payload)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def encode_body(payload: Any, codec: IPayloadCodec) -> JmsMessage:
    """Build the broker message body for *payload*.

    Text, bytes and primitives keep their own body type; anything else is
    encoded by *codec* and tagged with ``Content-Type`` and ``_classname``.
    """
    if isinstance(payload, str):
        return JmsMessage(body=payload, body_type=BodyType.TEXT)
    if isinstance(payload, (bytes, bytearray)):
        return JmsMessage(body=bytes(payload), body_type=BodyType.BYTES)
    if isinstance(payload, (bool, int, float)):
        name = class_name(payload)
        return JmsMessage(
            body=payload,
            body_type=BodyType.OBJECT,
            properties={CLASSNAME_PROPERTY: name},
            type=name,
        )
    name = class_name(payload)
    return JmsMessage(
        body=codec.encode(payload),
        body_type=BodyType.BYTES,
        properties={
            CONTENT_TYPE_PROPERTY: codec.content_type,
            CLASSNAME_PROPERTY: name,
        },
        type=name,
    )


class JmsSink:
    """Forwards every message of an outgoing channel to a JMS destination.

    Messages are sent one at a time on the worker pool. A message is acked
    once the broker accepted it; a failed send nacks it and ends the channel
    with :class:`~reactive_messaging.primitives.BrokerIOError`.
    """

    def __init__(
        self,
        config: JmsSinkConfig,
        context: IJmsContext,
        codec: IPayloadCodec,
        pool: WorkerPool,
    ) -> None:
        self.config = config
        self.channel = config.channel
        self.state = BindingState.OPEN
        self._context = context
        self._codec = codec
        self._pool = pool
        self._producer: IJmsProducer | None = None
        self._destination: Destination | None = None
        self.sent = 0

    async def consume(self, stream: AsyncIterator[Message[Any]]) -> None:
        try:
            async for message in iterate(stream):
                if self.state is not BindingState.OPEN:
                    break
                await self._forward(message)
        finally:
            await aclose(stream)

    async def _forward(self, message: Message[Any]) -> None:
        try:
            outgoing = self.to_jms(message)
        except EncodeError as e:
            logger.error("Cannot encode message for channel %r: %s", self.channel, e)
            await message.nack(e)
            raise
        try:
            await self._pool.run(self._send, outgoing)
        except JmsClientError as e:
            error = BrokerIOError(
                f"Cannot send to {self.config.destination_name!r}: {e}", e
            )
            logger.error("Send failed on channel %r: %s", self.channel, e)
            await message.nack(error)
            raise error from e
        self.sent += 1
        await message.ack()

    def to_jms(self, message: Message[Any]) -> JmsMessage:
        """Build the broker message: body, copied metadata, then config overrides."""
        outgoing = encode_body(message.payload, self._codec)
        metadata = message.metadata.get(JMS_METADATA_KEY)
        if isinstance(metadata, JmsMetadata):
            copied = {
                k: v
                for k, v in metadata.properties.items()
                if k not in _BODY_PROPERTIES
            }
            outgoing.properties = {**copied, **outgoing.properties}
            outgoing.correlation_id = metadata.correlation_id
            outgoing.reply_to = metadata.reply_to
            outgoing.delivery_mode = metadata.delivery_mode
            outgoing.priority = metadata.priority
            if metadata.type is not None:
                outgoing.type = metadata.type

        config = self.config
        if config.correlation_id is not None:
            outgoing.correlation_id = config.correlation_id
        if config.reply_to is not None:
            outgoing.reply_to = Destination(
                name=config.reply_to, type=config.reply_to_destination_type
            )
        return outgoing

    def _send(self, outgoing: JmsMessage) -> None:
        if self._producer is None:
            self._destination = resolve_destination(self._context, self.config)
            self._producer = self._context.create_producer()
        assert self._destination is not None
        config = self.config
        self._producer.send(
            self._destination,
            outgoing,
            delivery_mode=config.delivery_mode,
            priority=config.priority,
            time_to_live=config.ttl,
            delivery_delay=config.delivery_delay,
            disable_message_id=config.disable_message_id,
            disable_message_timestamp=config.disable_message_timestamp,
        )
        if self._context.session_mode is SessionMode.SESSION_TRANSACTED:
            self._context.commit()

    async def close(self) -> None:
        if self.state is BindingState.CLOSED:
            return
        self.state = BindingState.CLOSED
        try:
            if self._pool.started:
                await self._pool.run(self._context.close)
            else:
                self._context.close()
        except JmsClientError as e:
            logger.warning("Failed to close session of channel %r: %s", self.channel, e)
        logger.info(
            "JMS sink of channel %r closed after %d message(s)", self.channel, self.sent
        )

    def __repr__(self) -> str:
        return (
            f"JmsSink({self.channel!r}, {self.config.destination_type.value}://"
            f"{self.config.destination_name}, {self.state.value})"
        )


__all__ = ["JmsSink", "class_name", "encode_body"]
