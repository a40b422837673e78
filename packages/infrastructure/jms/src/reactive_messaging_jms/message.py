"""IncomingJmsMessage: a broker message with session-mode acknowledgement."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from reactive_messaging.codec import is_untyped
from reactive_messaging.message import Message
from reactive_messaging.primitives.exceptions import BrokerIOError

from .exceptions import JmsClientError
from .metadata import JMS_METADATA_KEY, JmsMetadata
from .ports import SessionMode

if TYPE_CHECKING:
    from collections.abc import Callable

    from reactive_messaging.ports.codec import IPayloadCodec

    from .ports import IJmsContext, JmsMessage
    from .workers import WorkerPool

logger = logging.getLogger(__name__)

CONTENT_TYPE_PROPERTY = "Content-Type"
CLASSNAME_PROPERTY = "_classname"

_UNSET: Any = object()


class IncomingJmsMessage(Message[Any]):
    """Message received from a JMS destination.

    ``payload`` is the raw broker body. ``payload_as(T)`` decodes JSON bodies
    into ``T`` on first use. Acknowledgement follows the session mode:

    * ``AUTO_ACKNOWLEDGE`` / ``DUPS_OK_ACKNOWLEDGE``: ack and nack do nothing
    * ``CLIENT_ACKNOWLEDGE``: ack acknowledges the session, nack does nothing
    * ``SESSION_TRANSACTED``: ack commits, nack rolls back

    ``settled`` is set once the message was acked or nacked.
    """

    __slots__ = ("raw", "settled", "_codec", "_decoded")

    def __init__(
        self,
        raw: JmsMessage,
        context: IJmsContext,
        codec: IPayloadCodec,
        pool: WorkerPool,
    ) -> None:
        self.raw = raw
        self.settled = threading.Event()
        self._codec = codec
        self._decoded: tuple[Any, Any] = (_UNSET, None)
        mode = context.session_mode
        super().__init__(
            raw.body,
            {JMS_METADATA_KEY: JmsMetadata.from_message(raw)},
            ack=self._on_ack(mode, context, pool),
            nack=self._on_nack(mode, context, pool),
        )

    def _on_ack(
        self, mode: SessionMode, context: IJmsContext, pool: WorkerPool
    ) -> Callable[[], Any]:
        action: Callable[[], None] | None = None
        if mode is SessionMode.CLIENT_ACKNOWLEDGE:
            action = context.acknowledge
        elif mode is SessionMode.SESSION_TRANSACTED:
            action = context.commit

        async def acknowledge() -> None:
            try:
                if action is not None:
                    await pool.run(action)
            except JmsClientError as e:
                raise BrokerIOError(
                    f"Cannot acknowledge message {self.raw.message_id}: {e}", e
                ) from e
            finally:
                self.settled.set()

        return acknowledge

    def _on_nack(
        self, mode: SessionMode, context: IJmsContext, pool: WorkerPool
    ) -> Callable[[BaseException], Any]:
        async def reject(error: BaseException) -> None:
            logger.debug("Message %s nacked: %s", self.raw.message_id, error)
            try:
                if mode is SessionMode.SESSION_TRANSACTED:
                    await pool.run(context.rollback)
            except JmsClientError as e:
                raise BrokerIOError(
                    f"Cannot roll back message {self.raw.message_id}: {e}", e
                ) from e
            finally:
                self.settled.set()

        return reject

    @property
    def jms_metadata(self) -> JmsMetadata:
        return self.metadata[JMS_METADATA_KEY]  # type: ignore[no-any-return]

    @property
    def is_json(self) -> bool:
        content_type = self.raw.properties.get(CONTENT_TYPE_PROPERTY)
        return content_type == self._codec.content_type

    def payload_as(self, target: Any) -> Any:
        if is_untyped(target) or not self.is_json:
            return self.raw.body
        cached_target, value = self._decoded
        if cached_target is not _UNSET and cached_target == target:
            return value
        value = self._codec.decode(self.raw.body, target)
        self._decoded = (target, value)
        return value


__all__ = ["CLASSNAME_PROPERTY", "CONTENT_TYPE_PROPERTY", "IncomingJmsMessage"]
