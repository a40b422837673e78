"""Message: payload, metadata and a single-shot acknowledgement."""

from __future__ import annotations

import asyncio
import enum
import inspect
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

T = TypeVar("T")
U = TypeVar("U")


class AckState(str, enum.Enum):
    PENDING = "PENDING"
    ACKED = "ACKED"
    NACKED = "NACKED"


class Acknowledgement:
    """Shared completion state of a message and every message derived from it.

    The first of ``ack``/``nack`` wins. Later calls of either kind wait for
    that first outcome and return it (re-raising if the first callback
    failed), so acknowledging twice or nacking after an ack never fails.
    """

    def __init__(
        self,
        on_ack: Callable[[], Awaitable[None] | None] | None = None,
        on_nack: Callable[[BaseException], Awaitable[None] | None] | None = None,
    ) -> None:
        self._on_ack = on_ack
        self._on_nack = on_nack
        self._outcome: asyncio.Future[None] | None = None
        self.state = AckState.PENDING
        self.failure: BaseException | None = None

    async def ack(self) -> None:
        await self._complete(AckState.ACKED, self._on_ack, None)

    async def nack(self, error: BaseException) -> None:
        await self._complete(AckState.NACKED, self._on_nack, error)

    async def _complete(
        self,
        state: AckState,
        callback: Callable[..., Awaitable[None] | None] | None,
        error: BaseException | None,
    ) -> None:
        if self._outcome is None:
            self._outcome = asyncio.get_running_loop().create_future()
            self.state = state
            self.failure = error
            try:
                if callback is not None:
                    result = callback() if state is AckState.ACKED else callback(error)
                    if inspect.isawaitable(result):
                        await result
            except asyncio.CancelledError:
                self._outcome.cancel()
                raise
            except Exception as exc:  # noqa: BLE001
                self._outcome.set_exception(exc)
            else:
                self._outcome.set_result(None)
        await asyncio.shield(self._outcome)


class Message(Generic[T]):
    """A payload travelling through a channel.

    ``metadata`` is a read-only mapping. ``with_payload`` and
    ``with_metadata`` return new messages that share this message's
    acknowledgement, so acknowledging a derived message acknowledges the
    message it came from.
    """

    __slots__ = ("_payload", "_metadata", "_acknowledgement")

    def __init__(
        self,
        payload: T,
        metadata: Mapping[str, Any] | None = None,
        *,
        ack: Callable[[], Awaitable[None] | None] | None = None,
        nack: Callable[[BaseException], Awaitable[None] | None] | None = None,
        acknowledgement: Acknowledgement | None = None,
    ) -> None:
        self._payload = payload
        self._metadata: Mapping[str, Any] = MappingProxyType(dict(metadata or {}))
        self._acknowledgement = acknowledgement or Acknowledgement(ack, nack)

    @classmethod
    def of(cls, payload: U, **metadata: Any) -> Message[U]:
        return Message(payload, metadata)

    @property
    def payload(self) -> T:
        return self._payload

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._metadata

    @property
    def ack_state(self) -> AckState:
        return self._acknowledgement.state

    @property
    def acknowledgement(self) -> Acknowledgement:
        return self._acknowledgement

    def payload_as(self, target: Any) -> Any:  # noqa: ARG002
        """Return the payload for a mediator declaring ``target`` as its type."""
        return self.payload

    async def ack(self) -> None:
        await self._acknowledgement.ack()

    async def nack(self, error: BaseException) -> None:
        await self._acknowledgement.nack(error)

    def with_payload(self, payload: U) -> Message[U]:
        return Message(
            payload, self._metadata, acknowledgement=self._acknowledgement
        )

    def with_metadata(self, **metadata: Any) -> Message[T]:
        merged = {**self._metadata, **metadata}
        return Message(self.payload, merged, acknowledgement=self._acknowledgement)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(payload={self.payload!r}, "
            f"metadata={dict(self._metadata)!r}, ack={self.ack_state.value})"
        )


__all__ = ["AckState", "Acknowledgement", "Message"]
