from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from ..message import Message


@runtime_checkable
class IPublisher(Protocol):
    """
    Port for anything that produces the messages of a channel.

    Publishers are pull-based: demand is expressed by awaiting the next item
    of the iterator returned by ``__aiter__``. Channel publishers accept a
    single subscription unless they were built for broadcast.
    """

    def __aiter__(self) -> AsyncIterator[Message[Any]]: ...


@runtime_checkable
class ISubscriber(Protocol):
    """
    Port for a terminal consumer of a channel (outbound connector, host sink).
    """

    async def consume(self, stream: AsyncIterator[Message[Any]]) -> None:
        """
        Drain *stream* until it completes.

        Args:
            stream: The channel's messages. Raising terminates the stream;
                returning early cancels the upstream.
        """
        ...
