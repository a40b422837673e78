"""InMemoryConnectionFactory: connection factory bean for InMemoryBroker."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import JmsClientError
from .broker import InMemoryBroker, InMemoryContext

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..ports import SessionMode


class InMemoryConnectionFactory:
    """Creates sessions on *broker*.

    When *credentials* is given, every session must authenticate with one of
    its ``username: password`` pairs.
    """

    def __init__(
        self,
        broker: InMemoryBroker | None = None,
        credentials: Mapping[str, str] | None = None,
    ) -> None:
        self.broker = broker if broker is not None else InMemoryBroker()
        self._credentials = dict(credentials) if credentials is not None else None
        self.contexts: list[InMemoryContext] = []

    def create_context(
        self,
        session_mode: SessionMode,
        username: str | None = None,
        password: str | None = None,
    ) -> InMemoryContext:
        if self._credentials is not None and (
            username is None or self._credentials.get(username) != password
        ):
            raise JmsClientError(f"Authentication failed for user {username!r}")
        context = InMemoryContext(self.broker, session_mode, username)
        self.contexts.append(context)
        return context

    def __repr__(self) -> str:
        return f"InMemoryConnectionFactory(contexts={len(self.contexts)})"


__all__ = ["InMemoryConnectionFactory"]
