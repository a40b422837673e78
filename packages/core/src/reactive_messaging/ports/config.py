"""IConfigSource: flat key/value configuration lookup."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable


@runtime_checkable
class IConfigSource(Protocol):
    """
    Port to the application's configuration.

    Keys are dotted strings such as ``messaging.incoming.prices.destination``.
    """

    def get(self, key: str) -> str | None:
        """Return the raw value of *key*, or ``None`` when unset."""
        ...

    def keys(self) -> Iterable[str]:
        """Return every known key."""
        ...
