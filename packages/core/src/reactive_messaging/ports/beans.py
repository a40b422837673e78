"""IBeanRegistry: typed lookup of application-provided collaborators."""

from __future__ import annotations

from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class IBeanRegistry(Protocol):
    """
    Port to the container that owns application objects ("beans").

    Used by: the JMS connector (connection factories), the runtime facade
    (mediator beans).
    """

    def select(self, bean_type: type[T], name: str | None = None) -> list[T]:
        """
        Return every bean assignable to *bean_type*.

        Args:
            bean_type: Class or runtime-checkable protocol to match.
            name: When given, only beans registered under this name.
        """
        ...

    def names_of(self, bean: Any) -> list[str]:
        """Return the names *bean* was registered under."""
        ...
