"""ConnectorRegistry: connectors keyed by the name channels select them with."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from ..primitives.exceptions import ConnectorRegistrationError, UnknownConnectorError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONNECTOR_NAME_ATTR = "__connector_name__"


def connector(name: str) -> Any:
    """Class decorator naming a connector.

    Usage::

        @connector("smallrye-jms")
        class JmsConnector:
            ...
    """
    if not name:
        raise ValueError("Connector name must be a non-empty string")

    def decorator(cls: T) -> T:
        setattr(cls, CONNECTOR_NAME_ATTR, name)
        return cls

    return decorator


def connector_name(instance: Any) -> str | None:
    return getattr(instance, CONNECTOR_NAME_ATTR, None)


class ConnectorRegistry:
    """Name-keyed store of connector instances.

    A connector implements
    :class:`~reactive_messaging.ports.connectors.IIncomingConnectorFactory`,
    :class:`~reactive_messaging.ports.connectors.IOutgoingConnectorFactory`
    or both. Optional ``start()``/``close()`` methods are driven by the runtime.
    """

    def __init__(self) -> None:
        self._connectors: dict[str, Any] = {}

    def register(self, instance: Any, name: str | None = None) -> Any:
        resolved = name or connector_name(instance)
        if not resolved:
            raise ConnectorRegistrationError(
                f"{type(instance).__name__} has no connector name; "
                "decorate it with @connector(name) or pass name="
            )
        existing = self._connectors.get(resolved)
        if existing is not None and existing is not instance:
            raise ConnectorRegistrationError(
                f"Duplicate connector {resolved!r}: {type(existing).__name__} "
                f"already registered, cannot register {type(instance).__name__}"
            )
        self._connectors[resolved] = instance
        logger.debug("Registered connector %s -> %s", resolved, type(instance).__name__)
        return instance

    def get(self, name: str) -> Any:
        try:
            return self._connectors[name]
        except KeyError:
            raise UnknownConnectorError(name) from None

    def names(self) -> list[str]:
        return list(self._connectors)

    def __contains__(self, name: object) -> bool:
        return name in self._connectors

    def __iter__(self) -> Iterator[Any]:
        return iter(self._connectors.values())


__all__ = ["CONNECTOR_NAME_ATTR", "ConnectorRegistry", "connector", "connector_name"]
