"""InMemoryBeanRegistry: list-backed bean container for tests and scripts."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from reactive_messaging.ports.beans import IBeanRegistry

T = TypeVar("T")

logger = logging.getLogger(__name__)


class InMemoryBeanRegistry(IBeanRegistry):
    """In-memory implementation of ``IBeanRegistry``.

    Beans are kept in registration order; a bean may carry a name, and the
    same instance may be registered several times under different names.
    """

    def __init__(self) -> None:
        self._beans: list[tuple[str | None, Any]] = []

    def add(self, bean: Any, name: str | None = None) -> Any:
        self._beans.append((name, bean))
        logger.debug("Registered bean %s (name=%s)", type(bean).__name__, name)
        return bean

    def select(self, bean_type: type[T], name: str | None = None) -> list[T]:
        seen: set[int] = set()
        result: list[T] = []
        for bean_name, bean in self._beans:
            if name is not None and bean_name != name:
                continue
            if not isinstance(bean, bean_type) or id(bean) in seen:
                continue
            seen.add(id(bean))
            result.append(bean)
        return result

    def names_of(self, bean: Any) -> list[str]:
        return [n for n, b in self._beans if b is bean and n is not None]

    def clear(self) -> None:
        self._beans.clear()
