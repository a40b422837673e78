"""MappingConfigSource: configuration backed by a plain mapping."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reactive_messaging.ports.config import IConfigSource

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class MappingConfigSource(IConfigSource):
    """Configuration read from a dict; values are converted to strings."""

    def __init__(self, values: Mapping[str, object] | None = None) -> None:
        self._values: dict[str, str] = {}
        for key, value in (values or {}).items():
            self.set(key, value)

    def set(self, key: str, value: object) -> None:
        if isinstance(value, bool):
            value = "true" if value else "false"
        self._values[key] = str(value)

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def keys(self) -> Iterable[str]:
        return list(self._values)
