"""Per-channel connector configuration and global settings lookup."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Literal

from .primitives.exceptions import InvalidConfigValueError, MissingRequiredKeyError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .ports.config import IConfigSource

logger = logging.getLogger(__name__)

Direction = Literal["incoming", "outgoing"]

CONNECTOR_KEY = "connector"
BROADCAST_KEY = "broadcast"
SHUTDOWN_TIMEOUT_KEY = "smallrye.messaging.shutdown-timeout"
DEFAULT_SHUTDOWN_TIMEOUT = 5.0

_TRUE = frozenset({"true", "yes", "on", "1"})
_FALSE = frozenset({"false", "no", "off", "0"})


def parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise InvalidConfigValueError(key, raw, "a boolean")


def parse_int(key: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise InvalidConfigValueError(key, raw, "an integer") from None


def parse_float(key: str, raw: str) -> float:
    try:
        return float(raw.strip())
    except ValueError:
        raise InvalidConfigValueError(key, raw, "a number") from None


class ConnectorConfig(Mapping[str, str]):
    """Read-only view of one channel's keys, with the channel prefix stripped.

    ``messaging.incoming.prices.destination`` is exposed as ``destination``
    on the config of incoming channel ``prices``.
    """

    def __init__(
        self,
        channel: str,
        direction: Direction,
        values: Mapping[str, str],
    ) -> None:
        self.channel = channel
        self.direction = direction
        self._values = dict(values)

    @classmethod
    def from_source(
        cls, source: IConfigSource, direction: Direction, channel: str
    ) -> ConnectorConfig:
        prefix = f"messaging.{direction}.{channel}."
        values: dict[str, str] = {}
        for key in source.keys():
            if key.startswith(prefix):
                raw = source.get(key)
                if raw is not None:
                    values[key[len(prefix) :]] = raw
        return cls(channel, direction, values)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def require(self, key: str) -> str:
        value = self._values.get(key)
        if value is None or value == "":
            raise MissingRequiredKeyError(key, self.channel)
        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self._values.get(key)
        return default if raw is None else parse_bool(key, raw)

    def __repr__(self) -> str:
        return (
            f"ConnectorConfig({self.direction}.{self.channel}, "
            f"keys={sorted(self._values)})"
        )


def global_float(source: IConfigSource, key: str, default: float) -> float:
    raw = source.get(key)
    return default if raw is None else parse_float(key, raw)


def global_int(source: IConfigSource, key: str, default: int) -> int:
    raw = source.get(key)
    return default if raw is None else parse_int(key, raw)


__all__ = [
    "BROADCAST_KEY",
    "CONNECTOR_KEY",
    "ConnectorConfig",
    "DEFAULT_SHUTDOWN_TIMEOUT",
    "Direction",
    "SHUTDOWN_TIMEOUT_KEY",
    "global_float",
    "global_int",
    "parse_bool",
    "parse_float",
    "parse_int",
]
