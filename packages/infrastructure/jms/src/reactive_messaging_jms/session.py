"""Connection factory selection and broker session creation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reactive_messaging.primitives.exceptions import (
    AmbiguousFactoryError,
    NamedFactoryNotFoundError,
    NoConnectionFactoryError,
    UnknownSessionModeError,
)

from .ports import IConnectionFactory, SessionMode

if TYPE_CHECKING:
    from reactive_messaging.ports.beans import IBeanRegistry

    from .config import JmsChannelConfig
    from .ports import IJmsContext

logger = logging.getLogger(__name__)


def parse_session_mode(value: str | SessionMode | None) -> SessionMode:
    """Match a session mode name case-insensitively.

    ``None`` and the empty string mean ``AUTO_ACKNOWLEDGE``.
    """
    if isinstance(value, SessionMode):
        return value
    if value is None or not value.strip():
        return SessionMode.AUTO_ACKNOWLEDGE
    try:
        return SessionMode[value.strip().upper()]
    except KeyError:
        raise UnknownSessionModeError(value) from None


def select_factory(
    beans: IBeanRegistry, name: str | None = None
) -> IConnectionFactory:
    """Pick the connection factory bean a channel uses.

    Raises:
        NamedFactoryNotFoundError: *name* is set and no factory carries it.
        NoConnectionFactoryError: no factory bean exists.
        AmbiguousFactoryError: several exist and *name* is not set.
    """
    if name:
        named = beans.select(IConnectionFactory, name)  # type: ignore[type-abstract]
        if not named:
            raise NamedFactoryNotFoundError(name)
        return named[0]
    factories = beans.select(IConnectionFactory)  # type: ignore[type-abstract]
    if not factories:
        raise NoConnectionFactoryError()
    if len(factories) > 1:
        labels = [
            (beans.names_of(f) or [type(f).__name__])[0] for f in factories
        ]
        raise AmbiguousFactoryError(labels)
    return factories[0]


def open_context(
    factory: IConnectionFactory, config: JmsChannelConfig
) -> IJmsContext:
    """Create a session, passing credentials only when a username is set."""
    if config.username is not None:
        context = factory.create_context(
            config.session_mode, config.username, config.password
        )
    else:
        context = factory.create_context(config.session_mode)
    logger.debug(
        "Opened %s session for channel %r", config.session_mode.name, config.channel
    )
    return context


__all__ = ["open_context", "parse_session_mode", "select_factory"]
