from __future__ import annotations

import pytest

from reactive_messaging.connectors import ConnectorRegistry, connector, connector_name
from reactive_messaging.primitives.exceptions import (
    ConnectorRegistrationError,
    UnknownConnectorError,
)


@connector("memory")
class NamedConnector:
    pass


class AnonymousConnector:
    pass


def test_decorator_sets_connector_name() -> None:
    assert connector_name(NamedConnector()) == "memory"
    assert connector_name(AnonymousConnector()) is None


def test_register_uses_decorated_name_or_explicit_name() -> None:
    registry = ConnectorRegistry()
    named = registry.register(NamedConnector())
    anonymous = registry.register(AnonymousConnector(), name="other")

    assert registry.get("memory") is named
    assert registry.get("other") is anonymous
    assert registry.names() == ["memory", "other"]
    assert "memory" in registry
    assert list(registry) == [named, anonymous]


def test_register_without_name_fails() -> None:
    with pytest.raises(ConnectorRegistrationError, match="no connector name"):
        ConnectorRegistry().register(AnonymousConnector())


def test_duplicate_name_fails_but_same_instance_is_idempotent() -> None:
    registry = ConnectorRegistry()
    instance = registry.register(NamedConnector())
    registry.register(instance)

    with pytest.raises(ConnectorRegistrationError, match="Duplicate connector"):
        registry.register(NamedConnector())


def test_unknown_connector_raises() -> None:
    with pytest.raises(UnknownConnectorError) as exc_info:
        ConnectorRegistry().get("kafka")
    assert exc_info.value.kind == "UNKNOWN_CONNECTOR"
