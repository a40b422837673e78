from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from pydantic import ValidationError

from reactive_messaging.primitives.exceptions import (
    InvalidConfigValueError,
    UnknownSessionModeError,
)
from reactive_messaging_jms import DeliveryMode, DestinationType, SessionMode

if TYPE_CHECKING:
    from collections.abc import Callable


def test_source_defaults(make_source_config: Callable[..., Any]) -> None:
    config = make_source_config("prices")
    assert config.channel == "prices"
    assert config.destination_name == "prices"
    assert config.destination_type is DestinationType.QUEUE
    assert config.session_mode is SessionMode.AUTO_ACKNOWLEDGE
    assert config.selector is None
    assert config.broadcast is False


def test_source_keys(make_source_config: Callable[..., Any]) -> None:
    config = make_source_config(
        destination="Q1",
        destination_type="TOPIC",
        selector="color = 'red'",
        connection_factory_name="local",
        session_mode="client_acknowledge",
        broadcast="true",
        unrelated="ignored",
    )
    assert config.destination_name == "Q1"
    assert config.destination_type is DestinationType.TOPIC
    assert config.selector == "color = 'red'"
    assert config.connection_factory_name == "local"
    assert config.session_mode is SessionMode.CLIENT_ACKNOWLEDGE
    assert config.broadcast is True


def test_sink_keys(make_sink_config: Callable[..., Any]) -> None:
    config = make_sink_config(
        delivery_mode="non_persistent",
        priority="8",
        ttl="1000",
        delivery_delay="5",
        disable_message_id="true",
        correlation_id="corr",
        reply_to="replies",
        reply_to_destination_type="topic",
    )
    assert config.delivery_mode is DeliveryMode.NON_PERSISTENT
    assert config.priority == 8
    assert config.ttl == 1000
    assert config.delivery_delay == 5
    assert config.disable_message_id is True
    assert config.disable_message_timestamp is False
    assert config.correlation_id == "corr"
    assert config.reply_to == "replies"
    assert config.reply_to_destination_type is DestinationType.TOPIC


def test_unknown_session_mode_keeps_its_kind(
    make_source_config: Callable[..., Any],
) -> None:
    with pytest.raises(UnknownSessionModeError):
        make_source_config(session_mode="BOGUS")


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("priority", "10"),
        ("ttl", "-1"),
        ("delivery_mode", "sometimes"),
        ("destination_type", "mailbox"),
    ],
)
def test_invalid_sink_values(
    make_sink_config: Callable[..., Any], key: str, value: str
) -> None:
    with pytest.raises(InvalidConfigValueError) as excinfo:
        make_sink_config(**{key: value})
    assert excinfo.value.key == key.replace("_", "-")


def test_configs_are_frozen(make_source_config: Callable[..., Any]) -> None:
    config = make_source_config()
    with pytest.raises(ValidationError):
        config.destination = "other"
