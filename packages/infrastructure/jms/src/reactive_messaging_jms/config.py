"""Pydantic models for the ``messaging.<direction>.<channel>.*`` JMS keys."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reactive_messaging.primitives.exceptions import InvalidConfigValueError

from .ports import DeliveryMode, DestinationType, SessionMode
from .session import parse_session_mode

if TYPE_CHECKING:
    from reactive_messaging.config import ConnectorConfig

SESSION_MODE_KEY = "session-mode"

C = TypeVar("C", bound="JmsChannelConfig")


def _dashed(name: str) -> str:
    return name.replace("_", "-")


class JmsChannelConfig(BaseModel):
    """Keys shared by inbound and outbound JMS channels."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=_dashed,
        extra="ignore",
    )

    channel: str
    destination: str | None = None
    destination_type: DestinationType = DestinationType.QUEUE
    connection_factory_name: str | None = None
    username: str | None = None
    password: str | None = None
    session_mode: SessionMode = SessionMode.AUTO_ACKNOWLEDGE
    broadcast: bool = False

    @field_validator("destination_type", mode="before")
    @classmethod
    def _lower_destination_type(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def destination_name(self) -> str:
        return self.destination or self.channel

    @classmethod
    def from_connector_config(cls: type[C], config: ConnectorConfig) -> C:
        values: dict[str, Any] = dict(config)
        # Session modes fail with their own error kind, not a validation error.
        values[SESSION_MODE_KEY] = parse_session_mode(values.get(SESSION_MODE_KEY))
        values["channel"] = config.channel
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            error = e.errors()[0]
            key = ".".join(str(part) for part in error["loc"]) or config.channel
            raise InvalidConfigValueError(
                key, str(error.get("input")), error["msg"]
            ) from e


class JmsSourceConfig(JmsChannelConfig):
    selector: str | None = None


class JmsSinkConfig(JmsChannelConfig):
    disable_message_id: bool = False
    disable_message_timestamp: bool = False
    delivery_mode: DeliveryMode | None = None
    delivery_delay: int | None = Field(default=None, ge=0)
    ttl: int | None = Field(default=None, ge=0)
    priority: int | None = Field(default=None, ge=0, le=9)
    correlation_id: str | None = None
    reply_to: str | None = None
    reply_to_destination_type: DestinationType = DestinationType.QUEUE

    @field_validator("delivery_mode", mode="before")
    @classmethod
    def _parse_delivery_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return DeliveryMode[value.strip().upper().replace("-", "_")]
            except KeyError:
                raise ValueError(
                    "expected PERSISTENT or NON_PERSISTENT"
                ) from None
        return value

    @field_validator("reply_to_destination_type", mode="before")
    @classmethod
    def _lower_reply_type(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


__all__ = ["JmsChannelConfig", "JmsSinkConfig", "JmsSourceConfig"]
