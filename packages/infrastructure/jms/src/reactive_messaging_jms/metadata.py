"""JmsMetadata: broker headers and properties attached to each message."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .ports import DeliveryMode, Destination, JmsMessage

JMS_METADATA_KEY = "jms"


class JmsMetadata(BaseModel):
    """Immutable snapshot of a broker message's headers and properties.

    Stored under the ``"jms"`` metadata key of incoming messages. The sink
    copies it onto the outgoing broker message, so forwarding a message
    keeps its correlation id, type, reply-to and properties.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str | None = None
    timestamp: int | None = None
    correlation_id: str | None = None
    reply_to: Destination | None = None
    destination: Destination | None = None
    delivery_mode: DeliveryMode = DeliveryMode.PERSISTENT
    priority: int = 4
    expiration: int = 0
    delivery_time: int = 0
    redelivered: bool = False
    type: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_message(cls, message: JmsMessage) -> JmsMetadata:
        return cls(
            message_id=message.message_id,
            timestamp=message.timestamp,
            correlation_id=message.correlation_id,
            reply_to=message.reply_to,
            destination=message.destination,
            delivery_mode=message.delivery_mode,
            priority=message.priority,
            expiration=message.expiration,
            delivery_time=message.delivery_time,
            redelivered=message.redelivered,
            type=message.type,
            properties=dict(message.properties),
        )

    def get_property(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)


__all__ = ["JMS_METADATA_KEY", "JmsMetadata"]
