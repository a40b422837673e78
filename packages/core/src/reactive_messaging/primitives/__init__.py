"""Primitive building blocks shared by every layer."""

from __future__ import annotations

from .exceptions import (
    AmbiguousFactoryError,
    BrokerIOError,
    ConfigurationError,
    ConnectorInitError,
    ConnectorRegistrationError,
    DecodeError,
    DeploymentError,
    DuplicateConsumerError,
    DuplicateProducerError,
    EmitterOverflowError,
    EncodeError,
    InvalidConfigValueError,
    InvalidMediatorError,
    MissingRequiredKeyError,
    NamedFactoryNotFoundError,
    NoConnectionFactoryError,
    ReactiveMessagingError,
    ReactiveMessagingFlowError,
    RegistryFrozenError,
    ResourceError,
    StreamClosedError,
    UnconnectedEmitterError,
    UnknownConnectorError,
    UnknownSessionModeError,
    UnresolvedIncomingError,
    UnresolvedOutgoingError,
    WiringError,
)

__all__ = [
    "AmbiguousFactoryError",
    "BrokerIOError",
    "ConfigurationError",
    "ConnectorInitError",
    "ConnectorRegistrationError",
    "DecodeError",
    "DeploymentError",
    "DuplicateConsumerError",
    "DuplicateProducerError",
    "EmitterOverflowError",
    "EncodeError",
    "InvalidConfigValueError",
    "InvalidMediatorError",
    "MissingRequiredKeyError",
    "NamedFactoryNotFoundError",
    "NoConnectionFactoryError",
    "ReactiveMessagingError",
    "ReactiveMessagingFlowError",
    "RegistryFrozenError",
    "ResourceError",
    "StreamClosedError",
    "UnconnectedEmitterError",
    "UnknownConnectorError",
    "UnknownSessionModeError",
    "UnresolvedIncomingError",
    "UnresolvedOutgoingError",
    "WiringError",
]
