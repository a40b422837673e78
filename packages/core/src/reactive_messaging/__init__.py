"""reactive-messaging: annotated mediators wired to brokers through channels.

Core runtime: messages, pull-based streams, emitters, channel wiring,
connector registry and deployment validation. Broker connectors live in
separate packages (see ``reactive_messaging_jms``).
"""

from __future__ import annotations

# ── Adapters ────────────────────────────────────────────────────
from .adapters.memory import InMemoryBeanRegistry, MappingConfigSource

# ── Channels & connectors ───────────────────────────────────────
from .channels import ChannelRegistry
from .codec import JSON_CONTENT_TYPE, JsonPayloadCodec
from .config import ConnectorConfig
from .connectors import ConnectorRegistry, connector

# ── Emitters ────────────────────────────────────────────────────
from .emitter import (
    Emitter,
    EmitterSpec,
    EmitterState,
    OverflowSpec,
    OverflowStrategy,
)

# ── Instrumentation ─────────────────────────────────────────────
from .instrumentation import (
    HookRegistry,
    InstrumentationHook,
    get_hook_registry,
    set_hook_registry,
)

# ── Mediators ───────────────────────────────────────────────────
from .mediators import (
    AckPolicy,
    MediatorDescriptor,
    MediatorManager,
    MergePolicy,
    Shape,
    acknowledgment,
    broadcast,
    incoming,
    merge,
    outgoing,
    parse_mediator,
    scan_bean,
)
from .message import AckState, Message

# ── Ports ───────────────────────────────────────────────────────
from .ports import (
    IBeanRegistry,
    IConfigSource,
    IIncomingConnectorFactory,
    IOutgoingConnectorFactory,
    IPayloadCodec,
    IPublisher,
    ISubscriber,
)

# ── Primitives ──────────────────────────────────────────────────
from .primitives.exceptions import (
    ConfigurationError,
    DeploymentError,
    ReactiveMessagingError,
    ReactiveMessagingFlowError,
    ResourceError,
    WiringError,
)

# ── Runtime ─────────────────────────────────────────────────────
from .runtime import ChannelReference, ReactiveMessaging, run_standalone
from .streams import Multicast, SingleSubscriptionPublisher

# ── Validation ──────────────────────────────────────────────────
from .validation import DeploymentValidator, InjectionKind, InjectionPoint

__all__ = [
    "AckPolicy",
    "AckState",
    "ChannelReference",
    "ChannelRegistry",
    "ConfigurationError",
    "ConnectorConfig",
    "ConnectorRegistry",
    "DeploymentError",
    "DeploymentValidator",
    "Emitter",
    "EmitterSpec",
    "EmitterState",
    "HookRegistry",
    "IBeanRegistry",
    "IConfigSource",
    "IIncomingConnectorFactory",
    "IOutgoingConnectorFactory",
    "IPayloadCodec",
    "IPublisher",
    "ISubscriber",
    "InMemoryBeanRegistry",
    "InjectionKind",
    "InjectionPoint",
    "InstrumentationHook",
    "JSON_CONTENT_TYPE",
    "JsonPayloadCodec",
    "MappingConfigSource",
    "MediatorDescriptor",
    "MediatorManager",
    "MergePolicy",
    "Message",
    "Multicast",
    "OverflowSpec",
    "OverflowStrategy",
    "ReactiveMessaging",
    "ReactiveMessagingError",
    "ReactiveMessagingFlowError",
    "ResourceError",
    "Shape",
    "SingleSubscriptionPublisher",
    "WiringError",
    "acknowledgment",
    "broadcast",
    "connector",
    "get_hook_registry",
    "incoming",
    "merge",
    "outgoing",
    "parse_mediator",
    "run_standalone",
    "scan_bean",
    "set_hook_registry",
]
