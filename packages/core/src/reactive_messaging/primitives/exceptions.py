"""Error taxonomy for the reactive messaging runtime.

Every exception carries a ``kind`` string so deployment reports and logs can
name the problem without depending on the concrete class.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable


class ReactiveMessagingError(Exception):
    """Root exception for the entire reactive messaging runtime."""

    kind: str = "ERROR"


# ── Configuration errors (startup) ───────────────────────────────────


class ConfigurationError(ReactiveMessagingError):
    """Base class for invalid or incomplete configuration."""

    kind = "CONFIGURATION"


class UnknownSessionModeError(ConfigurationError):
    """Raised when a ``session-mode`` value is not a recognised session mode."""

    kind = "UNKNOWN_SESSION_MODE"

    def __init__(self, mode: str) -> None:
        self.mode = mode
        super().__init__(f"Unknown session mode: {mode}")


class MissingRequiredKeyError(ConfigurationError):
    """Raised when a mandatory configuration key has no value."""

    kind = "MISSING_REQUIRED_KEY"

    def __init__(self, key: str, channel: str | None = None) -> None:
        self.key = key
        self.channel = channel
        where = f" for channel {channel!r}" if channel else ""
        super().__init__(f"Missing required configuration key {key!r}{where}")


class InvalidConfigValueError(ConfigurationError):
    """Raised when a configuration value cannot be converted to its type."""

    kind = "INVALID_CONFIG_VALUE"

    def __init__(self, key: str, value: str, expected: str) -> None:
        self.key = key
        self.value = value
        self.expected = expected
        super().__init__(
            f"Invalid value {value!r} for key {key!r}: expected {expected}"
        )


class UnknownConnectorError(ConfigurationError):
    """Raised when a channel selects a connector that is not registered."""

    kind = "UNKNOWN_CONNECTOR"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown connector: {name!r}")


class ConnectorRegistrationError(ConfigurationError):
    """Raised when two connectors are registered under the same name."""

    kind = "DUPLICATE_CONNECTOR"


# ── Wiring errors (deployment validation) ────────────────────────────


class WiringError(ReactiveMessagingError):
    """Base class for channel graph problems."""

    kind = "WIRING"


class UnresolvedIncomingError(WiringError):
    """Raised when no producer can be found for a consumed channel."""

    kind = "UNRESOLVED_INCOMING"

    def __init__(self, name: str, injection_point: Any = None) -> None:
        self.name = name
        self.injection_point = injection_point
        msg = f"No channel found for name: {name}"
        if injection_point is not None:
            msg += f", injection point: {injection_point}"
        super().__init__(msg)


class UnresolvedOutgoingError(WiringError):
    """Raised when nothing consumes a channel a mediator produces to."""

    kind = "UNRESOLVED_OUTGOING"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No subscriber found for outgoing channel: {name}")


class DuplicateProducerError(WiringError):
    """Raised when several producers target a channel without a merge policy."""

    kind = "DUPLICATE_PRODUCER"

    def __init__(self, name: str, detail: str | None = None) -> None:
        self.name = name
        msg = f"Channel {name!r} already has a producer"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class DuplicateConsumerError(WiringError):
    """Raised when several consumers read a channel that is not broadcast."""

    kind = "DUPLICATE_CONSUMER"

    def __init__(self, name: str, detail: str | None = None) -> None:
        self.name = name
        msg = f"Channel {name!r} already has a consumer"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class UnconnectedEmitterError(WiringError):
    """Raised when an injected emitter has no downstream consumer."""

    kind = "UNCONNECTED_EMITTER"

    def __init__(self, name: str, injection_point: Any = None) -> None:
        self.name = name
        self.injection_point = injection_point
        msg = f"Emitter for channel {name!r} is not connected to any consumer"
        if injection_point is not None:
            msg += f", injection point: {injection_point}"
        super().__init__(msg)


class InvalidMediatorError(WiringError):
    """Raised when a decorated method does not match any mediator shape."""

    kind = "INVALID_MEDIATOR"


class RegistryFrozenError(WiringError):
    """Raised when the channel graph is modified after it was started."""

    kind = "REGISTRY_FROZEN"


# ── Resource errors ──────────────────────────────────────────────────


class ResourceError(ReactiveMessagingError):
    """Base class for unresolvable runtime collaborators."""

    kind = "RESOURCE"


class NoConnectionFactoryError(ResourceError):
    """Raised when no connection factory bean is available."""

    kind = "NO_FACTORY"

    def __init__(self) -> None:
        super().__init__("Cannot find a ConnectionFactory bean")


class NamedFactoryNotFoundError(ResourceError):
    """Raised when no connection factory bean carries the requested name."""

    kind = "NAMED_FACTORY_NOT_FOUND"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Cannot find a ConnectionFactory bean named {name!r}")


class AmbiguousFactoryError(ResourceError):
    """Raised when several connection factories exist and none was named."""

    kind = "AMBIGUOUS_FACTORY"

    def __init__(self, names: Iterable[str | None]) -> None:
        self.names = list(names)
        super().__init__(
            "Several ConnectionFactory beans found, set "
            f"'connection-factory-name' to pick one of {self.names}"
        )


# ── Flow errors (runtime) ────────────────────────────────────────────


class ReactiveMessagingFlowError(ReactiveMessagingError):
    """Base class for errors that terminate a running stream."""

    kind = "FLOW"


class EmitterOverflowError(ReactiveMessagingFlowError):
    """Raised when an emitter's buffer overflows."""

    kind = "OVERFLOW"

    def __init__(self, channel: str, capacity: int | None = None) -> None:
        self.channel = channel
        self.capacity = capacity
        msg = f"Emitter for channel {channel!r} overflowed"
        if capacity is not None:
            msg += f" (capacity {capacity})"
        super().__init__(msg)


class StreamClosedError(ReactiveMessagingFlowError):
    """Raised when sending to a stream that already completed or failed."""

    kind = "STREAM_CLOSED"


class BrokerIOError(ReactiveMessagingFlowError):
    """Raised when the broker client fails while receiving or sending."""

    kind = "BROKER_IO"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class DecodeError(ReactiveMessagingFlowError):
    """Raised when a payload cannot be decoded into the requested type."""

    kind = "DECODE"


class EncodeError(ReactiveMessagingFlowError):
    """Raised when a payload cannot be encoded for the wire."""

    kind = "ENCODE"


# ── Deployment ───────────────────────────────────────────────────────


class ConnectorInitError(ReactiveMessagingError):
    """Raised when a connector cannot materialize a channel."""

    kind = "CONNECTOR_INIT"

    def __init__(self, channel: str, cause: BaseException) -> None:
        self.channel = channel
        self.cause = cause
        kind = getattr(cause, "kind", type(cause).__name__)
        super().__init__(
            f"Connector initialization failed for channel {channel!r}: "
            f"[{kind}] {cause}"
        )


class DeploymentError(ReactiveMessagingError):
    """Aggregates every problem detected while wiring the channel graph."""

    kind = "DEPLOYMENT"

    def __init__(self, problems: Iterable[BaseException]) -> None:
        self.problems = list(problems)
        lines = [f"  - [{_kind_of(p)}] {p}" for p in self.problems]
        super().__init__(
            f"{len(self.problems)} deployment problem(s):\n" + "\n".join(lines)
        )

    def kinds(self) -> list[str]:
        """Return the kinds of all problems, unwrapping connector failures."""
        result: list[str] = []
        for problem in self.problems:
            result.append(_kind_of(problem))
            if isinstance(problem, ConnectorInitError):
                result.append(_kind_of(problem.cause))
        return result


def _kind_of(error: BaseException) -> str:
    return getattr(error, "kind", type(error).__name__)
