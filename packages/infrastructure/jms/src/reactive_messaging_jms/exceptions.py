"""JMS-specific exceptions for reactive-messaging-jms."""

from __future__ import annotations

from reactive_messaging.primitives.exceptions import (
    ReactiveMessagingError,
    ResourceError,
)


class JmsClientError(ReactiveMessagingError):
    """Raised by broker clients when a broker call fails.

    The connector converts it to
    :class:`~reactive_messaging.primitives.BrokerIOError` before it reaches a
    stream.
    """

    kind = "JMS_CLIENT"


class IllegalStateJmsError(JmsClientError):
    """Raised when a context or consumer is used after it was closed."""

    kind = "JMS_ILLEGAL_STATE"


class InvalidSelectorError(JmsClientError):
    """Raised when a message selector cannot be parsed."""

    kind = "INVALID_SELECTOR"

    def __init__(self, selector: str, reason: str) -> None:
        self.selector = selector
        super().__init__(f"Invalid message selector {selector!r}: {reason}")


class WorkerPoolExhaustedError(ResourceError):
    """Raised when no worker thread can be reserved for a receive loop."""

    kind = "POOL_EXHAUSTED"

    def __init__(self, max_workers: int) -> None:
        self.max_workers = max_workers
        super().__init__(
            f"All {max_workers} JMS worker threads are busy; increase "
            "'smallrye.jms.threads.max-pool-size'"
        )
