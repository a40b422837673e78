"""In-memory JMS-style broker with queues, topics and session semantics.

Thread-safe: consumers block in ``receive()`` on a shared condition, so the
broker behaves like a remote client from the connector's point of view.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from typing import TYPE_CHECKING, Any

from ..exceptions import IllegalStateJmsError, JmsClientError
from ..ports import (
    BodyType,
    DeliveryMode,
    Destination,
    DestinationType,
    JmsMessage,
    SessionMode,
)
from .selector import Selector

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _as_destination(destination: str | Destination) -> Destination:
    if isinstance(destination, Destination):
        return destination
    return Destination(name=destination)


def _body_type(body: Any) -> BodyType:
    if isinstance(body, str):
        return BodyType.TEXT
    if isinstance(body, (bytes, bytearray)):
        return BodyType.BYTES
    return BodyType.OBJECT


class InMemoryBroker:
    """Queues and topics shared by every context created on this broker."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._queues: dict[str, deque[JmsMessage]] = {}
        self._subscriptions: dict[str, list[deque[JmsMessage]]] = {}
        self._ids = itertools.count(1)
        self._receive_failures: list[JmsClientError] = []
        self._send_failures: list[JmsClientError] = []
        self.receive_calls = 0

    # ── Test and tooling helpers ─────────────────────────────────

    def send(
        self,
        destination: str | Destination,
        body: Any,
        properties: Mapping[str, Any] | None = None,
        **headers: Any,
    ) -> JmsMessage:
        """Publish a message as an external producer would."""
        headers.setdefault("message_id", self.next_message_id())
        headers.setdefault("timestamp", _now_ms())
        message = JmsMessage(
            body=body,
            body_type=headers.pop("body_type", _body_type(body)),
            properties=dict(properties or {}),
            **headers,
        )
        self.publish(_as_destination(destination), message)
        return message

    def depth(self, queue: str) -> int:
        with self._cond:
            return len(self._queues.get(queue, ()))

    def messages(self, queue: str) -> list[JmsMessage]:
        """Snapshot of the messages waiting on *queue*."""
        with self._cond:
            return list(self._queues.get(queue, ()))

    def drain(self, queue: str) -> list[JmsMessage]:
        with self._cond:
            pending = self._queues.get(queue)
            if not pending:
                return []
            taken = list(pending)
            pending.clear()
            return taken

    def fail_receives(
        self, count: int = 1, error: JmsClientError | None = None
    ) -> None:
        """Make the next *count* ``receive`` calls raise."""
        with self._cond:
            for _ in range(count):
                self._receive_failures.append(
                    error or JmsClientError("Connection to broker lost")
                )
            self._cond.notify_all()

    def fail_sends(self, count: int = 1, error: JmsClientError | None = None) -> None:
        with self._cond:
            for _ in range(count):
                self._send_failures.append(
                    error or JmsClientError("Connection to broker lost")
                )

    # ── Broker operations ────────────────────────────────────────

    def publish(self, destination: Destination, message: JmsMessage) -> None:
        with self._cond:
            if self._send_failures:
                raise self._send_failures.pop(0)
            message.destination = destination
            if destination.type is DestinationType.TOPIC:
                for subscription in self._subscriptions.get(destination.name, ()):
                    subscription.append(message.copy())
            else:
                self._queues.setdefault(destination.name, deque()).append(message)
            self._cond.notify_all()
        logger.debug("Published %s to %s", message.message_id, destination)

    def next_message_id(self) -> str:
        return f"ID:memory-{next(self._ids)}"

    def _home(self, destination: Destination) -> deque[JmsMessage]:
        if destination.type is DestinationType.TOPIC:
            subscription: deque[JmsMessage] = deque()
            self._subscriptions.setdefault(destination.name, []).append(subscription)
            return subscription
        return self._queues.setdefault(destination.name, deque())

    def _unsubscribe(self, destination: Destination, home: deque[JmsMessage]) -> None:
        if destination.type is DestinationType.TOPIC:
            subscriptions = self._subscriptions.get(destination.name, [])
            if home in subscriptions:
                subscriptions.remove(home)

    def _take(
        self, consumer: InMemoryConsumer, timeout: float | None
    ) -> JmsMessage | None:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            self.receive_calls += 1
            while True:
                if consumer.closed:
                    return None
                if self._receive_failures:
                    raise self._receive_failures.pop(0)
                for message in consumer.home:
                    if consumer.selector.matches(message):
                        consumer.home.remove(message)
                        return message
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    self._cond.wait(remaining)

    def _requeue(self, entries: list[tuple[deque[JmsMessage], JmsMessage]]) -> None:
        with self._cond:
            for home, message in reversed(entries):
                message.redelivered = True
                home.appendleft(message)
            self._cond.notify_all()

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()


class InMemoryConsumer:
    def __init__(
        self,
        context: InMemoryContext,
        destination: Destination,
        selector: Selector,
    ) -> None:
        self._context = context
        self.destination = destination
        self.selector = selector
        self._closed = False
        with context.broker._cond:
            self.home = context.broker._home(destination)

    @property
    def closed(self) -> bool:
        return self._closed or self._context.closed

    def receive(self, timeout: float | None = None) -> JmsMessage | None:
        if self.closed:
            return None
        message = self._context.broker._take(self, timeout)
        if message is not None:
            self._context._delivered(self.home, message)
        return message

    def close(self) -> None:
        broker = self._context.broker
        with broker._cond:
            self._closed = True
            broker._unsubscribe(self.destination, self.home)
            broker._cond.notify_all()


class InMemoryProducer:
    def __init__(self, context: InMemoryContext) -> None:
        self._context = context

    def send(
        self,
        destination: Destination,
        message: JmsMessage,
        *,
        delivery_mode: DeliveryMode | None = None,
        priority: int | None = None,
        time_to_live: int | None = None,
        delivery_delay: int | None = None,
        disable_message_id: bool = False,
        disable_message_timestamp: bool = False,
    ) -> None:
        context = self._context
        context._check_open()
        outgoing = message.copy()
        now = _now_ms()
        if delivery_mode is not None:
            outgoing.delivery_mode = delivery_mode
        if priority is not None:
            outgoing.priority = priority
        outgoing.expiration = now + time_to_live if time_to_live else 0
        outgoing.delivery_time = now + (delivery_delay or 0)
        outgoing.message_id = (
            None if disable_message_id else context.broker.next_message_id()
        )
        outgoing.timestamp = None if disable_message_timestamp else now
        outgoing.redelivered = False
        context._send(destination, outgoing)


class InMemoryContext:
    """One session on an :class:`InMemoryBroker`.

    ``CLIENT_ACKNOWLEDGE`` and ``SESSION_TRANSACTED`` sessions keep every
    received message until it is acknowledged or committed; closing the
    session or rolling back puts them back on their destination, flagged as
    redelivered. Transacted sends are only published on commit.
    """

    def __init__(
        self,
        broker: InMemoryBroker,
        session_mode: SessionMode,
        username: str | None = None,
    ) -> None:
        self.broker = broker
        self.session_mode = session_mode
        self.username = username
        self.closed = False
        self.commits = 0
        self.rollbacks = 0
        self.acknowledged = 0
        self._lock = threading.Lock()
        self._unacked: list[tuple[deque[JmsMessage], JmsMessage]] = []
        self._pending_sends: list[tuple[Destination, JmsMessage]] = []
        self._consumers: list[InMemoryConsumer] = []

    def _check_open(self) -> None:
        if self.closed:
            raise IllegalStateJmsError("Session is closed")

    def create_queue(self, name: str) -> Destination:
        self._check_open()
        return Destination(name=name, type=DestinationType.QUEUE)

    def create_topic(self, name: str) -> Destination:
        self._check_open()
        return Destination(name=name, type=DestinationType.TOPIC)

    def create_consumer(
        self, destination: Destination, selector: str | None = None
    ) -> InMemoryConsumer:
        self._check_open()
        consumer = InMemoryConsumer(self, destination, Selector.parse(selector))
        self._consumers.append(consumer)
        return consumer

    def create_producer(self) -> InMemoryProducer:
        self._check_open()
        return InMemoryProducer(self)

    @property
    def unacknowledged(self) -> int:
        with self._lock:
            return len(self._unacked)

    def _delivered(self, home: deque[JmsMessage], message: JmsMessage) -> None:
        if self.session_mode in (
            SessionMode.CLIENT_ACKNOWLEDGE,
            SessionMode.SESSION_TRANSACTED,
        ):
            with self._lock:
                self._unacked.append((home, message))

    def _send(self, destination: Destination, message: JmsMessage) -> None:
        if self.session_mode is SessionMode.SESSION_TRANSACTED:
            with self._lock:
                self._pending_sends.append((destination, message))
            return
        self.broker.publish(destination, message)

    def acknowledge(self) -> None:
        self._check_open()
        if self.session_mode is not SessionMode.CLIENT_ACKNOWLEDGE:
            return
        with self._lock:
            self.acknowledged += len(self._unacked)
            self._unacked.clear()

    def commit(self) -> None:
        self._check_open()
        if self.session_mode is not SessionMode.SESSION_TRANSACTED:
            raise IllegalStateJmsError("Session is not transacted")
        with self._lock:
            sends, self._pending_sends = self._pending_sends, []
            self._unacked.clear()
            self.commits += 1
        for destination, message in sends:
            self.broker.publish(destination, message)

    def rollback(self) -> None:
        self._check_open()
        if self.session_mode is not SessionMode.SESSION_TRANSACTED:
            raise IllegalStateJmsError("Session is not transacted")
        self._recover()
        with self._lock:
            self.rollbacks += 1

    def _recover(self) -> None:
        with self._lock:
            received, self._unacked = self._unacked, []
            self._pending_sends.clear()
        if received:
            self.broker._requeue(received)

    def close(self) -> None:
        if self.closed:
            return
        self._recover()
        self.closed = True
        for consumer in self._consumers:
            consumer.close()
        self.broker._wake()
