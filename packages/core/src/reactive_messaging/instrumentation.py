"""Hooks around mediator invocations and emitter sends.

Operations are named with dotted paths:

* ``mediator.invoke.<bean>.<method>``, attributes ``bean``, ``method``,
  ``shape``, ``channel`` (first incoming) and ``outgoing``;
* ``emitter.send.<channel>``, attribute ``channel``.

A hook is an async callable ``hook(operation, attributes, proceed)`` that
must await ``proceed()`` to let the operation run. Hooks nest by priority,
lowest outermost.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import re
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)


@runtime_checkable
class InstrumentationHook(Protocol):
    async def __call__(
        self,
        operation: str,
        attributes: dict[str, Any],
        next_handler: Callable[[], Awaitable[Any]],
    ) -> Any: ...


def _compile(patterns: Sequence[str]) -> re.Pattern[str] | None:
    if not patterns:
        return None
    return re.compile("|".join(fnmatch.translate(p) for p in patterns))


@dataclass
class HookRegistration:
    """One hook and the operations it applies to.

    ``operations`` holds glob patterns over operation names; ``channels``
    limits the hook to operations whose ``channel`` attribute is listed.
    Operations without a channel attribute are never filtered out by it.
    """

    hook: InstrumentationHook
    priority: int = 0
    predicate: Callable[[str, dict[str, Any]], bool] | None = None
    operations: Sequence[str] = ()
    channels: frozenset[str] = frozenset()
    enabled: bool = True
    _pattern: re.Pattern[str] | None = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._pattern = _compile(self.operations)

    def applies_to(self, operation: str, attributes: dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        if self._pattern is not None and not self._pattern.match(operation):
            return False
        channel = attributes.get("channel")
        if self.channels and channel is not None and channel not in self.channels:
            return False
        return self.predicate is None or self.predicate(operation, attributes)


class HookRegistry:
    """Ordered set of hooks consulted for every instrumented operation."""

    def __init__(self) -> None:
        self._registrations: list[HookRegistration] = []

    def register(
        self,
        hook: InstrumentationHook,
        *,
        priority: int = 0,
        predicate: Callable[[str, dict[str, Any]], bool] | None = None,
        operations: Sequence[str] | None = None,
        channels: Sequence[str] | None = None,
        enabled: bool = True,
    ) -> HookRegistration:
        registration = HookRegistration(
            hook,
            priority,
            predicate,
            tuple(operations or ()),
            frozenset(channels or ()),
            enabled,
        )
        self._registrations.append(registration)
        # Stable sort: equal priorities keep registration order.
        self._registrations.sort(key=lambda r: r.priority)
        logger.debug("Registered hook %r (priority %d)", hook, priority)
        return registration

    def has_hooks(self) -> bool:
        return bool(self._registrations)

    async def execute_all(
        self,
        operation: str,
        attributes: dict[str, Any],
        next_handler: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Run *next_handler* inside every hook that applies to *operation*."""
        chain = next_handler
        for registration in reversed(self._registrations):
            if registration.applies_to(operation, attributes):
                chain = _wrap(registration.hook, operation, attributes, chain)
        return await chain()

    def clear(self) -> None:
        self._registrations.clear()


def _wrap(
    hook: InstrumentationHook,
    operation: str,
    attributes: dict[str, Any],
    inner: Callable[[], Awaitable[Any]],
) -> Callable[[], Awaitable[Any]]:
    def call() -> Awaitable[Any]:
        return hook(operation, attributes, inner)

    return call


_current_registry: ContextVar[HookRegistry | None] = ContextVar(
    "reactive_messaging_hooks", default=None
)


def get_hook_registry() -> HookRegistry:
    """Return the registry of the current context, creating it on first use."""
    registry = _current_registry.get()
    if registry is None:
        registry = HookRegistry()
        _current_registry.set(registry)
    return registry


def set_hook_registry(registry: HookRegistry) -> None:
    _current_registry.set(registry)


def _log_hook_failure(task: asyncio.Task[Any]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning(
            "Fire-and-forget hook task failed: %s",
            task.exception(),
            exc_info=task.exception(),
        )


async def _nothing() -> None:
    return None


def fire_and_forget_hook(
    registry: HookRegistry, operation: str, attributes: dict[str, Any]
) -> None:
    """Notify hooks of *operation* without waiting for them.

    Only possible from the event loop thread; emitters fed from other threads
    skip the notification.
    """
    if not registry.has_hooks():
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    task = loop.create_task(registry.execute_all(operation, attributes, _nothing))
    task.add_done_callback(_log_hook_failure)


__all__ = [
    "HookRegistration",
    "HookRegistry",
    "InstrumentationHook",
    "fire_and_forget_hook",
    "get_hook_registry",
    "set_hook_registry",
]
