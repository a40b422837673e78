"""Decorators marking methods as nodes of the channel graph.

Usage::

    class Pipeline:
        @incoming("prices")
        @outgoing("converted")
        def convert(self, price: float) -> float:
            return price * 0.88

The decorators only attach a :class:`MediatorAnnotations` record to the
function; :func:`~reactive_messaging.mediators.descriptor.scan_bean` turns
it into descriptors. They stack in any order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypeVar

from .shapes import AckPolicy, MergePolicy

F = TypeVar("F")

ANNOTATIONS_ATTR = "__reactive_messaging__"


@dataclass
class MediatorAnnotations:
    incoming: list[str] = field(default_factory=list)
    outgoing: str | None = None
    ack_policy: AckPolicy | None = None
    merge_policy: MergePolicy = MergePolicy.NONE
    broadcast: bool = False


def annotations_of(func: Any) -> MediatorAnnotations | None:
    target = getattr(func, "__func__", func)
    return getattr(target, ANNOTATIONS_ATTR, None)


def _annotate(func: Any) -> MediatorAnnotations:
    existing = getattr(func, ANNOTATIONS_ATTR, None)
    if existing is None:
        existing = MediatorAnnotations()
        setattr(func, ANNOTATIONS_ATTR, existing)
    return existing  # type: ignore[no-any-return]


def _check_channel(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise ValueError(f"Channel name must be a non-empty string, got {name!r}")
    return name


def incoming(name: str, *more: str) -> Any:
    """Mark a method as consuming one or more channels."""
    names = [_check_channel(n) for n in (name, *more)]

    def decorator(func: F) -> F:
        record = _annotate(func)
        for channel in names:
            if channel not in record.incoming:
                record.incoming.append(channel)
        return func

    return decorator


def outgoing(name: str) -> Any:
    """Mark a method as producing to a channel."""
    channel = _check_channel(name)

    def decorator(func: F) -> F:
        record = _annotate(func)
        if record.outgoing is not None and record.outgoing != channel:
            raise ValueError(
                f"{getattr(func, '__qualname__', func)} already produces to "
                f"{record.outgoing!r}"
            )
        record.outgoing = channel
        return func

    return decorator


def acknowledgment(policy: AckPolicy | str) -> Any:
    """Override the default acknowledgement policy of a mediator."""
    resolved = AckPolicy(policy.upper() if isinstance(policy, str) else policy)

    def decorator(func: F) -> F:
        _annotate(func).ack_policy = resolved
        return func

    return decorator


def merge(policy: Any = MergePolicy.MERGE) -> Any:
    """Accept several producers on the consumed channels.

    Usable bare (``@merge``, interleaving) or with a policy
    (``@merge(MergePolicy.CONCAT)``).
    """
    if callable(policy) and not isinstance(policy, (MergePolicy, str)):
        _annotate(policy).merge_policy = MergePolicy.MERGE
        return policy
    resolved = MergePolicy(policy.upper() if isinstance(policy, str) else policy)

    def decorator(func: F) -> F:
        _annotate(func).merge_policy = resolved
        return func

    return decorator


def broadcast(func: F) -> F:
    """Allow several consumers of the channel this mediator produces to."""
    _annotate(func).broadcast = True
    return func


__all__ = [
    "ANNOTATIONS_ATTR",
    "MediatorAnnotations",
    "acknowledgment",
    "annotations_of",
    "broadcast",
    "incoming",
    "merge",
    "outgoing",
]
