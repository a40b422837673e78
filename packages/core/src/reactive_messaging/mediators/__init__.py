"""Mediators: decorated application methods wired into the channel graph."""

from __future__ import annotations

from .decorators import acknowledgment, broadcast, incoming, merge, outgoing
from .descriptor import MediatorDescriptor, parse_mediator, scan_bean
from .invoker import MediatorInvoker
from .manager import MediatorManager
from .shapes import AckPolicy, Consumption, MergePolicy, Production, Shape

__all__ = [
    "AckPolicy",
    "Consumption",
    "MediatorDescriptor",
    "MediatorInvoker",
    "MediatorManager",
    "MergePolicy",
    "Production",
    "Shape",
    "acknowledgment",
    "broadcast",
    "incoming",
    "merge",
    "outgoing",
    "parse_mediator",
    "scan_bean",
]
