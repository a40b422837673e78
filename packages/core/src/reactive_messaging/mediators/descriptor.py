"""MediatorDescriptor: the parsed, immutable description of one mediator."""

from __future__ import annotations

import inspect
import logging
import typing
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..primitives.exceptions import InvalidMediatorError
from .decorators import annotations_of
from .shapes import (
    AckPolicy,
    Consumption,
    MergePolicy,
    Production,
    Shape,
    is_message_type,
    is_none_type,
    is_stream_type,
    message_payload_type,
    stream_item,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .decorators import MediatorAnnotations

logger = logging.getLogger(__name__)

_MISSING = inspect.Signature.empty


@dataclass(frozen=True)
class MediatorDescriptor:
    bean_id: str
    method_name: str
    incoming: tuple[str, ...]
    outgoing: str | None
    shape: Shape
    consumption: Consumption
    production: Production
    ack_policy: AckPolicy
    merge_policy: MergePolicy
    broadcast: bool
    payload_type: Any
    method: Callable[..., Any]

    @property
    def key(self) -> tuple[str, str]:
        return (self.bean_id, self.method_name)

    @property
    def label(self) -> str:
        return f"{self.bean_id}#{self.method_name}"

    @property
    def is_terminal(self) -> bool:
        return self.shape in (Shape.SUBSCRIBER, Shape.CONSUMER)

    @property
    def is_coroutine(self) -> bool:
        return inspect.iscoroutinefunction(self.method)

    def __repr__(self) -> str:
        return (
            f"MediatorDescriptor({self.label}, {self.shape.value}, "
            f"in={list(self.incoming)}, out={self.outgoing})"
        )


def _resolve_hints(func: Callable[..., Any], label: str) -> dict[str, Any]:
    target = getattr(func, "__func__", func)
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError) as e:
        raise InvalidMediatorError(
            f"Cannot resolve type hints of mediator {label}: {e}"
        ) from e


def _classify(
    func: Callable[..., Any], hints: dict[str, Any], declared_outgoing: bool, label: str
) -> tuple[Shape, Consumption, Production, Any]:
    params = [
        p
        for p in inspect.signature(func).parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    if len(params) > 1:
        raise InvalidMediatorError(
            f"Mediator {label} must take at most one parameter, got {len(params)}"
        )

    returns = hints.get("return", _MISSING)
    if inspect.isasyncgenfunction(getattr(func, "__func__", func)) and not (
        returns is not _MISSING and is_stream_type(returns)
    ):
        returns = typing.AsyncIterator[Any]
    if returns is _MISSING:
        has_return = declared_outgoing
        returns = Any
    else:
        has_return = not is_none_type(returns)
    returns_stream = has_return and is_stream_type(returns)

    param_hint = hints.get(params[0].name, Any) if params else None
    param_stream = param_hint is not None and is_stream_type(param_hint)

    def consumption_of(hint: Any) -> tuple[Consumption, Any]:
        if is_stream_type(hint):
            item = stream_item(hint)
            if is_message_type(item):
                return Consumption.STREAM_OF_MESSAGE, message_payload_type(item)
            return Consumption.STREAM_OF_PAYLOAD, item
        if is_message_type(hint):
            return Consumption.MESSAGE, message_payload_type(hint)
        return Consumption.PAYLOAD, hint

    def production_of(hint: Any) -> Production:
        if is_stream_type(hint):
            if is_message_type(stream_item(hint)):
                return Production.STREAM_OF_MESSAGE
            return Production.STREAM_OF_PAYLOAD
        return Production.MESSAGE if is_message_type(hint) else Production.PAYLOAD

    if returns_stream and param_stream:
        consumption, payload_type = consumption_of(param_hint)
        return Shape.PROCESSOR, consumption, production_of(returns), payload_type
    if returns_stream and not params:
        return Shape.PUBLISHER, Consumption.NONE, production_of(returns), Any
    if not has_return and param_stream:
        consumption, payload_type = consumption_of(param_hint)
        return Shape.SUBSCRIBER, consumption, Production.NONE, payload_type
    if has_return and params and not param_stream:
        consumption, payload_type = consumption_of(param_hint)
        return Shape.PROCESSOR, consumption, production_of(returns), payload_type
    if not has_return and params:
        consumption, payload_type = consumption_of(param_hint)
        return Shape.CONSUMER, consumption, Production.NONE, payload_type
    if has_return and not params:
        return Shape.PUBLISHER, Consumption.NONE, production_of(returns), Any
    raise InvalidMediatorError(
        f"Mediator {label} has an unsupported signature {inspect.signature(func)}"
    )


def _default_ack(shape: Shape, consumption: Consumption) -> AckPolicy:
    if consumption is Consumption.NONE:
        return AckPolicy.NONE
    if consumption.is_message:
        return AckPolicy.MANUAL
    if shape is Shape.PROCESSOR and consumption is Consumption.STREAM_OF_PAYLOAD:
        return AckPolicy.PRE
    return AckPolicy.POST


def _check_topology(
    shape: Shape, annotations: MediatorAnnotations, label: str
) -> None:
    if shape is Shape.PROCESSOR:
        if annotations.outgoing is None or not annotations.incoming:
            raise InvalidMediatorError(
                f"Processor {label} needs one @outgoing and at least one @incoming"
            )
    elif shape is Shape.PUBLISHER:
        if annotations.outgoing is None:
            raise InvalidMediatorError(f"Publisher {label} needs an @outgoing channel")
        if annotations.incoming:
            raise InvalidMediatorError(
                f"Publisher {label} takes no parameter but declares @incoming "
                f"{annotations.incoming}"
            )
    else:
        if annotations.outgoing is not None:
            raise InvalidMediatorError(
                f"{shape.value.title()} {label} returns nothing but declares "
                f"@outgoing {annotations.outgoing!r}"
            )
        if not annotations.incoming:
            raise InvalidMediatorError(f"{shape.value.title()} {label} needs @incoming")


def parse_mediator(method: Callable[..., Any], bean_id: str) -> MediatorDescriptor:
    """Build the descriptor of a decorated (bound) method.

    Raises:
        InvalidMediatorError: if the method is not decorated, its signature
            matches no shape, or its channels contradict its shape.
    """
    name = getattr(method, "__name__", repr(method))
    label = f"{bean_id}#{name}"
    annotations = annotations_of(method)
    if annotations is None:
        raise InvalidMediatorError(f"{label} is not annotated with @incoming/@outgoing")

    hints = _resolve_hints(method, label)
    shape, consumption, production, payload_type = _classify(
        method, hints, annotations.outgoing is not None, label
    )
    _check_topology(shape, annotations, label)

    ack_policy = annotations.ack_policy or _default_ack(shape, consumption)
    if consumption is Consumption.NONE:
        if annotations.ack_policy is not None:
            logger.warning("Ignoring acknowledgment policy on publisher %s", label)
        ack_policy = AckPolicy.NONE
    elif ack_policy is AckPolicy.MANUAL and not consumption.is_message:
        raise InvalidMediatorError(
            f"{label} receives payloads and cannot acknowledge manually"
        )

    descriptor = MediatorDescriptor(
        bean_id=bean_id,
        method_name=name,
        incoming=tuple(annotations.incoming),
        outgoing=annotations.outgoing,
        shape=shape,
        consumption=consumption,
        production=production,
        ack_policy=ack_policy,
        merge_policy=annotations.merge_policy,
        broadcast=annotations.broadcast,
        payload_type=payload_type,
        method=method,
    )
    logger.debug("Parsed mediator %r", descriptor)
    return descriptor


def scan_bean(
    instance: Any, bean_id: str | None = None
) -> Iterator[MediatorDescriptor]:
    """Yield the descriptors of every decorated method of *instance*."""
    resolved_id = bean_id or type(instance).__name__
    for name, attribute in inspect.getmembers(type(instance)):
        if name.startswith("__") or annotations_of(attribute) is None:
            continue
        yield parse_mediator(getattr(instance, name), resolved_id)


__all__ = ["MediatorDescriptor", "parse_mediator", "scan_bean"]
