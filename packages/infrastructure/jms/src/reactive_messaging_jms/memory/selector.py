"""A small subset of JMS message selectors.

Supported: comparisons ``ident <op> literal`` joined by ``AND``, where
``<op>`` is one of ``= <> < <= > >=`` and literals are quoted strings,
numbers, ``TRUE`` or ``FALSE``. Identifiers name message properties or the
``JMSCorrelationID``, ``JMSType``, ``JMSPriority``, ``JMSMessageID`` and
``JMSDeliveryMode`` headers.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..exceptions import InvalidSelectorError

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..ports import JmsMessage

_CONDITION = re.compile(
    r"^\s*(?P<ident>[A-Za-z_$][\w$.-]*)\s*(?P<op><>|<=|>=|=|<|>)\s*"
    r"(?P<literal>'(?:[^']|'')*'|[-+]?\d+(?:\.\d+)?|TRUE|FALSE)\s*$",
    re.IGNORECASE,
)
_AND = re.compile(r"\s+AND\s+", re.IGNORECASE)

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _literal(text: str) -> Any:
    if text.startswith("'"):
        return text[1:-1].replace("''", "'")
    upper = text.upper()
    if upper in ("TRUE", "FALSE"):
        return upper == "TRUE"
    return float(text) if "." in text else int(text)


def _header(message: JmsMessage, name: str) -> Any:
    if name == "JMSCorrelationID":
        return message.correlation_id
    if name == "JMSType":
        return message.type
    if name == "JMSPriority":
        return message.priority
    if name == "JMSMessageID":
        return message.message_id
    if name == "JMSDeliveryMode":
        return message.delivery_mode.name
    return message.properties.get(name)


@dataclass(frozen=True)
class _Condition:
    ident: str
    op: str
    value: Any

    def matches(self, message: JmsMessage) -> bool:
        actual = _header(message, self.ident)
        if actual is None:
            return False
        try:
            return _OPERATORS[self.op](actual, self.value)
        except TypeError:
            return False


class Selector:
    def __init__(self, expression: str | None, conditions: list[_Condition]) -> None:
        self.expression = expression
        self._conditions = conditions

    @classmethod
    def parse(cls, expression: str | None) -> Selector:
        if expression is None or not expression.strip():
            return cls(None, [])
        conditions = []
        for part in _AND.split(expression.strip()):
            match = _CONDITION.match(part)
            if match is None:
                raise InvalidSelectorError(expression, f"cannot parse {part!r}")
            conditions.append(
                _Condition(
                    match["ident"], match["op"], _literal(match["literal"])
                )
            )
        return cls(expression, conditions)

    def matches(self, message: JmsMessage) -> bool:
        return all(c.matches(message) for c in self._conditions)

    def __repr__(self) -> str:
        return f"Selector({self.expression!r})"


__all__ = ["Selector"]
