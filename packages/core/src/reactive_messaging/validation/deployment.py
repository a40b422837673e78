"""Deployment validation of injected channel and emitter references."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..primitives.exceptions import (
    DeploymentError,
    UnconnectedEmitterError,
    UnresolvedIncomingError,
)

if TYPE_CHECKING:
    from collections.abc import Collection

    from ..channels.registry import ChannelRegistry

logger = logging.getLogger(__name__)


class InjectionKind(str, enum.Enum):
    CHANNEL = "CHANNEL"
    EMITTER = "EMITTER"


@dataclass(frozen=True)
class InjectionPoint:
    """A place in application code expecting a channel or an emitter."""

    kind: InjectionKind
    channel: str
    description: str = ""

    def __str__(self) -> str:
        return self.description or f"{self.kind.value.lower()} {self.channel!r}"


def default_problems_factory() -> list[BaseException]:
    return []


@dataclass
class DeploymentReport:
    """Collects deployment problems.

    Usage::

        report = validator.validate()
        report.raise_if_invalid()
    """

    problems: list[BaseException] = field(default_factory=default_problems_factory)

    @property
    def is_valid(self) -> bool:
        return not self.problems

    def add(self, problem: BaseException) -> None:
        self.problems.append(problem)

    def merge(self, other: DeploymentReport) -> DeploymentReport:
        return DeploymentReport(problems=[*self.problems, *other.problems])

    def raise_if_invalid(self) -> None:
        if self.problems:
            raise DeploymentError(self.problems)

    def __bool__(self) -> bool:
        return self.is_valid


class DeploymentValidator:
    """Checks injection points against the wired graph.

    Each failing point is reported under its own kind: a channel reference
    that nothing produces is ``UNRESOLVED_INCOMING``, an emitter nothing
    consumes is ``UNCONNECTED_EMITTER``.
    """

    def __init__(self, registry: ChannelRegistry) -> None:
        self._registry = registry
        self._points: list[InjectionPoint] = []

    def add(self, point: InjectionPoint) -> InjectionPoint:
        self._points.append(point)
        logger.debug("Registered injection point %s (%s)", point, point.kind.value)
        return point

    def expect_channel(self, name: str, description: str = "") -> InjectionPoint:
        return self.add(InjectionPoint(InjectionKind.CHANNEL, name, description))

    def expect_emitter(self, name: str, description: str = "") -> InjectionPoint:
        return self.add(InjectionPoint(InjectionKind.EMITTER, name, description))

    @property
    def points(self) -> list[InjectionPoint]:
        return list(self._points)

    def validate(
        self,
        produced: Collection[str] | None = None,
        consumed: Collection[str] | None = None,
    ) -> DeploymentReport:
        """Check every injection point.

        Against the running graph by default. When the graph never started,
        *produced* and *consumed* name the channels its analysis found a
        producer or a consumer for.
        """
        report = DeploymentReport()
        incoming = (
            self._registry.get_incoming_names() if produced is None else produced
        )
        for point in self._points:
            if point.kind is InjectionKind.CHANNEL:
                if point.channel not in incoming:
                    report.add(UnresolvedIncomingError(point.channel, point))
            elif not self._emitter_consumed(point.channel, consumed):
                report.add(UnconnectedEmitterError(point.channel, point))
        if not report.is_valid:
            logger.error(
                "Deployment validation found %d problem(s)", len(report.problems)
            )
        return report

    def _emitter_consumed(
        self, channel: str, consumed: Collection[str] | None
    ) -> bool:
        if consumed is not None:
            return channel in consumed
        emitter = self._registry.get_emitter(channel)
        return emitter is not None and emitter.is_connected()


__all__ = [
    "DeploymentReport",
    "DeploymentValidator",
    "InjectionKind",
    "InjectionPoint",
]
