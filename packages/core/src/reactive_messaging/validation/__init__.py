"""Deployment validation."""

from __future__ import annotations

from .deployment import (
    DeploymentReport,
    DeploymentValidator,
    InjectionKind,
    InjectionPoint,
)

__all__ = [
    "DeploymentReport",
    "DeploymentValidator",
    "InjectionKind",
    "InjectionPoint",
]
