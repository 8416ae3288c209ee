"""Exceptions raised while driving a scenario.

- CdpError: transport/protocol failure on a DevTools connection
- ScenarioError: a scenario step failed (structured, human readable)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class CdpError(Exception):
    pass


@dataclass
class ScenarioError(Exception):
    """Structured step failure surfaced to the scenario author."""

    action: str
    reason: str
    suggestion: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        msg = f"{self.action} failed: {self.reason}"
        if self.suggestion:
            msg += f". Suggestion: {self.suggestion}"
        return msg


@dataclass
class ResolutionTimeout(ScenarioError):
    pass


@dataclass
class NoSuchNode(ScenarioError):
    pass


__all__ = ["CdpError", "NoSuchNode", "ResolutionTimeout", "ScenarioError"]
