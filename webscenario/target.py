"""Scenario target parsing.

A target is either a bare script path (standalone mode: exit status reports
the result) or a ``web-scenario:`` URL (monitoring mode: a record line is
printed for the scheduler).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

SCHEME = "web-scenario"


@dataclass(frozen=True)
class TargetURL:
    path: str
    query: str = ""
    scheme: str = SCHEME

    def __str__(self) -> str:
        url = f"{self.scheme}:{self.path}"
        if self.query:
            url += f"?{self.query}"
        return url

    @property
    def script_path(self) -> str:
        return self.path.replace("/", os.sep)


def _to_slash(path: str) -> str:
    return path.replace(os.sep, "/") if os.sep != "/" else path


def parse_target_url(raw: str) -> tuple[str, TargetURL]:
    """Return ``(mode, target)`` where mode is ``"standalone"`` or ``"ayd"``."""
    if not raw:
        raise ValueError("target is empty")

    parts = urlsplit(raw)
    # A one-letter scheme is a Windows drive ("C:\\scenario.py"), not a URL.
    if not parts.scheme or len(parts.scheme) == 1:
        return "standalone", TargetURL(path=_to_slash(raw))

    path = unquote(parts.path)
    if not path:
        raise ValueError(f"target URL has no script path: {raw}")
    return "ayd", TargetURL(path=_to_slash(path), query=parts.query)


__all__ = ["SCHEME", "TargetURL", "parse_target_url"]
