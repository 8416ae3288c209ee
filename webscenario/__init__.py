"""Browser scenario runner driven by the Chrome DevTools Protocol."""

from __future__ import annotations

__version__ = "0.1.0"

from .element import Element, ElementList
from .errors import CdpError, NoSuchNode, ResolutionTimeout, ScenarioError
from .record import Record, Status
from .runner import Arg, run, run_script
from .session import Action, Deadline, Tab
from .storage import ArtifactStore
from .target import TargetURL, parse_target_url

__all__ = [
    "Action",
    "Arg",
    "ArtifactStore",
    "CdpError",
    "Deadline",
    "Element",
    "ElementList",
    "NoSuchNode",
    "Record",
    "ResolutionTimeout",
    "ScenarioError",
    "Status",
    "Tab",
    "TargetURL",
    "__version__",
    "parse_target_url",
    "run",
    "run_script",
]
