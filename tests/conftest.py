from __future__ import annotations

import base64
import json
import time
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from webscenario.errors import CdpError
from webscenario.session import JS_INNER_HTML, JS_TEXT, JS_VALUE, Deadline, Tab
from webscenario.storage import ArtifactStore


class FakeConn:
    """In-memory stand-in for CdpConnection backed by a tiny DOM table.

    ``matches`` maps ``(scope node id, selector)`` to the node ids returned by
    DOM.querySelectorAll. ``empty_polls`` makes a selector come back empty for
    the given number of queries before matching.
    """

    def __init__(self) -> None:
        self.roots: list[int] = [1]
        self.stale: set[int] = set()
        self.matches: dict[tuple[int, str], list[int]] = {}
        self.empty_polls: dict[str, int] = {}
        self.text: dict[int, str] = {}
        self.html: dict[int, str] = {}
        self.values: dict[int, str] = {}
        self.outer: dict[int, str] = {}
        self.attributes: dict[int, dict[str, str]] = {}
        self.boxes: dict[int, tuple[float, float, float, float]] = {}
        self.evals: dict[str, Any] = {}
        self.responses: dict[str, dict[str, Any]] = {}
        self.page_y = 0.0
        self.events: list[dict[str, Any]] = []
        self.calls: list[tuple[str, dict[str, Any] | None]] = []
        self.sink = None
        self.closed = False

    # CdpConnection surface

    def set_event_sink(self, sink) -> None:
        self.sink = sink

    def emit(self, method: str, params: dict[str, Any] | None = None) -> None:
        event = {"method": method, "params": params or {}}
        if self.sink is not None:
            self.sink(event)
        self.events.append(event)

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        for i, ev in enumerate(self.events):
            if ev["method"] == event_name:
                return self.events.pop(i)["params"]
        return None

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:  # noqa: ARG002
        return self.pop_event(event_name)

    def next_event(self, timeout: float = 0.5) -> dict[str, Any] | None:
        if self.events:
            return self.events.pop(0)
        time.sleep(min(timeout, 0.01))
        return None

    def close(self) -> None:
        self.closed = True

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        self.calls.append((method, params))
        params = params or {}

        if method in self.responses:
            return self.responses[method]
        if method == "DOM.getDocument":
            root = self.roots.pop(0) if len(self.roots) > 1 else self.roots[0]
            return {"root": {"nodeId": root}}
        if method == "DOM.querySelectorAll":
            node_id = params["nodeId"]
            if node_id in self.stale:
                raise CdpError("DOM.querySelectorAll: Could not find node with given id")
            selector = params["selector"]
            if self.empty_polls.get(selector, 0) > 0:
                self.empty_polls[selector] -= 1
                return {"nodeIds": []}
            return {"nodeIds": list(self.matches.get((node_id, selector), []))}
        if method == "DOM.resolveNode":
            return {"object": {"objectId": f"obj-{params['nodeId']}"}}
        if method == "Runtime.callFunctionOn":
            node_id = int(params["objectId"].split("-", 1)[1])
            declaration = params["functionDeclaration"]
            if declaration == JS_TEXT:
                return {"result": {"type": "string", "value": self.text.get(node_id, "")}}
            if declaration == JS_INNER_HTML:
                return {"result": {"type": "string", "value": self.html.get(node_id, "")}}
            if declaration == JS_VALUE:
                return {"result": {"type": "string", "value": self.values.get(node_id, "")}}
            return {"result": {"type": "undefined"}}
        if method == "DOM.getAttributes":
            flat: list[str] = []
            for key, value in self.attributes.get(params["nodeId"], {}).items():
                flat.extend([key, value])
            return {"attributes": flat}
        if method == "DOM.getOuterHTML":
            return {"outerHTML": self.outer.get(params["nodeId"], "")}
        if method == "DOM.getBoxModel":
            left, top, right, bottom = self.boxes.get(params["nodeId"], (0, 0, 10, 10))
            return {"model": {"border": [left, top, right, top, right, bottom, left, bottom]}}
        if method == "Page.getLayoutMetrics":
            return {
                "cssVisualViewport": {"pageX": 0, "pageY": self.page_y},
                "cssContentSize": {"width": 1280, "height": 2000},
            }
        if method == "Page.captureScreenshot":
            payload = json.dumps(params.get("clip") or {}, sort_keys=True).encode()
            return {"data": base64.b64encode(b"jpeg:" + payload).decode()}
        if method == "Runtime.evaluate":
            return {"result": {"type": "string", "value": self.evals.get(params["expression"])}}
        if method == "Page.navigate":
            self.emit("Page.loadEventFired", {"timestamp": 1.0})
            return {"frameId": "F1"}
        if method == "Target.createTarget":
            return {"targetId": "T1"}
        return {}


@pytest.fixture
def conn() -> FakeConn:
    return FakeConn()


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "artifacts", tmp_path / "scenario.py", datetime(2024, 5, 6, 7, 8, 9))


@pytest.fixture
def tab(conn: FakeConn, store: ArtifactStore) -> Tab:
    return Tab(conn, store, Deadline(30), poll_interval=0)


@pytest.fixture
def conn_factory():
    """Return a factory that builds FakeConn objects and remembers them with their URL."""
    made: list[tuple[str, FakeConn]] = []

    def factory(ws_url: str, timeout: float = 5.0) -> FakeConn:  # noqa: ARG001
        fake = FakeConn()
        if factory.setup is not None:
            factory.setup(fake)
        made.append((ws_url, fake))
        return fake

    factory.made = made
    factory.setup = None
    return factory
