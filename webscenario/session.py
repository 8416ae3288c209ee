"""Page session used by scenario elements.

Tab wraps one page-level CdpConnection and provides the three primitives
element handles are built on:

- resolve_required: poll a selector until it matches (bounded by the run deadline)
- resolve_optional: evaluate a selector once, zero matches allowed
- act: run an action against a set of DOM node ids (no live re-query)
"""

from __future__ import annotations

import base64
import enum
import logging
import time
from collections.abc import Callable, Iterable
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from .errors import CdpError, ResolutionTimeout, ScenarioError

if TYPE_CHECKING:
    from .cdp import CdpConnection
    from .storage import ArtifactStore

logger = logging.getLogger("webscenario.session")

JS_TEXT = "function() { return this.innerText !== undefined ? this.innerText : this.textContent; }"
JS_INNER_HTML = "function() { return this.innerHTML; }"
JS_VALUE = "function() { return this.value; }"
JS_BLUR = "function() { this.blur(); }"
JS_SET_VALUE = """function(v) {
    this.value = v;
    this.dispatchEvent(new Event('input', { bubbles: true }));
    this.dispatchEvent(new Event('change', { bubbles: true }));
}"""
JS_SUBMIT = """function() {
    const form = this.nodeName === 'FORM' ? this : this.form;
    if (!form) { throw new Error('element is not a form and has no form owner'); }
    if (typeof form.requestSubmit === 'function') { form.requestSubmit(); } else { form.submit(); }
}"""


class Action(enum.Enum):
    SEND_KEYS = "sendKeys"
    SET_VALUE = "setValue"
    CLICK = "click"
    SUBMIT = "submit"
    FOCUS = "focus"
    BLUR = "blur"
    SCREENSHOT = "screenshot"
    TEXT = "text"
    INNER_HTML = "innerHTML"
    OUTER_HTML = "outerHTML"
    VALUE = "value"
    ATTRIBUTE = "attribute"


READ_ACTIONS = frozenset({Action.TEXT, Action.INNER_HTML, Action.OUTER_HTML, Action.VALUE, Action.ATTRIBUTE})

# Control characters in sendKeys text become real key presses: (key, windowsVirtualKeyCode, text).
KEY_PRESSES: dict[str, tuple[str, int, str]] = {
    "\n": ("Enter", 13, "\r"),
    "\r": ("Enter", 13, "\r"),
    "\t": ("Tab", 9, ""),
    "\b": ("Backspace", 8, ""),
}


class Deadline:
    """Run-wide deadline shared by every blocking wait of one scenario."""

    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.seconds = float(seconds)
        self.expires_at = clock() + self.seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0


def _is_stale_node(exc: Exception) -> bool:
    msg = str(exc).lower()
    return "could not find node" in msg or "no node with given id" in msg


class Tab:
    """High-level session for one page target."""

    def __init__(
        self,
        conn: CdpConnection,
        store: ArtifactStore,
        deadline: Deadline,
        *,
        poll_interval: float = 0.1,
        after_action: Callable[[], None] | None = None,
    ) -> None:
        self.conn = conn
        self.store = store
        self.deadline = deadline
        self.poll_interval = poll_interval
        self.after_action = after_action
        self._root: int | None = None
        conn.set_event_sink(self._on_event)

    def _on_event(self, event: dict[str, Any]) -> None:
        if event.get("method") == "DOM.documentUpdated":
            self._root = None

    def enable(self) -> None:
        for method in ("Page.enable", "DOM.enable", "Runtime.enable"):
            self.conn.send(method)

    def close(self) -> None:
        self.conn.close()

    def _notify(self) -> None:
        hook = self.after_action
        if hook is not None:
            hook()

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation & page
    # ─────────────────────────────────────────────────────────────────────────

    def navigate(self, url: str) -> str:
        """Navigate to URL and wait for the load event (bounded by the deadline)."""
        while self.conn.pop_event("Page.loadEventFired") is not None:
            pass

        result = self.conn.send("Page.navigate", {"url": url})
        error_text = result.get("errorText")
        if error_text:
            raise ScenarioError(action=f"go {url}", reason=str(error_text), details={"url": url})

        self._root = None
        if self.conn.wait_for_event("Page.loadEventFired", timeout=self.deadline.remaining()) is None:
            raise ResolutionTimeout(
                action=f"go {url}",
                reason="page did not finish loading before the run deadline",
                details={"url": url},
            )
        logger.debug("navigated to %s", url)
        self._notify()
        return url

    def eval_js(self, expression: str) -> Any:
        """Evaluate JavaScript in the page and return the value."""
        result = self.conn.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
        )
        if "exceptionDetails" in result:
            raise CdpError(_exception_text(result["exceptionDetails"]))
        value = result.get("result") or {}
        # undefined comes back without a "value" field.
        return value.get("value")

    @property
    def url(self) -> str:
        return self.eval_js("window.location.href") or ""

    @property
    def title(self) -> str:
        return self.eval_js("document.title") or ""

    def _page_offset(self) -> tuple[float, float]:
        metrics = self.conn.send("Page.getLayoutMetrics")
        viewport = metrics.get("cssVisualViewport") or metrics.get("visualViewport") or {}
        return float(viewport.get("pageX", 0)), float(viewport.get("pageY", 0))

    def capture(self, clip: dict[str, float] | None = None) -> bytes:
        """Capture a JPEG of the page (or a document-relative clip)."""
        params: dict[str, Any] = {"format": "jpeg", "quality": 90, "fromSurface": True}
        if clip is not None:
            params["clip"] = {**clip, "scale": 1}
            params["captureBeyondViewport"] = True
        data = self.conn.send("Page.captureScreenshot", params).get("data", "")
        return base64.b64decode(data)

    def capture_full_page(self) -> bytes:
        metrics = self.conn.send("Page.getLayoutMetrics")
        size = metrics.get("cssContentSize") or metrics.get("contentSize") or {}
        width, height = float(size.get("width", 0)), float(size.get("height", 0))
        if width <= 0 or height <= 0:
            return self.capture()
        return self.capture({"x": 0, "y": 0, "width": width, "height": height})

    def screenshot(self, name: str = "") -> str:
        """Save a full-page screenshot as an artifact and return its path."""
        return self.store.save(name, ".jpg", self.capture_full_page())

    # ─────────────────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────────────────

    def _document_root(self) -> int:
        if self._root is None:
            doc = self.conn.send("DOM.getDocument", {"depth": 0})
            self._root = int(doc["root"]["nodeId"])
        return self._root

    def _query_all(self, query: str, scope: int | None) -> list[int]:
        root = self._document_root() if scope is None else scope
        result = self.conn.send("DOM.querySelectorAll", {"nodeId": root, "selector": query})
        return [int(node_id) for node_id in result.get("nodeIds") or [] if node_id]

    def resolve_optional(self, query: str, scope: int | None = None) -> list[int]:
        """Return all matches of ``query`` under ``scope`` right now (maybe none)."""
        try:
            return self._query_all(query, scope)
        except CdpError as exc:
            if scope is None and _is_stale_node(exc):
                self._root = None
                return self._query_all(query, scope)
            raise

    def resolve_required(self, query: str, scope: int | None = None) -> list[int]:
        """Poll until ``query`` matches at least one node, in document order.

        Raises ResolutionTimeout once the run deadline has passed.
        """
        while True:
            try:
                node_ids = self._query_all(query, scope)
            except CdpError as exc:
                if scope is not None or not _is_stale_node(exc):
                    raise
                # Document was replaced between polls.
                self._root = None
                node_ids = []

            if node_ids:
                return node_ids

            remaining = self.deadline.remaining()
            if remaining <= 0:
                raise ResolutionTimeout(
                    action=f"select {query!r}",
                    reason="no element matched before the run deadline",
                    suggestion="check the selector or wait for the page to render it",
                    details={"query": query},
                )
            time.sleep(min(self.poll_interval, remaining))

    # ─────────────────────────────────────────────────────────────────────────
    # Actions
    # ─────────────────────────────────────────────────────────────────────────

    def act(self, node_ids: Iterable[int], action: Action, *params: Any) -> Any:
        """Run ``action`` against ``node_ids``.

        Mutating actions apply to every node in order and return None. Reads
        use the first node. On an empty id set every action is a no-op and
        reads (and SCREENSHOT) return None.
        """
        ids = list(node_ids)
        if not ids:
            logger.debug("%s on empty element set skipped", action.value)
            return None

        if action in READ_ACTIONS:
            return self._read(ids[0], action, *params)
        if action is Action.SCREENSHOT:
            return self._capture_nodes(ids)

        for node_id in ids:
            self._apply(node_id, action, *params)
        self._notify()
        return None

    def _apply(self, node_id: int, action: Action, *params: Any) -> None:
        if action is Action.CLICK:
            x, y = self._node_center(node_id)
            for event_type in ("mousePressed", "mouseReleased"):
                self.conn.send(
                    "Input.dispatchMouseEvent",
                    {"type": event_type, "x": x, "y": y, "button": "left", "clickCount": 1},
                )
        elif action is Action.SEND_KEYS:
            self.conn.send("DOM.focus", {"nodeId": node_id})
            self._type(str(params[0]) if params else "")
        elif action is Action.SET_VALUE:
            self._call_function(node_id, JS_SET_VALUE, str(params[0]) if params else "")
        elif action is Action.SUBMIT:
            self._call_function(node_id, JS_SUBMIT)
        elif action is Action.FOCUS:
            self.conn.send("DOM.focus", {"nodeId": node_id})
        elif action is Action.BLUR:
            self._call_function(node_id, JS_BLUR)
        else:
            raise ValueError(f"unsupported action: {action}")

    def _type(self, text: str) -> None:
        """Insert plain runs of ``text`` and press keys for its control characters."""
        run: list[str] = []
        for ch in text:
            press = KEY_PRESSES.get(ch)
            if press is None:
                run.append(ch)
                continue
            if run:
                self.conn.send("Input.insertText", {"text": "".join(run)})
                run = []
            self._press_key(*press)
        if run or not text:
            self.conn.send("Input.insertText", {"text": "".join(run)})

    def _press_key(self, key: str, key_code: int, text: str = "") -> None:
        for event_type in ("keyDown", "keyUp"):
            params: dict[str, Any] = {
                "type": event_type,
                "key": key,
                "code": key,
                "windowsVirtualKeyCode": key_code,
            }
            if text and event_type == "keyDown":
                params["text"] = text
            self.conn.send("Input.dispatchKeyEvent", params)

    def _read(self, node_id: int, action: Action, *params: Any) -> str | None:
        if action is Action.OUTER_HTML:
            return str(self.conn.send("DOM.getOuterHTML", {"nodeId": node_id}).get("outerHTML", ""))
        if action is Action.ATTRIBUTE:
            flat = self.conn.send("DOM.getAttributes", {"nodeId": node_id}).get("attributes") or []
            attributes = dict(zip(flat[0::2], flat[1::2], strict=False))
            return attributes.get(str(params[0])) if params else None

        declaration = {Action.TEXT: JS_TEXT, Action.INNER_HTML: JS_INNER_HTML, Action.VALUE: JS_VALUE}[action]
        value = self._call_function(node_id, declaration)
        return "" if value is None else str(value)

    def _call_function(self, node_id: int, declaration: str, *args: Any) -> Any:
        obj = self.conn.send("DOM.resolveNode", {"nodeId": node_id}).get("object") or {}
        object_id = obj.get("objectId")
        if not object_id:
            raise CdpError(f"node {node_id} could not be resolved to a JS object")
        try:
            result = self.conn.send(
                "Runtime.callFunctionOn",
                {
                    "objectId": object_id,
                    "functionDeclaration": declaration,
                    "arguments": [{"value": arg} for arg in args],
                    "returnByValue": True,
                    "awaitPromise": True,
                },
            )
        finally:
            with suppress(CdpError):
                self.conn.send("Runtime.releaseObject", {"objectId": object_id})
        if "exceptionDetails" in result:
            raise CdpError(_exception_text(result["exceptionDetails"]))
        return (result.get("result") or {}).get("value")

    def _box(self, node_id: int) -> tuple[float, float, float, float]:
        """Viewport-relative (left, top, right, bottom) of the node's border box."""
        model = self.conn.send("DOM.getBoxModel", {"nodeId": node_id}).get("model") or {}
        quad = model.get("border") or model.get("content") or []
        if len(quad) < 8:
            raise CdpError(f"node {node_id} has no layout box")
        xs, ys = quad[0::2], quad[1::2]
        return min(xs), min(ys), max(xs), max(ys)

    def _node_center(self, node_id: int) -> tuple[float, float]:
        with suppress(CdpError):
            self.conn.send("DOM.scrollIntoViewIfNeeded", {"nodeId": node_id})
        left, top, right, bottom = self._box(node_id)
        return (left + right) / 2, (top + bottom) / 2

    def _capture_nodes(self, node_ids: list[int]) -> bytes:
        with suppress(CdpError):
            self.conn.send("DOM.scrollIntoViewIfNeeded", {"nodeId": node_ids[0]})
        boxes = [self._box(node_id) for node_id in node_ids]
        offset_x, offset_y = self._page_offset()
        left = min(b[0] for b in boxes)
        top = min(b[1] for b in boxes)
        right = max(b[2] for b in boxes)
        bottom = max(b[3] for b in boxes)
        return self.capture(
            {
                "x": left + offset_x,
                "y": top + offset_y,
                "width": max(1.0, right - left),
                "height": max(1.0, bottom - top),
            }
        )


def _exception_text(details: Any) -> str:
    if not isinstance(details, dict):
        return str(details)
    exception = details.get("exception") or {}
    return str(exception.get("description") or details.get("text") or "JavaScript exception")


__all__ = ["Action", "Deadline", "READ_ACTIONS", "Tab"]
