from __future__ import annotations

import json
from typing import Any

import pytest
import websocket

from webscenario import cdp
from webscenario.cdp import CdpConnection
from webscenario.errors import CdpError


class FakeWebSocket:
    def __init__(self, replies: list[dict[str, Any]] | None = None) -> None:
        self.incoming: list[str] = [json.dumps(r) for r in replies or []]
        self.sent: list[dict[str, Any]] = []
        self.sock = None

    def settimeout(self, timeout: float) -> None:
        pass

    def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    def recv(self) -> str:
        if not self.incoming:
            raise websocket.WebSocketTimeoutException("timed out")
        return self.incoming.pop(0)


@pytest.fixture
def fake_ws(monkeypatch: pytest.MonkeyPatch) -> FakeWebSocket:
    ws = FakeWebSocket()
    monkeypatch.setattr(cdp.websocket, "create_connection", lambda *a, **k: ws)
    return ws


def _event(method: str, **params: Any) -> str:
    return json.dumps({"method": method, "params": params})


def test_connect_failure_is_cdp_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(*args, **kwargs):  # noqa: ARG001
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(cdp.websocket, "create_connection", refuse)
    with pytest.raises(CdpError, match="Failed to connect"):
        CdpConnection("ws://127.0.0.1:1/devtools/page/x")


def test_send_returns_result_and_queues_interleaved_events(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)
    fake_ws.incoming = [
        _event("Page.loadEventFired", timestamp=1),
        json.dumps({"id": 1, "result": {"frameId": "F"}}),
    ]

    assert conn.send("Page.navigate", {"url": "https://example.test/"}) == {"frameId": "F"}
    assert fake_ws.sent == [{"id": 1, "method": "Page.navigate", "params": {"url": "https://example.test/"}}]
    assert conn.pop_event("Page.loadEventFired") == {"timestamp": 1}
    assert conn.pop_event("Page.loadEventFired") is None


def test_message_ids_increase(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)
    fake_ws.incoming = [json.dumps({"id": 1, "result": {}}), json.dumps({"id": 2, "result": {}})]
    conn.send("DOM.enable")
    conn.send("Page.enable")
    assert [m["id"] for m in fake_ws.sent] == [1, 2]
    assert "params" not in fake_ws.sent[0]


def test_error_reply_raises(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)
    fake_ws.incoming = [json.dumps({"id": 1, "error": {"code": -32000, "message": "Could not find node with given id"}})]
    with pytest.raises(CdpError, match="DOM.querySelectorAll: Could not find node"):
        conn.send("DOM.querySelectorAll", {"nodeId": 9, "selector": "a"})


def test_missing_reply_times_out(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=0.05)
    with pytest.raises(CdpError, match=r"timed out \(DOM.getDocument\)"):
        conn.send("DOM.getDocument")


def test_event_sink_sees_events_received_during_send(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)
    seen: list[str] = []
    conn.set_event_sink(lambda ev: seen.append(ev["method"]))
    fake_ws.incoming = [_event("DOM.documentUpdated"), json.dumps({"id": 1, "result": {}})]

    conn.send("DOM.getDocument")
    assert seen == ["DOM.documentUpdated"]


def test_failing_sink_does_not_break_send(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)

    def boom(event):  # noqa: ARG001
        raise RuntimeError("sink")

    conn.set_event_sink(boom)
    fake_ws.incoming = [_event("DOM.documentUpdated"), json.dumps({"id": 1, "result": {"ok": True}})]
    assert conn.send("DOM.getDocument") == {"ok": True}


def test_wait_for_event_keeps_other_events(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)
    fake_ws.incoming = [_event("Page.frameNavigated"), _event("Page.loadEventFired", timestamp=2)]

    assert conn.wait_for_event("Page.loadEventFired", timeout=1.0) == {"timestamp": 2}
    assert conn.pop_event("Page.frameNavigated") == {}


def test_wait_for_event_gives_up(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)
    assert conn.wait_for_event("Page.loadEventFired", timeout=0.05) is None


def test_next_event_prefers_queue(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)
    fake_ws.incoming = [
        _event("Browser.downloadWillBegin", guid="g"),
        json.dumps({"id": 1, "result": {}}),
        _event("Browser.downloadProgress", guid="g", state="completed"),
    ]
    conn.send("Browser.setDownloadBehavior", {"behavior": "allow"})

    assert conn.next_event(timeout=0.1)["method"] == "Browser.downloadWillBegin"
    assert conn.next_event(timeout=0.1)["method"] == "Browser.downloadProgress"
    assert conn.next_event(timeout=0.05) is None


def test_event_queue_is_bounded(fake_ws: FakeWebSocket) -> None:
    conn = CdpConnection("ws://x", timeout=1.0)
    for i in range(2100):
        conn._push_event({"method": "Network.dataReceived", "params": {"i": i}})
    assert len(conn._event_queue) == 2000
    assert conn._event_queue[0]["params"]["i"] == 100


def test_close_without_socket_is_safe(fake_ws: FakeWebSocket) -> None:
    CdpConnection("ws://x").close()
