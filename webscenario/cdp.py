"""Low-level Chrome DevTools Protocol connection over websocket-client."""

from __future__ import annotations

import json
import logging
import socket
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import websocket

from .errors import CdpError

logger = logging.getLogger("webscenario.cdp")


def _is_timeout(exc: Exception) -> bool:
    if isinstance(exc, (TimeoutError, websocket.WebSocketTimeoutException)):
        return True
    msg = str(exc).lower()
    return "timed out" in msg or "would block" in msg


class CdpConnection:
    """One WebSocket connection to a page or browser DevTools target."""

    def __init__(self, ws_url: str, timeout: float = 5.0):
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout, suppress_origin=True)
        except Exception as exc:  # noqa: BLE001
            raise CdpError(f"Failed to connect to {ws_url}: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        # Events must not be dropped while waiting for command responses,
        # otherwise load/download waits become flaky.
        self._event_queue: list[dict[str, Any]] = []
        self._max_event_queue = 2000
        self._event_sink: Callable[[dict[str, Any]], None] | None = None

    def set_event_sink(self, sink: Callable[[dict[str, Any]], None] | None) -> None:
        """Attach a sink called for every received CDP event."""
        self._event_sink = sink

    def _push_event(self, event: dict[str, Any]) -> None:
        sink = self._event_sink
        if sink is not None:
            try:
                sink(event)
            except Exception:  # noqa: BLE001
                logger.debug("event sink failed for %s", event.get("method"), exc_info=True)

        self._event_queue.append(event)
        if len(self._event_queue) > self._max_event_queue:
            del self._event_queue[: len(self._event_queue) - self._max_event_queue]

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        """Pop the oldest queued event params for the given event name."""
        for i, ev in enumerate(self._event_queue):
            if ev.get("method") == event_name:
                self._event_queue.pop(i)
                params = ev.get("params")
                return params if isinstance(params, dict) else {}
        return None

    def _recv_message(self, timeout: float) -> dict[str, Any] | None:
        """Receive one decoded message, or None when nothing arrived in time."""
        try:
            self.ws.settimeout(max(0.0, timeout))
            raw = self.ws.recv()
        except Exception as exc:  # noqa: BLE001
            if _is_timeout(exc):
                return None
            raise CdpError(str(exc)) from exc

        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _is_event(data: dict[str, Any]) -> bool:
        return isinstance(data.get("method"), str) and "id" not in data

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        msg_id = self._next_id
        self._next_id += 1

        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params

        logger.debug("-> %s %s", method, msg_id)
        try:
            self.ws.settimeout(min(2.0, max(0.5, float(self.timeout))))
            self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            raise CdpError(str(exc)) from exc

        return self._recv_until(msg_id, method)

    def _recv_until(self, expected_id: int, method: str) -> dict[str, Any]:
        deadline = time.time() + self.timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise CdpError(f"CDP response timed out ({method})")

            data = self._recv_message(min(0.5, remaining))
            if data is None:
                continue

            if self._is_event(data):
                self._push_event(data)
                continue

            if data.get("id") == expected_id:
                if "error" in data:
                    error = data["error"]
                    message = error.get("message") if isinstance(error, dict) else error
                    raise CdpError(f"{method}: {message}")
                result = data.get("result")
                return result if isinstance(result, dict) else {}

    def next_event(self, timeout: float = 0.5) -> dict[str, Any] | None:
        """Return the next event (queued first), or None if none arrives in time."""
        if self._event_queue:
            return self._event_queue.pop(0)

        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                return None
            data = self._recv_message(min(0.5, remaining))
            if data is not None and self._is_event(data):
                sink = self._event_sink
                if sink is not None:
                    with suppress(Exception):
                        sink(data)
                return data

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        """Wait for specific CDP event."""
        queued = self.pop_event(event_name)
        if queued is not None:
            return queued

        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                return None

            data = self._recv_message(min(0.5, remaining))
            if data is None or not self._is_event(data):
                continue

            if data.get("method") == event_name:
                sink = self._event_sink
                if sink is not None:
                    with suppress(Exception):
                        sink(data)
                params = data.get("params")
                return params if isinstance(params, dict) else {}
            self._push_event(data)

    def close(self) -> None:
        """Close the connection with a raw socket shutdown."""
        # websocket-client close() may take internal locks held by a reader thread.
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(Exception):
                sock.shutdown(socket.SHUT_RDWR)
            with suppress(Exception):
                sock.close()


__all__ = ["CdpConnection"]
