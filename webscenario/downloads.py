"""Background download tracking.

Chrome reports downloads on the browser-level DevTools target. A daemon
thread reads that connection and forwards the lifecycle to the artifact
store, concurrently with the scenario script's own calls into the store.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from .errors import CdpError

if TYPE_CHECKING:
    from .cdp import CdpConnection
    from .storage import ArtifactStore

logger = logging.getLogger("webscenario.downloads")


class DownloadWatcher:
    def __init__(self, conn: CdpConnection, store: ArtifactStore, *, poll_timeout: float = 0.5) -> None:
        self.conn = conn
        self.store = store
        self.poll_timeout = poll_timeout
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def enable(self) -> None:
        """Route downloads into the store directory and turn on download events."""
        self.conn.send(
            "Browser.setDownloadBehavior",
            {"behavior": "allow", "downloadPath": self.store.dir, "eventsEnabled": True},
        )

    def handle_event(self, event: dict[str, Any]) -> None:
        method = event.get("method")
        params = event.get("params") or {}
        guid = params.get("guid")
        if not isinstance(guid, str) or not guid:
            return

        if method == "Browser.downloadWillBegin":
            name = str(params.get("suggestedFilename") or guid)
            logger.info("download started: %s", name)
            self.store.start_download(guid, name)
        elif method == "Browser.downloadProgress":
            state = params.get("state")
            if state == "completed":
                path = self.store.complete_download(guid)
                if path is not None:
                    logger.info("download completed: %s", path)
            elif state == "canceled":
                logger.info("download canceled: %s", guid)
                self.store.cancel_download(guid)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                event = self.conn.next_event(timeout=self.poll_timeout)
            except CdpError as exc:
                if not self._stop.is_set():
                    logger.warning("download watcher stopped: %s", exc)
                return
            if event is not None:
                self.handle_event(event)

    def start(self) -> None:
        self.enable()
        self._thread = threading.Thread(target=self._run, name="webscenario-downloads", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None


__all__ = ["DownloadWatcher"]
