"""Run-scoped artifact store.

Every file a scenario run produces (screenshots, downloads, recordings, debug
logs) is written below one directory and recorded here, so the run
orchestrator can attach the list to the monitoring record at the end.

Layout: ``<root>/<script name without extension>/<YYYYmmddTHHMMSS>/<artifact>``.

Downloads are reported by the browser asynchronously (from the download
watcher thread), so all bookkeeping is guarded by a single lock. Only the
in-memory state is locked; file writes happen outside the lock.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime
from pathlib import Path, PurePath
from typing import BinaryIO

logger = logging.getLogger("webscenario.storage")

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S"


class ArtifactStore:
    def __init__(self, base_dir: str | os.PathLike[str] | None, script_path: str | os.PathLike[str], timestamp: datetime):
        script = Path(script_path)
        base = Path(base_dir) if base_dir else script.parent

        directory = base / script.stem / timestamp.strftime(TIMESTAMP_FORMAT)
        if not directory.is_absolute():
            directory = Path.cwd() / directory

        self.dir = str(directory)
        self._lock = threading.Lock()
        self._artifacts: list[str] = []
        self._pending: dict[str, str] = {}
        self._auto_id = 0

    def _path(self, name: str) -> str:
        # Absolute names are re-rooted under the run directory.
        rel = PurePath(name)
        if rel.anchor:
            rel = PurePath(*rel.parts[1:])
        return os.path.join(self.dir, str(rel))

    def open(self, name: str) -> BinaryIO:
        """Open ``name`` for appending, creating it and its parents as needed.

        The path is recorded before anything touches the filesystem, so a
        failed creation still shows up in :meth:`artifacts`.
        """
        path = self._path(name)

        with self._lock:
            self._artifacts.append(path)

        os.makedirs(os.path.dirname(path), mode=0o750, exist_ok=True)
        return open(path, "ab")  # noqa: SIM115

    def save(self, name: str, ext: str, data: bytes) -> str:
        """Write ``data`` to ``name + ext`` and return the path.

        An empty name gets the next sequence number (``000001``, ``000002``,
        ...). ``ext`` is only appended when ``name`` does not already end with
        it. Registration happens before the write, as in :meth:`open`.
        """
        with self._lock:
            if not name:
                self._auto_id += 1
                name = f"{self._auto_id:06d}"
            if not name.endswith(ext):
                name += ext
            path = self._path(name)
            self._artifacts.append(path)

        os.makedirs(os.path.dirname(path), mode=0o750, exist_ok=True)
        with open(path, "wb") as fp:
            fp.write(data)
        logger.debug("saved artifact %s (%d bytes)", path, len(data))
        return path

    def start_download(self, guid: str, name: str) -> None:
        with self._lock:
            self._pending[guid] = name

    def cancel_download(self, guid: str) -> None:
        with self._lock:
            self._pending.pop(guid, None)

    def complete_download(self, guid: str) -> str | None:
        """Record a finished download and return its path, or None for an unknown guid."""
        with self._lock:
            name = self._pending.pop(guid, None)
            if name is None:
                return None
            path = self._path(name)
            self._artifacts.append(path)
        logger.debug("download %s completed: %s", guid, path)
        return path

    def artifacts(self) -> list[str]:
        with self._lock:
            return list(self._artifacts)


__all__ = ["ArtifactStore", "TIMESTAMP_FORMAT"]
