"""Animated GIF recording of a scenario run (``--gif``)."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import TYPE_CHECKING

from PIL import Image

if TYPE_CHECKING:
    from .session import Tab
    from .storage import ArtifactStore

logger = logging.getLogger("webscenario.recorder")

RECORDING_NAME = "recording.gif"


class Recorder:
    """Collects one frame after every page-changing action."""

    def __init__(self, tab: Tab, *, max_width: int = 800, max_frames: int = 600, frame_ms: int = 500) -> None:
        self.tab = tab
        self.max_width = max_width
        self.max_frames = max_frames
        self.frame_ms = frame_ms
        self.frames: list[Image.Image] = []

    def attach(self) -> None:
        self.tab.after_action = self.capture

    def add_frame(self, data: bytes) -> None:
        img = Image.open(BytesIO(data)).convert("RGB")
        if img.width > self.max_width:
            height = max(1, round(img.height * self.max_width / img.width))
            img = img.resize((self.max_width, height))
        self.frames.append(img)
        if len(self.frames) > self.max_frames:
            del self.frames[0]

    def capture(self) -> None:
        try:
            self.add_frame(self.tab.capture())
        except Exception:  # noqa: BLE001
            # A missing frame must not fail the scenario step.
            logger.debug("recording frame skipped", exc_info=True)

    def save(self, store: ArtifactStore) -> str | None:
        """Write the collected frames to ``recording.gif`` in the artifact store."""
        if not self.frames:
            return None
        first, rest = self.frames[0], self.frames[1:]
        with store.open(RECORDING_NAME) as fp:
            path = str(fp.name)
            first.save(
                fp,
                format="GIF",
                save_all=True,
                append_images=rest,
                duration=self.frame_ms,
                loop=0,
            )
        logger.info("recorded %d frames", len(self.frames))
        return path


__all__ = ["RECORDING_NAME", "Recorder"]
