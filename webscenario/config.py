from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BINARY_CANDIDATES: list[str] = [
    # Prefer Chromium for better compatibility.
    # IMPORTANT: Avoid snap versions - they ignore --user-data-dir!
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/opt/chromium/chromium",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "C:\\Program Files\\Chromium\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Chromium\\Application\\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "/snap/bin/chromium",
]


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


@dataclass
class ScenarioConfig:
    binary_path: str
    profile_path: str = ""
    cdp_port: int = 0
    headless: bool = True
    extra_flags: list[str] = field(default_factory=list)
    cdp_timeout: float = 30.0
    launch_timeout: float = 15.0
    artifact_dir: str = ""

    @classmethod
    def detect_binary(cls) -> str:
        env_path = os.environ.get("WEBSCENARIO_BROWSER_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES:
            path = Path(candidate)
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        # Last resort: rely on PATH lookup
        return "google-chrome"

    @classmethod
    def from_env(cls) -> ScenarioConfig:
        profile_raw = os.environ.get("WEBSCENARIO_BROWSER_PROFILE", "")
        profile = expand_path(profile_raw) if profile_raw.strip() else ""
        port = int(os.environ.get("WEBSCENARIO_BROWSER_PORT", "0"))
        flags_raw = os.environ.get("WEBSCENARIO_BROWSER_FLAGS", "")
        extra_flags = [flag.strip() for flag in flags_raw.split(",") if flag.strip()]
        artifact_raw = os.environ.get("WEBSCENARIO_ARTIFACT_DIR", "")
        return cls(
            binary_path=cls.detect_binary(),
            profile_path=profile,
            cdp_port=port,
            headless=_env_bool("WEBSCENARIO_HEADLESS", True),
            extra_flags=extra_flags,
            cdp_timeout=float(os.environ.get("WEBSCENARIO_CDP_TIMEOUT", "30")),
            launch_timeout=float(os.environ.get("WEBSCENARIO_LAUNCH_TIMEOUT", "15")),
            artifact_dir=expand_path(artifact_raw) if artifact_raw.strip() else "",
        )
