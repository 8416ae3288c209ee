from __future__ import annotations

import contextlib
import json
import logging
import shutil
import socket
import subprocess
import tempfile
import time
from dataclasses import dataclass
from urllib.error import URLError
from urllib.request import Request, urlopen

from .config import ScenarioConfig, expand_path
from .errors import CdpError

logger = logging.getLogger("webscenario.launcher")


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    message: str

    @property
    def ok(self) -> bool:
        return self.started or self.message.startswith("Chrome already")


class BrowserLauncher:
    def __init__(self, config: ScenarioConfig | None = None) -> None:
        self.config = config or ScenarioConfig.from_env()
        self.process: subprocess.Popen | None = None
        self._temp_profile: str | None = None

        if not self.config.cdp_port:
            self.config.cdp_port = self.find_free_port()

    @property
    def endpoint(self) -> str:
        return f"http://127.0.0.1:{self.config.cdp_port}"

    def _profile_dir(self) -> str:
        if self.config.profile_path:
            return expand_path(self.config.profile_path)
        if self._temp_profile is None:
            self._temp_profile = tempfile.mkdtemp(prefix="webscenario-profile-")
        return self._temp_profile

    def build_launch_command(self, extra: list[str] | None = None) -> list[str]:
        flags = [
            f"--remote-debugging-port={self.config.cdp_port}",
            f"--user-data-dir={self._profile_dir()}",
            "--remote-allow-origins=*",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-dev-shm-usage",
        ]
        if self.config.headless:
            flags.append("--headless=new")
        else:
            flags.append("--window-size=1280,900")
        flags.extend(self.config.extra_flags)
        if extra:
            flags.extend(extra)
        return [self.config.binary_path, *flags]

    def cdp_ready(self, timeout: float = 0.4) -> bool:
        """Return True if the CDP HTTP endpoint responds."""
        try:
            with urlopen(f"{self.endpoint}/json/version", timeout=timeout) as resp:
                return resp.status == 200
        except (OSError, TimeoutError, URLError):
            return False

    def ensure_running(self, timeout: float | None = None) -> LaunchResult:
        if self.cdp_ready():
            return LaunchResult([], False, "Chrome already listening on CDP port")

        timeout = self.config.launch_timeout if timeout is None else timeout
        cmd = self.build_launch_command()
        logger.info("launching browser: %s", cmd[0])
        try:
            self.process = subprocess.Popen(  # noqa: S603
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            return LaunchResult(cmd, False, str(exc))

        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.cdp_ready():
                return LaunchResult(cmd, True, "Chrome launched")
            if self.process.poll() is not None:
                return LaunchResult(cmd, False, f"Chrome exited with code {self.process.returncode}")
            time.sleep(0.1)
        return LaunchResult(cmd, False, "Chrome launch timed out")

    def cdp_version(self, timeout: float = 2.0) -> dict:
        req = Request(f"{self.endpoint}/json/version", headers={"User-Agent": "webscenario"})
        try:
            with urlopen(req, timeout=timeout) as resp:
                return json.loads(resp.read().decode())
        except (OSError, URLError, ValueError) as exc:
            raise CdpError(f"CDP not reachable on port {self.config.cdp_port}: {exc}") from exc

    def browser_ws_url(self) -> str:
        url = self.cdp_version().get("webSocketDebuggerUrl")
        if not isinstance(url, str) or not url:
            raise CdpError("CDP /json/version did not report webSocketDebuggerUrl")
        return url

    def page_ws_url(self, target_id: str) -> str:
        return f"ws://127.0.0.1:{self.config.cdp_port}/devtools/page/{target_id}"

    def stop(self, *, timeout: float = 2.0) -> bool:
        """Stop the launcher-owned Chrome process and drop its temporary profile."""
        proc = self.process
        stopped = False
        if proc is not None and proc.poll() is None:
            with contextlib.suppress(Exception):
                proc.terminate()
            try:
                proc.wait(timeout=max(0.1, float(timeout)))
            except subprocess.TimeoutExpired:
                with contextlib.suppress(Exception):
                    proc.kill()
            stopped = True
        self.process = None

        if self._temp_profile is not None:
            shutil.rmtree(self._temp_profile, ignore_errors=True)
            self._temp_profile = None
        return stopped

    @staticmethod
    def find_free_port() -> int:
        with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
            s.bind(("127.0.0.1", 0))
            return s.getsockname()[1]


__all__ = ["BrowserLauncher", "LaunchResult"]
