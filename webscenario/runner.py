"""Run one scenario script against a fresh browser and produce a Record."""

from __future__ import annotations

import io
import logging
import runpy
import time
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .bridge import ScriptOutput, register
from .cdp import CdpConnection
from .config import ScenarioConfig
from .downloads import DownloadWatcher
from .errors import CdpError, ScenarioError
from .launcher import BrowserLauncher
from .record import Record, Status
from .recorder import Recorder
from .session import Deadline, Tab
from .storage import ArtifactStore
from .target import TargetURL

logger = logging.getLogger("webscenario.runner")

DEFAULT_TIMEOUT = 50 * 60.0
DEBUG_LOG_NAME = "debug.log"


@dataclass
class Arg:
    target: TargetURL
    mode: str = "standalone"
    args: list[str] = field(default_factory=list)
    debug: bool = False
    head: bool = False
    recording: bool = False
    timeout: float = DEFAULT_TIMEOUT
    artifact_dir: str = ""


def _compose(output: ScriptOutput, error: str = "") -> str:
    lines = list(output.lines)
    if error:
        lines.append(error)
    return "\n".join(lines)


def run_script(
    script_path: str,
    tab: Tab,
    store: ArtifactStore,
    *,
    args: list[str] | None = None,
    output: ScriptOutput | None = None,
) -> tuple[Status, str]:
    """Execute the scenario file and map its outcome to a status and message."""
    output = output or ScriptOutput()
    namespace = register({}, tab, store, args=args, output=output)

    try:
        runpy.run_path(script_path, init_globals=namespace, run_name="__scenario__")
    except AssertionError as exc:
        reason = str(exc) or "assertion failed"
        logger.error("scenario failed: %s", reason)
        return Status.FAILURE, _compose(output, reason)
    except ScenarioError as exc:
        logger.error("scenario failed: %s", exc)
        return Status.FAILURE, _compose(output, str(exc))
    except SystemExit as exc:
        if exc.code in (None, 0):
            return Status.HEALTHY, _compose(output)
        reason = f"scenario exited with {exc.code}"
        logger.error("scenario failed: %s", reason)
        return Status.FAILURE, _compose(output, reason)
    except Exception as exc:  # noqa: BLE001
        logger.debug("scenario raised", exc_info=True)
        reason = f"{type(exc).__name__}: {exc}"
        logger.error("scenario failed: %s", reason)
        return Status.FAILURE, _compose(output, reason)
    return Status.HEALTHY, _compose(output)


def _attach_debug_log(store: ArtifactStore) -> tuple[logging.Handler, io.TextIOWrapper, int]:
    stream = io.TextIOWrapper(store.open(DEBUG_LOG_NAME), encoding="utf-8", write_through=True)
    handler = logging.StreamHandler(stream)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    package_logger = logging.getLogger("webscenario")
    previous_level = package_logger.level
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)
    return handler, stream, previous_level


def run(arg: Arg, config: ScenarioConfig | None = None) -> Record:
    """Run the scenario described by ``arg`` and return its record."""
    started = datetime.now().astimezone()
    t0 = time.monotonic()
    if config is None:
        try:
            config = ScenarioConfig.from_env()
        except ValueError as exc:
            logger.error("invalid configuration: %s", exc)
            return Record(
                time=started,
                status=Status.UNKNOWN,
                latency=(time.monotonic() - t0) * 1000.0,
                target=str(arg.target),
                message=f"invalid configuration: {exc}",
            )
    if arg.head:
        config.headless = False

    script_path = arg.target.script_path
    store = ArtifactStore(arg.artifact_dir or config.artifact_dir or None, script_path, started)
    output = ScriptOutput(echo=arg.mode == "standalone")
    deadline = Deadline(arg.timeout)

    debug_log: tuple[logging.Handler, io.TextIOWrapper, int] | None = None
    launcher: BrowserLauncher | None = None
    browser: CdpConnection | None = None
    watcher: DownloadWatcher | None = None
    tab: Tab | None = None
    recorder: Recorder | None = None
    target_id: str | None = None

    try:
        if arg.debug:
            debug_log = _attach_debug_log(store)

        if not Path(script_path).is_file():
            status, message = Status.UNKNOWN, f"scenario file not found: {script_path}"
        else:
            launcher = BrowserLauncher(config)
            launched = launcher.ensure_running()
            if not launched.ok:
                status, message = Status.UNKNOWN, f"failed to launch browser: {launched.message}"
            else:
                browser_ws = launcher.browser_ws_url()
                browser = CdpConnection(browser_ws, timeout=config.cdp_timeout)
                created = browser.send("Target.createTarget", {"url": "about:blank"}).get("targetId")
                if not created:
                    raise CdpError("Target.createTarget returned no targetId")
                target_id = str(created)

                watcher = DownloadWatcher(CdpConnection(browser_ws, timeout=config.cdp_timeout), store)
                watcher.start()

                page = CdpConnection(launcher.page_ws_url(target_id), timeout=config.cdp_timeout)
                tab = Tab(page, store, deadline)
                tab.enable()
                if arg.recording:
                    recorder = Recorder(tab)
                    recorder.attach()

                status, message = run_script(script_path, tab, store, args=arg.args, output=output)
    except (CdpError, OSError) as exc:
        logger.exception("scenario setup failed")
        status, message = Status.UNKNOWN, _compose(output, f"{type(exc).__name__}: {exc}")
    finally:
        if recorder is not None:
            try:
                recorder.save(store)
            except Exception:  # noqa: BLE001
                logger.warning("failed to save recording", exc_info=True)
        if watcher is not None:
            watcher.stop()
            watcher.conn.close()
        if tab is not None:
            tab.close()
        if browser is not None:
            if target_id is not None:
                with suppress(CdpError):
                    browser.send("Target.closeTarget", {"targetId": target_id})
            browser.close()
        if launcher is not None:
            launcher.stop()
        if debug_log is not None:
            handler, stream, previous_level = debug_log
            package_logger = logging.getLogger("webscenario")
            package_logger.removeHandler(handler)
            package_logger.setLevel(previous_level)
            with suppress(Exception):
                stream.close()

    latency = (time.monotonic() - t0) * 1000.0
    logger.info("scenario finished: status=%s latency=%.0fms", status.value, latency)

    extra: dict[str, object] = {}
    artifacts = store.artifacts()
    if artifacts:
        extra["artifacts"] = artifacts
    return Record(
        time=started,
        status=status,
        latency=latency,
        target=str(arg.target),
        message=message,
        extra=extra,
    )


__all__ = ["Arg", "DEFAULT_TIMEOUT", "run", "run_script"]
