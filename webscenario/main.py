"""Command line entry point.

    webscenario [--debug] [--head] [--gif] TARGET_URL|FILE [ARGS...]

A bare file path runs in standalone mode: script output goes to stdout and the
exit status reports the result. A ``web-scenario:`` URL runs in monitoring
mode and prints one JSON record line.
"""

from __future__ import annotations

import argparse
import logging
import sys

from . import __version__
from .record import Status
from .runner import Arg, run
from .target import parse_target_url


class UsageError(Exception):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="webscenario",
        description="Run a browser scenario script and report the result.",
        usage="%(prog)s [--debug] [--head] [--gif] TARGET_URL|FILE [ARGS...]",
        add_help=False,
    )
    parser.add_argument("--debug", action="store_true", help="write verbose logs to debug.log next to the artifacts")
    parser.add_argument("--head", action="store_true", help="show the browser window")
    parser.add_argument("--gif", action="store_true", help="record the run into recording.gif")
    parser.add_argument("-v", "--version", action="store_true", help="show version and exit")
    parser.add_argument("-h", "--help", action="store_true", help="show this help and exit")
    parser.add_argument("target", nargs="?", metavar="TARGET_URL|FILE", help="scenario file or web-scenario: URL")
    return parser


def _usage_error(parser: argparse.ArgumentParser, message: str) -> int:
    print(f"{parser.prog}: {message}", file=sys.stderr)
    print(f"Please see `{parser.prog} -h` for more information.", file=sys.stderr)
    return 2


def parse_args(argv: list[str] | None = None) -> Arg | int:
    """Parse ``argv`` into an Arg, or return an exit code when nothing should run."""
    argv = list(sys.argv[1:] if argv is None else argv)
    # Flags end at the first positional; everything after the target belongs to the script.
    split = next((i for i, a in enumerate(argv) if not a.startswith("-")), len(argv))
    script_args = argv[split + 1 :]

    parser = build_parser()
    try:
        ns = parser.parse_args(argv[: split + 1])
    except UsageError as exc:
        return _usage_error(parser, str(exc))

    if ns.help:
        parser.print_help()
        return 0
    if ns.version:
        print(f"{parser.prog} {__version__}")
        return 0
    if not ns.target:
        return _usage_error(parser, "TARGET_URL or FILE is required")

    try:
        mode, target = parse_target_url(ns.target)
    except ValueError as exc:
        return _usage_error(parser, str(exc))

    return Arg(
        target=target,
        mode=mode,
        args=script_args,
        debug=ns.debug,
        head=ns.head,
        recording=ns.gif,
    )


def main(argv: list[str] | None = None) -> int:
    arg = parse_args(argv)
    if isinstance(arg, int):
        return arg

    logging.basicConfig(
        level=logging.DEBUG if arg.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    record = run(arg)
    if arg.mode == "ayd":
        print(record.to_json(), flush=True)
        return 0
    if record.status is not Status.HEALTHY:
        if record.status is Status.UNKNOWN and record.message:
            print(record.message, file=sys.stderr)
        return 1
    return 0


__all__ = ["UsageError", "build_parser", "main", "parse_args"]
