"""Command-line entry point for the update executor.

The application launches the updater with seven positional tokens::

    desktop-updater <pid> <package> <install-dir> <executable> <log> <scratch> <true|false>

Optional flags may appear anywhere on the command line and never count as
positional tokens.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from app.config import get_updater_settings
from app.version import get_app_version
from shared.logging_config import (
    DEFAULT_VERBOSITY,
    LogVerbosity,
    close_audit_logging,
    ensure_audit_logging,
)
from updater.launcher import DetachedLauncher
from updater.invocation import log_path_hint, parse_request
from updater.models import ExitCode, InvocationError
from updater.process_wait import ProcessExitWaiter
from updater.sequence import UpdateSequence

_LOGGER = logging.getLogger(__name__)

_CANCEL_SIGNALS = ("SIGINT", "SIGTERM", "SIGBREAK")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="desktop-updater",
        description="Replace an installed application with a downloaded package and restart it.",
    )
    parser.add_argument(
        "tokens",
        nargs="*",
        metavar="TOKEN",
        help=(
            "pid, package path, install directory, executable path, log path, "
            "scratch directory, preserve-config flag"
        ),
    )
    parser.add_argument(
        "--grace-period",
        type=float,
        default=None,
        help="Seconds to wait after the application exits before replacing files.",
    )
    parser.add_argument(
        "--wait-timeout",
        type=float,
        default=None,
        help="Seconds to wait for the application to exit (0 waits forever).",
    )
    parser.add_argument(
        "--failure-marker",
        type=Path,
        default=None,
        help="Where to record a failed update for the application to report.",
    )
    parser.add_argument(
        "--verbosity",
        choices=[verbosity.value for verbosity in LogVerbosity],
        default=DEFAULT_VERBOSITY.value,
        help="Minimum severity written to the audit log.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {get_app_version()}",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_intermixed_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    tokens: list[str] = list(args.tokens)

    try:
        request = parse_request(tokens)
    except InvocationError as exc:
        _report_invocation_error(tokens, exc, args.verbosity)
        return int(ExitCode.INVOCATION_ERROR)
    if request is None:
        return int(ExitCode.SUCCESS)

    settings = get_updater_settings().with_overrides(
        grace_period_seconds=args.grace_period,
        wait_timeout_seconds=args.wait_timeout,
    )
    try:
        ensure_audit_logging(request.log_path, args.verbosity)
    except OSError as exc:
        sys.stderr.write(f"Unable to open update log {request.log_path}: {exc}\n")
        return int(ExitCode.INVOCATION_ERROR)

    try:
        cancel_event = threading.Event()
        with cancel_on_signals(cancel_event):
            waiter = ProcessExitWaiter(
                timeout=settings.wait_timeout_seconds,
                grace_period=settings.grace_period_seconds,
                poll_interval=settings.poll_interval_seconds,
                cancel_event=cancel_event,
            )
            sequence = UpdateSequence(
                waiter,
                DetachedLauncher(),
                settings=settings,
                failure_marker=args.failure_marker,
                cancel_event=cancel_event,
            )
            outcome = sequence.run(request)
        _LOGGER.info(
            "Updater exiting with status %s (%s)", int(outcome.exit_code), outcome.exit_code.name
        )
        return int(outcome.exit_code)
    finally:
        close_audit_logging()


def _report_invocation_error(tokens: Sequence[str], exc: InvocationError, verbosity: str) -> None:
    sys.stderr.write(f"Invalid updater arguments: {exc}\n")
    log_path = log_path_hint(tokens)
    if log_path is None:
        return
    try:
        ensure_audit_logging(log_path, verbosity)
    except OSError:
        return
    try:
        _LOGGER.error("Invalid updater arguments: %s", exc)
    finally:
        close_audit_logging()


@contextmanager
def cancel_on_signals(cancel_event: threading.Event) -> Iterator[threading.Event]:
    """Set ``cancel_event`` when the process receives an interrupt or termination signal."""

    def _handler(signum, _frame) -> None:
        _LOGGER.warning("Received signal %s; cancelling update", signum)
        cancel_event.set()

    previous: dict[int, object] = {}
    if threading.current_thread() is threading.main_thread():
        for name in _CANCEL_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            try:
                previous[signum] = signal.signal(signum, _handler)
            except (OSError, ValueError):  # pragma: no cover - platform dependent
                continue
    try:
        yield cancel_event
    finally:
        for signum, handler in previous.items():
            if handler is not None:
                signal.signal(signum, handler)


__all__ = ["build_parser", "cancel_on_signals", "main", "parse_args"]
