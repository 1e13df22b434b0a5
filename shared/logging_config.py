"""Audit log configuration for the update executor.

Every updater run appends a narrative of its stages to a single text log so a
failed update can be diagnosed after the fact.  The log is opened in append
mode and is never truncated, because the same file collects the history of
many runs.

The helpers install handlers on the root logger so module loggers created
with :func:`logging.getLogger` feed the audit log without extra wiring.  Only
handlers tagged by this module are touched when the log is closed, leaving
unrelated logging configuration (for example pytest's capture handler)
intact.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from enum import Enum
from pathlib import Path
from typing import Iterable

_HANDLER_TAG = "_updater_audit_handler"
_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_PATH: Path | None = None
_FILE_HANDLER: logging.FileHandler | None = None

USER_PLACEHOLDER = "<user>"
USER_HOME_PLACEHOLDER = "<user_home>"


class LogVerbosity(str, Enum):
    """Verbosity levels supported by the audit log."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"


_VERBOSITY_LEVELS: dict[LogVerbosity, int] = {
    LogVerbosity.ERROR: logging.ERROR,
    LogVerbosity.WARNING: logging.WARNING,
    LogVerbosity.INFO: logging.INFO,
    LogVerbosity.VERBOSE: logging.DEBUG,
}

DEFAULT_VERBOSITY = LogVerbosity.INFO


def _collect_username_candidates() -> set[str]:
    candidates: set[str] = set()
    home_name = Path.home().name
    if home_name:
        candidates.add(home_name)
    for env_var in ("USERNAME", "USER", "LOGNAME"):
        value = os.environ.get(env_var)
        if value:
            candidates.add(value)
    # Short names such as "a" or "root" would mangle unrelated words.
    return {
        candidate.strip()
        for candidate in candidates
        if candidate and len(candidate.strip()) > 2 and candidate.strip() != "root"
    }


def _collect_path_candidates() -> set[str]:
    candidates: set[str] = set()
    home_str = str(Path.home())
    if home_str:
        candidates.add(home_str)
    for env_var in ("HOME", "USERPROFILE"):
        value = os.environ.get(env_var)
        if value:
            candidates.add(os.path.expanduser(value))
    normalised = {
        os.path.normpath(candidate)
        for candidate in candidates
        if candidate and candidate not in {os.sep, ""}
    }
    return {candidate for candidate in normalised if candidate and candidate != os.sep}


def _build_redaction_patterns() -> list[tuple[re.Pattern[str], str]]:
    patterns: list[tuple[re.Pattern[str], str]] = []
    flags = re.IGNORECASE if os.name == "nt" else 0
    for path in sorted(_collect_path_candidates(), key=len, reverse=True):
        variants = {path, path.replace("\\", "/"), path.replace("/", "\\")}
        for variant in sorted(variants):
            patterns.append((re.compile(re.escape(variant), flags), USER_HOME_PLACEHOLDER))

    for username in sorted(_collect_username_candidates(), key=len, reverse=True):
        escaped = re.escape(username)
        patterns.append((re.compile(rf"(?<!\w){escaped}(?!\w)", re.IGNORECASE), USER_PLACEHOLDER))
    return patterns


_REDACTION_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(_build_redaction_patterns())


def sanitize_text(message: str) -> str:
    """Replace the user's home directory and account name in ``message``."""

    if not message or not _REDACTION_PATTERNS:
        return message
    redacted = message
    for pattern, replacement in _REDACTION_PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class _RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return sanitize_text(super().format(record))


def ensure_audit_logging(
    log_path: Path | str,
    verbosity: LogVerbosity | str = DEFAULT_VERBOSITY,
) -> Path:
    """Attach the append-mode audit log at ``log_path`` to the root logger.

    Repeated calls for the same path are no-ops.  Calling with a different
    path closes the previous audit log first.  A console handler is added only
    when stderr is interactive.
    """

    global _LOG_PATH, _FILE_HANDLER

    path = Path(log_path).expanduser()
    if _FILE_HANDLER is not None and _LOG_PATH == path:
        return path
    if _FILE_HANDLER is not None:
        close_audit_logging()

    verbosity = _coerce_verbosity(verbosity)
    path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    formatter = _RedactingFormatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    file_handler.setLevel(_VERBOSITY_LEVELS[verbosity])
    file_handler.setFormatter(formatter)
    setattr(file_handler, _HANDLER_TAG, True)
    root.addHandler(file_handler)

    if _should_log_to_stderr(root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(logging.INFO)
        stream_handler.setFormatter(formatter)
        setattr(stream_handler, _HANDLER_TAG, True)
        root.addHandler(stream_handler)

    _LOG_PATH = path
    _FILE_HANDLER = file_handler
    return path


def close_audit_logging() -> None:
    """Flush, detach and close every handler installed by this module."""

    global _LOG_PATH, _FILE_HANDLER

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            try:
                handler.flush()
                handler.close()
            except OSError:  # pragma: no cover - disk vanished under us
                pass

    _LOG_PATH = None
    _FILE_HANDLER = None


def get_audit_log_path() -> Path | None:
    """Return the path of the open audit log, if any."""

    return _LOG_PATH


def _coerce_verbosity(verbosity: LogVerbosity | str) -> LogVerbosity:
    if isinstance(verbosity, LogVerbosity):
        return verbosity
    try:
        return LogVerbosity(verbosity.lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported log verbosity: {verbosity}") from exc


def _should_log_to_stderr(handlers: Iterable[logging.Handler]) -> bool:
    stderr = getattr(sys, "stderr", None)
    if stderr is None:
        return False
    is_tty = getattr(stderr, "isatty", None)
    if not callable(is_tty):
        return False
    try:
        if not is_tty():
            return False
    except (OSError, ValueError):  # pragma: no cover - closed or odd stderr
        return False

    for handler in handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream is stderr:
            return False
    return True


__all__ = [
    "DEFAULT_VERBOSITY",
    "LogVerbosity",
    "close_audit_logging",
    "ensure_audit_logging",
    "get_audit_log_path",
    "sanitize_text",
]
