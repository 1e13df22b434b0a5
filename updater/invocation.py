"""Validate the positional tokens the application passes to the updater."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Sequence

from updater.constants import FALSE_LITERALS, REQUIRED_TOKEN_COUNT, TRUE_LITERALS
from updater.models import InvocationError, UpdateRequest

_PID_PATTERN = re.compile(r"^\+?\d+$")

LOG_PATH_POSITION = 4


def has_required_tokens(tokens: Sequence[str]) -> bool:
    return len(tokens) >= REQUIRED_TOKEN_COUNT


def parse_process_id(token: str) -> int:
    candidate = token.strip()
    if not _PID_PATTERN.match(candidate):
        raise InvocationError(f"Process id must be a non-negative integer, got {token!r}")
    return int(candidate)


def parse_boolean(token: str) -> bool:
    candidate = token.strip().lower()
    if candidate in TRUE_LITERALS:
        return True
    if candidate in FALSE_LITERALS:
        return False
    raise InvocationError(f"Expected 'true' or 'false', got {token!r}")


def parse_path(token: str, name: str) -> Path:
    if not token.strip():
        raise InvocationError(f"{name} must not be empty")
    return Path(token)


def parse_request(tokens: Sequence[str]) -> UpdateRequest | None:
    """Build an :class:`UpdateRequest` from ``tokens``.

    Returns ``None`` when fewer than seven tokens were supplied, which callers
    treat as "not an update invocation".  Tokens past the seventh are ignored.
    Raises :class:`InvocationError` when a token cannot be parsed.
    """

    if not has_required_tokens(tokens):
        return None
    pid, package, install, executable, log, scratch, preserve = tokens[:REQUIRED_TOKEN_COUNT]
    return UpdateRequest(
        target_process_id=parse_process_id(pid),
        package_path=parse_path(package, "Package path"),
        install_directory=parse_path(install, "Install directory"),
        executable_path=parse_path(executable, "Executable path"),
        log_path=parse_path(log, "Log path"),
        scratch_directory=parse_path(scratch, "Scratch directory"),
        preserve_config=parse_boolean(preserve),
    )


def log_path_hint(tokens: Sequence[str]) -> Path | None:
    """Return the log path token when present so invocation errors can be logged."""

    if len(tokens) <= LOG_PATH_POSITION:
        return None
    token = tokens[LOG_PATH_POSITION]
    if not token.strip():
        return None
    return Path(token)


__all__ = [
    "has_required_tokens",
    "log_path_hint",
    "parse_boolean",
    "parse_path",
    "parse_process_id",
    "parse_request",
]
