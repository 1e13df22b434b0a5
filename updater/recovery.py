"""Helpers for reporting update failures to the relaunched application."""

from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any

from updater.constants import UPDATE_FAILURE_MARKER_SUFFIX
from updater.models import Stage

_LOGGER = logging.getLogger(__name__)

_DEFAULT_ADVICE = "Please try again after restarting the application."
_IN_USE_ADVICE = (
    "Close any other programs that might be using the installation folder "
    "(for example File Explorer or Command Prompt) and try again."
)
_ACCESS_ADVICE = "Ensure you have permission to modify the installation folder and try again."


def get_failure_marker_path(install_root: Path) -> Path:
    """Return the sentinel file path used to record update failures."""

    return install_root.parent / f"{install_root.name}{UPDATE_FAILURE_MARKER_SUFFIX}"


def advice_for(message: str) -> str:
    lowered = message.lower()
    if "in use" in lowered or "used by another process" in lowered:
        return _IN_USE_ADVICE
    if "access is denied" in lowered or "permission denied" in lowered:
        return _ACCESS_ADVICE
    return _DEFAULT_ADVICE


def record_update_failure(marker_path: Path, stage: Stage, reason: str) -> bool:
    """Write the failure marker; returns ``False`` when it could not be written."""

    payload = {
        "reason": reason,
        "advice": advice_for(reason),
        "stage": stage.value,
        "recorded_at": datetime.datetime.now().astimezone().isoformat(timespec="seconds"),
    }
    try:
        marker_path.parent.mkdir(parents=True, exist_ok=True)
        marker_path.write_text(json.dumps(payload), encoding="utf-8")
    except OSError as exc:
        _LOGGER.warning("Failed to record failure marker at %s: %s", marker_path, exc)
        return False
    _LOGGER.info("Recorded update failure marker at %s", marker_path)
    return True


def clear_update_failure(marker_path: Path) -> None:
    """Remove a marker left behind by an earlier failed run."""

    if marker_path.exists():
        _LOGGER.debug("Clearing stale update failure marker %s", marker_path)
    _safe_remove(marker_path)


def consume_update_failure_notice(install_root: Path) -> tuple[str, str] | None:
    """Return the recorded failure reason and advice, removing the marker."""

    marker_path = get_failure_marker_path(install_root)
    if not marker_path.exists():
        return None

    try:
        payload = json.loads(marker_path.read_text(encoding="utf-8-sig"))
    except (OSError, json.JSONDecodeError):
        _LOGGER.debug("Unable to parse update failure marker at %s", marker_path, exc_info=True)
        _safe_remove(marker_path)
        return None
    if not isinstance(payload, dict):
        _safe_remove(marker_path)
        return None

    reason = _coerce_text(payload.get("reason"), default="Unknown error.")
    advice = _coerce_text(payload.get("advice"), default=_DEFAULT_ADVICE)

    _safe_remove(marker_path)
    return reason, advice


def _coerce_text(value: Any, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def _safe_remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        _LOGGER.debug("Unable to remove update failure marker at %s", path, exc_info=True)


__all__ = [
    "advice_for",
    "clear_update_failure",
    "consume_update_failure_notice",
    "get_failure_marker_path",
    "record_update_failure",
]
