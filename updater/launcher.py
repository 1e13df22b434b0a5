"""Start the updated application as an independent process."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Protocol

from updater.models import UpdateError

_LOGGER = logging.getLogger(__name__)


class Launcher(Protocol):
    """Protocol describing how the updated application is started."""

    def launch(self, executable: Path) -> None:
        """Start ``executable`` without waiting for it."""


class DetachedLauncher:
    """Launch an executable detached from the updater's console and lifetime."""

    def launch(self, executable: Path) -> None:
        # Relative paths are relative to the updater's cwd, not the install folder.
        executable = Path(executable).absolute()
        if not executable.is_file():
            raise UpdateError(f"Application executable not found: {executable}")
        _LOGGER.info("Restarting application %s...", executable.name)
        try:
            subprocess.Popen(
                [str(executable)],
                cwd=str(executable.parent),
                **_detached_popen_kwargs(),
            )
        except OSError as exc:
            raise UpdateError(f"Failed to launch application: {exc}") from exc


def _detached_popen_kwargs() -> dict[str, Any]:
    popen_kwargs: dict[str, Any] = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if os.name == "nt":  # pragma: no cover - exercised on Windows
        creationflags = getattr(subprocess, "DETACHED_PROCESS", 0)
        creationflags |= getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        if creationflags:
            popen_kwargs["creationflags"] = creationflags
    else:
        popen_kwargs["start_new_session"] = True
    return popen_kwargs


__all__ = ["DetachedLauncher", "Launcher"]
