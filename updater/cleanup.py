"""Remove the scratch artifacts left behind by a completed update."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable

_LOGGER = logging.getLogger(__name__)


def remove_artifacts(paths: Iterable[Path]) -> tuple[Path, ...]:
    """Delete each path (directories recursively) and return those left behind.

    Missing paths count as removed.  Failures are logged as warnings; they
    never raise because the update itself has already been installed.
    """

    leftovers: list[Path] = []
    for path in paths:
        try:
            if path.is_dir() and not path.is_symlink():
                _LOGGER.info("Deleting temporary directory %s...", path.name)
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                _LOGGER.info("Deleting %s...", path.name)
                path.unlink()
            else:
                _LOGGER.debug("Nothing to delete at %s", path)
        except OSError as exc:
            _LOGGER.warning("Could not delete %s: %s", path, exc)
            leftovers.append(path)
    return tuple(leftovers)


__all__ = ["remove_artifacts"]
