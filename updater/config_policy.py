"""Keep-or-discard policy for the application's configuration file."""

from __future__ import annotations

import logging
from pathlib import Path

from updater.rollback import MergeJournal

_LOGGER = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


def apply_config_policy(
    install_directory: Path,
    preserve_config: bool,
    *,
    journal: MergeJournal | None = None,
    filename: str = CONFIG_FILENAME,
) -> bool:
    """Remove ``install_directory/filename`` unless ``preserve_config`` is set.

    With a ``journal`` the file is moved into the backup area instead of being
    deleted so a failed merge can put it back.  Returns ``True`` when a file
    was removed from the install directory.
    """

    config_path = install_directory / filename
    if preserve_config:
        _LOGGER.info("Preserving existing %s", filename)
        return False
    if not config_path.is_file():
        _LOGGER.debug("No %s to remove in %s", filename, install_directory)
        return False

    _LOGGER.info("Deleting %s (clean update)...", filename)
    if journal is None:
        config_path.unlink()
    else:
        journal.move_aside(filename)
    return True


__all__ = ["CONFIG_FILENAME", "apply_config_policy"]
