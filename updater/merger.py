"""Copy staged update files over the installed application."""

from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path

from updater.models import MergeError, UpdateCancelled
from updater.rollback import MergeJournal

_LOGGER = logging.getLogger(__name__)


def iter_staged_files(staging_root: Path) -> list[Path]:
    """Return every regular file below ``staging_root`` as relative paths."""

    return sorted(
        path.relative_to(staging_root)
        for path in staging_root.rglob("*")
        if path.is_file()
    )


def merge_staged_files(
    staging_root: Path,
    install_directory: Path,
    journal: MergeJournal | None = None,
    *,
    cancel_event: threading.Event | None = None,
) -> list[Path]:
    """Overwrite ``install_directory`` with the files below ``staging_root``.

    Files that exist only in the install directory are left alone.  When a
    ``journal`` is supplied every change is recorded first and rolled back if
    a copy fails; the failure is then raised as :class:`MergeError`.  A set
    ``cancel_event`` stops the merge before the next file, rolls back through
    the journal and raises :class:`UpdateCancelled`.
    """

    if not staging_root.is_dir():
        raise MergeError(f"Staged update directory is missing: {staging_root}")

    _LOGGER.info("Copying new files...")
    copied: list[Path] = []
    try:
        install_directory.mkdir(parents=True, exist_ok=True)
        for relative in iter_staged_files(staging_root):
            if cancel_event is not None and cancel_event.is_set():
                raise UpdateCancelled("Update cancelled while copying new files")
            _copy_one(staging_root / relative, install_directory, relative, journal)
            copied.append(relative)
    except (OSError, MergeError, UpdateCancelled) as exc:
        _LOGGER.error("Merge stopped after %s file(s): %s", len(copied), exc)
        if journal is not None:
            failures = journal.rollback()
            if failures:
                raise MergeError(
                    f"Failed to install update ({exc}); rollback incomplete for "
                    f"{len(failures)} change(s)"
                ) from exc
        if isinstance(exc, (MergeError, UpdateCancelled)):
            raise
        raise MergeError(f"Failed to install update: {exc}") from exc

    _LOGGER.info("New files copied successfully (%s file(s)).", len(copied))
    return copied


def _copy_one(
    source: Path,
    install_directory: Path,
    relative: Path,
    journal: MergeJournal | None,
) -> None:
    destination = install_directory / relative
    key = relative.as_posix()
    if destination.is_dir():
        raise MergeError(f"Cannot replace directory {key} with a file")

    _ensure_parent(install_directory, relative, journal)
    if journal is not None:
        if destination.exists():
            journal.record_replacement(key)
        else:
            journal.record_created_file(key)
    shutil.copy2(source, destination)
    _LOGGER.debug("Installed %s", key)


def _ensure_parent(
    install_directory: Path, relative: Path, journal: MergeJournal | None
) -> None:
    missing: list[Path] = []
    for parent in reversed(list(relative.parents)[:-1]):
        if not (install_directory / parent).exists():
            missing.append(parent)
    for parent in missing:
        (install_directory / parent).mkdir(exist_ok=True)
        if journal is not None:
            journal.record_created_directory(parent.as_posix())


__all__ = ["iter_staged_files", "merge_staged_files"]
