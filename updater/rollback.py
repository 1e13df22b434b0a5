"""Record install-directory changes so a failed merge can be reverted."""

from __future__ import annotations

import datetime
import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

_LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.jsonl"
_FILES_DIRNAME = "files"

REPLACED = "replaced"
CREATED_FILE = "created_file"
CREATED_DIR = "created_dir"
MOVED_ASIDE = "moved_aside"


@dataclass
class JournalEntry:
    action: str
    path: str


@dataclass
class MergeJournal:
    """Track every change made to the install directory during one run.

    Replaced and removed files are kept under ``backup_root`` until cleanup
    deletes them or a failed merge restores them with :meth:`rollback`.  The
    manifest is a JSON-lines file: a header line followed by one line per
    change, appended as each change is recorded, so an interrupted run leaves
    a readable record next to the backups.
    """

    install_directory: Path
    backup_root: Path
    entries: list[JournalEntry] = field(default_factory=list)
    _recorded: set[tuple[str, str]] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        self._recorded = {(entry.action, entry.path) for entry in self.entries}

    @property
    def manifest_path(self) -> Path:
        return self.backup_root / MANIFEST_NAME

    def backup_path(self, relative: str) -> Path:
        return self.backup_root / _FILES_DIRNAME / Path(relative)

    def prepare(self) -> None:
        if self.backup_root.exists():
            _LOGGER.debug("Removing stale backup directory %s", self.backup_root)
            shutil.rmtree(self.backup_root)
        self.backup_root.mkdir(parents=True)
        self.entries.clear()
        self._recorded.clear()
        header = {
            "install_directory": str(self.install_directory),
            "started_at": datetime.datetime.now().isoformat(timespec="seconds"),
        }
        self.manifest_path.write_text(json.dumps(header) + "\n", encoding="utf-8")

    def record_replacement(self, relative: str) -> None:
        """Copy the current install file at ``relative`` aside before it is overwritten."""

        if self._has(REPLACED, relative) or self._has(CREATED_FILE, relative):
            return
        source = self.install_directory / relative
        backup = self.backup_path(relative)
        backup.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, backup)
        self._append(REPLACED, relative)

    def record_created_file(self, relative: str) -> None:
        if not self._has(CREATED_FILE, relative):
            self._append(CREATED_FILE, relative)

    def record_created_directory(self, relative: str) -> None:
        self._append(CREATED_DIR, relative)

    def move_aside(self, relative: str) -> Path:
        """Move an install file into the backup area and return its new location."""

        source = self.install_directory / relative
        backup = self.backup_path(relative)
        backup.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(backup))
        self._append(MOVED_ASIDE, relative)
        return backup

    def rollback(self) -> list[str]:
        """Undo recorded changes in reverse order.

        Returns a description of every change that could not be undone; an
        empty list means the install directory is back to its prior state.
        """

        failures: list[str] = []
        for entry in reversed(self.entries):
            target = self.install_directory / entry.path
            try:
                if entry.action == CREATED_FILE:
                    target.unlink(missing_ok=True)
                elif entry.action in (REPLACED, MOVED_ASIDE):
                    target.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(self.backup_path(entry.path), target)
                elif entry.action == CREATED_DIR:
                    if target.is_dir() and not any(target.iterdir()):
                        target.rmdir()
            except OSError as exc:
                _LOGGER.error("Failed to roll back %s (%s): %s", entry.path, entry.action, exc)
                failures.append(f"{entry.action} {entry.path}: {exc}")
        if failures:
            _LOGGER.error(
                "Rollback left %s change(s) in place; see %s", len(failures), self.manifest_path
            )
        else:
            _LOGGER.info("Rolled back %s change(s) to the install directory", len(self.entries))
        return failures

    def _has(self, action: str, relative: str) -> bool:
        return (action, relative) in self._recorded

    def _append(self, action: str, relative: str) -> None:
        self.entries.append(JournalEntry(action, relative))
        self._recorded.add((action, relative))
        line = json.dumps({"action": action, "path": relative})
        with self.manifest_path.open("a", encoding="utf-8") as manifest:
            manifest.write(line + "\n")


def load_manifest(backup_root: Path) -> list[JournalEntry]:
    """Return the journal entries saved under ``backup_root``.

    A torn final line left by an interrupted write is skipped.
    """

    entries: list[JournalEntry] = []
    manifest = backup_root / MANIFEST_NAME
    for line in manifest.read_text(encoding="utf-8").splitlines():
        try:
            item = json.loads(line)
        except json.JSONDecodeError:
            _LOGGER.warning("Skipping unreadable manifest line in %s", manifest)
            continue
        if isinstance(item, dict) and "action" in item:
            entries.append(JournalEntry(str(item["action"]), str(item["path"])))
    return entries


__all__ = ["JournalEntry", "MergeJournal", "load_manifest"]
