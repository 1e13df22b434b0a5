"""Decode the update package and stage its files in the scratch directory."""

from __future__ import annotations

import logging
import re
import shutil
import tarfile
import threading
import zipfile
import zlib
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator

from app.config import ArchiveLimits
from updater.models import ArchiveError, StagedEntry, UpdateCancelled


_LOGGER = logging.getLogger(__name__)

# Drive-rooted names such as "C:/app.exe" or a bare "C:".
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:(?:/|$)")


def extraction_root(scratch_directory: Path, dirname: str = "extracted_update") -> Path:
    return scratch_directory / dirname


@contextmanager
def open_package(
    package_path: Path, limits: ArchiveLimits | None = None
) -> Iterator[Iterator[StagedEntry]]:
    """Open ``package_path`` and yield an iterator of its entries.

    Zip and tar containers are recognised by content.  Entries are produced in
    the order the container stores them and remain readable until the context
    exits.
    """

    limits = limits or ArchiveLimits()
    if not package_path.is_file():
        raise ArchiveError(f"Update package not found: {package_path}")
    try:
        archive = _open_container(package_path)
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as exc:
        raise ArchiveError(f"Failed to read update package: {exc}") from exc

    with archive:
        if isinstance(archive, zipfile.ZipFile):
            yield _iter_zip_entries(archive, limits)
        else:
            yield _iter_tar_entries(archive, limits)


def _open_container(package_path: Path) -> zipfile.ZipFile | tarfile.TarFile:
    if zipfile.is_zipfile(package_path):
        return zipfile.ZipFile(package_path)
    if tarfile.is_tarfile(package_path):
        return tarfile.open(package_path)
    raise ArchiveError(f"Unsupported update package format: {package_path.name}")


def stage_package(
    package_path: Path,
    destination: Path,
    limits: ArchiveLimits | None = None,
    *,
    cancel_event: threading.Event | None = None,
) -> list[str]:
    """Write every file entry of ``package_path`` below ``destination``.

    ``destination`` is recreated from scratch.  Returns the relative paths
    written, in archive order.  Setting ``cancel_event`` stops extraction
    before the next entry with :class:`UpdateCancelled`.
    """

    if destination.exists():
        _LOGGER.debug("Removing stale extraction directory %s", destination)
        shutil.rmtree(destination)
    destination.mkdir(parents=True)
    root = destination.resolve()

    written: list[str] = []
    with open_package(package_path, limits) as entries:
        try:
            for entry in entries:
                if cancel_event is not None and cancel_event.is_set():
                    raise UpdateCancelled("Update cancelled during extraction")
                if entry.is_directory:
                    continue
                target = _safe_destination(root, entry.relative_path)
                target.parent.mkdir(parents=True, exist_ok=True)
                with entry.open() as source, target.open("wb") as sink:
                    shutil.copyfileobj(source, sink)
                written.append(entry.relative_path)
                _LOGGER.debug("Extracted %s", entry.relative_path)
        except (zipfile.BadZipFile, tarfile.TarError, zlib.error, EOFError) as exc:
            raise ArchiveError(f"Update package is corrupt: {exc}") from exc

    _LOGGER.info("Extracted %s file(s) from %s", len(written), package_path.name)
    return written


def _normalise_member_name(name: str) -> str | None:
    cleaned = name.replace("\\", "/")
    if cleaned.startswith("/") or _DRIVE_PREFIX.match(cleaned):
        raise ArchiveError("Update archive contained an absolute path entry")
    parts = [part for part in PurePosixPath(cleaned).parts if part not in ("", ".")]
    if not parts:
        return None
    if ".." in parts:
        raise ArchiveError("Update archive contained an unsafe relative path")
    return "/".join(parts)


def _safe_destination(root: Path, relative_path: str) -> Path:
    destination = root.joinpath(*relative_path.split("/")).resolve()
    try:
        destination.relative_to(root)
    except ValueError:
        raise ArchiveError("Update archive contained an unsafe relative path") from None
    return destination


class _EntryBudget:
    def __init__(self, limits: ArchiveLimits) -> None:
        self._limits = limits
        self._entries = 0
        self._total_bytes = 0

    def count_entry(self) -> None:
        self._entries += 1
        if self._entries > self._limits.max_entries:
            _LOGGER.error(
                "Archive entry count %s exceeded limit %s",
                self._entries,
                self._limits.max_entries,
            )
            raise ArchiveError("Update archive contained too many entries")

    def count_file(self, name: str, size: int) -> None:
        if size > self._limits.max_file_size:
            _LOGGER.error(
                "Archive member %s exceeded file size limit (%s > %s)",
                name,
                size,
                self._limits.max_file_size,
            )
            raise ArchiveError("Update archive contained an oversized file")
        self._total_bytes += size
        if self._total_bytes > self._limits.max_total_bytes:
            _LOGGER.error(
                "Archive expanded to %s bytes which exceeds limit %s",
                self._total_bytes,
                self._limits.max_total_bytes,
            )
            raise ArchiveError("Update archive expanded beyond safe limits")


def _iter_zip_entries(archive: zipfile.ZipFile, limits: ArchiveLimits) -> Iterator[StagedEntry]:
    budget = _EntryBudget(limits)
    for member in archive.infolist():
        relative = _normalise_member_name(member.filename)
        if relative is None:
            continue
        budget.count_entry()
        if member.is_dir():
            yield StagedEntry(relative, True, _no_content)
            continue
        budget.count_file(relative, member.file_size)
        if member.compress_size == 0 and member.file_size > 0:
            _LOGGER.error("Archive member %s reported zero compression size", relative)
            raise ArchiveError("Update archive contained a suspiciously compressed file")
        if (
            member.compress_size > 0
            and member.file_size > member.compress_size * limits.max_compression_ratio
        ):
            _LOGGER.error(
                "Archive member %s exceeded compression ratio limit (%s > %s)",
                relative,
                member.file_size,
                member.compress_size * limits.max_compression_ratio,
            )
            raise ArchiveError("Update archive exceeded safe compression ratio")
        yield StagedEntry(relative, False, _zip_opener(archive, member))


def _iter_tar_entries(archive: tarfile.TarFile, limits: ArchiveLimits) -> Iterator[StagedEntry]:
    budget = _EntryBudget(limits)
    for member in archive:
        relative = _normalise_member_name(member.name)
        if relative is None:
            continue
        budget.count_entry()
        if member.isdir():
            yield StagedEntry(relative, True, _no_content)
            continue
        if not member.isfile():
            raise ArchiveError(f"Update archive contained an unsupported entry type: {relative}")
        budget.count_file(relative, member.size)
        yield StagedEntry(relative, False, _tar_opener(archive, member))


def _zip_opener(archive: zipfile.ZipFile, member: zipfile.ZipInfo):
    def _open():
        return archive.open(member)

    return _open


def _tar_opener(archive: tarfile.TarFile, member: tarfile.TarInfo):
    @contextmanager
    def _open() -> Iterator[BinaryIO]:
        stream = archive.extractfile(member)
        if stream is None:
            raise ArchiveError(f"Update archive entry has no content: {member.name}")
        with stream:
            yield stream

    return _open


def _no_content():
    raise ArchiveError("Directory entries have no content")


__all__ = ["extraction_root", "open_package", "stage_package"]
