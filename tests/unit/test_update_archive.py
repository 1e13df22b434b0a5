from __future__ import annotations

import os
import threading
from pathlib import Path
from zipfile import ZipFile

import pytest

from app.config import ArchiveLimits
from updater.archive import extraction_root, open_package, stage_package
from updater.models import ArchiveError, UpdateCancelled
from tests.unit.update_test_utils import build_tar_archive, build_update_archive, snapshot


def test_stage_package_writes_file_entries_under_extraction_root(tmp_path: Path) -> None:
    archive = build_update_archive(
        tmp_path,
        {"app.exe": b"A", "data/config.json": b"B", "data/nested/deep.bin": b"C"},
        directories=("data/", "empty/"),
    )
    destination = extraction_root(tmp_path / "scratch")

    written = stage_package(archive, destination)

    assert destination == tmp_path / "scratch" / "extracted_update"
    assert written == ["app.exe", "data/config.json", "data/nested/deep.bin"]
    assert snapshot(destination) == {
        "app.exe": b"A",
        "data/config.json": b"B",
        "data/nested/deep.bin": b"C",
    }


def test_stage_package_supports_tar_archives(tmp_path: Path) -> None:
    archive = build_tar_archive(tmp_path, {"bin/app": b"tar payload"})
    destination = tmp_path / "scratch" / "extracted_update"

    stage_package(archive, destination)

    assert (destination / "bin" / "app").read_bytes() == b"tar payload"


def test_stage_package_recreates_stale_extraction_directory(tmp_path: Path) -> None:
    destination = tmp_path / "scratch" / "extracted_update"
    (destination / "old").mkdir(parents=True)
    (destination / "old" / "leftover.txt").write_text("stale", encoding="utf-8")
    (destination / "app.exe").write_bytes(b"previous run")
    archive = build_update_archive(tmp_path, {"app.exe": b"fresh"})

    stage_package(archive, destination)

    assert snapshot(destination) == {"app.exe": b"fresh"}


def test_duplicate_entries_overwrite_earlier_content(tmp_path: Path) -> None:
    archive = tmp_path / "dupes.zip"
    with ZipFile(archive, "w") as handle:
        handle.writestr("app.exe", b"first")
        with pytest.warns(UserWarning):
            handle.writestr("app.exe", b"second")
    destination = tmp_path / "out"

    stage_package(archive, destination)

    assert (destination / "app.exe").read_bytes() == b"second"


def test_open_package_yields_entries_in_archive_order(tmp_path: Path) -> None:
    archive = build_update_archive(
        tmp_path, {"b.txt": b"2", "a.txt": b"1"}, directories=("folder/",)
    )

    with open_package(archive) as entries:
        listing = [(entry.relative_path, entry.is_directory) for entry in entries]

    assert listing == [("folder", True), ("b.txt", False), ("a.txt", False)]


@pytest.mark.parametrize("member", ["../escape.txt", "nested/../../escape.txt"])
def test_stage_package_rejects_paths_outside_root(tmp_path: Path, member: str) -> None:
    archive = tmp_path / "evil.zip"
    with ZipFile(archive, "w") as handle:
        handle.writestr(member, b"nope")

    with pytest.raises(ArchiveError, match="unsafe"):
        stage_package(archive, tmp_path / "out")

    assert not (tmp_path / "escape.txt").exists()


def test_stage_package_rejects_absolute_entries(tmp_path: Path) -> None:
    archive = tmp_path / "absolute.zip"
    with ZipFile(archive, "w") as handle:
        handle.writestr("/etc/passwd", b"nope")

    with pytest.raises(ArchiveError, match="absolute"):
        stage_package(archive, tmp_path / "out")


@pytest.mark.parametrize("member", ["C:/Windows/evil.dll", "c:\\evil.dll", "D:"])
def test_stage_package_rejects_drive_rooted_entries(tmp_path: Path, member: str) -> None:
    archive = tmp_path / "drive.zip"
    with ZipFile(archive, "w") as handle:
        handle.writestr(member, b"nope")

    with pytest.raises(ArchiveError, match="absolute"):
        stage_package(archive, tmp_path / "out")


@pytest.mark.skipif(os.name == "nt", reason="colons are not valid in Windows file names")
def test_stage_package_accepts_colon_in_relative_names(tmp_path: Path) -> None:
    archive = build_update_archive(tmp_path, {"a:b.txt": b"colon", "docs/x:y.md": b"notes"})
    destination = extraction_root(tmp_path / "scratch")

    stage_package(archive, destination)

    assert snapshot(destination) == {"a:b.txt": b"colon", "docs/x:y.md": b"notes"}


def test_stage_package_rejects_corrupt_archives(tmp_path: Path) -> None:
    archive = tmp_path / "corrupt.zip"
    archive.write_bytes(b"PK\x03\x04 definitely not a zip file")

    with pytest.raises(ArchiveError):
        stage_package(archive, tmp_path / "out")


def test_stage_package_requires_existing_package(tmp_path: Path) -> None:
    with pytest.raises(ArchiveError, match="not found"):
        stage_package(tmp_path / "missing.zip", tmp_path / "out")


def test_stage_package_enforces_entry_limit(tmp_path: Path) -> None:
    archive = build_update_archive(tmp_path, {f"file{index}.txt": b"x" for index in range(5)})
    limits = ArchiveLimits(max_entries=3)

    with pytest.raises(ArchiveError, match="too many entries"):
        stage_package(archive, tmp_path / "out", limits)


def test_stage_package_enforces_file_size_limit(tmp_path: Path) -> None:
    archive = build_update_archive(tmp_path, {"big.bin": b"0123456789" * 10})
    limits = ArchiveLimits(max_file_size=50)

    with pytest.raises(ArchiveError, match="oversized"):
        stage_package(archive, tmp_path / "out", limits)


def test_stage_package_enforces_compression_ratio(tmp_path: Path) -> None:
    archive = build_update_archive(tmp_path, {"zeros.bin": b"\0" * 200_000})
    limits = ArchiveLimits(max_compression_ratio=5)

    with pytest.raises(ArchiveError, match="compression ratio"):
        stage_package(archive, tmp_path / "out", limits)


def test_stage_package_stops_when_cancelled(tmp_path: Path) -> None:
    archive = build_update_archive(tmp_path)
    cancel = threading.Event()
    cancel.set()
    destination = extraction_root(tmp_path / "scratch")

    with pytest.raises(UpdateCancelled, match="extraction"):
        stage_package(archive, destination, cancel_event=cancel)

    assert snapshot(destination) == {}
