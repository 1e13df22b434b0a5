"""Updater configuration loaded from JSON resources and the environment."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from importlib import resources
from math import isfinite
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "updater.json"
_SETTINGS_CACHE: UpdaterSettings | None = None

CONFIG_FILE_ENV = "UPDATER_CONFIG_FILE"
GRACE_PERIOD_ENV = "UPDATER_GRACE_PERIOD"
WAIT_TIMEOUT_ENV = "UPDATER_WAIT_TIMEOUT"
POLL_INTERVAL_ENV = "UPDATER_POLL_INTERVAL"

_DEFAULT_GRACE_PERIOD = 2.0
_DEFAULT_WAIT_TIMEOUT = 600.0
_DEFAULT_POLL_INTERVAL = 0.5


@dataclass(frozen=True)
class ArchiveLimits:
    """Upper bounds applied while decoding an update package."""

    max_entries: int = 20000
    max_file_size: int = 1024 * 1024 * 1024
    max_total_bytes: int = 4 * 1024 * 1024 * 1024
    max_compression_ratio: int = 200


@dataclass(frozen=True)
class UpdaterSettings:
    """Tunable values for a single updater run."""

    grace_period_seconds: float = _DEFAULT_GRACE_PERIOD
    wait_timeout_seconds: float | None = _DEFAULT_WAIT_TIMEOUT
    poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL
    extraction_dirname: str = "extracted_update"
    backup_dirname: str = "update_backup"
    config_filename: str = "config.json"
    archive_limits: ArchiveLimits = ArchiveLimits()

    def with_overrides(
        self,
        *,
        grace_period_seconds: float | None = None,
        wait_timeout_seconds: float | None = None,
    ) -> "UpdaterSettings":
        """Return a copy with command-line overrides applied.

        A ``wait_timeout_seconds`` of ``0`` disables the deadline.
        """

        settings = self
        if grace_period_seconds is not None:
            settings = replace(
                settings,
                grace_period_seconds=_coerce_non_negative_float(
                    grace_period_seconds, default=settings.grace_period_seconds
                ),
            )
        if wait_timeout_seconds is not None:
            settings = replace(
                settings,
                wait_timeout_seconds=_coerce_timeout(
                    wait_timeout_seconds, default=settings.wait_timeout_seconds
                ),
            )
        return settings


def get_updater_settings() -> UpdaterSettings:
    """Return the cached updater settings."""

    global _SETTINGS_CACHE
    if _SETTINGS_CACHE is None:
        _SETTINGS_CACHE = load_updater_settings()
    return _SETTINGS_CACHE


def reset_updater_settings_cache() -> None:
    """Reset the cached settings for subsequent reloads."""

    global _SETTINGS_CACHE
    _SETTINGS_CACHE = None


def load_updater_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> UpdaterSettings:
    """Load settings from ``path`` (or the bundled JSON) and apply env overrides."""

    env = os.environ if environ is None else environ
    if path is None and env.get(CONFIG_FILE_ENV):
        path = env[CONFIG_FILE_ENV]
    data = _read_config_data(path)
    settings = _parse_settings(data)
    return _apply_environment(settings, env)


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _parse_settings(data: Mapping[str, Any]) -> UpdaterSettings:
    defaults = UpdaterSettings()
    return UpdaterSettings(
        grace_period_seconds=_coerce_non_negative_float(
            data.get("grace_period_seconds"), default=defaults.grace_period_seconds
        ),
        wait_timeout_seconds=_coerce_timeout(
            data.get("wait_timeout_seconds"), default=defaults.wait_timeout_seconds
        ),
        poll_interval_seconds=_coerce_positive_float(
            data.get("poll_interval_seconds"), default=defaults.poll_interval_seconds
        ),
        extraction_dirname=_coerce_name(
            data.get("extraction_dirname"), default=defaults.extraction_dirname
        ),
        backup_dirname=_coerce_name(data.get("backup_dirname"), default=defaults.backup_dirname),
        config_filename=_coerce_name(
            data.get("config_filename"), default=defaults.config_filename
        ),
        archive_limits=_parse_archive_limits(data.get("archive_limits")),
    )


def _parse_archive_limits(section: Any) -> ArchiveLimits:
    defaults = ArchiveLimits()
    if not isinstance(section, Mapping):
        return defaults
    return ArchiveLimits(
        max_entries=_coerce_positive_int(section.get("max_entries"), default=defaults.max_entries),
        max_file_size=_coerce_positive_int(
            section.get("max_file_size"), default=defaults.max_file_size
        ),
        max_total_bytes=_coerce_positive_int(
            section.get("max_total_bytes"), default=defaults.max_total_bytes
        ),
        max_compression_ratio=_coerce_positive_int(
            section.get("max_compression_ratio"), default=defaults.max_compression_ratio
        ),
    )


def _apply_environment(settings: UpdaterSettings, env: Mapping[str, str]) -> UpdaterSettings:
    grace = env.get(GRACE_PERIOD_ENV)
    if grace:
        settings = replace(
            settings,
            grace_period_seconds=_coerce_non_negative_float(
                grace, default=settings.grace_period_seconds
            ),
        )
    timeout = env.get(WAIT_TIMEOUT_ENV)
    if timeout:
        settings = replace(
            settings,
            wait_timeout_seconds=_coerce_timeout(timeout, default=settings.wait_timeout_seconds),
        )
    poll = env.get(POLL_INTERVAL_ENV)
    if poll:
        settings = replace(
            settings,
            poll_interval_seconds=_coerce_positive_float(
                poll, default=settings.poll_interval_seconds
            ),
        )
    return settings


def _coerce_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        candidate = float(value)
    elif isinstance(value, str):
        try:
            candidate = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not isfinite(candidate):
        return None
    return candidate


def _coerce_non_negative_float(value: Any, *, default: float) -> float:
    candidate = _coerce_float(value)
    if candidate is None or candidate < 0:
        return default
    return candidate


def _coerce_positive_float(value: Any, *, default: float) -> float:
    candidate = _coerce_float(value)
    if candidate is None or candidate <= 0:
        return default
    return candidate


def _coerce_timeout(value: Any, *, default: float | None) -> float | None:
    candidate = _coerce_float(value)
    if candidate is None or candidate < 0:
        return default
    if candidate == 0:
        return None
    return candidate


def _coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = int(value)
    elif isinstance(value, str):
        try:
            candidate = int(float(value))
        except ValueError:
            return default
    else:
        return default
    if candidate <= 0:
        return default
    return candidate


def _coerce_name(value: Any, *, default: str) -> str:
    if not isinstance(value, str):
        return default
    name = value.strip()
    if not name or "/" in name or "\\" in name or name in {".", ".."}:
        return default
    return name


__all__ = [
    "ArchiveLimits",
    "CONFIG_FILE_ENV",
    "GRACE_PERIOD_ENV",
    "POLL_INTERVAL_ENV",
    "UpdaterSettings",
    "WAIT_TIMEOUT_ENV",
    "get_updater_settings",
    "load_updater_settings",
    "reset_updater_settings_cache",
]
