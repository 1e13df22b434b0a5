from __future__ import annotations

from importlib import metadata, resources

import pytest

from app import version as version_module
from app.version import get_app_version


@pytest.fixture(autouse=True)
def _reset_cache():
    get_app_version.cache_clear()  # type: ignore[attr-defined]
    yield
    get_app_version.cache_clear()  # type: ignore[attr-defined]


def test_get_app_version_prefers_environment(monkeypatch) -> None:
    monkeypatch.setenv("UPDATER_VERSION", "v1.2.3")

    assert get_app_version() == "1.2.3"


def test_get_app_version_falls_back_to_version_file(monkeypatch) -> None:
    monkeypatch.delenv("UPDATER_VERSION", raising=False)

    version_file = resources.files("app").joinpath("VERSION")
    expected = version_file.read_text(encoding="utf-8").strip()
    assert expected
    assert get_app_version() == expected


def test_get_app_version_uses_fallback_when_nothing_resolves(monkeypatch) -> None:
    monkeypatch.delenv("UPDATER_VERSION", raising=False)
    monkeypatch.setattr(version_module, "_read_version_file", lambda: None)

    def _missing(_name: str) -> str:
        raise metadata.PackageNotFoundError(_name)

    monkeypatch.setattr(version_module.metadata, "version", _missing)

    assert get_app_version() == "0.0.0-dev"
