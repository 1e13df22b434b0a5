from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()

from app.config import reset_updater_settings_cache  # noqa: E402
from shared.logging_config import close_audit_logging  # noqa: E402

_UPDATER_ENV_VARS = (
    "UPDATER_CONFIG_FILE",
    "UPDATER_GRACE_PERIOD",
    "UPDATER_WAIT_TIMEOUT",
    "UPDATER_POLL_INTERVAL",
    "UPDATER_VERSION",
)


@pytest.fixture(autouse=True)
def _isolated_updater_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep developer environment overrides and open audit logs out of tests."""

    for name in _UPDATER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_updater_settings_cache()

    yield

    close_audit_logging()
    reset_updater_settings_cache()
