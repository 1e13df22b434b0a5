from __future__ import annotations

import logging
from pathlib import Path

import pytest

from shared import logging_config


def _managed_handlers() -> list[logging.Handler]:
    return [
        handler
        for handler in logging.getLogger().handlers
        if getattr(handler, logging_config._HANDLER_TAG, False)  # type: ignore[attr-defined]
    ]


def _flush_managed_handlers() -> None:
    for handler in _managed_handlers():
        handler.flush()


@pytest.fixture(autouse=True)
def reset_logging():
    logging_config.close_audit_logging()
    try:
        yield
    finally:
        logging_config.close_audit_logging()


def test_audit_log_creates_parent_directories_and_records_messages(tmp_path):
    log_path = tmp_path / "logs" / "nested" / "updater.log"

    returned = logging_config.ensure_audit_logging(log_path)
    logging.getLogger("updater.sequence").info("info message")
    logging.getLogger("updater.sequence").debug("debug message")
    _flush_managed_handlers()

    assert returned == log_path
    assert logging_config.get_audit_log_path() == log_path
    contents = log_path.read_text(encoding="utf-8")
    assert "info message" in contents
    assert "[updater.sequence]" in contents
    assert "debug message" not in contents


def test_audit_log_appends_across_sessions(tmp_path):
    log_path = tmp_path / "updater.log"
    log_path.write_text("earlier run\n", encoding="utf-8")

    logging_config.ensure_audit_logging(log_path)
    logging.getLogger("tests.logging").warning("first session")
    logging_config.close_audit_logging()
    logging_config.ensure_audit_logging(log_path)
    logging.getLogger("tests.logging").warning("second session")
    logging_config.close_audit_logging()

    contents = log_path.read_text(encoding="utf-8")
    assert contents.startswith("earlier run\n")
    assert contents.index("first session") < contents.index("second session")


def test_audit_logging_is_idempotent_for_the_same_path(tmp_path):
    log_path = tmp_path / "updater.log"

    logging_config.ensure_audit_logging(log_path)
    logging_config.ensure_audit_logging(log_path)

    handlers = _managed_handlers()
    # stderr is not a tty under pytest, so only the file handler is installed.
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.FileHandler)
    assert Path(handlers[0].baseFilename) == log_path


def test_switching_paths_closes_the_previous_log(tmp_path):
    first = tmp_path / "first.log"
    second = tmp_path / "second.log"

    logging_config.ensure_audit_logging(first)
    logging_config.ensure_audit_logging(second)
    logging.getLogger("tests.logging").error("only in second")
    _flush_managed_handlers()

    assert len(_managed_handlers()) == 1
    assert "only in second" not in first.read_text(encoding="utf-8")
    assert "only in second" in second.read_text(encoding="utf-8")


def test_verbosity_controls_file_threshold(tmp_path):
    log_path = tmp_path / "updater.log"

    logging_config.ensure_audit_logging(log_path, "verbose")
    logging.getLogger("tests.logging").debug("debug message")
    logging_config.close_audit_logging()
    logging_config.ensure_audit_logging(log_path, logging_config.LogVerbosity.ERROR)
    logging.getLogger("tests.logging").warning("warning message")
    logging_config.close_audit_logging()

    contents = log_path.read_text(encoding="utf-8")
    assert "debug message" in contents
    assert "warning message" not in contents


def test_unknown_verbosity_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        logging_config.ensure_audit_logging(tmp_path / "updater.log", "chatty")


def test_close_leaves_foreign_handlers_attached(tmp_path):
    foreign = logging.NullHandler()
    root = logging.getLogger()
    root.addHandler(foreign)
    try:
        logging_config.ensure_audit_logging(tmp_path / "updater.log")
        logging_config.close_audit_logging()

        assert foreign in root.handlers
        assert _managed_handlers() == []
        assert logging_config.get_audit_log_path() is None
    finally:
        root.removeHandler(foreign)


def test_sanitize_text_redacts_home_directory(monkeypatch):
    home = str(Path.home())
    if home in {"", "/"}:
        pytest.skip("no home directory to redact")

    redacted = logging_config.sanitize_text(f"Copying {home}/Downloads/update.zip")

    assert home not in redacted
    assert logging_config.USER_HOME_PLACEHOLDER in redacted
