from __future__ import annotations

from pathlib import Path

import pytest

from updater.invocation import (
    log_path_hint,
    parse_boolean,
    parse_process_id,
    parse_request,
)
from updater.models import InvocationError, UpdateRequest


def _tokens(**overrides: str) -> list[str]:
    values = {
        "pid": "1234",
        "package": "/tmp/update.zip",
        "install": "/opt/app",
        "executable": "/opt/app/app.exe",
        "log": "/tmp/updater.log",
        "scratch": "/tmp/updater-cache",
        "preserve": "False",
    }
    values.update(overrides)
    return list(values.values())


def test_parse_request_builds_immutable_request() -> None:
    request = parse_request(_tokens())

    assert request == UpdateRequest(
        target_process_id=1234,
        package_path=Path("/tmp/update.zip"),
        install_directory=Path("/opt/app"),
        executable_path=Path("/opt/app/app.exe"),
        log_path=Path("/tmp/updater.log"),
        scratch_directory=Path("/tmp/updater-cache"),
        preserve_config=False,
    )
    with pytest.raises(AttributeError):
        request.preserve_config = True  # type: ignore[misc]


@pytest.mark.parametrize("count", [0, 1, 6])
def test_parse_request_returns_none_for_short_token_lists(count: int) -> None:
    assert parse_request(_tokens()[:count]) is None


def test_parse_request_ignores_extra_tokens() -> None:
    request = parse_request(_tokens() + ["extra", "tokens"])

    assert request is not None
    assert request.target_process_id == 1234


@pytest.mark.parametrize(
    ("token", "expected"),
    [("0", 0), ("42", 42), (" 7 ", 7), ("+15", 15)],
)
def test_parse_process_id_accepts_non_negative_integers(token: str, expected: int) -> None:
    assert parse_process_id(token) == expected


@pytest.mark.parametrize("token", ["-1", "abc", "", "1.5", "0x10"])
def test_parse_process_id_rejects_invalid_tokens(token: str) -> None:
    with pytest.raises(InvocationError):
        parse_process_id(token)


@pytest.mark.parametrize(
    ("token", "expected"),
    [("true", True), ("True", True), (" TRUE ", True), ("false", False), ("False", False)],
)
def test_parse_boolean_accepts_literals(token: str, expected: bool) -> None:
    assert parse_boolean(token) is expected


@pytest.mark.parametrize("token", ["yes", "1", "0", "", "maybe"])
def test_parse_boolean_rejects_other_words(token: str) -> None:
    with pytest.raises(InvocationError):
        parse_boolean(token)


def test_parse_request_fails_fast_on_bad_flag() -> None:
    with pytest.raises(InvocationError, match="true' or 'false"):
        parse_request(_tokens(preserve="keep"))


def test_parse_request_rejects_empty_paths() -> None:
    with pytest.raises(InvocationError, match="Install directory"):
        parse_request(_tokens(install="  "))


def test_log_path_hint_requires_the_log_token() -> None:
    assert log_path_hint(_tokens()[:4]) is None
    assert log_path_hint(_tokens()[:5]) == Path("/tmp/updater.log")
    assert log_path_hint(_tokens(log="")) is None
