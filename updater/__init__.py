"""Public API for the update executor package."""

from __future__ import annotations

from updater.archive import open_package, stage_package
from updater.cleanup import remove_artifacts
from updater.config_policy import apply_config_policy
from updater.invocation import parse_request
from updater.launcher import DetachedLauncher, Launcher
from updater.merger import merge_staged_files
from updater.models import (
    ArchiveError,
    ExitCode,
    InvocationError,
    MergeError,
    ProcessWaitTimeout,
    Stage,
    StagedEntry,
    UpdateCancelled,
    UpdateError,
    UpdateOutcome,
    UpdateRequest,
)
from updater.process_wait import ExitWaiter, ProcessExitWaiter
from updater.recovery import consume_update_failure_notice, get_failure_marker_path
from updater.rollback import MergeJournal
from updater.sequence import UpdateSequence

__all__ = [
    "ArchiveError",
    "DetachedLauncher",
    "ExitCode",
    "ExitWaiter",
    "InvocationError",
    "Launcher",
    "MergeError",
    "MergeJournal",
    "ProcessExitWaiter",
    "ProcessWaitTimeout",
    "Stage",
    "StagedEntry",
    "UpdateCancelled",
    "UpdateError",
    "UpdateOutcome",
    "UpdateRequest",
    "UpdateSequence",
    "apply_config_policy",
    "consume_update_failure_notice",
    "get_failure_marker_path",
    "merge_staged_files",
    "open_package",
    "parse_request",
    "remove_artifacts",
    "stage_package",
]
