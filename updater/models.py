"""Data models used by the update executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import BinaryIO, Callable, ContextManager, Tuple


class UpdateError(RuntimeError):
    """Raised when an update stage cannot complete."""


class InvocationError(UpdateError):
    """Raised when the positional invocation tokens cannot be parsed."""


class ArchiveError(UpdateError):
    """Raised when the update package cannot be decoded safely."""


class MergeError(UpdateError):
    """Raised when staged files cannot be copied into the install directory."""


class ProcessWaitTimeout(UpdateError):
    """Raised when the target process outlives the configured deadline."""


class UpdateCancelled(UpdateError):
    """Raised when an operator asks the updater to stop."""


class Stage(str, Enum):
    """Ordered stages of the update sequence."""

    WAIT_FOR_EXIT = "wait_for_exit"
    EXTRACT = "extract"
    CONFIG_POLICY = "config_policy"
    MERGE = "merge"
    CLEANUP = "cleanup"
    RELAUNCH = "relaunch"


class ExitCode(IntEnum):
    """Process exit statuses reported by the updater."""

    SUCCESS = 0
    CLEANUP_INCOMPLETE = 1
    INVOCATION_ERROR = 2
    WAIT_FAILED = 10
    EXTRACT_FAILED = 11
    CONFIG_POLICY_FAILED = 12
    MERGE_FAILED = 13
    RELAUNCH_FAILED = 15
    CANCELLED = 20


_STAGE_EXIT_CODES: dict[Stage, ExitCode] = {
    Stage.WAIT_FOR_EXIT: ExitCode.WAIT_FAILED,
    Stage.EXTRACT: ExitCode.EXTRACT_FAILED,
    Stage.CONFIG_POLICY: ExitCode.CONFIG_POLICY_FAILED,
    Stage.MERGE: ExitCode.MERGE_FAILED,
    Stage.CLEANUP: ExitCode.CLEANUP_INCOMPLETE,
    Stage.RELAUNCH: ExitCode.RELAUNCH_FAILED,
}


@dataclass(frozen=True)
class UpdateRequest:
    """Validated invocation parameters for a single update run."""

    target_process_id: int
    package_path: Path
    install_directory: Path
    executable_path: Path
    log_path: Path
    scratch_directory: Path
    preserve_config: bool


@dataclass(frozen=True)
class StagedEntry:
    """One decoded archive member.

    ``open`` returns a readable binary stream for file entries; it is never
    called for directory markers.
    """

    relative_path: str
    is_directory: bool
    open: Callable[[], ContextManager[BinaryIO]] = field(repr=False, compare=False)


@dataclass(frozen=True)
class UpdateOutcome:
    """Terminal result of an update run."""

    stage: Stage | None = None
    cause: BaseException | None = field(default=None, compare=False)
    leftovers: Tuple[Path, ...] = ()

    @classmethod
    def succeeded(cls, leftovers: Tuple[Path, ...] = ()) -> "UpdateOutcome":
        return cls(leftovers=tuple(leftovers))

    @classmethod
    def failed(cls, stage: Stage, cause: BaseException) -> "UpdateOutcome":
        return cls(stage=stage, cause=cause)

    @property
    def is_success(self) -> bool:
        return self.stage is None

    @property
    def exit_code(self) -> ExitCode:
        if self.stage is None:
            return ExitCode.CLEANUP_INCOMPLETE if self.leftovers else ExitCode.SUCCESS
        if isinstance(self.cause, (UpdateCancelled, KeyboardInterrupt)):
            return ExitCode.CANCELLED
        return _STAGE_EXIT_CODES[self.stage]

    def describe(self) -> str:
        if self.stage is None:
            if self.leftovers:
                return f"succeeded with {len(self.leftovers)} leftover artifact(s)"
            return "succeeded"
        return f"failed during {self.stage.value}: {self.cause}"
