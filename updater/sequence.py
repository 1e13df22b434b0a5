"""Run the update stages in order and report a single outcome."""

from __future__ import annotations

import datetime
import logging
import threading
from pathlib import Path

from app.config import UpdaterSettings, get_updater_settings
from updater.archive import extraction_root, stage_package
from updater.cleanup import remove_artifacts
from updater.config_policy import apply_config_policy
from updater.constants import LOG_BANNER
from updater.launcher import Launcher
from updater.merger import merge_staged_files
from updater.models import Stage, UpdateCancelled, UpdateOutcome, UpdateRequest
from updater.process_wait import ExitWaiter
from updater.recovery import (
    clear_update_failure,
    get_failure_marker_path,
    record_update_failure,
)
from updater.rollback import MergeJournal

_LOGGER = logging.getLogger(__name__)


class UpdateSequence:
    """Move an installed application from the running old version to the new one.

    Stages run strictly in order: wait for exit, extract, config policy,
    merge, cleanup, relaunch.  The first fatal error skips every remaining
    stage.  Errors are logged once here and returned as an
    :class:`UpdateOutcome`; :meth:`run` never raises.

    Setting ``cancel_event`` abandons the run up to the end of the merge;
    a merge in progress is rolled back.  Once the new files are installed
    the run always finishes cleanup and relaunch.
    """

    def __init__(
        self,
        waiter: ExitWaiter,
        launcher: Launcher,
        *,
        settings: UpdaterSettings | None = None,
        failure_marker: Path | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._waiter = waiter
        self._launcher = launcher
        self._settings = settings or get_updater_settings()
        self._failure_marker = failure_marker
        self._cancel_event = cancel_event or threading.Event()

    def run(self, request: UpdateRequest) -> UpdateOutcome:
        _LOGGER.info(LOG_BANNER)
        started = datetime.datetime.now().isoformat(sep=" ", timespec="seconds")
        _LOGGER.info("Updater started at %s", started)
        marker = self._failure_marker or get_failure_marker_path(request.install_directory)

        stage = Stage.WAIT_FOR_EXIT
        try:
            self._waiter.wait_for_exit(request.target_process_id)

            stage = Stage.EXTRACT
            self._raise_if_cancelled()
            staging_root = extraction_root(
                request.scratch_directory, self._settings.extraction_dirname
            )
            _LOGGER.info(
                "Extracting update from %s to %s...", request.package_path, staging_root
            )
            stage_package(
                request.package_path,
                staging_root,
                self._settings.archive_limits,
                cancel_event=self._cancel_event,
            )
            _LOGGER.info("Update extracted successfully.")

            stage = Stage.CONFIG_POLICY
            self._raise_if_cancelled()
            journal = MergeJournal(
                request.install_directory,
                request.scratch_directory / self._settings.backup_dirname,
            )
            journal.prepare()
            apply_config_policy(
                request.install_directory,
                request.preserve_config,
                journal=journal,
                filename=self._settings.config_filename,
            )

            stage = Stage.MERGE
            merge_staged_files(
                staging_root,
                request.install_directory,
                journal,
                cancel_event=self._cancel_event,
            )
            if self._cancel_event.is_set():
                _LOGGER.warning(
                    "Cancellation requested after the update was installed; "
                    "finishing cleanup and relaunch"
                )

            stage = Stage.CLEANUP
            leftovers = remove_artifacts(
                (staging_root, journal.backup_root, request.package_path)
            )
            if leftovers:
                _LOGGER.warning(
                    "Cleanup left %s artifact(s) on disk: %s",
                    len(leftovers),
                    ", ".join(str(path) for path in leftovers),
                )

            stage = Stage.RELAUNCH
            self._launcher.launch(request.executable_path)
        except (Exception, KeyboardInterrupt) as exc:
            _LOGGER.exception(
                "An error occurred during the update (stage %s): %s", stage.value, exc
            )
            outcome = UpdateOutcome.failed(stage, exc)
            record_update_failure(marker, stage, str(exc))
            _LOGGER.info("Update %s", outcome.describe())
            return outcome

        clear_update_failure(marker)
        outcome = UpdateOutcome.succeeded(leftovers)
        _LOGGER.info("Update completed successfully.")
        return outcome

    def _raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise UpdateCancelled("Update cancelled before files were changed")


__all__ = ["UpdateSequence"]
