"""Uninstall state machine: snapshot, restore, then clean up."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .backup import ProgressCallback
from .cleanup import cleanup_all
from .config import Settings
from .errors import ManifestError, PlanningError, RestoreUnavailableError, SnapshotCreationFailed, ZswitchError
from .manifest import BackupManifest, backup_exists, load_manifest
from .models import (
    CleanupConfig,
    CleanupReport,
    RestorationOption,
    RestorationPlan,
    RestorationReport,
    RestoreOriginal,
    UninstallResult,
    UninstallState,
)
from .planner import create_restoration_plan
from .profiles import ProfileStore
from .restore import execute_plan
from .snapshot import create_final_snapshot, snapshot_path
from .verify import verify_backup

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[RestorationPlan], bool]
OptionSelector = Callable[[PlanningError], RestorationOption | None]

_TRANSITIONS: dict[UninstallState, frozenset[UninstallState]] = {
    UninstallState.VALIDATING: frozenset({UninstallState.PLANNING_RESTORATION}),
    UninstallState.PLANNING_RESTORATION: frozenset(
        {UninstallState.PLANNING_RESTORATION, UninstallState.AWAITING_CONFIRMATION}
    ),
    UninstallState.AWAITING_CONFIRMATION: frozenset({UninstallState.SNAPSHOT_CREATED, UninstallState.RESTORING}),
    UninstallState.SNAPSHOT_CREATED: frozenset({UninstallState.RESTORING}),
    UninstallState.RESTORING: frozenset({UninstallState.CLEANING_UP}),
    UninstallState.CLEANING_UP: frozenset({UninstallState.DONE}),
    UninstallState.DONE: frozenset(),
    UninstallState.ABORTED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class UninstallOptions:
    """Caller choices for an uninstall run.

    ``confirm`` is asked to approve the plan unless ``assume_yes`` is set.
    ``option_selector`` may offer a different option when the requested one
    cannot be planned. ``snapshot_dir`` defaults to the backups directory
    when backups are kept and to the home directory otherwise, so the
    snapshot survives cleanup.
    """

    assume_yes: bool = False
    no_snapshot: bool = False
    keep_backups: bool = False
    confirm: ConfirmCallback | None = None
    option_selector: OptionSelector | None = None
    snapshot_dir: Path | None = None
    progress: ProgressCallback | None = None


class UninstallOrchestrator:
    """Drives a single uninstall from validation to cleanup."""

    def __init__(self, settings: Settings, options: UninstallOptions, profiles: ProfileStore | None = None) -> None:
        self.settings = settings
        self.options = options
        self.profiles = profiles or ProfileStore(settings)
        self.state = UninstallState.VALIDATING
        self.trace: list[UninstallState] = [UninstallState.VALIDATING]
        self._plan: RestorationPlan | None = None
        self._snapshot: Path | None = None
        self._snapshot_size: int | None = None
        self._restoration: RestorationReport | None = None
        self._error: str | None = None
        self._warnings: list[str] = []

    def run(self, option: RestorationOption) -> UninstallResult:
        settings = self.settings

        if not settings.home.is_dir():
            return self._abort(f"Home directory '{settings.home}' does not exist; nothing was changed")
        if not settings.managed_root.is_dir():
            return self._abort(f"Nothing to uninstall: '{settings.managed_root}' does not exist")
        if not os.access(settings.home, os.W_OK):
            return self._abort(f"Home directory '{settings.home}' is not writable; nothing was changed")
        if not backup_exists(settings.backup_dir):
            self._warn("No pre-existing backup found; the Restore Original option is unavailable")

        self._enter(UninstallState.PLANNING_RESTORATION)
        try:
            manifest = load_manifest(settings.backup_dir)
        except ManifestError as exc:
            return self._abort(str(exc))

        plan = self._plan_with_retries(option, manifest)
        if plan is None:
            return self._result()
        self._plan = plan

        if isinstance(plan.option, RestoreOriginal) and manifest is not None:
            report = verify_backup(manifest, settings.backup_dir)
            if not report.ok:
                paths = ", ".join(str(issue.file_path) for issue in report.fatal_issues)
                return self._abort(
                    f"Backup at '{settings.backup_dir}' failed verification ({paths}); nothing was changed"
                )

        self._enter(UninstallState.AWAITING_CONFIRMATION)
        if not self.options.assume_yes:
            if self.options.confirm is None:
                return self._abort("Confirmation required; pass assume_yes for non-interactive runs")
            if not self.options.confirm(plan):
                return self._abort("Uninstall cancelled. No changes were made.")

        if not self.options.no_snapshot:
            output = snapshot_path(self._snapshot_dir())
            try:
                self._snapshot_size = create_final_snapshot(settings.managed_root, output, progress=self.options.progress)
            except SnapshotCreationFailed as exc:
                return self._abort(f"{exc}; nothing was changed")
            self._snapshot = output
            self._enter(UninstallState.SNAPSHOT_CREATED)
        else:
            logger.warning("Skipping safety snapshot")

        self._enter(UninstallState.RESTORING)
        self._restoration = execute_plan(plan)
        if not self._restoration.is_successful:
            failed = ", ".join(str(error.path) for error in self._restoration.errors)
            recovery = f"; recover from snapshot '{self._snapshot}'" if self._snapshot else ""
            return self._abort(f"Restoration failed for: {failed}{recovery}")

        self._enter(UninstallState.CLEANING_UP)
        cleanup = cleanup_all(
            CleanupConfig(
                managed_root=settings.managed_root,
                home=settings.home,
                integration_file=settings.integration_file,
                keep_backups=self.options.keep_backups,
            )
        )

        self._enter(UninstallState.DONE)
        logger.info("Uninstall finished")
        return self._result(cleanup=cleanup)

    # ------------------------------------------------------------------
    # Internal helpers

    def _plan_with_retries(self, option: RestorationOption, manifest: BackupManifest | None) -> RestorationPlan | None:
        profiles = self.profiles.list_profiles()
        while True:
            try:
                return create_restoration_plan(option, manifest, profiles, settings=self.settings)
            except RestoreUnavailableError as exc:
                selector = self.options.option_selector
                replacement = selector(exc) if selector is not None else None
                if replacement is None or replacement == option:
                    self._abort(str(exc))
                    return None
                logger.info("Restore original unavailable, trying %s", type(replacement).__name__)
                option = replacement
                self._enter(UninstallState.PLANNING_RESTORATION)
            except PlanningError as exc:
                self._abort(str(exc))
                return None

    def _snapshot_dir(self) -> Path:
        if self.options.snapshot_dir is not None:
            return self.options.snapshot_dir
        if self.options.keep_backups:
            return self.settings.backups_dir
        return self.settings.home

    def _enter(self, state: UninstallState) -> None:
        allowed = _TRANSITIONS[self.state]
        if (
            state is UninstallState.RESTORING
            and self.state is UninstallState.AWAITING_CONFIRMATION
            and not self.options.no_snapshot
        ):
            allowed = frozenset()
        if state not in allowed:
            raise ZswitchError(f"Illegal uninstall transition {self.state.value} -> {state.value}")
        logger.debug("Uninstall state %s -> %s", self.state.value, state.value)
        self.state = state
        self.trace.append(state)

    def _warn(self, message: str) -> None:
        logger.warning("%s", message)
        self._warnings.append(message)

    def _abort(self, message: str) -> UninstallResult:
        logger.error("Uninstall aborted: %s", message)
        self.state = UninstallState.ABORTED
        self.trace.append(UninstallState.ABORTED)
        self._error = message
        return self._result()

    def _result(self, cleanup: CleanupReport | None = None) -> UninstallResult:
        return UninstallResult(
            state=self.state,
            trace=tuple(self.trace),
            plan=self._plan,
            snapshot_path=self._snapshot,
            snapshot_size=self._snapshot_size,
            restoration=self._restoration,
            cleanup=cleanup,
            error=self._error,
            warnings=tuple(self._warnings),
        )


def run_uninstall(
    option: RestorationOption,
    options: UninstallOptions | None = None,
    *,
    settings: Settings,
    profiles: ProfileStore | None = None,
) -> UninstallResult:
    """Run the full uninstall for ``option`` and return its result."""

    orchestrator = UninstallOrchestrator(settings, options or UninstallOptions(), profiles)
    return orchestrator.run(option)
