"""Turns a restoration option into a concrete plan of file operations."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .config import HISTORY_FILENAME, Settings
from .errors import PlanningError, RestoreUnavailableError
from .manifest import BackupManifest
from .models import (
    CleanRemoval,
    FileOperation,
    HistoryHandling,
    OperationKind,
    ProfileInfo,
    PromoteProfile,
    RestorationOption,
    RestorationPlan,
    RestoreOriginal,
)

logger = logging.getLogger(__name__)


def create_restoration_plan(
    option: RestorationOption,
    manifest: BackupManifest | None,
    available_profiles: Sequence[ProfileInfo],
    *,
    settings: Settings,
) -> RestorationPlan:
    """Build the plan for ``option``.

    Raises:
        RestoreUnavailableError: ``RestoreOriginal`` was requested without a
            backup manifest.
        PlanningError: the profile to promote does not exist.
    """

    match option:
        case RestoreOriginal():
            plan = _plan_restore_original(option, manifest, settings)
        case PromoteProfile(profile=name):
            plan = _plan_promote(option, name, available_profiles, settings)
        case CleanRemoval():
            plan = RestorationPlan(
                option=option,
                files_to_restore=(),
                files_to_remove=(settings.managed_root, settings.integration_file),
                backup_source=settings.managed_root,
                history_handling=HistoryHandling.SKIP,
            )
        case _:
            raise PlanningError(f"Unknown restoration option: {option!r}")

    logger.info(
        "Planned %s: %d file(s) to restore, history=%s",
        type(option).__name__,
        len(plan.files_to_restore),
        plan.history_handling.value,
    )
    return plan


def available_options(manifest: BackupManifest | None, profiles: Sequence[ProfileInfo]) -> list[RestorationOption]:
    """Options that can be planned right now, for presenting layers."""

    options: list[RestorationOption] = []
    if manifest is not None:
        options.append(RestoreOriginal())
    options.extend(PromoteProfile(profile.name) for profile in profiles)
    options.append(CleanRemoval())
    return options


def _plan_restore_original(
    option: RestoreOriginal,
    manifest: BackupManifest | None,
    settings: Settings,
) -> RestorationPlan:
    if manifest is None:
        raise RestoreUnavailableError(settings.backup_dir)

    backup_dir = settings.backup_dir
    operations = tuple(
        FileOperation(
            source=backup_dir / entry.path,
            destination=settings.home / entry.path,
            operation=OperationKind.RESTORE_SYMLINK if entry.is_symlink else OperationKind.COPY,
            permissions=entry.permissions,
            checksum=entry.checksum,
            symlink_target=entry.symlink_target,
        )
        for entry in manifest.files
    )

    framework_archive = None
    framework_destination = None
    if manifest.framework_backup is not None:
        framework_archive = backup_dir / manifest.framework_backup.archive
        framework_destination = settings.home / manifest.framework_backup.install_path

    return RestorationPlan(
        option=option,
        files_to_restore=operations,
        files_to_remove=_leftovers(operations, settings),
        backup_source=backup_dir,
        history_handling=HistoryHandling.RESTORE,
        history_destination=settings.home / HISTORY_FILENAME,
        framework_archive=framework_archive,
        framework_destination=framework_destination,
    )


def _plan_promote(
    option: PromoteProfile,
    name: str,
    available_profiles: Sequence[ProfileInfo],
    settings: Settings,
) -> RestorationPlan:
    profile = next((item for item in available_profiles if item.name == name), None)
    if profile is None:
        raise PlanningError(f"Profile '{name}' not found")

    operations = tuple(
        FileOperation(
            source=profile.path / relative,
            destination=settings.home / relative,
            operation=OperationKind.COPY,
        )
        for relative in profile.config_files
    )

    sources: list[Path] = []
    if settings.shared_history_enabled:
        if settings.shared_history.is_file():
            sources.append(settings.shared_history)
        if profile.history_file is not None:
            sources.append(profile.history_file)
        handling = HistoryHandling.MERGE if sources else HistoryHandling.SKIP
    elif profile.history_file is not None:
        sources.append(profile.history_file)
        handling = HistoryHandling.RESTORE
    else:
        handling = HistoryHandling.SKIP

    return RestorationPlan(
        option=option,
        files_to_restore=operations,
        files_to_remove=_leftovers(operations, settings),
        backup_source=profile.path,
        history_handling=handling,
        history_sources=tuple(sources),
        history_destination=settings.home / HISTORY_FILENAME,
    )


def _leftovers(operations: Sequence[FileOperation], settings: Settings) -> tuple[Path, ...]:
    """Managed paths that remain after the restore and must be removed."""

    leftovers = [settings.managed_root]
    if all(operation.destination != settings.integration_file for operation in operations):
        leftovers.append(settings.integration_file)
    return tuple(leftovers)
