"""Best-effort removal of everything zswitch manages."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .config import BACKUPS_DIRNAME
from .errors import CleanupPartialFailure
from .home import is_generated_integration
from .models import CleanupConfig, CleanupReport

logger = logging.getLogger(__name__)


def cleanup_all(config: CleanupConfig) -> CleanupReport:
    """Remove the generated integration file and the managed root.

    With ``keep_backups`` every child of the managed root except
    ``backups/`` is removed instead. Failures are collected per path.
    """

    removed_files: list[Path] = []
    removed_dirs: list[Path] = []
    preserved: list[Path] = []
    errors: list[CleanupPartialFailure] = []

    integration = config.integration_file
    if integration.exists() or integration.is_symlink():
        if is_generated_integration(integration):
            try:
                integration.unlink()
            except OSError as exc:
                errors.append(CleanupPartialFailure(integration, str(exc)))
            else:
                removed_files.append(integration)
                logger.info("Removed generated %s", integration)
        else:
            preserved.append(integration)
            logger.info("Preserved %s (not generated by zswitch)", integration)

    root = config.managed_root
    if root.exists():
        if config.keep_backups:
            for child in sorted(root.iterdir()):
                if child.name == BACKUPS_DIRNAME:
                    preserved.append(child)
                    continue
                _remove(child, removed_files, removed_dirs, errors)
        else:
            _remove(root, removed_files, removed_dirs, errors)

    report = CleanupReport(
        removed_files=tuple(removed_files),
        removed_dirs=tuple(removed_dirs),
        preserved=tuple(preserved),
        errors=tuple(errors),
    )
    if report.is_successful:
        logger.info("Cleanup removed %d item(s)", report.total_removed)
    else:
        logger.warning("Cleanup finished with %d error(s)", len(report.errors))
    return report


def _remove(
    path: Path,
    removed_files: list[Path],
    removed_dirs: list[Path],
    errors: list[CleanupPartialFailure],
) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
            removed_dirs.append(path)
        else:
            path.unlink()
            removed_files.append(path)
    except OSError as exc:
        logger.warning("Failed to remove %s: %s", path, exc)
        errors.append(CleanupPartialFailure(path, str(exc)))
