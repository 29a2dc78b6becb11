"""Removal of backed-up originals from the home directory."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from .config import Settings
from .filesystem import make_writable, remove_path
from .manifest import BackupManifest
from .models import FileState, HomeCleanupReport, VerificationReport
from .verify import require_valid

logger = logging.getLogger(__name__)

INTEGRATION_MARKER = "# ========== Managed by zswitch - DO NOT EDIT THIS SECTION =========="
INTEGRATION_FOOTER = "# ==================================================================="


def render_integration(settings: Settings, profile_path: Path | None = None) -> str:
    """Return the contents of the generated ``.zshenv``."""

    lines = [INTEGRATION_MARKER]
    if profile_path is not None:
        lines.append(f'export ZDOTDIR="{profile_path}"')
    if settings.shared_history_enabled:
        lines.extend(
            [
                "# Shared command history across all profiles",
                f'export HISTFILE="{settings.shared_history}"',
                "export HISTSIZE=10000",
                "export SAVEHIST=10000",
                "setopt INC_APPEND_HISTORY",
                "setopt SHARE_HISTORY",
                "setopt HIST_IGNORE_DUPS",
            ]
        )
    lines.append(INTEGRATION_FOOTER)
    return "\n".join(lines) + "\n"


def is_generated_integration(path: Path) -> bool:
    """Return ``True`` if ``path`` is a file written by :func:`write_integration`."""

    if not path.is_file() or path.is_symlink():
        return False
    try:
        return INTEGRATION_MARKER in path.read_text(errors="replace")
    except OSError:
        return False


def write_integration(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.is_symlink():
        path.unlink()
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.zswitch-tmp-", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w") as handle:
            handle.write(content)
        os.chmod(temp_path, 0o644)
        os.replace(temp_path, path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def move_originals(
    manifest: BackupManifest,
    report: VerificationReport,
    *,
    home: Path,
    backup_dir: Path,
    integration_file: Path,
    integration_content: str,
) -> HomeCleanupReport:
    """Delete backed-up originals from ``home`` and write the integration file.

    Only runs when ``report`` shows a valid backup. Failures on individual
    files are collected; missing files count as already removed so the step
    can be re-run after an interruption.
    """

    require_valid(report, backup_dir)

    removed: list[Path] = []
    errors: list[tuple[Path, str]] = []
    states: dict[str, FileState] = {entry.path.as_posix(): FileState.VERIFIED for entry in manifest.files}

    for entry in manifest.files:
        original = home / entry.path
        key = entry.path.as_posix()

        if (not original.exists() and not original.is_symlink()) or (
            original == integration_file and is_generated_integration(original)
        ):
            logger.debug("Skipping %s (no longer in home)", entry.path)
            states[key] = FileState.COMMITTED
            continue

        try:
            make_writable(original)
            original.unlink()
        except OSError as exc:
            logger.warning("Could not remove %s from home: %s", original, exc)
            errors.append((original, str(exc)))
            continue

        removed.append(original)
        states[key] = FileState.COMMITTED
        logger.info("Moved %s to backup (removed from home)", entry.path)

    install_path = home / manifest.framework_backup.install_path if manifest.framework_backup else None
    if install_path is not None and (install_path.exists() or install_path.is_symlink()):
        try:
            remove_path(install_path)
        except OSError as exc:
            logger.warning("Could not remove framework directory %s: %s", install_path, exc)
            errors.append((install_path, str(exc)))
        else:
            removed.append(install_path)

    written: Path | None = None
    try:
        write_integration(integration_file, integration_content)
        written = integration_file
    except OSError as exc:
        logger.warning("Could not write %s: %s", integration_file, exc)
        errors.append((integration_file, str(exc)))

    return HomeCleanupReport(
        removed=tuple(removed),
        integration_file=written,
        states=states,
        errors=tuple(errors),
    )
