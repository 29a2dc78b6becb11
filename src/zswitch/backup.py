"""Creation of the verified backup of a user's pre-existing configuration."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
import tarfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .errors import BackupIntegrityError, ManifestExistsError
from .filesystem import copy_file, directory_size, ensure_private_dir, hash_file, remove_path
from .manifest import TOOL_VERSION, BackupManifest, backup_exists, manifest_path
from .models import BackedUpFile, BackupMetadata, FileState, FrameworkBackup, FrameworkInfo, ShellConfigInfo
from .verify import require_valid, verify_backup

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class BackupCreator:
    """Copies detected files into ``backup_dir`` and writes the manifest last.

    The original files are never modified. The copies are verified against
    the in-memory manifest before it is saved. If anything goes wrong the
    partially written ``backup_dir`` is removed before the error propagates.
    """

    def __init__(
        self,
        home: Path,
        backup_dir: Path,
        *,
        force: bool = False,
        progress: ProgressCallback | None = None,
        shell_version: str | None = None,
    ) -> None:
        self.home = home
        self.backup_dir = backup_dir
        self.force = force
        self.progress = progress
        self.shell_version = shell_version
        self.states: dict[str, FileState] = {}
        self.previous_backup: Path | None = None

    def create(self, info: ShellConfigInfo) -> BackupManifest:
        if backup_exists(self.backup_dir):
            if not self.force:
                raise ManifestExistsError(manifest_path(self.backup_dir))
            self.previous_backup = _set_backup_aside(self.backup_dir)
            logger.info("Moved previous backup aside to %s", self.previous_backup)
        elif self.backup_dir.exists():
            # No manifest means an interrupted run left a half-formed backup.
            logger.warning("Removing incomplete backup at %s", self.backup_dir)
            remove_path(self.backup_dir)

        logger.info("Creating backup at %s", self.backup_dir)
        try:
            manifest = self._create(info)
        except Exception:
            remove_path(self.backup_dir)
            if self.previous_backup is not None:
                os.replace(self.previous_backup, self.backup_dir)
                self.previous_backup = None
            raise

        logger.info("Backup complete: %d file(s) backed up", len(manifest.files))
        return manifest

    def _create(self, info: ShellConfigInfo) -> BackupManifest:
        ensure_private_dir(self.backup_dir)

        relative_paths = [item.path for item in info.config_files]
        line_counts: dict[str, int] = {}
        if info.history_file is not None:
            relative_paths.append(info.history_file.path)
            line_counts[info.history_file.path.as_posix()] = info.history_file.line_count

        for relative in relative_paths:
            self.states[relative.as_posix()] = FileState.PENDING

        files = [self._backup_file(relative, line_counts.get(relative.as_posix())) for relative in relative_paths]

        framework_backup = None
        if info.framework is not None:
            framework_backup = self._archive_framework(info.framework)

        manifest = BackupManifest(
            metadata=BackupMetadata(
                created_at=datetime.now(timezone.utc).replace(microsecond=0),
                os=platform.system() or "unknown",
                shell_version=self.shell_version or shell_version(),
                tool_version=TOOL_VERSION,
            ),
            files=tuple(files),
            framework_backup=framework_backup,
        )
        require_valid(verify_backup(manifest, self.backup_dir), self.backup_dir)
        manifest.save(manifest_path(self.backup_dir))
        return manifest

    def _backup_file(self, relative: Path, line_count: int | None) -> BackedUpFile:
        source = self.home / relative
        destination = self.backup_dir / relative
        key = relative.as_posix()

        is_symlink = source.is_symlink()
        target = os.readlink(source) if is_symlink else None

        try:
            before = hash_file(source)
            mode = source.stat().st_mode & 0o7777
            copy_file(source, destination, mode=mode)
        except OSError as exc:
            raise BackupIntegrityError(source, f"could not copy: {exc}") from exc
        self.states[key] = FileState.COPIED

        copied = hash_file(destination)
        if copied != before:
            raise BackupIntegrityError(source, "backup copy does not match the source")
        if hash_file(source) != before:
            raise BackupIntegrityError(source, "source changed while it was being backed up")
        self.states[key] = FileState.VERIFIED
        logger.debug("Backed up %s", relative)

        return BackedUpFile(
            path=relative,
            size=destination.stat().st_size,
            permissions=mode,
            checksum=copied,
            line_count=line_count,
            is_symlink=is_symlink,
            symlink_target=target,
        )

    def _archive_framework(self, framework: FrameworkInfo) -> FrameworkBackup:
        archive_name = f"framework-{framework.name}.tar.gz"
        archive = self.backup_dir / archive_name
        try:
            relative_install = framework.install_path.relative_to(self.home)
        except ValueError:
            relative_install = Path(framework.install_path.name)

        logger.info("Archiving %s from %s", framework.name, framework.install_path)
        write_archive(framework.install_path, archive, progress=self.progress)
        os.chmod(archive, 0o600)

        return FrameworkBackup(
            name=framework.name,
            archive=archive_name,
            size=archive.stat().st_size,
            checksum=hash_file(archive),
            install_path=relative_install,
        )


def create_backup(
    info: ShellConfigInfo,
    backup_dir: Path,
    *,
    home: Path,
    force: bool = False,
    progress: ProgressCallback | None = None,
    shell_version: str | None = None,
) -> BackupManifest:
    """Back up everything in ``info`` into ``backup_dir`` and return the manifest."""

    creator = BackupCreator(home, backup_dir, force=force, progress=progress, shell_version=shell_version)
    return creator.create(info)


def write_archive(
    source: Path,
    output: Path,
    *,
    progress: ProgressCallback | None = None,
    exclude: Path | None = None,
) -> None:
    """Stream ``source`` into a gzip-compressed tar at ``output``.

    Members are stored under ``source.name``; symlinks are kept as links.
    """

    total = directory_size(source)
    done = 0

    def _track(member: tarfile.TarInfo) -> tarfile.TarInfo | None:
        nonlocal done
        if exclude is not None and member.name == (Path(source.name) / exclude).as_posix():
            return None
        if member.isfile():
            done += member.size
            if progress is not None:
                progress(done, total)
        return member

    with tarfile.open(output, "w:gz") as archive:
        archive.add(source, arcname=source.name, recursive=True, filter=_track)


def shell_version() -> str:
    """Return ``zsh --version`` output, or ``"unknown"``."""

    executable = shutil.which("zsh")
    if executable is None:
        return "unknown"
    try:
        completed = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=5,
            check=True,
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    return completed.stdout.strip() or "unknown"


def _set_backup_aside(backup_dir: Path) -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    aside = backup_dir.with_name(f"{backup_dir.name}.{stamp}.old")
    os.replace(backup_dir, aside)
    return aside
