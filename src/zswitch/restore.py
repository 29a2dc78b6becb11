"""Execution of restoration plans."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path

from .errors import RestorationIOError
from .filesystem import ensure_parent, hash_file, remove_path, unique_sibling
from .home import is_generated_integration
from .models import FileOperation, HistoryHandling, OperationKind, RestorationPlan, RestorationReport

logger = logging.getLogger(__name__)

CONFLICT_SUFFIX = ".zswitch-backup"


class PlanExecutor:
    """Applies a :class:`RestorationPlan` to the home directory.

    Each operation is independent: a failure is recorded and the remaining
    operations still run, since a safety snapshot already exists.
    """

    def __init__(self, plan: RestorationPlan) -> None:
        self.plan = plan
        self._restored: list[Path] = []
        self._preserved: list[tuple[Path, Path]] = []
        self._errors: list[RestorationIOError] = []

    def run(self) -> RestorationReport:
        for operation in self.plan.files_to_restore:
            try:
                self._apply(operation)
            except RestorationIOError as exc:
                logger.warning("%s", exc)
                self._errors.append(exc)
            except OSError as exc:
                logger.warning("Failed to restore %s: %s", operation.destination, exc)
                self._errors.append(RestorationIOError(operation.destination, str(exc)))
            else:
                self._restored.append(operation.destination)

        history = self._restore_history()
        self._restore_framework()

        return RestorationReport(
            restored=tuple(self._restored),
            preserved=tuple(self._preserved),
            history=history,
            errors=tuple(self._errors),
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _apply(self, operation: FileOperation) -> None:
        if not operation.source.is_file():
            raise RestorationIOError(operation.destination, f"source '{operation.source}' is missing")

        expected = operation.checksum or hash_file(operation.source)
        self._preserve_conflict(operation.destination, expected)

        if operation.operation is OperationKind.RESTORE_SYMLINK and self._relink(operation, expected):
            logger.info("Restored symlink %s -> %s", operation.destination, operation.symlink_target)
            return

        _copy_atomic(operation.source, operation.destination, operation.permissions)
        actual = hash_file(operation.destination)
        if actual != expected:
            remove_path(operation.destination)
            raise RestorationIOError(operation.destination, "checksum mismatch after copy")

        if operation.operation is OperationKind.MOVE:
            operation.source.unlink()
        logger.info("Restored %s", operation.destination)

    def _relink(self, operation: FileOperation, expected: str) -> bool:
        """Recreate the original symlink if its target still has the backed-up content."""

        if operation.symlink_target is None:
            return False
        target = Path(operation.symlink_target)
        resolved = target if target.is_absolute() else operation.destination.parent / target
        if not resolved.is_file() or hash_file(resolved) != expected:
            logger.info("Symlink target %s changed or vanished; restoring content instead", resolved)
            return False

        remove_path(operation.destination)
        ensure_parent(operation.destination)
        operation.destination.symlink_to(target)
        return True

    def _preserve_conflict(self, destination: Path, expected: str) -> None:
        if not destination.exists() and not destination.is_symlink():
            return
        if destination.is_dir() and not destination.is_symlink():
            raise RestorationIOError(destination, "a directory is in the way")
        if is_generated_integration(destination):
            return
        if destination.is_file() and hash_file(destination) == expected:
            return

        aside = unique_sibling(destination, CONFLICT_SUFFIX)
        os.replace(destination, aside)
        self._preserved.append((destination, aside))
        logger.info("Preserved existing %s as %s", destination, aside)

    def _restore_history(self) -> Path | None:
        plan = self.plan
        destination = plan.history_destination
        if plan.history_handling is HistoryHandling.SKIP or destination is None or not plan.history_sources:
            return None

        try:
            if plan.history_handling is HistoryHandling.RESTORE:
                _copy_atomic(plan.history_sources[-1], destination, 0o600)
            else:
                merge_history([destination, *plan.history_sources], destination)
        except OSError as exc:
            logger.warning("Failed to restore history into %s: %s", destination, exc)
            self._errors.append(RestorationIOError(destination, str(exc)))
            return None

        logger.info("History %s into %s", plan.history_handling.value, destination)
        return destination

    def _restore_framework(self) -> None:
        archive = self.plan.framework_archive
        destination = self.plan.framework_destination
        if archive is None or destination is None:
            return

        try:
            if destination.exists() or destination.is_symlink():
                aside = unique_sibling(destination, CONFLICT_SUFFIX)
                os.replace(destination, aside)
                self._preserved.append((destination, aside))
            destination.parent.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive, "r:gz") as handle:
                handle.extractall(destination.parent, filter="data")
        except (OSError, tarfile.TarError) as exc:
            logger.warning("Failed to restore framework into %s: %s", destination, exc)
            self._errors.append(RestorationIOError(destination, str(exc)))
            return

        self._restored.append(destination)
        logger.info("Restored framework directory %s", destination)


def execute_plan(plan: RestorationPlan) -> RestorationReport:
    """Apply ``plan`` and report what was restored and what failed."""

    return PlanExecutor(plan).run()


def merge_history(sources: list[Path], destination: Path) -> int:
    """Append ``sources`` in order, drop repeated lines, write ``destination``.

    The first occurrence of a line wins. Returns the number of lines written.
    """

    seen: set[bytes] = set()
    merged: list[bytes] = []
    for source in sources:
        if not source.is_file():
            continue
        for line in source.read_bytes().splitlines():
            if line in seen:
                continue
            seen.add(line)
            merged.append(line)

    payload = b"\n".join(merged) + (b"\n" if merged else b"")
    ensure_parent(destination)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.zswitch-tmp-", dir=destination.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.chmod(temp_path, 0o600)
        os.replace(temp_path, destination)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
    return len(merged)


def _copy_atomic(source: Path, destination: Path, mode: int | None) -> None:
    if destination.is_symlink():
        destination.unlink()
    ensure_parent(destination)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.zswitch-tmp-", dir=destination.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copyfile(source, temp_path)
        os.chmod(temp_path, mode if mode is not None else source.stat().st_mode & 0o7777)
        os.replace(temp_path, destination)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
