"""Error taxonomy for zswitch."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class ZswitchError(RuntimeError):
    """Raised when zswitch encounters an unrecoverable state."""


class ConfigError(ZswitchError):
    """Raised when the settings file cannot be parsed or validated."""


class ManifestError(ZswitchError):
    """Raised when a backup manifest cannot be read or written."""


class ManifestExistsError(ManifestError):
    """Raised when a backup already exists and overwriting was not forced."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"A backup manifest already exists at '{path}'. Use force to replace it.")
        self.path = path


class BackupIntegrityError(ZswitchError):
    """A file changed while it was being backed up."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"Integrity check failed for '{path}': {message}")
        self.path = path


class VerificationFailed(ZswitchError):
    """A backup does not match its manifest."""

    def __init__(self, paths: Sequence[Path], backup_dir: Path) -> None:
        listed = ", ".join(str(path) for path in paths) or "<none>"
        super().__init__(f"Backup at '{backup_dir}' failed verification for: {listed}")
        self.paths = tuple(paths)
        self.backup_dir = backup_dir


class PlanningError(ZswitchError):
    """A restoration plan cannot be built for the requested option."""


class RestoreUnavailableError(PlanningError):
    """Restoring the original configuration needs a backup manifest."""

    def __init__(self, backup_dir: Path) -> None:
        super().__init__(f"Restore original is unavailable: no backup manifest found in '{backup_dir}'")
        self.backup_dir = backup_dir


class RestorationIOError(ZswitchError):
    """A single file could not be restored."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"Failed to restore '{path}': {message}")
        self.path = path
        self.reason = message


class SnapshotCreationFailed(ZswitchError):
    """The safety snapshot could not be written."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"Failed to create safety snapshot '{path}': {message}")
        self.path = path


class CleanupPartialFailure(ZswitchError):
    """A single managed path could not be removed."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"Failed to remove '{path}': {message}")
        self.path = path
        self.reason = message
