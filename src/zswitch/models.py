"""Shared models and enums for zswitch."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Union

from .errors import CleanupPartialFailure, RestorationIOError


@dataclass(frozen=True, slots=True)
class ConfigFile:
    """A shell configuration file found in the home directory."""

    path: Path
    size: int
    permissions: int
    is_symlink: bool = False
    target: Path | None = None


@dataclass(frozen=True, slots=True)
class FrameworkInfo:
    """An installed zsh framework recognised by its directory name."""

    name: str
    install_path: Path
    size: int


@dataclass(frozen=True, slots=True)
class HistoryFile:
    path: Path
    size: int
    line_count: int


@dataclass(frozen=True, slots=True)
class DetectionPartial:
    """Non-fatal diagnostic for a file that detection had to skip."""

    path: Path
    reason: str


@dataclass(frozen=True, slots=True)
class ShellConfigInfo:
    """Everything detection found in a home directory."""

    config_files: tuple[ConfigFile, ...] = ()
    history_file: HistoryFile | None = None
    framework: FrameworkInfo | None = None
    total_size: int = 0
    diagnostics: tuple[DetectionPartial, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.diagnostics)


@dataclass(frozen=True, slots=True)
class BackedUpFile:
    """Recorded metadata about a file copied into the backup directory."""

    path: Path
    size: int
    permissions: int
    checksum: str
    line_count: int | None = None
    is_symlink: bool = False
    symlink_target: str | None = None


@dataclass(frozen=True, slots=True)
class FrameworkBackup:
    name: str
    archive: str
    size: int
    checksum: str
    install_path: Path


@dataclass(frozen=True, slots=True)
class BackupMetadata:
    created_at: datetime
    os: str
    shell_version: str
    tool_version: str


class FileState(str, Enum):
    """Progress of a single file through backup and home cleanup."""

    PENDING = "pending"
    COPIED = "copied"
    VERIFIED = "verified"
    COMMITTED = "committed"


class VerificationIssueType(str, Enum):
    MISSING = "missing"
    SIZE_MISMATCH = "size_mismatch"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    PERMISSION_MISMATCH = "permission_mismatch"


FATAL_ISSUE_TYPES = frozenset(
    {
        VerificationIssueType.MISSING,
        VerificationIssueType.SIZE_MISMATCH,
        VerificationIssueType.CHECKSUM_MISMATCH,
    }
)


@dataclass(frozen=True, slots=True)
class VerificationIssue:
    file_path: Path
    issue_type: VerificationIssueType
    message: str


@dataclass(frozen=True, slots=True)
class VerificationReport:
    """Outcome of re-checking a backup against its manifest."""

    all_files_present: bool
    checksums_valid: bool
    issues: tuple[VerificationIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return self.all_files_present and self.checksums_valid

    @property
    def fatal_issues(self) -> tuple[VerificationIssue, ...]:
        return tuple(issue for issue in self.issues if issue.issue_type in FATAL_ISSUE_TYPES)


@dataclass(frozen=True, slots=True)
class HomeCleanupReport:
    """Result of removing backed-up originals from the home directory."""

    removed: tuple[Path, ...]
    integration_file: Path | None
    states: dict[str, FileState] = field(default_factory=dict)
    errors: tuple[tuple[Path, str], ...] = ()

    @property
    def is_successful(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class RestoreOriginal:
    """Put the pre-existing configuration back from the backup."""


@dataclass(frozen=True, slots=True)
class PromoteProfile:
    """Make a managed profile the new root configuration."""

    profile: str


@dataclass(frozen=True, slots=True)
class CleanRemoval:
    """Remove everything without restoring any configuration."""


RestorationOption = Union[RestoreOriginal, PromoteProfile, CleanRemoval]


class OperationKind(str, Enum):
    COPY = "copy"
    MOVE = "move"
    RESTORE_SYMLINK = "restore_symlink"


class HistoryHandling(str, Enum):
    RESTORE = "restore"
    MERGE = "merge"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class FileOperation:
    """A single file-level step of a restoration plan."""

    source: Path
    destination: Path
    operation: OperationKind
    permissions: int | None = None
    checksum: str | None = None
    symlink_target: str | None = None


@dataclass(frozen=True, slots=True)
class RestorationPlan:
    """Concrete, inspectable set of operations for a restoration option.

    ``files_to_remove`` is a preview for confirmation prompts: it lists what
    cleanup will delete, but the executor never reads it. The removal itself
    is done by :func:`zswitch.cleanup.cleanup_all` from a ``CleanupConfig``.
    """

    option: RestorationOption
    files_to_restore: tuple[FileOperation, ...]
    files_to_remove: tuple[Path, ...]
    backup_source: Path
    history_handling: HistoryHandling
    history_sources: tuple[Path, ...] = ()
    history_destination: Path | None = None
    framework_archive: Path | None = None
    framework_destination: Path | None = None


@dataclass(frozen=True, slots=True)
class RestorationReport:
    restored: tuple[Path, ...]
    preserved: tuple[tuple[Path, Path], ...] = ()
    history: Path | None = None
    errors: tuple[RestorationIOError, ...] = ()

    @property
    def is_successful(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class ProfileInfo:
    """A managed profile as seen by the restoration planner."""

    name: str
    path: Path
    framework: str
    is_active: bool = False
    config_files: tuple[Path, ...] = ()
    history_file: Path | None = None


@dataclass(frozen=True, slots=True)
class CleanupConfig:
    managed_root: Path
    home: Path
    integration_file: Path
    keep_backups: bool = False


@dataclass(frozen=True, slots=True)
class CleanupReport:
    """Paths removed during cleanup and the ones that could not be."""

    removed_files: tuple[Path, ...] = ()
    removed_dirs: tuple[Path, ...] = ()
    preserved: tuple[Path, ...] = ()
    errors: tuple[CleanupPartialFailure, ...] = ()

    @property
    def is_successful(self) -> bool:
        return not self.errors

    @property
    def total_removed(self) -> int:
        return len(self.removed_files) + len(self.removed_dirs)


class UninstallState(str, Enum):
    VALIDATING = "validating"
    PLANNING_RESTORATION = "planning_restoration"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SNAPSHOT_CREATED = "snapshot_created"
    RESTORING = "restoring"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class UninstallResult:
    """Final state of an uninstall run and everything it produced."""

    state: UninstallState
    trace: tuple[UninstallState, ...]
    plan: RestorationPlan | None = None
    snapshot_path: Path | None = None
    snapshot_size: int | None = None
    restoration: RestorationReport | None = None
    cleanup: CleanupReport | None = None
    error: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.state is UninstallState.DONE


@dataclass(frozen=True, slots=True)
class InitResult:
    """Everything produced by the first-run backup and home cleanup."""

    detection: ShellConfigInfo
    manifest_path: Path
    verification: VerificationReport
    home: HomeCleanupReport
