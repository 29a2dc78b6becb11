"""Core package for the zswitch project."""

from .backup import create_backup
from .cleanup import cleanup_all
from .cli import app, run
from .config import Settings, load_settings
from .detector import detect
from .errors import (
    BackupIntegrityError,
    CleanupPartialFailure,
    ConfigError,
    ManifestError,
    ManifestExistsError,
    PlanningError,
    RestorationIOError,
    RestoreUnavailableError,
    SnapshotCreationFailed,
    VerificationFailed,
    ZswitchError,
)
from .manager import ZswitchManager
from .manifest import TOOL_VERSION, BackupManifest
from .models import (
    CleanRemoval,
    CleanupConfig,
    CleanupReport,
    HistoryHandling,
    PromoteProfile,
    RestorationOption,
    RestorationPlan,
    RestoreOriginal,
    ShellConfigInfo,
    UninstallResult,
    UninstallState,
    VerificationReport,
)
from .planner import create_restoration_plan
from .restore import execute_plan
from .snapshot import create_final_snapshot
from .uninstall import UninstallOptions, run_uninstall
from .verify import verify_backup

__version__ = TOOL_VERSION

__all__ = [
    "Settings",
    "load_settings",
    "ZswitchManager",
    "ZswitchError",
    "ConfigError",
    "ManifestError",
    "ManifestExistsError",
    "BackupIntegrityError",
    "VerificationFailed",
    "PlanningError",
    "RestoreUnavailableError",
    "RestorationIOError",
    "SnapshotCreationFailed",
    "CleanupPartialFailure",
    "BackupManifest",
    "ShellConfigInfo",
    "VerificationReport",
    "RestoreOriginal",
    "PromoteProfile",
    "CleanRemoval",
    "RestorationOption",
    "RestorationPlan",
    "HistoryHandling",
    "CleanupConfig",
    "CleanupReport",
    "UninstallOptions",
    "UninstallResult",
    "UninstallState",
    "detect",
    "create_backup",
    "verify_backup",
    "create_restoration_plan",
    "execute_plan",
    "create_final_snapshot",
    "cleanup_all",
    "run_uninstall",
    "app",
    "run",
]
