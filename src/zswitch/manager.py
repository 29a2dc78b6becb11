"""High level orchestration for zswitch operations."""

from __future__ import annotations

import logging
import os

from .backup import ProgressCallback, create_backup
from .config import Settings
from .detector import detect
from .errors import ManifestError, VerificationFailed
from .filesystem import copy_file, remove_path
from .home import move_originals, render_integration
from .manifest import BackupManifest, load_manifest, manifest_path
from .models import (
    InitResult,
    ProfileInfo,
    RestorationOption,
    RestorationPlan,
    ShellConfigInfo,
    UninstallResult,
    VerificationReport,
)
from .planner import available_options, create_restoration_plan
from .profiles import ProfileStore
from .uninstall import UninstallOptions, run_uninstall
from .verify import require_valid, verify_backup

logger = logging.getLogger(__name__)


class ZswitchManager:
    """Entry points used by the command-line layer.

    Every call reads the on-disk manifest fresh; nothing is cached between
    operations.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.profiles = ProfileStore(settings)

    def detect(self) -> ShellConfigInfo:
        return detect(self.settings.home)

    def init(self, *, force: bool = False, progress: ProgressCallback | None = None) -> InitResult:
        """Back up the current configuration, verify it, then clear it from home."""

        settings = self.settings
        info = self.detect()
        for diagnostic in info.diagnostics:
            logger.warning("Not backed up: %s (%s)", diagnostic.path, diagnostic.reason)

        manifest = create_backup(info, settings.backup_dir, home=settings.home, force=force, progress=progress)
        report = verify_backup(manifest, settings.backup_dir)
        try:
            require_valid(report, settings.backup_dir)
        except VerificationFailed:
            # A manifest must never outlive the backup it describes.
            logger.error("Removing unverifiable backup at %s", settings.backup_dir)
            remove_path(settings.backup_dir)
            raise

        self._prepare_managed_root(manifest)
        home_report = move_originals(
            manifest,
            report,
            home=settings.home,
            backup_dir=settings.backup_dir,
            integration_file=settings.integration_file,
            integration_content=render_integration(settings),
        )

        return InitResult(
            detection=info,
            manifest_path=manifest_path(settings.backup_dir),
            verification=report,
            home=home_report,
        )

    def manifest(self) -> BackupManifest | None:
        return load_manifest(self.settings.backup_dir)

    def verify(self) -> VerificationReport:
        manifest = self.manifest()
        if manifest is None:
            raise ManifestError(f"No backup manifest found in '{self.settings.backup_dir}'")
        return verify_backup(manifest, self.settings.backup_dir)

    def list_profiles(self) -> list[ProfileInfo]:
        return self.profiles.list_profiles()

    def options(self) -> list[RestorationOption]:
        return available_options(self.manifest(), self.list_profiles())

    def plan(self, option: RestorationOption) -> RestorationPlan:
        return create_restoration_plan(option, self.manifest(), self.list_profiles(), settings=self.settings)

    def uninstall(self, option: RestorationOption, options: UninstallOptions | None = None) -> UninstallResult:
        return run_uninstall(option, options, settings=self.settings, profiles=self.profiles)

    def _prepare_managed_root(self, manifest: BackupManifest) -> None:
        settings = self.settings
        settings.profiles_dir.mkdir(parents=True, exist_ok=True)
        shared = settings.shared_history
        shared.parent.mkdir(parents=True, exist_ok=True)
        if shared.exists():
            return

        history = manifest.get(shared.name)
        if settings.shared_history_enabled and history is not None:
            copy_file(settings.backup_dir / history.path, shared, mode=0o600)
            logger.info("Seeded shared history from the backup")
        else:
            shared.touch()
            os.chmod(shared, 0o600)
