from __future__ import annotations

import stat
from pathlib import Path
from typing import Any

import pytest

from zswitch.backup import create_backup
from zswitch.config import Settings
from zswitch.errors import ManifestError, ManifestExistsError, VerificationFailed
from zswitch.manager import ZswitchManager
from zswitch.manifest import BackupManifest, backup_exists
from zswitch.models import CleanRemoval, RestoreOriginal, ShellConfigInfo


def test_init_hands_home_over(settings: Settings, shell_home: Path) -> None:
    history = (shell_home / ".zsh_history").read_bytes()
    manager = ZswitchManager(settings)

    result = manager.init()

    assert result.verification.ok
    assert result.manifest_path == settings.backup_dir / "backup-manifest.toml"
    assert result.home.is_successful
    assert not (shell_home / ".zshrc").exists()
    assert not (shell_home / ".oh-my-zsh").exists()
    assert settings.profiles_dir.is_dir()
    assert settings.shared_history.read_bytes() == history
    assert stat.S_IMODE(settings.shared_history.stat().st_mode) == 0o600
    assert manager.verify().ok
    assert manager.options() == [RestoreOriginal(), CleanRemoval()]


def test_init_without_history_creates_empty_shared_history(settings: Settings) -> None:
    (settings.home / ".zshrc").write_text("# minimal\n")

    ZswitchManager(settings).init()

    assert settings.shared_history.read_bytes() == b""


def test_second_init_keeps_first_backup(settings: Settings, shell_home: Path) -> None:
    manager = ZswitchManager(settings)
    result = manager.init()
    before = result.manifest_path.read_bytes()

    with pytest.raises(ManifestExistsError):
        manager.init()

    assert result.manifest_path.read_bytes() == before


def test_init_aborts_when_backup_fails_verification(
    settings: Settings, shell_home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = (shell_home / ".zshrc").read_bytes()

    def _create_then_corrupt(info: ShellConfigInfo, backup_dir: Path, **kwargs: Any) -> BackupManifest:
        manifest = create_backup(info, backup_dir, **kwargs)
        (backup_dir / ".zshrc").write_text("bit rot")
        return manifest

    monkeypatch.setattr("zswitch.manager.create_backup", _create_then_corrupt)

    with pytest.raises(VerificationFailed):
        ZswitchManager(settings).init()

    assert (shell_home / ".zshrc").read_bytes() == original
    assert (shell_home / ".oh-my-zsh").is_dir()
    assert not backup_exists(settings.backup_dir)
    assert not settings.backup_dir.exists()

    monkeypatch.setattr("zswitch.manager.create_backup", create_backup)
    assert ZswitchManager(settings).init().verification.ok


def test_verify_without_backup(settings: Settings) -> None:
    with pytest.raises(ManifestError):
        ZswitchManager(settings).verify()
