from __future__ import annotations

import stat
import tarfile
from pathlib import Path

import pytest

from zswitch.backup import BackupCreator, create_backup
from zswitch.config import Settings
from zswitch.detector import detect
from zswitch.filesystem import copy_file
from zswitch.errors import BackupIntegrityError, ManifestExistsError, VerificationFailed
from zswitch.manifest import BackupManifest, backup_exists, manifest_path
from zswitch.models import FileState, VerificationReport
from zswitch.verify import verify_backup


def _snapshot_home(home: Path) -> dict[str, bytes]:
    return {name: (home / name).read_bytes() for name in (".zshrc", ".zshenv", ".zsh_history")}


def test_backup_of_typical_home(settings: Settings, shell_home: Path) -> None:
    before = _snapshot_home(shell_home)
    creator = BackupCreator(shell_home, settings.backup_dir)

    manifest = creator.create(detect(shell_home))

    assert [entry.path for entry in manifest.files] == [Path(".zshrc"), Path(".zshenv"), Path(".zsh_history")]
    assert manifest.get(".zsh_history").line_count == 500
    assert manifest.framework_backup is not None
    assert manifest.framework_backup.install_path == Path(".oh-my-zsh")
    assert manifest.metadata.shell_version.startswith("zsh")
    assert set(creator.states.values()) == {FileState.VERIFIED}

    for entry in manifest.files:
        assert (settings.backup_dir / entry.path).read_bytes() == before[entry.path.as_posix()]
    assert _snapshot_home(shell_home) == before
    assert (shell_home / ".oh-my-zsh").is_dir()

    assert stat.S_IMODE(settings.backup_dir.stat().st_mode) == 0o700
    assert stat.S_IMODE(manifest_path(settings.backup_dir).stat().st_mode) == 0o600
    assert BackupManifest.load(manifest_path(settings.backup_dir)) == manifest
    assert verify_backup(manifest, settings.backup_dir).ok


def test_framework_archive_contents(settings: Settings, manifest: BackupManifest) -> None:
    archive = settings.backup_dir / manifest.framework_backup.archive

    with tarfile.open(archive, "r:gz") as handle:
        names = set(handle.getnames())

    assert ".oh-my-zsh/oh-my-zsh.sh" in names
    assert ".oh-my-zsh/plugins/git/git.plugin.zsh" in names
    assert stat.S_IMODE(archive.stat().st_mode) == 0o600


def test_permissions_and_symlinks_are_recorded(settings: Settings, fake_home: Path) -> None:
    (fake_home / ".zprofile").write_text("umask 077\n")
    (fake_home / ".zprofile").chmod(0o600)
    dotfiles = fake_home / "dotfiles"
    dotfiles.mkdir()
    (dotfiles / "zshrc").write_text("bindkey -e\n")
    (fake_home / ".zshrc").symlink_to("dotfiles/zshrc")

    manifest = create_backup(detect(fake_home), settings.backup_dir, home=fake_home)

    zprofile = manifest.get(".zprofile")
    assert zprofile.permissions == 0o600
    assert stat.S_IMODE((settings.backup_dir / ".zprofile").stat().st_mode) == 0o600

    zshrc = manifest.get(".zshrc")
    assert zshrc.is_symlink is True
    assert zshrc.symlink_target == "dotfiles/zshrc"
    copied = settings.backup_dir / ".zshrc"
    assert not copied.is_symlink()
    assert copied.read_text() == "bindkey -e\n"


def test_integrity_failure_leaves_no_backup(
    settings: Settings, shell_home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    before = _snapshot_home(shell_home)

    def _corrupting_copy(source: Path, destination: Path, *, mode: int | None = None) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"corrupted")

    monkeypatch.setattr("zswitch.backup.copy_file", _corrupting_copy)

    with pytest.raises(BackupIntegrityError):
        create_backup(detect(shell_home), settings.backup_dir, home=shell_home)

    assert not settings.backup_dir.exists()
    assert _snapshot_home(shell_home) == before


def test_backup_failing_verification_is_rolled_back(
    settings: Settings, shell_home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _verify_after_bit_rot(manifest: BackupManifest, backup_dir: Path) -> VerificationReport:
        (backup_dir / ".zshenv").write_text("bit rot")
        return verify_backup(manifest, backup_dir)

    monkeypatch.setattr("zswitch.backup.verify_backup", _verify_after_bit_rot)

    with pytest.raises(VerificationFailed):
        create_backup(detect(shell_home), settings.backup_dir, home=shell_home)

    assert not backup_exists(settings.backup_dir)
    assert not settings.backup_dir.exists()


def test_source_changed_during_backup_is_rejected(
    settings: Settings, shell_home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _copy_then_edit_source(source: Path, destination: Path, *, mode: int | None = None) -> None:
        copy_file(source, destination, mode=mode)
        if source.name == ".zshrc":
            source.write_text("edited by another shell\n")

    monkeypatch.setattr("zswitch.backup.copy_file", _copy_then_edit_source)

    with pytest.raises(BackupIntegrityError, match="source changed"):
        create_backup(detect(shell_home), settings.backup_dir, home=shell_home)

    assert not settings.backup_dir.exists()
    assert (shell_home / ".zshrc").read_text() == "edited by another shell\n"


def test_existing_backup_is_not_replaced(settings: Settings, shell_home: Path, manifest: BackupManifest) -> None:
    path = manifest_path(settings.backup_dir)
    before = path.read_bytes()
    (shell_home / ".zshrc").write_text("changed after backup\n")

    with pytest.raises(ManifestExistsError):
        create_backup(detect(shell_home), settings.backup_dir, home=shell_home)

    assert path.read_bytes() == before
    assert (settings.backup_dir / ".zshrc").read_text() != "changed after backup\n"


def test_forced_backup_sets_previous_aside(settings: Settings, shell_home: Path, manifest: BackupManifest) -> None:
    before = manifest_path(settings.backup_dir).read_bytes()
    (shell_home / ".zshrc").write_text("second generation\n")
    creator = BackupCreator(shell_home, settings.backup_dir, force=True)

    creator.create(detect(shell_home))

    assert creator.previous_backup is not None
    assert manifest_path(creator.previous_backup).read_bytes() == before
    assert (settings.backup_dir / ".zshrc").read_text() == "second generation\n"


def test_failed_forced_backup_restores_previous(
    settings: Settings, shell_home: Path, manifest: BackupManifest, monkeypatch: pytest.MonkeyPatch
) -> None:
    before = manifest_path(settings.backup_dir).read_bytes()

    def _failing_copy(source: Path, destination: Path, *, mode: int | None = None) -> None:
        raise OSError("disk full")

    monkeypatch.setattr("zswitch.backup.copy_file", _failing_copy)

    with pytest.raises(BackupIntegrityError):
        create_backup(detect(shell_home), settings.backup_dir, home=shell_home, force=True)

    assert manifest_path(settings.backup_dir).read_bytes() == before
    assert sorted(path.name for path in settings.backups_dir.iterdir()) == ["pre-zswitch"]


def test_incomplete_backup_is_replaced(settings: Settings, shell_home: Path) -> None:
    settings.backup_dir.mkdir(parents=True)
    (settings.backup_dir / ".zshrc").write_text("half written")

    manifest = create_backup(detect(shell_home), settings.backup_dir, home=shell_home)

    assert verify_backup(manifest, settings.backup_dir).ok


def test_progress_reports_archived_bytes(settings: Settings, shell_home: Path) -> None:
    calls: list[tuple[int, int]] = []

    create_backup(
        detect(shell_home),
        settings.backup_dir,
        home=shell_home,
        progress=lambda done, total: calls.append((done, total)),
    )

    assert calls
    done, total = calls[-1]
    assert done == total > 0
