from __future__ import annotations

from pathlib import Path

import pytest

from zswitch.config import Settings
from zswitch.errors import VerificationFailed
from zswitch.manifest import BackupManifest
from zswitch.models import VerificationIssueType
from zswitch.verify import require_valid, verify_backup


def _flip_first_byte(path: Path) -> None:
    data = bytearray(path.read_bytes())
    data[0] ^= 0x01
    path.write_bytes(bytes(data))


def test_clean_backup_verifies(settings: Settings, manifest: BackupManifest) -> None:
    report = verify_backup(manifest, settings.backup_dir)

    assert report.ok
    assert report.issues == ()
    require_valid(report, settings.backup_dir)


def test_single_tampered_byte_is_the_only_issue(settings: Settings, manifest: BackupManifest) -> None:
    _flip_first_byte(settings.backup_dir / ".zshrc")

    report = verify_backup(manifest, settings.backup_dir)

    assert report.all_files_present is True
    assert report.checksums_valid is False
    assert [(issue.file_path, issue.issue_type) for issue in report.issues] == [
        (Path(".zshrc"), VerificationIssueType.CHECKSUM_MISMATCH)
    ]
    with pytest.raises(VerificationFailed) as excinfo:
        require_valid(report, settings.backup_dir)
    assert excinfo.value.paths == (Path(".zshrc"),)


def test_missing_and_truncated_files(settings: Settings, manifest: BackupManifest) -> None:
    (settings.backup_dir / ".zshenv").unlink()
    with (settings.backup_dir / ".zsh_history").open("a") as handle:
        handle.write("extra\n")

    report = verify_backup(manifest, settings.backup_dir)

    assert report.all_files_present is False
    assert report.checksums_valid is False
    issues = {issue.file_path: issue.issue_type for issue in report.issues}
    assert issues == {
        Path(".zshenv"): VerificationIssueType.MISSING,
        Path(".zsh_history"): VerificationIssueType.SIZE_MISMATCH,
    }


def test_framework_archive_is_checked(settings: Settings, manifest: BackupManifest) -> None:
    archive = settings.backup_dir / manifest.framework_backup.archive
    _flip_first_byte(archive)

    report = verify_backup(manifest, settings.backup_dir)

    assert not report.ok
    assert [issue.file_path for issue in report.fatal_issues] == [Path(manifest.framework_backup.archive)]


def test_permission_mismatch_is_not_fatal(settings: Settings, manifest: BackupManifest) -> None:
    recorded = manifest.get(".zshrc").permissions
    (settings.backup_dir / ".zshrc").chmod(0o600 if recorded != 0o600 else 0o640)

    report = verify_backup(manifest, settings.backup_dir)

    assert report.ok
    assert report.fatal_issues == ()
    assert [issue.issue_type for issue in report.issues] == [VerificationIssueType.PERMISSION_MISMATCH]
    require_valid(report, settings.backup_dir)
