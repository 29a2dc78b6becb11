"""Independent verification of a backup against its manifest."""

from __future__ import annotations

import logging
import stat
from pathlib import Path

from .errors import VerificationFailed
from .filesystem import hash_file
from .manifest import BackupManifest
from .models import VerificationIssue, VerificationIssueType, VerificationReport

logger = logging.getLogger(__name__)


def verify_backup(manifest: BackupManifest, backup_dir: Path) -> VerificationReport:
    """Re-check every manifest entry in ``backup_dir``.

    Missing files, size and checksum differences are fatal; a permission
    difference is reported but does not make the backup invalid.
    """

    issues: list[VerificationIssue] = []
    all_present = True
    checksums_valid = True

    entries: list[tuple[Path, int, str, int | None]] = [
        (entry.path, entry.size, entry.checksum, entry.permissions) for entry in manifest.files
    ]
    if manifest.framework_backup is not None:
        framework = manifest.framework_backup
        entries.append((Path(framework.archive), framework.size, framework.checksum, None))

    for relative, size, checksum, permissions in entries:
        candidate = backup_dir / relative

        if not candidate.is_file() or candidate.is_symlink():
            all_present = False
            checksums_valid = False
            issues.append(
                VerificationIssue(
                    file_path=relative,
                    issue_type=VerificationIssueType.MISSING,
                    message=f"'{relative}' is missing from the backup",
                )
            )
            continue

        stat_result = candidate.stat()
        if stat_result.st_size != size:
            checksums_valid = False
            issues.append(
                VerificationIssue(
                    file_path=relative,
                    issue_type=VerificationIssueType.SIZE_MISMATCH,
                    message=f"expected {size} bytes, found {stat_result.st_size}",
                )
            )
            continue

        actual = hash_file(candidate)
        if actual != checksum:
            checksums_valid = False
            issues.append(
                VerificationIssue(
                    file_path=relative,
                    issue_type=VerificationIssueType.CHECKSUM_MISMATCH,
                    message=f"expected checksum {checksum}, found {actual}",
                )
            )
            continue

        mode = stat.S_IMODE(stat_result.st_mode)
        if permissions is not None and mode != permissions:
            issues.append(
                VerificationIssue(
                    file_path=relative,
                    issue_type=VerificationIssueType.PERMISSION_MISMATCH,
                    message=f"expected mode {permissions:o}, found {mode:o}",
                )
            )

    report = VerificationReport(
        all_files_present=all_present,
        checksums_valid=checksums_valid,
        issues=tuple(issues),
    )
    if report.ok:
        logger.info("Backup at %s verified (%d entries)", backup_dir, len(entries))
    else:
        logger.warning("Backup at %s failed verification: %d issue(s)", backup_dir, len(report.fatal_issues))
    return report


def require_valid(report: VerificationReport, backup_dir: Path) -> None:
    """Raise ``VerificationFailed`` unless ``report`` allows destructive steps."""

    if not report.ok:
        raise VerificationFailed([issue.file_path for issue in report.fatal_issues], backup_dir)
