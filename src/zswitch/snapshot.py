"""Safety snapshot of the managed root taken before an uninstall."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path

from .backup import ProgressCallback, write_archive
from .errors import SnapshotCreationFailed

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "zswitch-final-snapshot-"


def snapshot_path(directory: Path, now: datetime | None = None) -> Path:
    """Return ``<directory>/zswitch-final-snapshot-<timestamp>.tar.gz``."""

    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return directory / f"{SNAPSHOT_PREFIX}{stamp}.tar.gz"


def create_final_snapshot(
    managed_root: Path,
    output_path: Path,
    *,
    progress: ProgressCallback | None = None,
) -> int:
    """Archive all of ``managed_root`` into ``output_path`` and return its size.

    The archive is a plain gzip tarball with the managed root's directory name
    as its top-level member. If ``output_path`` lives inside the managed root
    it is left out of the archive.

    Raises:
        SnapshotCreationFailed: the archive could not be written or is empty.
    """

    if not managed_root.is_dir():
        raise SnapshotCreationFailed(output_path, f"managed root '{managed_root}' does not exist")
    if output_path.exists():
        raise SnapshotCreationFailed(output_path, "output file already exists")

    exclude: Path | None = None
    try:
        exclude = output_path.resolve(strict=False).relative_to(managed_root.resolve(strict=False))
    except ValueError:
        exclude = None

    logger.info("Creating safety snapshot of %s at %s", managed_root, output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        write_archive(managed_root, output_path, progress=progress, exclude=exclude)
        os.chmod(output_path, 0o600)
        size = output_path.stat().st_size
    except Exception as exc:
        output_path.unlink(missing_ok=True)
        raise SnapshotCreationFailed(output_path, str(exc)) from exc

    if size <= 0:
        output_path.unlink(missing_ok=True)
        raise SnapshotCreationFailed(output_path, "archive is empty")

    logger.info("Safety snapshot created (%d bytes)", size)
    return size
