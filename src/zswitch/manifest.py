"""Backup manifest persistence for zswitch."""

from __future__ import annotations

import os
import tempfile
import tomllib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from tomli_w import dump as toml_dump

from .errors import ManifestError, ManifestExistsError
from .models import BackedUpFile, BackupMetadata, FrameworkBackup

TOOL_VERSION = "0.1.0"
MANIFEST_FILENAME = "backup-manifest.toml"


def manifest_path(backup_dir: Path) -> Path:
    return backup_dir / MANIFEST_FILENAME


def backup_exists(backup_dir: Path) -> bool:
    """Return ``True`` when ``backup_dir`` holds a completed backup."""

    return manifest_path(backup_dir).is_file()


@dataclass(frozen=True, slots=True)
class BackupManifest:
    """The persisted record of what was backed up and how to verify it."""

    metadata: BackupMetadata
    files: tuple[BackedUpFile, ...] = ()
    framework_backup: FrameworkBackup | None = None

    def get(self, relative_path: Path | str) -> BackedUpFile | None:
        wanted = Path(relative_path).as_posix()
        for entry in self.files:
            if entry.path.as_posix() == wanted:
                return entry
        return None

    @classmethod
    def load(cls, path: Path) -> "BackupManifest":
        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except FileNotFoundError as exc:
            raise ManifestError(f"Backup manifest '{path}' does not exist") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ManifestError(f"Backup manifest '{path}' is not valid TOML: {exc}") from exc

        try:
            return cls.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ManifestError(f"Backup manifest '{path}' is missing or has invalid fields: {exc}") from exc

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BackupManifest":
        # Unknown keys are ignored so newer manifests stay readable.
        meta = data["metadata"]
        created_at = meta["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        metadata = BackupMetadata(
            created_at=created_at,
            os=str(meta.get("os", "unknown")),
            shell_version=str(meta.get("shell_version", "unknown")),
            tool_version=str(meta.get("tool_version", "unknown")),
        )

        files = tuple(
            BackedUpFile(
                path=Path(item["path"]),
                size=int(item["size"]),
                permissions=int(item["permissions"]),
                checksum=str(item["checksum"]),
                line_count=item.get("line_count"),
                is_symlink=bool(item.get("is_symlink", False)),
                symlink_target=item.get("symlink_target"),
            )
            for item in data.get("files", [])
        )

        framework_backup = None
        raw_framework = data.get("framework_backup")
        if raw_framework:
            framework_backup = FrameworkBackup(
                name=str(raw_framework["name"]),
                archive=str(raw_framework["archive"]),
                size=int(raw_framework["size"]),
                checksum=str(raw_framework["checksum"]),
                install_path=Path(raw_framework["install_path"]),
            )

        return cls(metadata=metadata, files=files, framework_backup=framework_backup)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "metadata": {
                "created_at": self.metadata.created_at,
                "os": self.metadata.os,
                "shell_version": self.metadata.shell_version,
                "tool_version": self.metadata.tool_version,
            },
        }
        if self.framework_backup is not None:
            payload["framework_backup"] = {
                "name": self.framework_backup.name,
                "archive": self.framework_backup.archive,
                "size": self.framework_backup.size,
                "checksum": self.framework_backup.checksum,
                "install_path": self.framework_backup.install_path.as_posix(),
            }
        payload["files"] = [self._file_to_dict(entry) for entry in self.files]
        return payload

    def save(self, path: Path, *, force: bool = False) -> Path | None:
        """Write the manifest to ``path``.

        An existing manifest is never replaced silently. With ``force`` it is
        renamed aside first and the new location of the old manifest is
        returned.
        """

        moved_aside: Path | None = None
        if path.exists():
            if not force:
                raise ManifestExistsError(path)
            moved_aside = set_aside(path)

        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.tmp-", dir=path.parent)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                toml_dump(self.to_dict(), handle)
            os.chmod(temp_path, 0o600)
            os.replace(temp_path, path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            if moved_aside is not None:
                os.replace(moved_aside, path)
            raise
        return moved_aside

    @staticmethod
    def _file_to_dict(entry: BackedUpFile) -> dict[str, object]:
        payload: dict[str, object] = {
            "path": entry.path.as_posix(),
            "size": entry.size,
            "permissions": entry.permissions,
            "checksum": entry.checksum,
            "is_symlink": entry.is_symlink,
        }
        if entry.line_count is not None:
            payload["line_count"] = entry.line_count
        if entry.symlink_target is not None:
            payload["symlink_target"] = entry.symlink_target
        return payload


def set_aside(path: Path) -> Path:
    """Rename an existing manifest to a timestamped ``.old`` sibling."""

    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    aside = path.with_name(f"{path.name}.{stamp}.old")
    os.replace(path, aside)
    return aside


def load_manifest(backup_dir: Path) -> BackupManifest | None:
    """Load the manifest in ``backup_dir`` if one exists."""

    path = manifest_path(backup_dir)
    if not path.is_file():
        return None
    return BackupManifest.load(path)
