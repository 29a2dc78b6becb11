"""Filesystem helpers for zswitch."""

from __future__ import annotations

import os
import shutil
import stat
from hashlib import sha256
from pathlib import Path
from typing import NamedTuple

CHUNK_SIZE = 1024 * 1024


class FileMetadata(NamedTuple):
    size: int
    mode: int
    is_symlink: bool
    symlink_target: str | None


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def ensure_private_dir(path: Path) -> None:
    """Create ``path`` (and parents) and restrict it to the owner."""

    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, 0o700)


def hash_file(path: Path) -> str:
    """Return the SHA-256 hex digest of the bytes behind ``path``.

    Symlinks are followed, so a link hashes to its target's content.
    """

    hasher = sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def collect_metadata(path: Path) -> FileMetadata:
    """Return size and permission bits of the content behind ``path``."""

    is_symlink = path.is_symlink()
    target = os.readlink(path) if is_symlink else None
    stat_result = path.stat()
    return FileMetadata(
        size=stat_result.st_size,
        mode=stat.S_IMODE(stat_result.st_mode),
        is_symlink=is_symlink,
        symlink_target=target,
    )


def copy_file(source: Path, destination: Path, *, mode: int | None = None) -> None:
    """Copy the bytes behind ``source`` into ``destination``.

    Permission bits are applied explicitly with ``chmod`` so the result does
    not depend on the process umask.
    """

    ensure_parent(destination)
    if destination.is_symlink() or (destination.exists() and not destination.is_dir()):
        destination.unlink()
    shutil.copyfile(source, destination, follow_symlinks=True)
    if mode is None:
        mode = stat.S_IMODE(source.stat().st_mode)
    os.chmod(destination, mode)


def make_writable(path: Path) -> None:
    """Add owner write permission to a read-only regular file."""

    if path.is_symlink():
        return
    current = stat.S_IMODE(path.stat().st_mode)
    if not current & stat.S_IWUSR:
        os.chmod(path, current | stat.S_IWUSR)


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not path.exists() and not path.is_symlink():
        return
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    shutil.rmtree(path)


def directory_size(path: Path) -> int:
    """Sum of regular file sizes below ``path`` without following links."""

    if path.is_file() and not path.is_symlink():
        return path.stat().st_size

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            candidate = Path(dirpath) / name
            if candidate.is_symlink():
                continue
            try:
                total += candidate.stat().st_size
            except OSError:
                continue
    return total


def count_lines(path: Path) -> int:
    """Number of newline-terminated lines, counting a trailing partial line."""

    count = 0
    last = b"\n"
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            count += chunk.count(b"\n")
            last = chunk[-1:]
    if last != b"\n":
        count += 1
    return count


def unique_sibling(path: Path, suffix: str) -> Path:
    """Return ``path`` + ``suffix`` (or a numbered variant) that does not exist."""

    candidate = path.with_name(f"{path.name}{suffix}")
    counter = 1
    while candidate.exists() or candidate.is_symlink():
        counter += 1
        candidate = path.with_name(f"{path.name}{suffix}{counter}")
    return candidate
