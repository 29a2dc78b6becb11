"""Detection of existing shell configuration in a home directory."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from .filesystem import collect_metadata, count_lines, directory_size
from .models import ConfigFile, DetectionPartial, FrameworkInfo, HistoryFile, ShellConfigInfo

logger = logging.getLogger(__name__)

CONFIG_FILENAMES: tuple[str, ...] = (".zshrc", ".zshenv", ".zprofile", ".zlogin", ".zlogout")
HISTORY_FILENAME = ".zsh_history"

# Install directory (relative to home) -> framework name, in preference order.
FRAMEWORK_DIRECTORIES: tuple[tuple[str, str], ...] = (
    (".oh-my-zsh", "oh-my-zsh"),
    (".zim", "zimfw"),
    (".zprezto", "prezto"),
    (".zinit", "zinit"),
    (".local/share/zap", "zap"),
)

_SOURCE_LINE = re.compile(r"^\s*(?:source|\.)\s+(?P<target>\S+)", re.MULTILINE)


def detect(home: Path) -> ShellConfigInfo:
    """Report the configuration files, history and framework found in ``home``.

    A file that cannot be read is skipped and recorded as a diagnostic; this
    function never fails because of a single file.
    """

    diagnostics: list[DetectionPartial] = []
    config_files: list[ConfigFile] = []

    for name in CONFIG_FILENAMES:
        found = _inspect_config_file(home, Path(name), diagnostics)
        if found is not None:
            config_files.append(found)

    history = _inspect_history(home, diagnostics)
    framework = detect_framework(home, diagnostics)

    total = sum(item.size for item in config_files)
    if history is not None:
        total += history.size
    if framework is not None:
        total += framework.size

    info = ShellConfigInfo(
        config_files=tuple(config_files),
        history_file=history,
        framework=framework,
        total_size=total,
        diagnostics=tuple(diagnostics),
    )
    logger.info(
        "Detected %d config file(s), history=%s, framework=%s in %s",
        len(config_files),
        history is not None,
        framework.name if framework else None,
        home,
    )
    return info


def detect_framework(home: Path, diagnostics: list[DetectionPartial] | None = None) -> FrameworkInfo | None:
    """Find an installed framework by its directory name.

    When several are installed, the one sourced from ``.zshrc`` wins.
    """

    installed: list[tuple[str, Path]] = []
    for relative, name in FRAMEWORK_DIRECTORIES:
        candidate = home / relative
        if candidate.is_dir() and not candidate.is_symlink():
            installed.append((name, candidate))

    if not installed:
        return None

    chosen = installed[0]
    if len(installed) > 1:
        sourced = _sourced_paths(home / ".zshrc")
        for name, path in installed:
            if any(_is_within(target, path) for target in sourced):
                chosen = (name, path)
                break

    name, path = chosen
    try:
        size = directory_size(path)
    except OSError as exc:
        if diagnostics is not None:
            diagnostics.append(DetectionPartial(path=path.relative_to(home), reason=str(exc)))
        size = 0
    return FrameworkInfo(name=name, install_path=path, size=size)


def _inspect_config_file(home: Path, relative: Path, diagnostics: list[DetectionPartial]) -> ConfigFile | None:
    absolute = home / relative
    if not absolute.exists() and not absolute.is_symlink():
        return None

    if absolute.is_symlink() and not absolute.exists():
        diagnostics.append(DetectionPartial(path=relative, reason=f"dangling symlink to '{os.readlink(absolute)}'"))
        logger.warning("Skipping %s: dangling symlink", relative)
        return None

    if absolute.is_dir():
        diagnostics.append(DetectionPartial(path=relative, reason="expected a file, found a directory"))
        return None

    if not os.access(absolute, os.R_OK):
        diagnostics.append(DetectionPartial(path=relative, reason="permission denied"))
        logger.warning("Skipping %s: not readable", relative)
        return None

    try:
        metadata = collect_metadata(absolute)
    except OSError as exc:
        diagnostics.append(DetectionPartial(path=relative, reason=str(exc)))
        logger.warning("Skipping %s: %s", relative, exc)
        return None

    return ConfigFile(
        path=relative,
        size=metadata.size,
        permissions=metadata.mode,
        is_symlink=metadata.is_symlink,
        target=Path(metadata.symlink_target) if metadata.symlink_target is not None else None,
    )


def _inspect_history(home: Path, diagnostics: list[DetectionPartial]) -> HistoryFile | None:
    found = _inspect_config_file(home, Path(HISTORY_FILENAME), diagnostics)
    if found is None:
        return None
    try:
        lines = count_lines(home / found.path)
    except OSError as exc:
        diagnostics.append(DetectionPartial(path=found.path, reason=str(exc)))
        return None
    return HistoryFile(path=found.path, size=found.size, line_count=lines)


def _sourced_paths(zshrc: Path) -> list[Path]:
    try:
        text = zshrc.read_text(errors="replace")
    except OSError:
        return []

    home = zshrc.parent
    targets: list[Path] = []
    for match in _SOURCE_LINE.finditer(text):
        raw = match.group("target").strip("\"'")
        raw = raw.replace("$HOME", str(home)).replace("${HOME}", str(home))
        if raw.startswith("~/"):
            raw = str(home / raw[2:])
        candidate = Path(raw)
        if not candidate.is_absolute():
            candidate = home / candidate
        targets.append(candidate)
    return targets


def _is_within(path: Path, directory: Path) -> bool:
    try:
        path.relative_to(directory)
    except ValueError:
        return False
    return True
