"""Settings and managed-root layout for zswitch."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ConfigError

DEFAULT_MANAGED_DIRNAME = ".zsh-profiles"
SETTINGS_FILENAME = "config.toml"
ROOT_ENV_VAR = "ZSWITCH_ROOT"

PROFILES_DIRNAME = "profiles"
SHARED_DIRNAME = "shared"
BACKUPS_DIRNAME = "backups"
PRE_EXISTING_BACKUP_DIRNAME = "pre-zswitch"
HISTORY_FILENAME = ".zsh_history"


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class Settings(BaseModel):
    """Resolved locations and options for a single user."""

    model_config = ConfigDict(frozen=True)

    home: Path
    managed_root: Path
    integration_name: str = ".zshenv"
    shared_history_enabled: bool = True
    active_profile: str | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, home: Path, managed_root: Path) -> "Settings":
        history = raw.get("history") or {}
        if not isinstance(history, Mapping):
            raise ConfigError("The [history] section must be a table")
        try:
            return cls(
                home=home,
                managed_root=managed_root,
                integration_name=raw.get("integration_file", ".zshenv"),
                shared_history_enabled=history.get("shared", True),
                active_profile=raw.get("active_profile"),
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings in '{managed_root / SETTINGS_FILENAME}': {exc}") from exc

    @property
    def profiles_dir(self) -> Path:
        return self.managed_root / PROFILES_DIRNAME

    @property
    def backups_dir(self) -> Path:
        return self.managed_root / BACKUPS_DIRNAME

    @property
    def backup_dir(self) -> Path:
        """Directory holding the backup of the pre-existing configuration."""

        return self.backups_dir / PRE_EXISTING_BACKUP_DIRNAME

    @property
    def shared_history(self) -> Path:
        return self.managed_root / SHARED_DIRNAME / HISTORY_FILENAME

    @property
    def integration_file(self) -> Path:
        return self.home / self.integration_name


def load_settings(home: Path | None = None, managed_root: Path | None = None) -> Settings:
    """Resolve the home directory and managed root, then read ``config.toml``.

    Args:
        home: Home directory. Defaults to ``$HOME``.
        managed_root: Managed root. Defaults to ``$ZSWITCH_ROOT`` or
            ``~/.zsh-profiles``.
    """

    home_path = Path(home) if home is not None else Path.home()
    home_path = home_path.resolve(strict=False)

    if managed_root is not None:
        root = _expand_path(managed_root, base_dir=home_path)
    elif os.environ.get(ROOT_ENV_VAR):
        root = _expand_path(os.environ[ROOT_ENV_VAR], base_dir=home_path)
    else:
        root = home_path / DEFAULT_MANAGED_DIRNAME

    settings_path = root / SETTINGS_FILENAME
    data: dict[str, Any] = {}
    if settings_path.is_file():
        try:
            with settings_path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Settings file '{settings_path}' is not valid TOML: {exc}") from exc

    return Settings.from_raw(data, home=home_path, managed_root=root)
