"""Read-only access to managed profiles."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from .config import HISTORY_FILENAME, Settings
from .detector import CONFIG_FILENAMES
from .models import ProfileInfo

logger = logging.getLogger(__name__)

PROFILE_MANIFEST = "profile.toml"


class ProfileStore:
    """Lists profiles stored under ``<managed_root>/profiles``."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def list_profiles(self) -> list[ProfileInfo]:
        profiles_dir = self.settings.profiles_dir
        if not profiles_dir.is_dir():
            return []

        profiles: list[ProfileInfo] = []
        for path in sorted(profiles_dir.iterdir()):
            if not path.is_dir():
                continue
            profile = self._read_profile(path)
            if profile is not None:
                profiles.append(profile)

        profiles.sort(key=lambda item: item.name)
        return profiles

    def get(self, name: str) -> ProfileInfo | None:
        for profile in self.list_profiles():
            if profile.name == name:
                return profile
        return None

    def _read_profile(self, path: Path) -> ProfileInfo | None:
        manifest = path / PROFILE_MANIFEST
        if not manifest.is_file():
            logger.warning("Profile '%s' is missing %s, skipping", path.name, PROFILE_MANIFEST)
            return None

        try:
            with manifest.open("rb") as handle:
                data = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Failed to read %s for '%s': %s", PROFILE_MANIFEST, path.name, exc)
            return None

        section = data.get("profile") or {}
        name = str(section.get("name") or path.name)
        history = path / HISTORY_FILENAME

        return ProfileInfo(
            name=name,
            path=path,
            framework=str(section.get("framework", "none")),
            is_active=name == self.settings.active_profile,
            config_files=tuple(Path(item) for item in CONFIG_FILENAMES if (path / item).is_file()),
            history_file=history if history.is_file() else None,
        )
