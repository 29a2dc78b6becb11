from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from zswitch.backup import create_backup
from zswitch.config import ROOT_ENV_VAR, Settings, load_settings
from zswitch.detector import detect
from zswitch.manifest import BackupManifest

ZSHRC = "setopt autocd\n".ljust(119, "#") + "\n"
ZSHENV = "export EDITOR=vim\n".ljust(39, "#") + "\n"
HISTORY = "".join(f": 17000000{i:02d}:0;echo {i}\n" for i in range(500))


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv(ROOT_ENV_VAR, raising=False)
    return home


@pytest.fixture(autouse=True)
def _stable_shell_version(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("zswitch.backup.shell_version", lambda: "zsh 5.9 (x86_64-pc-linux-gnu)")


@pytest.fixture
def settings(fake_home: Path) -> Settings:
    return load_settings(home=fake_home)


@pytest.fixture
def shell_home(settings: Settings) -> Path:
    """Home with .zshrc (120 B), .zshenv (40 B), 500 history lines and oh-my-zsh."""

    home = settings.home
    (home / ".zshrc").write_text(ZSHRC)
    (home / ".zshenv").write_text(ZSHENV)
    (home / ".zsh_history").write_text(HISTORY)

    framework = home / ".oh-my-zsh"
    (framework / "plugins" / "git").mkdir(parents=True)
    (framework / "oh-my-zsh.sh").write_text("# oh-my-zsh loader\n")
    (framework / "plugins" / "git" / "git.plugin.zsh").write_text("alias g=git\n")
    return home


@pytest.fixture
def manifest(settings: Settings, shell_home: Path) -> BackupManifest:
    return create_backup(detect(shell_home), settings.backup_dir, home=shell_home)


@pytest.fixture
def make_profile(settings: Settings) -> Callable[..., Path]:
    def _make(name: str, *, zshrc: str, history: str | None = None) -> Path:
        profile = settings.profiles_dir / name
        profile.mkdir(parents=True)
        (profile / "profile.toml").write_text(f'[profile]\nname = "{name}"\nframework = "zinit"\n')
        (profile / ".zshrc").write_text(zshrc)
        if history is not None:
            (profile / ".zsh_history").write_text(history)
        return profile

    return _make
