from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from zswitch.backup import ProgressCallback
from zswitch.cli import app
from zswitch.manager import ZswitchManager
from zswitch.models import InitResult, RestorationOption, UninstallResult
from zswitch.uninstall import UninstallOptions

runner = CliRunner()


def test_cli_detect(shell_home: Path) -> None:
    result = runner.invoke(app, ["detect"])

    assert result.exit_code == 0
    assert ".zshrc" in result.stdout
    assert "oh-my-zsh" in result.stdout


def test_cli_init_and_verify(shell_home: Path) -> None:
    init_result = runner.invoke(app, ["init"])
    assert init_result.exit_code == 0
    assert not (shell_home / ".zshrc").exists()

    verify_result = runner.invoke(app, ["verify"])
    assert verify_result.exit_code == 0
    assert "checksums_valid=True" in verify_result.stdout

    backup_copy = shell_home / ".zsh-profiles" / "backups" / "pre-zswitch" / ".zshrc"
    backup_copy.write_text("x" * backup_copy.stat().st_size)

    tampered = runner.invoke(app, ["verify"])
    assert tampered.exit_code == 1
    assert "checksums_valid=False" in tampered.stdout


def test_cli_second_init_is_refused(shell_home: Path) -> None:
    assert runner.invoke(app, ["init"]).exit_code == 0

    result = runner.invoke(app, ["init"])

    assert result.exit_code == 1
    assert "already exists" in result.stdout


def test_cli_verify_without_backup(fake_home: Path) -> None:
    result = runner.invoke(app, ["verify"])

    assert result.exit_code == 1


def test_cli_uninstall_declined(shell_home: Path) -> None:
    assert runner.invoke(app, ["init"]).exit_code == 0

    result = runner.invoke(app, ["uninstall", "--restore", "original"], input="n\n")

    assert result.exit_code == 1
    assert "cancelled" in result.stdout
    assert (shell_home / ".zsh-profiles").is_dir()


def test_cli_uninstall_without_backup(fake_home: Path) -> None:
    (fake_home / ".zsh-profiles").mkdir()

    result = runner.invoke(app, ["uninstall", "--restore", "original", "--yes"])

    assert result.exit_code == 1
    assert "unavailable" in result.stdout
    assert (fake_home / ".zsh-profiles").is_dir()


def test_cli_promote_requires_profile(shell_home: Path) -> None:
    assert runner.invoke(app, ["init"]).exit_code == 0

    result = runner.invoke(app, ["uninstall", "--restore", "promote", "--yes"])

    assert result.exit_code != 0
    assert (shell_home / ".zsh-profiles").is_dir()


def test_cli_clean_uninstall_with_custom_root(fake_home: Path, tmp_path: Path) -> None:
    (fake_home / ".zshrc").write_text("# plain\n")
    root = tmp_path / "elsewhere"

    assert runner.invoke(app, ["init", "--root", str(root)]).exit_code == 0
    assert (root / "backups" / "pre-zswitch" / ".zshrc").is_file()

    result = runner.invoke(app, ["uninstall", "--restore", "clean", "--yes", "--no-backup", "--root", str(root)])

    assert result.exit_code == 0
    assert not root.exists()
    assert not (fake_home / ".zshrc").exists()
    assert not (fake_home / ".zshenv").exists()


def test_cli_reports_archive_progress(shell_home: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, int, int]] = []
    real_init = ZswitchManager.init
    real_uninstall = ZswitchManager.uninstall

    def _recording(label: str, callback: ProgressCallback | None) -> ProgressCallback:
        assert callback is not None

        def _record(done: int, total: int) -> None:
            calls.append((label, done, total))
            callback(done, total)

        return _record

    def _init(self: ZswitchManager, **kwargs: Any) -> InitResult:
        kwargs["progress"] = _recording("init", kwargs.get("progress"))
        return real_init(self, **kwargs)

    def _uninstall(self: ZswitchManager, option: RestorationOption, options: UninstallOptions) -> UninstallResult:
        options = replace(options, progress=_recording("uninstall", options.progress))
        return real_uninstall(self, option, options)

    monkeypatch.setattr(ZswitchManager, "init", _init)
    monkeypatch.setattr(ZswitchManager, "uninstall", _uninstall)

    assert runner.invoke(app, ["init"]).exit_code == 0
    result = runner.invoke(app, ["uninstall", "--restore", "original", "--yes"])

    assert result.exit_code == 0
    assert {label for label, _, _ in calls} == {"init", "uninstall"}
    for label in ("init", "uninstall"):
        _, done, total = [call for call in calls if call[0] == label][-1]
        assert done == total > 0
