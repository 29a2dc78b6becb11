"""Command-line interface for zswitch."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from .backup import ProgressCallback
from .config import load_settings
from .errors import ConfigError, RestoreUnavailableError, VerificationFailed, ZswitchError
from .manager import ZswitchManager
from .models import (
    CleanRemoval,
    CleanupReport,
    PromoteProfile,
    RestorationOption,
    RestorationPlan,
    RestoreOriginal,
    ShellConfigInfo,
    VerificationReport,
)
from .uninstall import UninstallOptions

app = typer.Typer(help="Switchable zsh profiles that never lose your original configuration")
console = Console()

ROOT_OPTION = typer.Option(None, "--root", "-r", help="Managed root (defaults to ~/.zsh-profiles)")


class RestoreChoice(str, Enum):
    original = "original"
    promote = "promote"
    clean = "clean"


def _load_manager(root: Path | None) -> ZswitchManager:
    return ZswitchManager(load_settings(managed_root=root))


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check ownership of your home directory and managed root.")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    if isinstance(exc, RestoreUnavailableError):
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]Choose '--restore promote' or '--restore clean' instead.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, VerificationFailed):
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]Nothing in your home directory was changed.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, ZswitchError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


@contextmanager
def _progress_bar(description: str) -> Iterator[ProgressCallback]:
    """Yield a byte-count callback; the bar only appears once archiving starts."""

    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    task_id = progress.add_task(description, total=None)

    def _update(done: int, total: int) -> None:
        progress.start()
        progress.update(task_id, completed=done, total=total)

    try:
        yield _update
    finally:
        progress.stop()


def _format_detection(info: ShellConfigInfo) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    table.add_column("Mode")
    table.add_column("Details", overflow="fold")

    for item in info.config_files:
        details = f"symlink to {item.target}" if item.is_symlink else ""
        table.add_row(item.path.as_posix(), str(item.size), f"{item.permissions:o}", details)
    if info.history_file is not None:
        history = info.history_file
        table.add_row(history.path.as_posix(), str(history.size), "", f"{history.line_count} lines")
    if info.framework is not None:
        framework = info.framework
        table.add_row(str(framework.install_path), str(framework.size), "", framework.name)

    console.print(table)
    for diagnostic in info.diagnostics:
        console.print(f"[yellow]Skipped {diagnostic.path}: {diagnostic.reason}[/yellow]")


def _format_verification(report: VerificationReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path")
    table.add_column("Issue")
    table.add_column("Details", overflow="fold")

    for issue in report.issues:
        table.add_row(issue.file_path.as_posix(), issue.issue_type.value, issue.message)

    if report.issues:
        console.print(table)
    style = "green" if report.ok else "red"
    console.print(
        f"[{style}]all_files_present={report.all_files_present} checksums_valid={report.checksums_valid}[/{style}]"
    )


def _format_plan(plan: RestorationPlan) -> None:
    table = Table(show_header=True, header_style="bold magenta", title=_describe(plan.option))
    table.add_column("Operation")
    table.add_column("Source", overflow="fold")
    table.add_column("Destination", overflow="fold")

    for operation in plan.files_to_restore:
        table.add_row(operation.operation.value, str(operation.source), str(operation.destination))
    for path in plan.files_to_remove:
        table.add_row("remove", "", str(path))

    console.print(table)
    console.print(f"History: {plan.history_handling.value}")


def _format_cleanup(report: CleanupReport) -> None:
    console.print(f"Removed {report.total_removed} item(s)")
    for error in report.errors:
        console.print(f"[red]✗ {error.path}: {error.reason}[/red]")
    if report.errors:
        console.print("[yellow]Some files could not be removed. You may need to remove them manually.[/yellow]")


def _describe(option: RestorationOption) -> str:
    match option:
        case RestoreOriginal():
            return "Restore original configuration"
        case PromoteProfile(profile=name):
            return f"Promote profile '{name}'"
        case _:
            return "Clean removal"


def _resolve_option(choice: RestoreChoice, profile: str | None) -> RestorationOption:
    if choice is RestoreChoice.original:
        return RestoreOriginal()
    if choice is RestoreChoice.promote:
        if not profile:
            raise typer.BadParameter("--profile is required with --restore promote")
        return PromoteProfile(profile)
    return CleanRemoval()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command("detect")
def detect_command(root: Path | None = ROOT_OPTION) -> None:
    """Show the shell configuration found in your home directory."""

    try:
        manager = _load_manager(root)
        _format_detection(manager.detect())
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def init(
    root: Path | None = ROOT_OPTION,
    force: bool = typer.Option(False, "--force", help="Replace an existing backup (the old one is kept aside)"),
) -> None:
    """Back up your configuration, verify it, then hand home over to zswitch."""

    try:
        manager = _load_manager(root)
        with _progress_bar("[cyan]Archiving framework") as on_progress:
            result = manager.init(force=force, progress=on_progress)
        _format_detection(result.detection)
        _format_verification(result.verification)
        console.print(f"[green]Backup written to '{result.manifest_path.parent}'.[/green]")
        for path, reason in result.home.errors:
            console.print(f"[yellow]Could not remove '{path}': {reason}[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def verify(root: Path | None = ROOT_OPTION) -> None:
    """Check the backup against its manifest and exit non-zero on damage."""

    try:
        manager = _load_manager(root)
        report = manager.verify()
        _format_verification(report)
        if not report.ok:
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def plan(
    restore: RestoreChoice = typer.Option(RestoreChoice.original, "--restore", help="Restoration strategy"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile to promote"),
    root: Path | None = ROOT_OPTION,
) -> None:
    """Show what an uninstall would do without changing anything."""

    try:
        manager = _load_manager(root)
        _format_plan(manager.plan(_resolve_option(restore, profile)))
    except typer.BadParameter:
        raise
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def uninstall(
    restore: RestoreChoice = typer.Option(..., "--restore", help="Restoration strategy"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile to promote"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    no_backup: bool = typer.Option(False, "--no-backup", help="Skip the safety snapshot"),
    keep_backups: bool = typer.Option(False, "--keep-backups", help="Keep the backups directory"),
    root: Path | None = ROOT_OPTION,
) -> None:
    """Remove zswitch and restore, promote, or leave a clean home."""

    def _confirm(proposed: RestorationPlan) -> bool:
        _format_plan(proposed)
        return typer.confirm("Proceed with uninstall?", default=False)

    try:
        manager = _load_manager(root)
        option = _resolve_option(restore, profile)
        with _progress_bar("[cyan]Writing safety snapshot") as on_progress:
            options = UninstallOptions(
                assume_yes=yes,
                no_snapshot=no_backup,
                keep_backups=keep_backups,
                confirm=_confirm,
                progress=on_progress,
            )
            result = manager.uninstall(option, options)
    except typer.BadParameter:
        raise
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if result.snapshot_path is not None:
        console.print(f"Safety snapshot: {result.snapshot_path} ({result.snapshot_size} bytes)")
    if not result.succeeded:
        console.print(f"[red]{result.error}[/red]")
        raise typer.Exit(code=1)
    if result.cleanup is not None:
        _format_cleanup(result.cleanup)
    console.print("[green]zswitch uninstalled. Restart your shell with 'exec zsh'.[/green]")


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
