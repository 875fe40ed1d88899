"""Command-line interface for shardbak."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import DEFAULT_CONFIG_FILENAME, DEFAULT_ROOT, ConfigError, load_config
from .manager import RestoreAbortedError, SetupIncompleteError, ShardbakError, ShardManager
from .models import (
    AddAction,
    AddResult,
    DeleteAction,
    DeleteResult,
    RestoreAction,
    RestoreReport,
    StatusReport,
    StatusState,
)

app = typer.Typer(help="Secret-shared backups across several storage backends")
store_app = typer.Typer(help="Manage the storage backends shares are spread across")
app.add_typer(store_app, name="store")
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Path to shardbak.toml")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Log every backend call")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )


def _load_manager(config: Path | None, verbose: bool = False) -> ShardManager:
    config_obj = load_config(config)
    _configure_logging("DEBUG" if verbose else config_obj.settings.log_level)
    return ShardManager(config_obj)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check access to the root and every backend folder.")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'shardbak init --config <path>' to create a configuration file.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the config file, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, SetupIncompleteError):
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]Register backends with 'shardbak store add <folder>'.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, RestoreAbortedError):
        console.print(f"[red]Restore aborted: {exc}[/red]")
        console.print("[red]No files were written.[/red]")
        raise typer.Exit(code=1)
    if isinstance(exc, ShardbakError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


_ACTION_STYLES = {
    AddAction.TRACKED.value: "green",
    AddAction.UPDATED.value: "green",
    AddAction.DIRECTORY.value: "cyan",
    AddAction.IGNORED.value: "blue",
    AddAction.FAILED.value: "red",
    DeleteAction.DELETED.value: "yellow",
    DeleteAction.NOT_TRACKED.value: "red",
    RestoreAction.RESTORED.value: "green",
    RestoreAction.SKIPPED.value: "red",
    RestoreAction.UNRECOVERABLE.value: "red",
}


def _styled(value: str) -> str:
    style = _ACTION_STYLES.get(value, "white")
    return f"[{style}]{value}[/{style}]"


def _format_add_results(results: Iterable[AddResult]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path", overflow="fold")
    table.add_column("Action", no_wrap=True, min_width=13)
    table.add_column("Details", overflow="fold")

    for result in results:
        details = result.details or (result.reason.value if result.reason else "")
        if result.backend_failures:
            details = "; ".join(f"{failure.backend}: {failure.message}" for failure in result.backend_failures)
        table.add_row(result.path, _styled(result.action.value), details)

    console.print(table)


def _format_delete_results(results: Iterable[DeleteResult]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path", overflow="fold")
    table.add_column("Action", no_wrap=True, min_width=13)
    table.add_column("Details", overflow="fold")

    for result in results:
        details = result.reason.value if result.reason else ""
        if result.backend_failures:
            details = "; ".join(f"{failure.backend}: {failure.message}" for failure in result.backend_failures)
        table.add_row(result.path, _styled(result.action.value), details)

    console.print(table)


def _format_restore_report(report: RestoreReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path", overflow="fold")
    table.add_column("Action", no_wrap=True, min_width=13)
    table.add_column("Reason")
    table.add_column("Details", overflow="fold")

    for entry in report.entries:
        table.add_row(
            entry.path,
            _styled(entry.action.value),
            entry.reason.value if entry.reason else "",
            entry.details or "",
        )

    console.print(table)


def _format_status(report: StatusReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path", overflow="fold")
    table.add_column("State", no_wrap=True, min_width=9)
    table.add_column("Share", overflow="fold")

    status_styles = {
        StatusState.IN_SYNC: "green",
        StatusState.MODIFIED: "yellow",
        StatusState.MISSING: "red",
        StatusState.DIRECTORY: "cyan",
        StatusState.CONTROL: "blue",
    }

    for entry in report.entries:
        style = status_styles.get(entry.state, "white")
        table.add_row(entry.path, f"[{style}]{entry.state.value}[/{style}]", entry.share_id or "")

    console.print(table)


def _render_init_config(*, root: str, staging_root: str | None) -> str:
    settings: dict[str, str] = {"root": root, "log_level": "INFO"}
    if staging_root is not None:
        settings["staging_root"] = staging_root

    buffer = io.StringIO()
    buffer.write("# shardbak configuration\n\n")
    buffer.write(tomli_w.dumps({"settings": settings}))
    return buffer.getvalue()


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    root: str = typer.Option(DEFAULT_ROOT, "--root", help="Directory holding the shardbak state and ignore file"),
    staging_root: str | None = typer.Option(
        None,
        "--staging-root",
        help="Where backends stage shares during restore (defaults to the system temp dir)",
    ),
    store: list[Path] = typer.Option(None, "--store", "-s", help="Folder store to register, in order"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter configuration and initialise the root."""

    config_path = config
    if config_path.exists() and not force:
        console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_render_init_config(root=root, staging_root=staging_root))
    console.print(f"[green]Created '{config_path}'.[/green]")

    try:
        manager = _load_manager(config_path)
        console.print(f"[green]Initialised root '{manager.root}'.[/green]")
        for folder in store or []:
            registered = manager.register_folder_store(folder)
            console.print(f"[green]Registered folder store '{registered.path}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@store_app.command("add")
def store_add(
    folder: Path = typer.Argument(..., help="Directory that will receive one share per file"),
    config: Path | None = ConfigOption,
    force: bool = typer.Option(
        False,
        "--force",
        help="Register even though files are already shared (every file must be re-added)",
    ),
    verbose: bool = VerboseOption,
) -> None:
    """Register a local folder as a backend."""

    try:
        manager = _load_manager(config, verbose)
        registered = manager.register_folder_store(folder, force=force)
        console.print(f"[green]Registered folder store '{registered.path}'.[/green]")
        if manager.state.needs_setup():
            console.print(
                f"[yellow]{manager.state.registered_backend_count} backend(s) registered; at least 2 are needed.[/yellow]"
            )
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@store_app.command("list")
def store_list(config: Path | None = ConfigOption) -> None:
    """Show backends in the order shares are assigned to them."""

    try:
        manager = _load_manager(config)
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#")
        table.add_column("Backend", overflow="fold")
        for index, backend in enumerate(manager.stores()):
            table.add_row(str(index), backend.describe())
        console.print(table)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def add(
    paths: list[Path] = typer.Argument(..., help="Files or directories to share"),
    config: Path | None = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Split files into shares and upload one share to every backend."""

    try:
        manager = _load_manager(config, verbose)
        results: list[AddResult] = []
        for path in paths:
            results.extend(manager.add(path))
        _format_add_results(results)
        if any(result.action is AddAction.FAILED or result.backend_failures for result in results):
            console.print("[yellow]Some entries were not fully shared. Re-run 'shardbak add' to retry.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def delete(
    paths: list[Path] = typer.Argument(..., help="Tracked files or directories to forget"),
    config: Path | None = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Delete shares from every backend and stop tracking the paths."""

    try:
        manager = _load_manager(config, verbose)
        results: list[DeleteResult] = []
        for path in paths:
            results.extend(manager.delete(path))
        _format_delete_results(results)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def restore(
    config: Path | None = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Rebuild every tracked file from the shares held by the backends."""

    try:
        manager = _load_manager(config, verbose)
        report = manager.restore()
        _format_restore_report(report)
        problems = [
            entry for entry in report.entries if entry.action not in (RestoreAction.RESTORED, RestoreAction.DIRECTORY)
        ]
        if problems:
            console.print(f"[yellow]Done. {len(problems)} of {len(report.entries)} entries were not restored.[/yellow]")
        else:
            console.print("[green]Done. Restored all files![/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def status(config: Path | None = ConfigOption) -> None:
    """Show tracked entries and whether they changed since they were shared."""

    try:
        manager = _load_manager(config)
        report = manager.status()
        _format_status(report)
        if any(entry.state in (StatusState.MODIFIED, StatusState.MISSING) for entry in report.entries):
            console.print("[yellow]Some entries changed since they were shared. Run 'shardbak add' to reshare.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
