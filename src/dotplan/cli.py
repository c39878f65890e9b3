"""Command-line interface for dotplan."""

from __future__ import annotations

import io
import logging
import tempfile
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .adapters import Registry
from .config import DEFAULT_CONFIG_FILENAME, ConfigError, Configuration, load_config
from .dotfiles import DotfilesManager
from .engine import Engine
from .errors import ConfigurationError, DotplanError
from .models import DEFAULT_SOURCE_DIRECTORY, ApplyOutcome, DiffAction, DiffReport, ExecutionMode, LinkRecord
from .paths import expand_path
from .state_manager import DEFAULT_KEEP_CHECKPOINTS, DEFAULT_STATE_DIR, StateManager

app = typer.Typer(help="Declarative dotfile and configuration manager")
console = Console()


def _setup_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_time=False, show_path=False)],
        force=True,
    )


def _build_registry() -> Registry:
    """Package managers and program handlers available from the command line."""

    return Registry()


def _load_engine(config: Path | None, *, dry_run: bool = False) -> tuple[Engine, Configuration]:
    config_obj = load_config(config)
    settings = config_obj.settings

    mode = ExecutionMode.real()
    state_dir = settings.state_dir
    if dry_run:
        root = Path(tempfile.mkdtemp(prefix="dotplan_dry_run_"))
        mode = ExecutionMode.simulated(root)
        state_dir = root / "state"
        console.print(f"[yellow]Dry run: changes are written under '{root}'.[/yellow]")

    engine = Engine(
        StateManager(state_dir),
        DotfilesManager(mode),
        _build_registry(),
        keep_checkpoints=settings.keep_checkpoints,
    )
    return engine, config_obj


def _load_state_manager(config: Path | None) -> StateManager:
    return StateManager(load_config(config).settings.state_dir)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check that the target directories are writable.")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'dotplan init --config <path>' to create a configuration file.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the config file, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, DotplanError):
        console.print(f"[red]{exc}[/red]")
        if isinstance(exc, ConfigurationError) and "Checkpoint not found" in str(exc):
            console.print("[yellow]Run 'dotplan checkpoints' to list the available checkpoints.[/yellow]")
        raise typer.Exit(code=1)
    raise exc


def _format_links(records: Iterable[LinkRecord]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Dotfile")
    table.add_column("Type")
    table.add_column("Source", overflow="fold")
    table.add_column("Target", overflow="fold")

    for record in records:
        table.add_row(record.name, record.type.value, record.source, record.target)

    console.print(table)


def _format_outcome(outcome: ApplyOutcome) -> None:
    if outcome.links:
        _format_links(outcome.links)

    if outcome.success:
        if not outcome.links:
            console.print("[green]Everything is already up to date.[/green]")
        console.print(f"[green]Configuration applied (checkpoint {outcome.checkpoint_id}).[/green]")
        return

    console.print(f"[red]Apply failed: {outcome.error}[/red]")
    if outcome.rolled_back:
        console.print(f"[yellow]Recorded state rolled back to checkpoint {outcome.checkpoint_id}.[/yellow]")
    else:
        console.print(
            f"[red]Rollback to checkpoint {outcome.checkpoint_id} failed; run 'dotplan status' to inspect.[/red]"
        )


def _format_diff(report: DiffReport) -> None:
    if report.is_empty:
        console.print("[green]No changes.[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Action")
    table.add_column("Details", overflow="fold")

    styles = {
        DiffAction.CREATE: "green",
        DiffAction.UPDATE: "yellow",
        DiffAction.REPLACE: "red",
    }

    for name, package_diff in report.packages.items():
        if package_diff.install:
            table.add_row("package", name, "install", ", ".join(package_diff.install))
        if package_diff.casks:
            table.add_row("package", name, "install cask", ", ".join(package_diff.casks))
        if package_diff.uninstall:
            table.add_row("package", name, "uninstall", ", ".join(package_diff.uninstall))

    for name, program_diff in report.programs.items():
        table.add_row("program", name, program_diff.action.value, program_diff.details)

    for link_diff in report.dotfiles:
        style = styles.get(link_diff.action, "white")
        table.add_row(
            "dotfile",
            link_diff.name,
            f"[{style}]{link_diff.action.value}[/{style}]",
            link_diff.reason,
        )

    console.print(table)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every step"),
) -> None:
    """Declarative dotfile and configuration manager."""

    _setup_logging(logging.DEBUG if verbose else logging.WARNING)


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
    source_directory: str = typer.Option(
        DEFAULT_SOURCE_DIRECTORY,
        "--source-directory",
        help="Directory holding the dotfile sources",
    ),
    discover: bool = typer.Option(
        False,
        "--discover/--no-discover",
        help="Add a link for every entry found in the source directory",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter dotplan configuration file."""

    if config.exists() and not force:
        console.print(f"[red]Configuration '{config}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config.parent.mkdir(parents=True, exist_ok=True)

    links: list[dict[str, str]] = []
    if discover:
        resolved = expand_path(source_directory, base_dir=config.parent.resolve())
        if resolved.is_dir():
            links = [
                {"name": child.name, "action": "link"}
                for child in sorted(resolved.iterdir())
                if not child.name.startswith(".")
            ]
        else:
            console.print(f"[yellow]Source directory '{source_directory}' does not exist; no links added.[/yellow]")

    data: dict[str, object] = {
        "settings": {"state_dir": DEFAULT_STATE_DIR, "keep_checkpoints": DEFAULT_KEEP_CHECKPOINTS},
        "dotfiles": {"source_directory": source_directory, "links": links},
    }

    buffer = io.StringIO()
    buffer.write("# dotplan configuration\n\n")
    buffer.write(tomli_w.dumps(data))
    config.write_text(buffer.getvalue())
    console.print(f"[green]Created '{config}'.[/green]")


@app.command()
def apply(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotplan.toml"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Write into a scratch directory instead of your home"),
) -> None:
    """Install packages, configure programs and place dotfiles."""

    try:
        engine, config_obj = _load_engine(config, dry_run=dry_run)
        outcome = engine.apply(config_obj)
        _format_outcome(outcome)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if not outcome.success:
        raise typer.Exit(code=1)


@app.command()
def diff(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotplan.toml"),
) -> None:
    """Show what apply would change without changing anything."""

    try:
        engine, config_obj = _load_engine(config)
        _format_diff(engine.diff(config_obj))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def status(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotplan.toml"),
) -> None:
    """Summarise the recorded state."""

    try:
        state_manager = _load_state_manager(config)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    summary = state_manager.state_summary()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Item")
    table.add_column("Value", overflow="fold")
    for manager, count in summary["packages"].items():
        table.add_row(f"packages ({manager})", str(count))
    table.add_row("programs", ", ".join(summary["programs"]) or "-")
    table.add_row("dotfiles", ", ".join(summary["dotfiles"]) or "-")
    last_updated = summary["last_updated"]
    table.add_row("last updated", last_updated.isoformat() if last_updated else "never")
    table.add_row("checkpoints", str(summary["checkpoints_count"]))
    console.print(table)


@app.command()
def checkpoints(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotplan.toml"),
) -> None:
    """List checkpoints, newest first."""

    try:
        ids = _load_state_manager(config).list_checkpoints()
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if not ids:
        console.print("[yellow]No checkpoints recorded.[/yellow]")
        return
    for checkpoint_id in ids:
        console.print(checkpoint_id)


@app.command()
def rollback(
    checkpoint_id: str = typer.Argument(..., help="Checkpoint to restore"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotplan.toml"),
) -> None:
    """Restore the recorded state from a checkpoint."""

    try:
        _load_state_manager(config).rollback_to(checkpoint_id)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    console.print(f"[green]Recorded state restored from checkpoint {checkpoint_id}.[/green]")


@app.command()
def cleanup(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotplan.toml"),
    keep: int = typer.Option(DEFAULT_KEEP_CHECKPOINTS, "--keep", min=0, help="Number of checkpoints to keep"),
) -> None:
    """Delete old checkpoints."""

    try:
        removed = _load_state_manager(config).cleanup_checkpoints(keep)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    console.print(f"[green]Removed {len(removed)} checkpoint(s).[/green]")


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
