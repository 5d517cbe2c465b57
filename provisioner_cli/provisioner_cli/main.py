"""Main CLI entry point for puerts-provision.

This module defines the Typer application and its commands.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from provisioner import (
    DEFAULT_CATALOG,
    ArtifactSource,
    ConfigError,
    ConfigManager,
    LogEvent,
    LogLevel,
    Orchestrator,
    PipelineResult,
    PluginSource,
    ProgressEvent,
    ProgressKind,
    ScriptEngine,
    StageEvent,
    StageStatus,
    StreamEvent,
    VersionResolver,
    configure_logging,
    order_candidates,
)

from . import __version__

app = typer.Typer(
    name="puerts-provision",
    help="Install the Puerts plugin and a matching V8 build into an Unreal project.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

LEVEL_STYLES = {
    LogLevel.DEBUG: "dim",
    LogLevel.INFO: "",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "bold red",
}

STATUS_STYLES = {
    StageStatus.PENDING: "[dim]… Pending[/dim]",
    StageStatus.RUNNING: "[blue]▶ Running[/blue]",
    StageStatus.COMPLETED: "[green]✓ Completed[/green]",
    StageStatus.FAILED: "[red]✗ Failed[/red]",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]puerts-provision[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Puerts provisioner.

    Clones or copies the plugin, installs the V8 build it expects and
    enables it in the project.
    """


class ConsoleReporter:
    """Event listener that prints pipeline events to the console."""

    def __init__(self, out: Console) -> None:
        self._console = out
        self._last_percent: dict[ProgressKind, int] = {}

    def __call__(self, event: StreamEvent) -> None:
        if isinstance(event, LogEvent):
            self._on_log(event)
        elif isinstance(event, ProgressEvent):
            self._on_progress(event)
        elif isinstance(event, StageEvent) and event.record is not None:
            if event.record.status == StageStatus.RUNNING:
                self._console.print(f"[bold cyan]==> {event.record.title}[/bold cyan]")

    def _on_log(self, event: LogEvent) -> None:
        style = LEVEL_STYLES.get(event.level, "")
        text = f"[{style}]{event.message}[/{style}]" if style else event.message
        self._console.print(f"  {text}", highlight=False)

    def _on_progress(self, event: ProgressEvent) -> None:
        if event.kind == ProgressKind.CLONE:
            self._console.print(f"  [dim]{event.message}[/dim]", highlight=False)
            return
        # Print download progress in 10% steps
        percent = int(event.percent) if event.percent is not None else None
        if percent is None:
            self._console.print(f"  [dim]{event.message}[/dim]", highlight=False)
            return
        step = percent // 10
        if self._last_percent.get(event.kind) == step:
            return
        self._last_percent[event.kind] = step
        self._console.print(f"  [dim]{percent:3d}% {event.message}[/dim]", highlight=False)


@app.command()
def run(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Configuration file. Defaults to the XDG location."),
    ] = None,
    project: Annotated[
        Path | None,
        typer.Option("--project", "-p", help="Path to the .uproject file."),
    ] = None,
    engine: Annotated[
        ScriptEngine | None,
        typer.Option("--engine", "-e", help="Scripting engine to configure."),
    ] = None,
    source: Annotated[
        PluginSource | None,
        typer.Option("--source", "-s", help="Where to obtain the plugin."),
    ] = None,
    plugin_path: Annotated[
        Path | None,
        typer.Option("--plugin-path", help="Local plugin directory (--source local)."),
    ] = None,
    artifact_source: Annotated[
        ArtifactSource | None,
        typer.Option("--artifact-source", help="Download the V8 build or import it."),
    ] = None,
    artifact: Annotated[
        Path | None,
        typer.Option("--artifact", "-a", help="V8 archive or directory (--artifact-source manual)."),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Diagnostic log level (debug, info, warning, error)."),
    ] = None,
) -> None:
    """Run the provisioning pipeline.

    Command line options override the values from the configuration file.
    Exits with status 1 if a stage aborts the run.
    """
    manager = ConfigManager(config_path)
    try:
        settings = manager.load_settings()
        config = manager.load_config(
            project_path=project.resolve() if project else None,
            script_engine=engine,
            plugin_source=source,
            local_plugin_path=plugin_path,
            artifact_source=artifact_source,
            artifact_path=artifact,
        )
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2) from None

    configure_logging(log_level or settings.log_level.value)

    orchestrator = Orchestrator(config, settings, listener=ConsoleReporter(console))
    console.print(f"Provisioning [bold]{config.project_path}[/bold]")
    result = asyncio.run(orchestrator.run())

    console.print()
    _print_summary(result)
    if not result.success:
        console.print(f"[red]Aborted in stage '{result.failed_stage}':[/red] {result.error_message}")
        raise typer.Exit(1)


def _print_summary(result: PipelineResult) -> None:
    """Print the stage table and totals."""
    table = Table(title="Provisioning Summary", show_header=True)
    table.add_column("Stage", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Detail")
    table.add_column("Duration", justify="right")

    for record in result.stages:
        status = STATUS_STYLES.get(record.status, record.status.value)
        if record.skipped:
            status = "[yellow]⊘ Skipped[/yellow]"

        duration = ""
        if record.started_at and record.finished_at:
            secs = (record.finished_at - record.started_at).total_seconds()
            duration = f"{secs:.1f}s"

        table.add_row(record.title, status, record.detail, duration)

    console.print(table)

    console.print()
    if result.installed_version:
        console.print(f"[bold]V8:[/bold] {result.installed_version}")
    if result.warnings:
        console.print(f"[yellow]Warnings:[/yellow] {len(result.warnings)}")
        for record in result.warnings:
            console.print(f"  [yellow]-[/yellow] {record.message}", highlight=False)
    if result.duration_seconds is not None:
        console.print(f"[dim]Duration:[/dim] {result.duration_seconds:.1f}s")


@app.command()
def detect(
    build_file: Annotated[
        Path,
        typer.Argument(help="Path to JsEnv.Build.cs."),
    ],
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Configuration file holding a catalog override."),
    ] = None,
) -> None:
    """Show the V8 version a build file expects and the download order."""
    if not build_file.is_file():
        console.print(f"[red]File not found:[/red] {build_file}")
        raise typer.Exit(1)

    try:
        settings = ConfigManager(config_path).load_settings()
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2) from None

    resolver = VersionResolver()
    expected = resolver.resolve_file(build_file)
    if expected:
        console.print(f"Expected V8 version: [bold green]{expected}[/bold green]")
    else:
        console.print("[yellow]No V8 version assertion found[/yellow]")

    table = Table(title="Download Order", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Version", style="cyan")
    table.add_column("URL", overflow="fold")
    catalog = settings.catalog or DEFAULT_CATALOG
    for index, candidate in enumerate(order_candidates(catalog, expected), start=1):
        table.add_row(str(index), candidate.version, candidate.url)
    console.print(table)


@app.command("init-config")
def init_config(
    project: Annotated[
        Path,
        typer.Option("--project", "-p", help="Path to the .uproject file."),
    ],
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Where to write the file. Defaults to the XDG location."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing configuration."),
    ] = False,
) -> None:
    """Write a default configuration file."""
    manager = ConfigManager(config_path)
    if manager.init_config(project.resolve(), force=force):
        console.print(f"[green]Configuration written to {manager.config_path}[/green]")
    else:
        console.print(
            f"[yellow]Configuration already exists at {manager.config_path}[/yellow] "
            "(use --force to overwrite)"
        )


if __name__ == "__main__":
    app()
