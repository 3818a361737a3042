"""Command-line interface for depdetect."""

from __future__ import annotations

import json
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

from depdetect import __version__
from depdetect.utils.logging import configure_logging, get_logger, log_to_file

if TYPE_CHECKING:
    from depdetect.config import DepDetectConfig
    from depdetect.detector import DetectorStatus, DetectorToolResult


app = typer.Typer(
    name="depdetect",
    help="Detect package managers in a source tree and extract their dependency graphs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

console = Console()
stderr_console = Console(stderr=True)
logger = get_logger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"depdetect version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            help="Also write DEBUG logs to this file.",
            dir_okay=False,
        ),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """depdetect - dependency detection for software composition analysis."""
    log_level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    configure_logging(level=log_level)
    if log_file is not None:
        log_to_file(log_file)

    ctx.obj = {"config": config, "verbose": verbose}
    if config:
        logger.debug("Using configuration file: %s", config)


def _handle_cli_error(error: Exception) -> None:
    """Handle exceptions and display user-friendly error messages.

    Args:
        error: The exception to handle.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    from depdetect.errors import DepDetectError

    if isinstance(error, DepDetectError):
        stderr_console.print(f"[bold red]Error:[/bold red] {error.message}")
        if error.hint:
            stderr_console.print(f"[yellow]Hint:[/yellow] {error.hint}")
    else:
        stderr_console.print(f"[red]Error: {error}[/red]")
        logger.exception("Command failed")

    raise typer.Exit(code=1)


def _load(ctx: typer.Context) -> DepDetectConfig:
    from depdetect.config import load_config

    config_path = ctx.obj.get("config") if ctx.obj else None
    return load_config(config_path)


def _status_color(status: DetectorStatus) -> str:
    """Get color for a detector status."""
    from depdetect.detector import DetectorStatus

    colors = {
        DetectorStatus.PASSED: "green",
        DetectorStatus.FAILED: "red",
        DetectorStatus.NOT_APPLICABLE: "dim",
    }
    return colors.get(status, "white")


@app.command()
def scan(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(
            help="Path to the source directory to scan.",
            exists=True,
            file_okay=False,
            dir_okay=True,
            readable=True,
        ),
    ] = Path(),
    depth: Annotated[
        int | None,
        typer.Option(
            "--depth",
            "-d",
            min=0,
            help="Maximum directory depth to search.",
        ),
    ] = None,
    format: Annotated[
        str,
        typer.Option(
            "--format",
            "-f",
            help="Output format (table, json).",
        ),
    ] = "table",
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Directory for BDIO documents.",
        ),
    ] = None,
    exclude_detector: Annotated[
        list[str] | None,
        typer.Option(
            "--exclude-detector",
            "-x",
            help="Detector rule or group to skip. Can be repeated.",
        ),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option(
            "--timeout",
            min=1,
            help="Seconds an external tool may run.",
        ),
    ] = None,
    show_all: Annotated[
        bool,
        typer.Option(
            "--all",
            "-a",
            help="Also list detectors that were not applicable.",
        ),
    ] = False,
) -> None:
    """Scan a directory and extract dependency graphs."""
    from depdetect.detector import DetectorPipeline, DetectorRegistry, DirectorySearch
    from depdetect.output import BdioWriter

    if format not in ("table", "json"):
        stderr_console.print(f"[red]Unknown format: {format}[/red]")
        raise typer.Exit(code=1)

    # Keep stdout clean for JSON output
    status_console = stderr_console if format == "json" else console

    try:
        config = _load(ctx)
        if depth is not None:
            config.search.depth = depth
        if timeout is not None:
            config.execution.timeout_seconds = timeout
        if output is not None:
            config.output.directory = str(output)
        excluded = config.search.excluded_detectors + [d.lower() for d in exclude_detector or []]

        rules = DetectorRegistry.select(config.search.included_detectors, excluded)
        pipeline = DetectorPipeline(
            rules,
            services=config.create_services(),
            options=config.detectable_options(),
            search=DirectorySearch(config.search.depth, config.search.exclude_patterns),
            parallel_workers=config.execution.parallel_workers,
            project_name=config.output.project_name,
            project_version=config.output.project_version,
        )

        status_console.print(f"Scanning {path} with {len(rules)} detectors...")

        previous_handler = signal.getsignal(signal.SIGTERM)
        signal.signal(signal.SIGTERM, lambda signum, frame: pipeline.cancel())
        try:
            result = pipeline.run(path)
        except KeyboardInterrupt:
            stderr_console.print("[yellow]Scan cancelled.[/yellow]")
            raise typer.Exit(code=130)
        finally:
            signal.signal(signal.SIGTERM, previous_handler)

        writer = BdioWriter(config.output.directory)
        written = writer.write_all(result.code_locations, result.project_name, result.project_version)

        if format == "json":
            print(json.dumps(_result_to_dict(result, written), indent=2))
        else:
            _print_result(result, written, show_all)

    except typer.Exit:
        raise
    except Exception as e:
        _handle_cli_error(e)


def _result_to_dict(result: DetectorToolResult, written: list[Path]) -> dict:
    return {
        "source_path": str(result.source_path),
        "project": {"name": result.project_name, "version": result.project_version},
        "applicable_groups": sorted(group.value for group in result.applicable_groups),
        "code_locations": [
            {
                "name": code_location.name,
                "source_path": str(code_location.source_path),
                "group": code_location.group.value,
                "detectors": code_location.detectors,
                "dependencies": len(code_location.dependency_graph),
                "document": str(document),
            }
            for code_location, document in zip(result.code_locations, written)
        ],
        "report": result.report.to_dict(),
        "failed_directories": result.failed_directories,
        "cancelled": result.cancelled,
    }


def _print_result(result: DetectorToolResult, written: list[Path], show_all: bool) -> None:
    from depdetect.detector import DetectorStatus

    table = Table(title="Detectors")
    table.add_column("Directory", style="cyan")
    table.add_column("Detector", style="yellow")
    table.add_column("Status", style="bold")
    table.add_column("Reason")

    for row in result.report.rows:
        if row.status == DetectorStatus.NOT_APPLICABLE and not show_all:
            continue
        color = _status_color(row.status)
        table.add_row(
            row.directory,
            row.detector,
            f"[{color}]{row.status.value.upper()}[/{color}]",
            "" if row.status == DetectorStatus.PASSED else row.reason,
        )

    console.print(table)

    if not result.code_locations:
        console.print("[yellow]No code locations were produced.[/yellow]")
        return

    locations = Table(title=f"Code locations for {result.project_name} {result.project_version}")
    locations.add_column("Name", style="cyan")
    locations.add_column("Dependencies", justify="right", style="green")
    locations.add_column("Document")
    for code_location, document in zip(result.code_locations, written):
        locations.add_row(
            code_location.name,
            str(len(code_location.dependency_graph)),
            str(document),
        )
    console.print(locations)

    summary = result.report.summary()
    console.print(
        f"[green]{summary['passed']} passed[/green], "
        f"[red]{summary['failed']} failed[/red], "
        f"[dim]{summary['not_applicable']} not applicable[/dim]"
    )
    for directory, reason in result.failed_directories.items():
        console.print(f"[red]Scan of {directory} aborted: {reason}[/red]")


@app.command()
def detectors() -> None:
    """List the registered detectors in precedence order."""
    from depdetect.detector import DetectorRegistry
    from depdetect.detector.rules import precedence_index

    table = Table(title="Detectors")
    table.add_column("Name", style="cyan")
    table.add_column("Group", style="yellow")
    table.add_column("Forge", style="green")
    table.add_column("Accuracy")
    table.add_column("Precedence", justify="right")
    table.add_column("Nestable")

    for rule in DetectorRegistry.get_all():
        table.add_row(
            rule.name,
            rule.group.value,
            rule.forge.value,
            rule.accuracy.value,
            str(precedence_index(rule) + 1),
            "yes" if rule.nestable else "no",
        )

    console.print(table)


@config_app.command("init")
def config_init(
    path: Annotated[
        Path,
        typer.Argument(
            help="Directory to create configuration file in.",
        ),
    ] = Path(),
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing configuration file.",
        ),
    ] = False,
) -> None:
    """Initialize a new configuration file."""
    from depdetect.config import generate_example_config

    config_path = path / ".depdetect.yml"

    if config_path.exists() and not force:
        console.print(f"[yellow]Configuration file already exists: {config_path}[/yellow]")
        console.print("Use --force to overwrite.")
        raise typer.Exit(code=1)

    config_path.write_text(generate_example_config())
    console.print(f"Created configuration file: {config_path}")


@config_app.command("validate")
def config_validate(
    config: Annotated[
        Path,
        typer.Argument(
            help="Path to configuration file to validate.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
) -> None:
    """Validate a configuration file."""
    from depdetect.config import load_config
    from depdetect.detector import DetectorRegistry
    from depdetect.errors import ConfigurationError

    console.print(f"Validating configuration file: {config}...")

    try:
        loaded = load_config(config)
    except ConfigurationError as e:
        console.print("[red]Validation failed:[/red]")
        console.print(f"  [red]ERROR:[/red] {e.message}")
        raise typer.Exit(code=1)

    known = {rule.name for rule in DetectorRegistry.get_all()}
    known |= {rule.group.value for rule in DetectorRegistry.get_all()}
    warnings = [
        f"Unknown detector: {name}"
        for name in loaded.search.included_detectors + loaded.search.excluded_detectors
        if name not in known
    ]

    if warnings:
        console.print("[yellow]Warnings:[/yellow]")
        for warning in warnings:
            console.print(f"  [yellow]WARNING:[/yellow] {warning}")

    console.print("[green]Configuration is valid.[/green]")


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration."""
    from depdetect.config import find_config_file

    try:
        loaded = _load(ctx)
    except Exception as e:
        _handle_cli_error(e)
        return

    config_path = (ctx.obj or {}).get("config") or find_config_file()
    if config_path is None:
        console.print("[dim]No configuration file found; showing defaults.[/dim]")
    else:
        console.print(f"Configuration file: {config_path}\n")

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    def flatten_dict(d: dict, prefix: str = "") -> list:
        items = []
        for key, value in d.items():
            full_key = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict):
                items.extend(flatten_dict(value, full_key))
            elif isinstance(value, list):
                items.append((full_key, ", ".join(str(v) for v in value) or "(empty)"))
            else:
                items.append((full_key, str(value)))
        return items

    for key, value in flatten_dict(loaded.model_dump()):
        table.add_row(key, value)

    console.print(table)


if __name__ == "__main__":
    app()
