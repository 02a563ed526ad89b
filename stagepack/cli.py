"""
Command line entry point for the stage package builder.
"""

import zipfile
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from utils.validation import inspect_container, validate_container

from .assemble import assemble_container, build_substitutions, timestamp_marker
from .config import load_config
from .errors import (
    ArchiveIOError,
    ConfigError,
    InvariantViolationError,
    MalformedArchiveError,
    NotFoundError,
    StagePackError,
)
from .variant import select_variant

console = Console()
app = typer.Typer(help="USDZ stage package builder")

EXIT_CODES = [
    (NotFoundError, 2),
    (MalformedArchiveError, 3),
    (InvariantViolationError, 4),
    (ArchiveIOError, 5),
    (ConfigError, 6),
]


def exit_code_for(error: StagePackError) -> int:
    for error_type, code in EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return 1


def parse_replacements(values: List[str]) -> dict:
    """Parse ``entry/path=local/file`` pairs, keeping their order."""
    substitutions = {}
    for value in values:
        target, sep, source = value.partition("=")
        if not sep or not target or not source:
            raise typer.BadParameter(f"Expected ENTRY=FILE, got {value!r}", param_hint="--replace")
        substitutions[target] = Path(source)
    return substitutions


@app.command()
def assemble(
    template: Path = typer.Argument(..., help="Template container, or directory of templates"),
    destination: Path = typer.Argument(..., help="Output .usdz path"),
    replace: List[str] = typer.Option([], "--replace", "-r", help="Substitution as ENTRY=FILE"),
    image: List[Path] = typer.Option([], "--image", "-i", help="Image for the next configured texture target"),
    label: List[str] = typer.Option([], "--label", "-l", help="Label used to pick the template variant"),
    stage: Optional[str] = typer.Option(None, help="Override the stage entry name"),
    marker: bool = typer.Option(True, "--marker/--no-marker", help="Add a cache marker file"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Stage config JSON"),
):
    """Rebuild a template container with replacement textures."""
    try:
        config = load_config(config_path)
        substitutions = build_substitutions(image, config)
        substitutions.update(parse_replacements(replace))

        descriptor = select_variant(label, config=config)
        if stage:
            descriptor = descriptor.model_copy(update={"stage_entry_name": stage})

        console.print(Panel.fit(
            "[bold blue]Stage Package Builder[/bold blue]\n"
            f"Template: {template}\n"
            f"Stage: {descriptor.stage_entry_name}\n"
            f"Output: {destination}",
            border_style="blue"
        ))

        result = assemble_container(
            template,
            substitutions,
            descriptor,
            destination,
            marker=timestamp_marker() if marker else None,
            config=config,
        )
    except StagePackError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(exit_code_for(e))

    console.print(Panel.fit(
        f"[bold green]Container written[/bold green]\n\n"
        f"Entries: {result.entry_count}\n"
        f"Substituted: {', '.join(result.substituted) or 'none'}\n"
        f"Size: {result.stats.container_bytes / 1024:.1f} KB in {result.stats.total_seconds:.2f}s\n"
        f"Output: {result.container_path}",
        border_style="green"
    ))


@app.command("select")
def select(
    labels: List[str] = typer.Argument(None, help="Labels to classify"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Stage config JSON"),
):
    """Show which template the labels select."""
    try:
        config = load_config(config_path)
        descriptor = select_variant(labels or [], config=config)
    except StagePackError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(exit_code_for(e))

    console.print(f"Variant: {descriptor.variant.value}")
    console.print(f"Template: {descriptor.archive_filename}")
    console.print(f"Stage: {descriptor.stage_entry_name}")


@app.command("inspect")
def inspect(
    container: Path = typer.Argument(..., help="Container to list"),
):
    """List container entries in archive order."""
    if not container.exists():
        console.print(f"[bold red]Error:[/bold red] {container} not found")
        raise typer.Exit(exit_code_for(NotFoundError(str(container))))

    try:
        entries = inspect_container(container)
    except (zipfile.BadZipFile, OSError) as e:
        console.print(f"[bold red]Error:[/bold red] cannot read {container}: {e}")
        raise typer.Exit(exit_code_for(MalformedArchiveError(str(e))))

    table = Table(title=container.name)
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Method")
    table.add_column("Size", justify="right")
    table.add_column("CRC-32")
    table.add_column("Data offset", justify="right")
    for index, entry in enumerate(entries):
        table.add_row(
            str(index),
            entry["name"],
            "STORE" if entry["method"] == 0 else str(entry["method"]),
            str(entry["size"]),
            f"{entry['crc']:08x}",
            str(entry["data_offset"]),
        )
    console.print(table)


@app.command("validate")
def validate(
    container: Path = typer.Argument(..., help="Container to validate"),
    stage: Optional[str] = typer.Option(None, help="Expected first entry"),
    alignment: int = typer.Option(64, help="Required data alignment (0 to skip)"),
):
    """Validate a container's layout."""
    errors = validate_container(container, stage_entry_name=stage, alignment=alignment)

    if errors:
        console.print("[red]Validation failed:[/red]")
        for error in errors:
            console.print(f"  [red]• {error}[/red]")
        raise typer.Exit(1)
    else:
        console.print("[green]Container is valid![/green]")


@app.command("stages")
def list_stages():
    """List all pipeline stages."""
    stages = [
        ("1. Select", "Pick the template variant from labels"),
        ("2. Read", "Unpack the template container into a file tree"),
        ("3. Substitute", "Drop replacement textures and the cache marker into the tree"),
        ("4. Write", "Serialize a STORE-only container with the stage first"),
    ]

    console.print("[bold]Pipeline Stages:[/bold]\n")
    for name, desc in stages:
        console.print(f"  [blue]{name}[/blue]: {desc}")


if __name__ == "__main__":
    app()
