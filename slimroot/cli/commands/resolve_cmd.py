"""``slimroot resolve BINARY`` — print the dependency closure of a binary."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from slimroot.cli._common import console, load_config, setup_logging
from slimroot.config import AssemblerSettings
from slimroot.core.errors import AssemblyError
from slimroot.core.resolver import DependencyResolver


def resolve_cmd(
    binary: Path = typer.Argument(..., exists=True, dir_okay=False, help="Executable to resolve."),
    config_path: Path = typer.Option(
        None, "--config", "-c", help="Resolver config (.json or .toml)."
    ),
    roots: list[Path] = typer.Option(
        None, "--root", "-r", help="Search root directory (repeatable, ordered)."
    ),
    auxiliary: list[str] = typer.Option(
        None, "--aux", "-x", help="Auxiliary requirement, e.g. trust-anchors (repeatable)."
    ),
    policy: str = typer.Option(
        None, "--policy", help="Ambiguity policy: strict or first-match."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Resolve and list every artifact the binary needs."""
    settings = AssemblerSettings()
    setup_logging(settings, verbose)
    config = load_config(settings, config_path, roots, policy)

    resolver = DependencyResolver(
        config,
        max_workers=settings.max_workers,
        default_binary_dir=settings.default_binary_dir,
    )
    try:
        closure = resolver.resolve(binary, auxiliary=auxiliary or ())
    except AssemblyError as exc:
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
        raise typer.Exit(code=1)

    table = Table(title=f"Closure of {binary.name}")
    table.add_column("Path", style="cyan")
    table.add_column("Mode")
    table.add_column("Size", justify="right")
    table.add_column("Content hash", style="dim")
    for artifact in closure.artifacts:
        table.add_row(
            artifact.path,
            oct(artifact.mode),
            str(artifact.size_bytes),
            artifact.content_hash[:19],
        )
    console.print(table)
    console.print(f"[bold]Closure digest:[/bold] {closure.digest}")
