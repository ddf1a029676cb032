"""Main Typer application — imports and registers all CLI commands.

Entry point: ``slimroot`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import typer

from slimroot.cli.commands.build_cmd import build_cmd
from slimroot.cli.commands.inspect_cmd import inspect_cmd
from slimroot.cli.commands.resolve_cmd import resolve_cmd

app = typer.Typer(
    name="slimroot",
    help="slimroot: assemble minimal, reproducible runtime images for compiled binaries.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="inspect", help="Show a binary's dynamic-linking requirements.")(inspect_cmd)
app.command(name="resolve", help="Resolve a binary's runtime dependency closure.")(resolve_cmd)
app.command(name="build", help="Assemble a binary into a minimal OCI image.")(build_cmd)


@app.command(name="version", help="Print the slimroot version.")
def version_cmd() -> None:
    """Print the installed version."""
    from slimroot import __version__

    typer.echo(__version__)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
