"""``slimroot inspect BINARY`` — show a binary's declared runtime needs."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from slimroot.cli._common import console
from slimroot.core.elf import ElfInspector
from slimroot.core.errors import AssemblyError


def inspect_cmd(
    binary: Path = typer.Argument(..., exists=True, dir_okay=False, help="Executable to inspect."),
) -> None:
    """Print the interpreter, needed sonames, search paths and declared requirements."""
    try:
        info = ElfInspector().inspect(binary.read_bytes())
    except AssemblyError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1)

    if not info.is_elf:
        console.print(f"[yellow]{binary} is not an ELF file; no dynamic requirements.[/yellow]")
        return

    table = Table(title=f"{binary.name}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Class / machine", f"ELF{info.elf_class} {info.machine}")
    table.add_row("Interpreter", info.interpreter or "[dim]none (static)[/dim]")
    table.add_row("SONAME", info.soname or "[dim]-[/dim]")
    table.add_row("Needed", "\n".join(info.needed) or "[dim]none[/dim]")
    table.add_row("RPATH", ":".join(info.rpath) or "[dim]-[/dim]")
    table.add_row("RUNPATH", ":".join(info.runpath) or "[dim]-[/dim]")
    table.add_row(
        "Declared requirements",
        ", ".join(info.declared_requirements) or "[dim]none[/dim]",
    )
    console.print(table)
