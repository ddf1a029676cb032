"""``slimroot build BINARY`` — assemble and export a minimal image.

Resolves the binary's closure, adds any extra files and user records,
builds one layer, assembles the manifest and writes an OCI archive (or
layout directory with ``--layout``).
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel

from slimroot.cli._common import console, load_config, setup_logging
from slimroot.config import AssemblerSettings
from slimroot.core.errors import AssemblyError
from slimroot.core.session import AssemblyRequest, AssemblySession
from slimroot.core.users import NOBODY_UID, user_records, working_directory
from slimroot.models.artifacts import Artifact
from slimroot.models.manifest import ExecMetadata


def _parse_add(value: str) -> Artifact:
    """``HOST:DEST[:MODE]`` -> Artifact."""
    parts = value.split(":")
    if len(parts) not in (2, 3):
        raise typer.BadParameter(f"expected HOST:DEST[:MODE], got {value!r}")
    host, dest = Path(parts[0]), parts[1]
    if not host.is_file():
        raise typer.BadParameter(f"{host} is not a file")
    mode = int(parts[2], 8) if len(parts) == 3 else 0o644
    return Artifact(path=dest, content=host.read_bytes(), mode=mode)


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}")
        env[key] = value
    return env


def build_cmd(
    binary: Path = typer.Argument(..., exists=True, dir_okay=False, help="Executable to package."),
    config_path: Path = typer.Option(
        None, "--config", "-c", help="Resolver config (.json or .toml)."
    ),
    roots: list[Path] = typer.Option(
        None, "--root", "-r", help="Search root directory (repeatable, ordered)."
    ),
    auxiliary: list[str] = typer.Option(
        None, "--aux", "-x", help="Auxiliary requirement, e.g. trust-anchors (repeatable)."
    ),
    destination: str = typer.Option(
        None, "--dest", help="In-image path of the binary (default /app/NAME)."
    ),
    add: list[str] = typer.Option(
        None, "--add", "-a", help="Extra file HOST:DEST[:MODE] (repeatable)."
    ),
    user: str = typer.Option(None, "--user", "-u", help="Run as this non-root user."),
    uid: int = typer.Option(NOBODY_UID, "--uid", help="uid/gid for --user."),
    workdir: str = typer.Option("/", "--workdir", "-w", help="Working directory."),
    env: list[str] = typer.Option(None, "--env", "-e", help="KEY=VALUE (repeatable)."),
    output: Path = typer.Option(None, "--output", "-o", help="Output archive or directory."),
    layout: bool = typer.Option(False, "--layout", help="Write a layout directory, not a tar."),
    ref_name: str = typer.Option(None, "--ref", help="Reference name annotation."),
    policy: str = typer.Option(
        None, "--policy", help="Ambiguity policy: strict or first-match."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Assemble BINARY into a minimal OCI image."""
    settings = AssemblerSettings()
    setup_logging(settings, verbose)
    config = load_config(settings, config_path, roots, policy)

    extras = [_parse_add(item) for item in add or []]
    owner_uid = 0
    if user:
        extras.extend(user_records(user, uid))
        owner_uid = uid
    if workdir != "/":
        extras.append(working_directory(workdir, owner_uid, owner_uid))

    session = AssemblySession(config, settings=settings)
    dest = destination or f"{settings.default_binary_dir.rstrip('/')}/{binary.name}"
    try:
        request = AssemblyRequest(
            binary_path=binary,
            destination=dest,
            auxiliary=tuple(auxiliary or ()),
            extra_artifacts=tuple(extras),
            exec_metadata=ExecMetadata(
                entrypoint=(dest,),
                working_dir=workdir,
                user=user,
                env=_parse_env(env or []),
            ),
        )
        result = session.assemble(request)
        written = session.export(result, output, ref_name=ref_name, as_directory=layout)
    except (AssemblyError, ValueError) as exc:
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
        raise typer.Exit(code=1)

    target = output or settings.output_path
    console.print(
        Panel(
            "\n".join([
                "[bold green]Image assembled.[/bold green]",
                "",
                f"[bold]Identity:[/bold]   {result.manifest.identity}",
                f"[bold]Layer:[/bold]      {result.layer.digest}",
                f"[bold]Artifacts:[/bold]  {len(result.layer.artifacts)}",
                f"[bold]Size:[/bold]       {result.layer.size_bytes} bytes",
                f"[bold]Entrypoint:[/bold] {' '.join(result.manifest.exec_metadata.entrypoint)}",
                f"[bold]Output:[/bold]     {target}",
            ]),
            title="[bold]slimroot[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    if layout:
        console.print(f"[dim]manifest {written.digest}[/dim]")
