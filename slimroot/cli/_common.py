"""Shared helpers for CLI commands: settings, logging, resolver config."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from slimroot.config import AssemblerSettings
from slimroot.models.config import ResolverConfig, load_resolver_config

console = Console()


def setup_logging(settings: AssemblerSettings, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def load_config(
    settings: AssemblerSettings,
    config_path: Path | None,
    roots: list[Path] | None,
    policy: str | None = None,
) -> ResolverConfig:
    """Resolver config from --config, SLIMROOT_CONFIG_PATH, or --root flags."""
    path = config_path or settings.config_path
    if path is not None:
        config = load_resolver_config(path)
        if roots:
            config = ResolverConfig.model_validate(
                {**config.model_dump(), "search_roots": [{"host_root": r} for r in roots]}
            )
    elif roots:
        config = ResolverConfig.for_roots(*roots)
    else:
        console.print(
            "[bold red]No search path:[/bold red] pass --config or at least one --root."
        )
        raise typer.Exit(code=1)

    if policy:
        config = ResolverConfig.model_validate(
            {**config.model_dump(), "ambiguity_policy": policy}
        )
    return config
