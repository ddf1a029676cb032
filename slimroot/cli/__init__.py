"""slimroot CLI — Typer-based command-line interface.

Provides the ``slimroot`` command with subcommands for inspecting a
binary, resolving its closure, and building an image.

All output uses Rich for formatted terminal display.
"""
