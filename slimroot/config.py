"""Runtime settings — env-driven via pydantic-settings.

Reads from a .env file and SLIMROOT_* environment variables. Settings are
constructed per invocation and passed explicitly; there is no shared
module-level instance.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class AssemblerSettings(BaseSettings):
    """Assembler settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export SLIMROOT_LOG_LEVEL=DEBUG
        export SLIMROOT_MAX_WORKERS=8
        export SLIMROOT_CONFIG_PATH=/etc/slimroot/resolver.toml
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SLIMROOT_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Resolver
    config_path: Path | None = None  # JSON or TOML ResolverConfig
    max_workers: int = 4
    default_binary_dir: str = "/app"

    # Output
    output_path: Path = Path("image.oci.tar")
    architecture: str = "amd64"
