"""Execution metadata and image manifest models."""

from __future__ import annotations

import posixpath

from pydantic import BaseModel, ConfigDict, Field, field_validator

from slimroot.models.artifacts import normalize_image_path


class ExecMetadata(BaseModel):
    """How the runtime should start the image.

    ``user`` accepts a name, a numeric uid, or ``uid:gid``; ``None`` leaves
    the runtime default.
    """

    model_config = ConfigDict(frozen=True)

    entrypoint: tuple[str, ...]
    working_dir: str = "/"
    user: str | None = None
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("entrypoint")
    @classmethod
    def _check_entrypoint(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value or not value[0]:
            raise ValueError("entrypoint must name an executable")
        return value

    @field_validator("working_dir")
    @classmethod
    def _normalize_working_dir(cls, value: str) -> str:
        return normalize_image_path(value)

    @field_validator("env")
    @classmethod
    def _check_env(cls, value: dict[str, str]) -> dict[str, str]:
        for key in value:
            if not key or "=" in key:
                raise ValueError(f"invalid environment variable name: {key!r}")
        return dict(sorted(value.items()))

    @property
    def entrypoint_path(self) -> str:
        """Absolute in-image path of ``entrypoint[0]``."""
        program = self.entrypoint[0]
        if program.startswith("/"):
            return normalize_image_path(program)
        return normalize_image_path(posixpath.join(self.working_dir, program))

    @property
    def is_named_user(self) -> bool:
        if not self.user:
            return False
        return not self.user.split(":", 1)[0].isdigit()

    def env_list(self) -> list[str]:
        """Environment as ``KEY=VALUE`` strings, sorted by key."""
        return [f"{k}={v}" for k, v in self.env.items()]


class ImageManifest(BaseModel):
    """Ordered layer identifiers plus execution metadata.

    ``identity`` is the hash of (ordered layer digests, exec metadata);
    two assemblies over identical layers and metadata share it.
    """

    model_config = ConfigDict(frozen=True)

    layers: tuple[str, ...]
    exec_metadata: ExecMetadata
    identity: str
