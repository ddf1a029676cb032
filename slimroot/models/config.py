"""Resolver configuration — the explicit, versioned search-path structure.

Dependency resolution never consults the host implicitly: every directory
the resolver may look in is named here, and the configuration's hash is
part of every cache key.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from slimroot.core.hasher import content_address
from slimroot.models.artifacts import normalize_image_path

DEFAULT_LIBRARY_DIRS: tuple[str, ...] = (
    "lib",
    "lib64",
    "usr/lib",
    "usr/lib64",
    "lib/x86_64-linux-gnu",
    "usr/lib/x86_64-linux-gnu",
    "lib/aarch64-linux-gnu",
    "usr/lib/aarch64-linux-gnu",
    "usr/local/lib",
)


class SearchRoot(BaseModel):
    """A host directory treated as the root of a candidate filesystem.

    Libraries are looked up in ``library_dirs`` (relative to ``host_root``)
    and land in the image at the same relative location.
    """

    model_config = ConfigDict(frozen=True)

    host_root: Path
    library_dirs: tuple[str, ...] = DEFAULT_LIBRARY_DIRS

    @field_validator("library_dirs")
    @classmethod
    def _relative_dirs(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(d.strip("/") for d in value)


class AuxiliarySource(BaseModel):
    """Where a named non-code requirement comes from and where it lands.

    ``source`` is relative to each search root (first root that has it
    wins). A directory source contributes every regular file beneath it.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    destination: str
    mode: int = 0o644

    @field_validator("source")
    @classmethod
    def _relative_source(cls, value: str) -> str:
        return value.strip("/")

    @field_validator("destination")
    @classmethod
    def _absolute_destination(cls, value: str) -> str:
        return normalize_image_path(value)


def _default_auxiliary() -> dict[str, AuxiliarySource]:
    return {
        "trust-anchors": AuxiliarySource(
            source="etc/ssl/certs/ca-certificates.crt",
            destination="/etc/ssl/certs/ca-certificates.crt",
        ),
        "timezone-db": AuxiliarySource(
            source="usr/share/zoneinfo",
            destination="/usr/share/zoneinfo",
        ),
        "name-service": AuxiliarySource(
            source="etc/nsswitch.conf",
            destination="/etc/nsswitch.conf",
        ),
    }


class ResolverConfig(BaseModel):
    """Search path, auxiliary requirement map and tie-breaking policy.

    ``ambiguity_policy``:

    - ``strict`` — differing candidates for one soname raise
      ``AmbiguousDependency`` unless ``overrides`` names the winner.
    - ``first-match`` — the first candidate in search order wins.
    """

    model_config = ConfigDict(frozen=True)

    config_version: str = "1"
    search_roots: tuple[SearchRoot, ...] = ()
    auxiliary: dict[str, AuxiliarySource] = Field(default_factory=_default_auxiliary)
    overrides: dict[str, Path] = Field(default_factory=dict)
    ambiguity_policy: Literal["strict", "first-match"] = "strict"
    check_architecture: bool = True

    def config_hash(self) -> str:
        """Content address of this configuration (part of every cache key)."""
        return content_address(self.model_dump(mode="json"))

    @classmethod
    def for_roots(cls, *roots: Path, **kwargs) -> ResolverConfig:
        """Shorthand: default library dirs under each of ``roots``."""
        return cls(search_roots=tuple(SearchRoot(host_root=r) for r in roots), **kwargs)


def load_resolver_config(path: Path) -> ResolverConfig:
    """Load a ``ResolverConfig`` from a ``.json`` or ``.toml`` file.

    Relative ``host_root`` and override paths are taken relative to the
    file's directory.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".toml":
        data = tomllib.loads(text)
    else:
        data = json.loads(text)

    base = path.parent
    for root in data.get("search_roots", []):
        if "host_root" in root and not Path(root["host_root"]).is_absolute():
            root["host_root"] = str(base / root["host_root"])
    overrides = data.get("overrides", {})
    for soname, target in list(overrides.items()):
        if not Path(target).is_absolute():
            overrides[soname] = str(base / target)

    return ResolverConfig.model_validate(data)
