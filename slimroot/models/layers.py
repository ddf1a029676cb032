"""Layer model — an immutable, ordered filesystem delta."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

from slimroot.models.artifacts import Artifact, normalize_image_path


class Layer(BaseModel):
    """Ordered artifacts plus the paths this layer hides from earlier layers.

    ``digest`` is the SHA-256 of the rendered (uncompressed) tar stream and
    doubles as the OCI ``diff_id``. Layers are produced by the layer
    builder; constructing one by hand requires rendering it first.
    """

    model_config = ConfigDict(frozen=True)

    artifacts: tuple[Artifact, ...]
    whiteouts: tuple[str, ...] = ()
    digest: str
    size_bytes: int

    @field_validator("whiteouts")
    @classmethod
    def _normalize_whiteouts(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(sorted({normalize_image_path(p) for p in value}))

    @property
    def paths(self) -> list[str]:
        return [a.path for a in self.artifacts]

    def get(self, path: str) -> Artifact | None:
        """Return the artifact this layer writes at ``path``, if any."""
        normalized = normalize_image_path(path)
        for artifact in self.artifacts:
            if artifact.path == normalized:
                return artifact
        return None
