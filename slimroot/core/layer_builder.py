"""Layer builder — closure + extras (+ base layers) into one immutable layer.

Output is reproducible: artifacts are ordered by destination path and the
tar rendering carries no timestamps, so identical inputs always yield the
same layer digest.

When base layers are supplied (multi-stage composition), a new artifact
may not silently shadow a path the base already provides:

- identical content and metadata: elided from the new layer
- marked ``override``: kept, shadowing the base
- anything else: ``PathCollision``
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from slimroot.core.cache import BuildCache
from slimroot.core.errors import PathCollision
from slimroot.core.filesystem import flatten
from slimroot.core.hasher import content_address
from slimroot.core.tarball import make_layer
from slimroot.models.artifacts import (
    Artifact,
    DependencyClosure,
    merge_artifacts,
    normalize_image_path,
)
from slimroot.models.cache import CacheKey
from slimroot.models.layers import Layer

logger = logging.getLogger(__name__)


def _same_entry(a: Artifact, b: Artifact) -> bool:
    return (a.content_hash, a.mode, a.owner, a.kind) == (
        b.content_hash, b.mode, b.owner, b.kind,
    )


class LayerBuilder:
    """Builds layers, memoized in the session cache.

    Parameters
    ----------
    cache:
        Session cache; a layer is served from it when the closure digest
        and the extras/base/whiteout inputs all match.
    """

    def __init__(self, cache: BuildCache | None = None) -> None:
        self.cache = cache if cache is not None else BuildCache()

    def build(
        self,
        closure: DependencyClosure,
        extra_artifacts: Iterable[Artifact] = (),
        base_layers: Sequence[Layer] = (),
        *,
        whiteouts: Iterable[str] = (),
    ) -> Layer:
        """Merge ``closure`` with ``extra_artifacts`` into a new layer.

        Raises ``PathCollision`` when two inputs claim one path with
        different content, when an input shadows a base-layer path without
        ``override``, or when a path is both written and whited out.
        """
        extras = list(extra_artifacts)
        hidden = sorted({normalize_image_path(p) for p in whiteouts})

        key = CacheKey(
            stage="layer",
            subject_hash=closure.digest,
            config_hash=content_address({
                "extras": sorted(
                    [a.path, a.content_hash, a.mode, a.owner.uid, a.owner.gid, a.kind,
                     a.override]
                    for a in extras
                ),
                "base": [layer.digest for layer in base_layers],
                "whiteouts": hidden,
            }),
        )
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("layer for closure %s served from cache", closure.digest)
            return cached

        merged = merge_artifacts([*closure.artifacts, *extras], origin="layer input")

        written = {a.path for a in merged}
        for path in hidden:
            if path in written:
                raise PathCollision(path, [], detail="both written and whited out in one layer")

        kept = merged
        if base_layers:
            base_view = flatten(base_layers)
            kept = self._check_base(merged, base_view)
            for path in hidden:
                if path not in base_view:
                    logger.debug("whiteout %s hides nothing in the base layers", path)

        layer = make_layer(kept, hidden)
        logger.info(
            "built layer %s: %d artifacts, %d whiteouts, %d bytes",
            layer.digest, len(layer.artifacts), len(layer.whiteouts), layer.size_bytes,
        )
        self.cache.put(key, layer)
        return layer

    @staticmethod
    def _check_base(
        artifacts: list[Artifact], base_view: dict[str, Artifact]
    ) -> list[Artifact]:
        """Path-intersection check against the flattened base layers."""
        kept: list[Artifact] = []
        for artifact in artifacts:
            existing = base_view.get(artifact.path)
            if existing is None:
                kept.append(artifact)
            elif _same_entry(existing, artifact):
                logger.debug("%s already provided by a base layer; elided", artifact.path)
            elif artifact.override:
                logger.debug("%s overrides a base-layer entry", artifact.path)
                kept.append(artifact)
            else:
                raise PathCollision(
                    artifact.path,
                    [existing.content_hash, artifact.content_hash],
                    detail="shadows a base-layer path; mark it override to replace",
                )
        return kept


def build(
    closure: DependencyClosure,
    extra_artifacts: Iterable[Artifact] = (),
    base_layers: Sequence[Layer] = (),
    cache: BuildCache | None = None,
    **kwargs,
) -> Layer:
    """Functional shorthand for ``LayerBuilder(cache).build``."""
    return LayerBuilder(cache).build(closure, extra_artifacts, base_layers, **kwargs)
