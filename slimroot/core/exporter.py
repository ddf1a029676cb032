"""OCI image-layout export.

The assembled image is written either as a layout directory::

    {out}/
        oci-layout
        index.json
        blobs/sha256/{digest}

or as a single tar archive of the same tree (``docker load`` /
``podman load`` accept it). Layers are uncompressed and no timestamps are
recorded, so exporting identical inputs produces identical bytes.
"""

from __future__ import annotations

import io
import logging
import tarfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from slimroot.core.blob_store import BlobIntegrityError, BlobStore
from slimroot.core.hasher import canonical_json_bytes, digest_bytes, strip_algorithm
from slimroot.core.tarball import render_tar
from slimroot.models.layers import Layer
from slimroot.models.manifest import ImageManifest
from slimroot.models.oci import (
    ANNOTATION_IDENTITY,
    ANNOTATION_REF_NAME,
    MEDIA_TYPE_CONFIG,
    MEDIA_TYPE_INDEX,
    MEDIA_TYPE_LAYER,
    MEDIA_TYPE_MANIFEST,
    Descriptor,
)

logger = logging.getLogger(__name__)

OCI_LAYOUT = {"imageLayoutVersion": "1.0.0"}


@dataclass(frozen=True)
class _Layout:
    blobs: list[tuple[Descriptor, bytes]]
    manifest: Descriptor
    index: bytes


class OciExporter:
    """Renders an ``ImageManifest`` and its layers as OCI blobs.

    Parameters
    ----------
    architecture:
        OCI ``architecture`` of the image config (e.g. ``amd64``).
    os:
        OCI ``os`` of the image config.
    """

    def __init__(self, architecture: str = "amd64", os: str = "linux") -> None:
        self.architecture = architecture
        self.os = os

    def image_config(self, manifest: ImageManifest) -> dict[str, Any]:
        """The OCI image configuration document."""
        meta = manifest.exec_metadata
        config: dict[str, Any] = {
            "Entrypoint": list(meta.entrypoint),
            "Env": meta.env_list(),
            "WorkingDir": meta.working_dir,
        }
        if meta.user:
            config["User"] = meta.user
        return {
            "architecture": self.architecture,
            "os": self.os,
            "config": config,
            "rootfs": {"type": "layers", "diff_ids": list(manifest.layers)},
        }

    def _render(
        self, manifest: ImageManifest, layers: Sequence[Layer], ref_name: str | None
    ) -> _Layout:
        if [layer.digest for layer in layers] != list(manifest.layers):
            raise ValueError("layers do not match the manifest's layer list")

        blobs: list[tuple[Descriptor, bytes]] = []
        layer_descriptors = []
        for layer in layers:
            data = render_tar(layer.artifacts, layer.whiteouts)
            if digest_bytes(data) != layer.digest:
                raise BlobIntegrityError(
                    f"Layer {layer.digest} does not re-render to its digest"
                )
            descriptor = Descriptor(
                media_type=MEDIA_TYPE_LAYER, digest=layer.digest, size=len(data)
            )
            layer_descriptors.append(descriptor)
            blobs.append((descriptor, data))

        config_bytes = canonical_json_bytes(self.image_config(manifest))
        config_descriptor = Descriptor(
            media_type=MEDIA_TYPE_CONFIG,
            digest=digest_bytes(config_bytes),
            size=len(config_bytes),
        )
        blobs.append((config_descriptor, config_bytes))

        manifest_bytes = canonical_json_bytes({
            "schemaVersion": 2,
            "mediaType": MEDIA_TYPE_MANIFEST,
            "config": config_descriptor.to_json(),
            "layers": [d.to_json() for d in layer_descriptors],
            "annotations": {ANNOTATION_IDENTITY: manifest.identity},
        })
        annotations = {ANNOTATION_REF_NAME: ref_name} if ref_name else None
        manifest_descriptor = Descriptor(
            media_type=MEDIA_TYPE_MANIFEST,
            digest=digest_bytes(manifest_bytes),
            size=len(manifest_bytes),
            annotations=annotations,
        )
        blobs.append((manifest_descriptor, manifest_bytes))

        index = canonical_json_bytes({
            "schemaVersion": 2,
            "mediaType": MEDIA_TYPE_INDEX,
            "manifests": [manifest_descriptor.to_json()],
        })
        return _Layout(blobs=blobs, manifest=manifest_descriptor, index=index)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def write_layout(
        self,
        directory: Path,
        manifest: ImageManifest,
        layers: Sequence[Layer],
        *,
        ref_name: str | None = None,
    ) -> Descriptor:
        """Write an OCI layout directory; returns the manifest descriptor."""
        layout = self._render(manifest, layers, ref_name)
        store = BlobStore(directory)
        for descriptor, data in layout.blobs:
            store.store(data, media_type=descriptor.media_type)
        (store.base_path / "oci-layout").write_bytes(canonical_json_bytes(OCI_LAYOUT))
        (store.base_path / "index.json").write_bytes(layout.index)
        logger.info("wrote OCI layout %s (%s)", directory, layout.manifest.digest)
        return layout.manifest

    def archive_bytes(
        self,
        manifest: ImageManifest,
        layers: Sequence[Layer],
        *,
        ref_name: str | None = None,
    ) -> bytes:
        """The OCI layout as a deterministic tar archive."""
        layout = self._render(manifest, layers, ref_name)
        files: dict[str, bytes] = {
            "oci-layout": canonical_json_bytes(OCI_LAYOUT),
            "index.json": layout.index,
        }
        for descriptor, data in layout.blobs:
            files[f"blobs/sha256/{strip_algorithm(descriptor.digest)}"] = data

        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for directory in ("blobs", "blobs/sha256"):
                info = tarfile.TarInfo(directory)
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                info.mtime = 0
                tar.addfile(info)
            for name in sorted(files):
                info = tarfile.TarInfo(name)
                info.size = len(files[name])
                info.mode = 0o644
                info.mtime = 0
                tar.addfile(info, io.BytesIO(files[name]))
        return buffer.getvalue()

    def write_archive(
        self,
        path: Path,
        manifest: ImageManifest,
        layers: Sequence[Layer],
        *,
        ref_name: str | None = None,
    ) -> Path:
        """Write the OCI layout tar archive to ``path``."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.archive_bytes(manifest, layers, ref_name=ref_name))
        logger.info("wrote OCI archive %s", path)
        return path
