"""Assembly session — the central coordinator for one image build.

The session wires the DependencyResolver, LayerBuilder and ImageAssembler
around a single BuildCache. The cache is consulted before and populated
after resolution and layer building, so re-assembling an unchanged binary
with unchanged inputs does no filesystem search and no tar rendering.

One session owns one cache; sessions never share state.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from slimroot.config import AssemblerSettings
from slimroot.core.assembler import ImageAssembler
from slimroot.core.cache import BuildCache
from slimroot.core.elf import BinaryInspector
from slimroot.core.errors import AssemblyCancelled
from slimroot.core.exporter import OciExporter
from slimroot.core.layer_builder import LayerBuilder
from slimroot.core.resolver import DependencyResolver
from slimroot.models.artifacts import Artifact, DependencyClosure
from slimroot.models.config import ResolverConfig
from slimroot.models.layers import Layer
from slimroot.models.manifest import ExecMetadata, ImageManifest
from slimroot.models.oci import Descriptor

logger = logging.getLogger(__name__)


class AssemblyRequest(BaseModel):
    """Everything one assembly run consumes.

    When ``exec_metadata`` is omitted the image runs the binary itself
    from ``/``.
    """

    model_config = ConfigDict(frozen=True)

    binary_path: Path
    destination: str | None = None
    auxiliary: tuple[str, ...] = ()
    extra_artifacts: tuple[Artifact, ...] = ()
    exec_metadata: ExecMetadata | None = None
    base_layers: tuple[Layer, ...] = ()
    whiteouts: tuple[str, ...] = ()


class AssemblyResult(BaseModel):
    """The closure, every layer in order, and the manifest."""

    model_config = ConfigDict(frozen=True)

    closure: DependencyClosure
    layer: Layer
    layers: tuple[Layer, ...]
    manifest: ImageManifest


class AssemblySession:
    """Resolve -> build -> assemble, memoized in a session-scoped cache.

    Parameters
    ----------
    resolver_config:
        Explicit search-path configuration.
    settings:
        Runtime settings. Uses defaults if not provided.
    cache:
        Cache to use; a fresh one is created per session if omitted.
    inspector:
        Binary inspection backend passed to the resolver.
    """

    def __init__(
        self,
        resolver_config: ResolverConfig,
        *,
        settings: AssemblerSettings | None = None,
        cache: BuildCache | None = None,
        inspector: BinaryInspector | None = None,
    ) -> None:
        self.settings = settings or AssemblerSettings()
        self.cache = cache if cache is not None else BuildCache()
        self.resolver = DependencyResolver(
            resolver_config,
            self.cache,
            inspector=inspector,
            max_workers=self.settings.max_workers,
            default_binary_dir=self.settings.default_binary_dir,
        )
        self.builder = LayerBuilder(self.cache)
        self.assembler = ImageAssembler()
        self.exporter = OciExporter(architecture=self.settings.architecture)

    def assemble(
        self,
        request: AssemblyRequest,
        *,
        cancel: threading.Event | None = None,
    ) -> AssemblyResult:
        """Run one full assembly.

        Errors from every stage propagate unchanged; a cancelled run raises
        ``AssemblyCancelled`` and leaves no partial entry in the cache.
        """
        closure = self.resolver.resolve(
            request.binary_path,
            destination=request.destination,
            auxiliary=request.auxiliary,
            cancel=cancel,
        )
        if cancel is not None and cancel.is_set():
            raise AssemblyCancelled("Assembly cancelled before layer build")

        layer = self.builder.build(
            closure,
            request.extra_artifacts,
            request.base_layers,
            whiteouts=request.whiteouts,
        )
        layers = (*request.base_layers, layer)

        exec_metadata = request.exec_metadata or ExecMetadata(
            entrypoint=(closure.binary.path,)
        )
        manifest = self.assembler.assemble(layers, exec_metadata)
        logger.info(
            "session cache: %d entries, %d hits, %d misses",
            len(self.cache), self.cache.hits, self.cache.misses,
        )
        return AssemblyResult(
            closure=closure, layer=layer, layers=layers, manifest=manifest
        )

    def export(
        self,
        result: AssemblyResult,
        path: Path | None = None,
        *,
        ref_name: str | None = None,
        as_directory: bool = False,
    ) -> Descriptor | Path:
        """Write the result as an OCI archive (default) or layout directory."""
        target = Path(path or self.settings.output_path)
        if as_directory:
            return self.exporter.write_layout(
                target, result.manifest, result.layers, ref_name=ref_name
            )
        return self.exporter.write_archive(
            target, result.manifest, result.layers, ref_name=ref_name
        )

    def clear_cache(self) -> None:
        """Explicitly invalidate every memoized closure and layer."""
        self.cache.clear()
