"""Dependency resolver — the minimal runtime closure of a binary.

Resolution is static: the binary is inspected, never executed. Every
directory consulted comes from the ``ResolverConfig``; the host's own
library cache and environment variables are ignored so that a given
configuration resolves identically on every machine.

Search order for a ``DT_NEEDED`` soname, following the dynamic loader:

1. ``ResolverConfig.overrides[soname]``
2. if the requesting object has ``DT_RUNPATH``: those entries only.
   Otherwise the ``DT_RPATH`` entries of the requesting object and of every
   object that loaded it, up to the executable, skipping any object that
   also carries ``DT_RUNPATH``
3. each search root's ``library_dirs``, in order

``$ORIGIN`` expands against the declaring object's in-image directory. A
``DT_NEEDED`` entry containing ``/`` is a path, not a soname: it is looked
up at exactly that path under each search root and nowhere else.

Sonames are resolved breadth-first in ``DT_NEEDED`` order and each is
loaded once, through its first requester, as the loader does.

All matching candidates are collected. Candidates with identical content
collapse to the first; differing candidates are resolved by the configured
ambiguity policy.
"""

from __future__ import annotations

import logging
import posixpath
import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from slimroot.core.cache import BuildCache
from slimroot.core.dependency_graph import DependencyGraph
from slimroot.core.elf import BinaryInfo, BinaryInspector, ElfInspector
from slimroot.core.errors import (
    AmbiguousDependency,
    AssemblyCancelled,
    UnresolvableDependency,
)
from slimroot.core.hasher import content_address, digest_bytes
from slimroot.models.artifacts import Artifact, DependencyClosure, normalize_image_path
from slimroot.models.cache import CacheKey
from slimroot.models.config import AuxiliarySource, ResolverConfig

logger = logging.getLogger(__name__)

SHARED_OBJECT_MODE = 0o755
DEFAULT_BINARY_DIR = "/app"


@dataclass(frozen=True)
class _Candidate:
    host_path: Path
    destination: str
    content: bytes = field(repr=False)
    info: BinaryInfo

    @property
    def content_hash(self) -> str:
        return digest_bytes(self.content)


@dataclass(frozen=True)
class _Request:
    soname: str
    requester: str
    search_dirs: tuple[str, ...]  # in-image directories from RPATH/RUNPATH
    rpath_chain: tuple[str, ...] = ()  # RPATH inherited by what this loads


def _check_cancel(cancel: threading.Event | None, where: str) -> None:
    if cancel is not None and cancel.is_set():
        raise AssemblyCancelled(f"Resolution cancelled before {where}")


def _expand_origin(entry: str, origin: str) -> str:
    expanded = entry.replace("${ORIGIN}", origin).replace("$ORIGIN", origin)
    if not expanded.startswith("/"):
        expanded = posixpath.join(origin, expanded)
    return "/" + posixpath.normpath(expanded).lstrip("/")


def _image_path(needed: str) -> str:
    """In-image location of a DT_NEEDED entry that names a path."""
    return normalize_image_path("/" + needed.lstrip("/"))


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


class DependencyResolver:
    """Computes ``DependencyClosure``s against an explicit search path.

    Parameters
    ----------
    config:
        Search roots, auxiliary requirement map, overrides and policy.
    cache:
        Session cache. A closure is served from it when the binary's
        content hash and the configuration hash both match.
    inspector:
        Binary inspection backend (defaults to ``ElfInspector``).
    max_workers:
        Thread pool size for resolving one frontier of sonames.
    """

    def __init__(
        self,
        config: ResolverConfig,
        cache: BuildCache | None = None,
        *,
        inspector: BinaryInspector | None = None,
        max_workers: int = 4,
        default_binary_dir: str = DEFAULT_BINARY_DIR,
    ) -> None:
        self.config = config
        self.cache = cache if cache is not None else BuildCache()
        self.inspector = inspector or ElfInspector()
        self.max_workers = max(1, max_workers)
        self.default_binary_dir = normalize_image_path(default_binary_dir)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(
        self,
        binary_path: Path,
        *,
        destination: str | None = None,
        auxiliary: Iterable[str] = (),
        cancel: threading.Event | None = None,
    ) -> DependencyClosure:
        """Resolve the runtime closure of the binary at ``binary_path``.

        Raises ``UnresolvableDependency`` for a missing library, interpreter
        or auxiliary source, and ``AmbiguousDependency`` for differing
        candidates under the strict policy or for cyclic dependencies.
        """
        binary_path = Path(binary_path)
        data = binary_path.read_bytes()
        dest = normalize_image_path(
            destination or posixpath.join(self.default_binary_dir, binary_path.name)
        )
        requested_aux = sorted(set(auxiliary))

        key = CacheKey(
            stage="closure",
            subject_hash=digest_bytes(data),
            config_hash=content_address({
                "resolver": self.config.config_hash(),
                "destination": dest,
                "auxiliary": requested_aux,
            }),
        )
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("closure for %s served from cache", dest)
            return cached

        binary = Artifact(path=dest, content=data, mode=SHARED_OBJECT_MODE)
        info = self.inspect(data)

        graph = DependencyGraph()
        artifacts: list[Artifact] = []
        requirements: dict[str, tuple[str, ...]] = {}

        if info.is_self_contained and not requested_aux:
            logger.info("%s is self-contained; closure is the binary alone", dest)
        else:
            libraries = self._resolve_libraries(binary, info, graph, cancel)
            for name, candidate in sorted(libraries.items()):
                artifacts.append(
                    Artifact(
                        path=candidate.destination,
                        content=candidate.content,
                        mode=SHARED_OBJECT_MODE,
                    )
                )
                requirements[name] = (candidate.destination,)

            aux_names = sorted(set(requested_aux) | set(info.declared_requirements))
            for name in aux_names:
                _check_cancel(cancel, f"auxiliary requirement {name}")
                aux_artifacts = self._resolve_auxiliary(name)
                artifacts.extend(aux_artifacts)
                requirements[name] = tuple(a.path for a in aux_artifacts)

        graph.validate_acyclic()
        closure = DependencyClosure.from_artifacts(binary, artifacts, requirements)
        logger.info(
            "resolved %s: %d artifacts, %d requirements",
            dest, len(closure.artifacts), len(closure.requirements),
        )
        self.cache.put(key, closure)
        return closure

    def inspect(self, data: bytes) -> BinaryInfo:
        """Inspect ``data``, memoized in the cache by content hash."""
        key = CacheKey(
            stage="inspect",
            subject_hash=digest_bytes(data),
            config_hash=type(self.inspector).__qualname__,
        )
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        info = self.inspector.inspect(data)
        self.cache.put(key, info)
        return info

    # ------------------------------------------------------------------
    # Shared libraries and interpreters
    # ------------------------------------------------------------------

    def _resolve_libraries(
        self,
        binary: Artifact,
        info: BinaryInfo,
        graph: DependencyGraph,
        cancel: threading.Event | None,
    ) -> dict[str, _Candidate]:
        """Breadth-first transitive resolution of sonames and interpreters."""
        resolved: dict[str, _Candidate] = {}
        interpreters: set[str] = set()

        root_node = binary.path
        frontier = self._requests_for(root_node, binary.path, info, graph, interpreters)
        queued = {r.soname for r in frontier}

        # Breadth-first in DT_NEEDED order: a soname needed by several
        # objects is found through whichever requests it first.
        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="slimroot-resolve"
        ) as pool:
            while frontier:
                results = list(
                    pool.map(lambda req: self._resolve_request(req, info, cancel), frontier)
                )
                next_frontier: list[_Request] = []
                for request, candidate in zip(frontier, results):
                    resolved[request.soname] = candidate
                    for nested in self._requests_for(
                        request.soname, candidate.destination, candidate.info,
                        graph, interpreters, inherited=request.rpath_chain,
                    ):
                        if nested.soname not in queued:
                            queued.add(nested.soname)
                            next_frontier.append(nested)
                frontier = next_frontier

        for interpreter in sorted(interpreters):
            _check_cancel(cancel, f"interpreter {interpreter}")
            resolved[interpreter] = self._resolve_interpreter(interpreter, info)
        return resolved

    def _requests_for(
        self,
        node: str,
        destination: str,
        info: BinaryInfo,
        graph: DependencyGraph,
        interpreters: set[str],
        inherited: tuple[str, ...] = (),
    ) -> list[_Request]:
        """Requests for ``info.needed``, with the loader's search directories.

        ``inherited`` is the RPATH chain of the objects that loaded ``node``.
        An object with RUNPATH ignores its own RPATH and the inherited chain.
        """
        origin = posixpath.dirname(destination)
        runpath = tuple(_expand_origin(entry, origin) for entry in info.runpath)
        own_rpath = () if runpath else tuple(
            _expand_origin(entry, origin) for entry in info.rpath
        )
        chain = tuple(_unique((*own_rpath, *inherited)))
        search_dirs = runpath or chain

        requires = list(info.needed)
        if info.interpreter:
            interpreters.add(info.interpreter)
            requires.append(info.interpreter)
        graph.add_node(node, requires)
        return [
            _Request(
                soname=soname,
                requester=node,
                search_dirs=search_dirs,
                rpath_chain=chain,
            )
            for soname in _unique(info.needed)
        ]

    def _resolve_request(
        self,
        request: _Request,
        requester_info: BinaryInfo,
        cancel: threading.Event | None,
    ) -> _Candidate:
        _check_cancel(cancel, f"library {request.soname}")
        candidates = self._find_candidates(request, requester_info)
        if not candidates:
            raise UnresolvableDependency(
                request.soname, f"needed by {request.requester}; not in search path"
            )
        return self._choose(request.soname, candidates)

    def _find_candidates(
        self, request: _Request, requester_info: BinaryInfo
    ) -> list[_Candidate]:
        soname = request.soname
        override = self.config.overrides.get(soname)
        if override is not None:
            if not override.is_file():
                raise UnresolvableDependency(soname, f"override {override} does not exist")
            data = override.read_bytes()
            return [
                _Candidate(
                    host_path=override,
                    destination=self._override_destination(override, soname),
                    content=data,
                    info=self.inspect(data),
                )
            ]

        if "/" in soname:
            # The loader opens a path as given and never searches for it.
            return self._candidates_at(_image_path(soname), requester_info)

        candidates: list[_Candidate] = []
        seen: set[Path] = set()
        for root in self.config.search_roots:
            dirs = [*request.search_dirs, *("/" + d for d in root.library_dirs)]
            for image_dir in dirs:
                host = root.host_root / image_dir.lstrip("/") / soname
                if host in seen or not host.is_file():
                    continue
                seen.add(host)
                candidate = self._candidate(
                    host, posixpath.join(image_dir, soname), requester_info
                )
                if candidate is not None:
                    candidates.append(candidate)
        return candidates

    def _candidates_at(self, image_path: str, requester_info: BinaryInfo) -> list[_Candidate]:
        """Candidates for one exact in-image path, one per search root."""
        candidates = []
        for root in self.config.search_roots:
            host = root.host_root / image_path.lstrip("/")
            if host.is_file():
                candidate = self._candidate(host, image_path, requester_info)
                if candidate is not None:
                    candidates.append(candidate)
        return candidates

    def _candidate(
        self, host: Path, image_path: str, requester_info: BinaryInfo
    ) -> _Candidate | None:
        """Read and inspect ``host``; None when its architecture does not match."""
        data = host.read_bytes()
        info = self.inspect(data)
        if self.config.check_architecture and not info.compatible_with(requester_info):
            logger.debug(
                "skipping %s: %s/ELF%s does not match %s/ELF%s",
                host, info.machine, info.elf_class,
                requester_info.machine, requester_info.elf_class,
            )
            return None
        return _Candidate(
            host_path=host,
            destination=normalize_image_path(image_path),
            content=data,
            info=info,
        )

    def _override_destination(self, override: Path, soname: str) -> str:
        if "/" in soname:
            return _image_path(soname)
        name = posixpath.basename(soname)
        for root in self.config.search_roots:
            try:
                relative = override.parent.relative_to(root.host_root)
            except ValueError:
                continue
            return normalize_image_path("/" + posixpath.join(relative.as_posix(), name))
        return normalize_image_path(posixpath.join("/usr/lib", name))

    def _choose(self, soname: str, candidates: list[_Candidate]) -> _Candidate:
        """Apply the ambiguity policy to the candidates for one soname."""
        first = candidates[0]
        distinct = {c.content_hash for c in candidates}
        if len(distinct) == 1:
            logger.debug("%s -> %s", soname, first.host_path)
            return first
        if self.config.ambiguity_policy == "first-match":
            logger.info(
                "%s: %d differing candidates, first match %s wins",
                soname, len(distinct), first.host_path,
            )
            return first
        raise AmbiguousDependency(soname, [str(c.host_path) for c in candidates])

    def _resolve_interpreter(self, interpreter: str, binary_info: BinaryInfo) -> _Candidate:
        candidates = self._candidates_at(normalize_image_path(interpreter), binary_info)
        if not candidates:
            raise UnresolvableDependency(
                interpreter, "program interpreter not in search path"
            )
        return self._choose(interpreter, candidates)

    # ------------------------------------------------------------------
    # Auxiliary requirements
    # ------------------------------------------------------------------

    def _resolve_auxiliary(self, name: str) -> list[Artifact]:
        source = self.config.auxiliary.get(name)
        if source is None:
            raise UnresolvableDependency(name, "no auxiliary source configured")

        for root in self.config.search_roots:
            host = root.host_root / source.source
            if host.is_file():
                logger.debug("auxiliary %s -> %s", name, host)
                return [
                    Artifact(
                        path=source.destination,
                        content=host.read_bytes(),
                        mode=source.mode,
                    )
                ]
            if host.is_dir():
                artifacts = self._collect_directory(host, source)
                if artifacts:
                    logger.debug(
                        "auxiliary %s -> %s (%d files)", name, host, len(artifacts)
                    )
                    return artifacts

        raise UnresolvableDependency(name, f"{source.source} not found in search path")

    @staticmethod
    def _collect_directory(host: Path, source: AuxiliarySource) -> list[Artifact]:
        artifacts = []
        for path in sorted(host.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(host).as_posix()
            artifacts.append(
                Artifact(
                    path=posixpath.join(source.destination, relative),
                    content=path.read_bytes(),
                    mode=source.mode,
                )
            )
        return artifacts


def resolve(
    binary_path: Path,
    config: ResolverConfig,
    cache: BuildCache | None = None,
    **kwargs,
) -> DependencyClosure:
    """Functional shorthand for ``DependencyResolver(config, cache).resolve``."""
    inspector = kwargs.pop("inspector", None)
    return DependencyResolver(config, cache, inspector=inspector).resolve(
        binary_path, **kwargs
    )
