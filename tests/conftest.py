"""Shared test fixtures for slimroot."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from slimroot.core.cache import BuildCache
from slimroot.core.elf import BinaryInfo
from slimroot.core.resolver import DependencyResolver
from slimroot.models.config import ResolverConfig

FAKE_MAGIC = b"#fakebin\n"


class FakeInspector:
    """Reads requirements from a line-based text format instead of ELF.

    A fake binary starts with ``#fakebin`` followed by lines such as
    ``needed libfoo.so.1``, ``interp /lib/ld.so``, ``rpath $ORIGIN/../lib``,
    ``requires trust-anchors`` or ``machine EM_AARCH64``. Anything else is
    treated as a non-ELF file.
    """

    def __init__(self) -> None:
        self.calls = 0

    def inspect(self, data: bytes) -> BinaryInfo:
        self.calls += 1
        if not data.startswith(FAKE_MAGIC):
            return BinaryInfo()
        fields: dict[str, list[str]] = {}
        for line in data[len(FAKE_MAGIC):].decode().splitlines():
            key, _, value = line.partition(" ")
            if key:
                fields.setdefault(key, []).append(value.strip())
        return BinaryInfo(
            is_elf=True,
            elf_class=64,
            machine=(fields.get("machine") or ["EM_X86_64"])[0],
            interpreter=(fields.get("interp") or [None])[0],
            soname=(fields.get("soname") or [None])[0],
            needed=tuple(fields.get("needed", [])),
            rpath=tuple(fields.get("rpath", [])),
            runpath=tuple(fields.get("runpath", [])),
            declared_requirements=tuple(fields.get("requires", [])),
        )


def fake_binary(
    *,
    needed: tuple[str, ...] = (),
    interp: str | None = None,
    requires: tuple[str, ...] = (),
    rpath: tuple[str, ...] = (),
    runpath: tuple[str, ...] = (),
    machine: str | None = None,
    tag: str = "",
) -> bytes:
    """Content of a fake binary; ``tag`` distinguishes otherwise-equal files."""
    lines = [f"needed {n}" for n in needed]
    lines += [f"rpath {r}" for r in rpath]
    lines += [f"runpath {r}" for r in runpath]
    lines += [f"requires {r}" for r in requires]
    if interp:
        lines.append(f"interp {interp}")
    if machine:
        lines.append(f"machine {machine}")
    if tag:
        lines.append(f"tag {tag}")
    return FAKE_MAGIC + "\n".join(lines).encode() + b"\n"


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def sysroot(tmp_dir: Path) -> Path:
    """An empty host root to populate with libraries and data files."""
    root = tmp_dir / "sysroot"
    root.mkdir()
    return root


@pytest.fixture
def write_file() -> Callable[..., Path]:
    """Factory fixture: write bytes under a root, creating parents."""

    def _factory(root: Path, relative: str, content: bytes) -> Path:
        path = root / relative.lstrip("/")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _factory


@pytest.fixture
def make_binary(tmp_dir: Path) -> Callable[..., Path]:
    """Factory fixture: write a fake binary outside any search root."""

    def _factory(name: str = "server", **kwargs: Any) -> Path:
        bin_dir = tmp_dir / "build"
        bin_dir.mkdir(exist_ok=True)
        path = bin_dir / name
        path.write_bytes(fake_binary(**kwargs))
        return path

    return _factory


@pytest.fixture
def cache() -> BuildCache:
    """Provide a fresh session cache."""
    return BuildCache()


@pytest.fixture
def inspector() -> FakeInspector:
    return FakeInspector()


@pytest.fixture
def make_resolver(
    sysroot: Path, cache: BuildCache, inspector: FakeInspector
) -> Callable[..., DependencyResolver]:
    """Factory fixture: a resolver over ``sysroot`` with the fake inspector."""

    def _factory(config: ResolverConfig | None = None, **overrides: Any) -> DependencyResolver:
        config = config or ResolverConfig.for_roots(sysroot, **overrides)
        return DependencyResolver(config, cache, inspector=inspector)

    return _factory
