"""Static inspection of a binary's dynamic-linking metadata.

Defines the ``BinaryInspector`` protocol the resolver depends on and the
default ``ElfInspector`` built on pyelftools. Nothing here executes the
binary: requirements come from the program headers (``PT_INTERP``,
``PT_DYNAMIC``) and from an optional ``.slimroot.requires`` section in
which a binary lists its auxiliary requirements, one name per line.
"""

from __future__ import annotations

import io
import logging
from typing import Protocol, runtime_checkable

from elftools.common.exceptions import ELFError
from elftools.elf.dynamic import DynamicSegment
from elftools.elf.elffile import ELFFile
from pydantic import BaseModel, ConfigDict

from slimroot.core.errors import AssemblyError

logger = logging.getLogger(__name__)

ELF_MAGIC = b"\x7fELF"
REQUIRES_SECTION = ".slimroot.requires"


class MalformedBinary(AssemblyError):
    """The input carries the ELF magic but its headers cannot be parsed."""


class BinaryInfo(BaseModel):
    """What a binary declares it needs from its runtime environment."""

    model_config = ConfigDict(frozen=True)

    is_elf: bool = False
    elf_class: int | None = None  # 32 or 64
    machine: str | None = None  # e_machine, e.g. "EM_X86_64"
    interpreter: str | None = None
    soname: str | None = None
    needed: tuple[str, ...] = ()
    rpath: tuple[str, ...] = ()
    runpath: tuple[str, ...] = ()
    declared_requirements: tuple[str, ...] = ()

    @property
    def is_self_contained(self) -> bool:
        return not (self.interpreter or self.needed or self.declared_requirements)

    def compatible_with(self, other: BinaryInfo) -> bool:
        """True when both objects could be loaded into one process."""
        if not (self.is_elf and other.is_elf):
            return True
        return (self.elf_class, self.machine) == (other.elf_class, other.machine)


@runtime_checkable
class BinaryInspector(Protocol):
    """Protocol for binary inspection backends.

    Any object with an ``inspect(data) -> BinaryInfo`` method satisfies
    this protocol.
    """

    def inspect(self, data: bytes) -> BinaryInfo:
        """Return the declared runtime requirements of ``data``."""
        ...


def _split_paths(value: str) -> tuple[str, ...]:
    return tuple(p for p in value.split(":") if p)


class ElfInspector:
    """pyelftools-backed inspector for ELF executables and shared objects.

    Non-ELF input (scripts, data files) is reported as ``is_elf=False`` with
    no requirements.
    """

    def inspect(self, data: bytes) -> BinaryInfo:
        if not data.startswith(ELF_MAGIC):
            return BinaryInfo()

        try:
            elf = ELFFile(io.BytesIO(data))
            return self._read(elf)
        except ELFError as exc:
            raise MalformedBinary(f"Cannot parse ELF headers: {exc}") from exc

    def _read(self, elf: ELFFile) -> BinaryInfo:
        interpreter: str | None = None
        soname: str | None = None
        needed: list[str] = []
        rpath: list[str] = []
        runpath: list[str] = []

        for segment in elf.iter_segments():
            if segment["p_type"] == "PT_INTERP":
                interpreter = segment.get_interp_name()
            elif isinstance(segment, DynamicSegment):
                for tag in segment.iter_tags():
                    d_tag = tag.entry.d_tag
                    if d_tag == "DT_NEEDED":
                        needed.append(tag.needed)
                    elif d_tag == "DT_RPATH":
                        rpath.extend(_split_paths(tag.rpath))
                    elif d_tag == "DT_RUNPATH":
                        runpath.extend(_split_paths(tag.runpath))
                    elif d_tag == "DT_SONAME":
                        soname = tag.soname

        declared: tuple[str, ...] = ()
        section = elf.get_section_by_name(REQUIRES_SECTION)
        if section is not None:
            text = section.data().decode("utf-8", errors="replace")
            declared = tuple(
                line.strip() for line in text.replace("\x00", "\n").splitlines()
                if line.strip()
            )

        info = BinaryInfo(
            is_elf=True,
            elf_class=elf.elfclass,
            machine=elf["e_machine"],
            interpreter=interpreter,
            soname=soname,
            needed=tuple(needed),
            rpath=tuple(rpath),
            runpath=tuple(runpath),
            declared_requirements=declared,
        )
        logger.debug(
            "inspected %s ELF%d: %d needed, interpreter=%s",
            info.machine, info.elf_class, len(info.needed), info.interpreter,
        )
        return info
