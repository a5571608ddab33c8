"""Architecture inspection for build artifacts.

Reports the canonical architectures found in a file: ELF objects through
pyelftools, Mach-O (thin and fat), PE images and COFF objects through
their fixed headers, and ``ar`` archives by inspecting every member.
ELF executables can also be asked for their dynamic linkage.
"""

from __future__ import annotations

import io
import logging
import struct
from pathlib import Path
from typing import BinaryIO

from elftools.common.exceptions import ELFError
from elftools.elf.dynamic import DynamicSection
from elftools.elf.elffile import ELFFile
from elftools.elf.segments import InterpSegment
from pydantic import BaseModel, ConfigDict

from codecforge.models.platforms import normalize_arch

logger = logging.getLogger(__name__)

_ELF_MAGIC = b"\x7fELF"
_AR_MAGIC = b"!<arch>\n"
_AR_HEADER_SIZE = 60
_FAT_MAGIC = b"\xca\xfe\xba\xbe"

_ELF_MACHINES: dict[str, str] = {
    "EM_X86_64": "x86_64",
    "EM_AARCH64": "aarch64",
    "EM_ARM": "arm",
    "EM_386": "i386",
    "EM_S390": "s390x",
}

_MACHO_CPU_TYPES: dict[int, str] = {
    0x00000007: "i386",
    0x01000007: "x86_64",
    0x0000000C: "arm",
    0x0100000C: "aarch64",
    0x00000012: "ppc",
    0x01000012: "ppc64",
}

# IMAGE_FILE_MACHINE_* values shared by PE images and COFF objects.
_COFF_MACHINES: dict[int, str] = {
    0x8664: "x86_64",
    0xAA64: "aarch64",
    0x014C: "i386",
    0x01C4: "arm",
}

# Archive index members that never contain object code.
_AR_INDEX_NAMES = frozenset({"/", "//", "/SYM64/", "__.SYMDEF", "__.SYMDEF SORTED"})


def inspect_architectures(path: Path) -> frozenset[str]:
    """Return the canonical architectures found in ``path``.

    An empty set means the format was not recognised.
    """
    with open(path, "rb") as fh:
        try:
            if fh.read(len(_AR_MAGIC)) == _AR_MAGIC:
                return _inspect_archive(fh)
            fh.seek(0)
            return _inspect_object(fh)
        except (ELFError, struct.error, ValueError) as exc:
            logger.debug("Malformed binary %s: %s", path, exc)
            return frozenset()


def matches_arch(found: frozenset[str], expected: str) -> bool:
    """True when every architecture found is the expected one."""
    return bool(found) and found == {normalize_arch(expected)}


# ------------------------------------------------------------------
# Single objects
# ------------------------------------------------------------------


def _inspect_object(fh: BinaryIO) -> frozenset[str]:
    head = fh.read(64)
    fh.seek(0)
    if head.startswith(_ELF_MAGIC):
        return _inspect_elf(fh)
    if head.startswith(b"MZ"):
        return _inspect_pe(fh)
    if head.startswith(_FAT_MAGIC):
        return _inspect_fat(head, fh)
    if len(head) >= 8:
        arch = _macho_arch(head)
        if arch:
            return frozenset({arch})
    if len(head) >= 20:
        (machine,) = struct.unpack_from("<H", head, 0)
        if machine in _COFF_MACHINES:
            return frozenset({_COFF_MACHINES[machine]})
    return frozenset()


def _inspect_elf(fh: BinaryIO) -> frozenset[str]:
    try:
        elf = ELFFile(fh)
    except ELFError as exc:
        logger.debug("Unparseable ELF object: %s", exc)
        return frozenset()
    machine = elf.header["e_machine"]
    if machine == "EM_PPC64":
        return frozenset({"ppc64le" if elf.little_endian else "ppc64"})
    if machine == "EM_RISCV":
        return frozenset({"riscv64" if elf.elfclass == 64 else "riscv32"})
    if machine in _ELF_MACHINES:
        return frozenset({_ELF_MACHINES[machine]})
    return frozenset({normalize_arch(str(machine).removeprefix("EM_"))})


def _macho_arch(head: bytes) -> str | None:
    (magic,) = struct.unpack_from("<I", head, 0)
    if magic in (0xFEEDFACE, 0xFEEDFACF):
        endian = "<"
    elif magic in (0xCEFAEDFE, 0xCFFAEDFE):
        endian = ">"
    else:
        return None
    (cputype,) = struct.unpack_from(f"{endian}I", head, 4)
    return _MACHO_CPU_TYPES.get(cputype, f"macho-cpu-{cputype:#x}")


def _inspect_fat(head: bytes, fh: BinaryIO) -> frozenset[str]:
    (count,) = struct.unpack_from(">I", head, 4)
    # Java class files share the fat magic; their "count" is a version >= 45.
    if count == 0 or count >= 45:
        return frozenset()
    fh.seek(8)
    table = fh.read(20 * count)
    archs: set[str] = set()
    for i in range(len(table) // 20):
        (cputype,) = struct.unpack_from(">I", table, i * 20)
        archs.add(_MACHO_CPU_TYPES.get(cputype, f"macho-cpu-{cputype:#x}"))
    return frozenset(archs)


def _inspect_pe(fh: BinaryIO) -> frozenset[str]:
    fh.seek(0x3C)
    raw = fh.read(4)
    if len(raw) < 4:
        return frozenset()
    (offset,) = struct.unpack("<I", raw)
    fh.seek(offset)
    header = fh.read(6)
    if len(header) < 6 or header[:4] != b"PE\0\0":
        return frozenset()
    (machine,) = struct.unpack_from("<H", header, 4)
    arch = _COFF_MACHINES.get(machine)
    return frozenset({arch}) if arch else frozenset()


# ------------------------------------------------------------------
# Archives
# ------------------------------------------------------------------


def _inspect_archive(fh: BinaryIO) -> frozenset[str]:
    archs: set[str] = set()
    while True:
        header = fh.read(_AR_HEADER_SIZE)
        if len(header) < _AR_HEADER_SIZE:
            break
        if header[58:60] != b"`\n":
            logger.debug("Corrupt archive member header at offset %d", fh.tell())
            return frozenset()
        name = header[:16].decode("ascii", errors="replace").rstrip()
        try:
            size = int(header[48:58].decode("ascii").strip() or "0")
        except ValueError:
            logger.debug("Corrupt archive member size %r", header[48:58])
            return frozenset()
        if size < 0:
            return frozenset()
        data = fh.read(size)
        if size % 2:
            fh.read(1)

        if name.startswith("#1/"):
            # BSD: the member name is stored in front of its data.
            try:
                name_len = int(name[3:] or "0")
            except ValueError:
                logger.debug("Corrupt BSD member name %r", name)
                return frozenset()
            if not 0 <= name_len <= len(data):
                return frozenset()
            name = data[:name_len].rstrip(b"\0").decode("ascii", errors="replace")
            data = data[name_len:]
        if name in _AR_INDEX_NAMES or name.startswith("__.SYMDEF"):
            continue
        archs |= _inspect_object(io.BytesIO(data))
    return frozenset(archs)


# ------------------------------------------------------------------
# Linkage
# ------------------------------------------------------------------


class DynamicLinkage(BaseModel):
    """Program interpreter and DT_NEEDED entries of an ELF executable."""

    model_config = ConfigDict(frozen=True)

    interpreter: str | None = None
    needed: tuple[str, ...] = ()

    @property
    def is_dynamic(self) -> bool:
        return self.interpreter is not None or bool(self.needed)


def inspect_linkage(path: Path) -> DynamicLinkage:
    """Report how ``path`` links at run time.

    Static executables (static-pie included) and anything that is not a
    parseable ELF file report no interpreter and no needed libraries.
    """
    with open(path, "rb") as fh:
        if fh.read(len(_ELF_MAGIC)) != _ELF_MAGIC:
            return DynamicLinkage()
        fh.seek(0)
        try:
            elf = ELFFile(fh)
            interpreter = None
            for segment in elf.iter_segments():
                if isinstance(segment, InterpSegment):
                    interpreter = segment.get_interp_name()
            needed: list[str] = []
            for section in elf.iter_sections():
                if isinstance(section, DynamicSection):
                    needed.extend(tag.needed for tag in section.iter_tags("DT_NEEDED"))
        except (ELFError, struct.error, ValueError) as exc:
            logger.debug("Unparseable ELF linkage in %s: %s", path, exc)
            return DynamicLinkage()
    return DynamicLinkage(interpreter=interpreter, needed=tuple(needed))
