"""Shared test fixtures for codecforge."""

from __future__ import annotations

import struct
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from codecforge.core.isolation import EnvironmentDescriptor
from codecforge.core.orchestrator import BuildOrchestrator
from codecforge.core.registry import UnitRegistry
from codecforge.models.config import BuildConfiguration, BuildLayout, ToolchainSpec
from codecforge.models.tiers import TierDefinition
from codecforge.models.units import ArtifactDescriptor, ArtifactKind, LicenseClass, Unit

EM_386 = 3
EM_ARM = 40
EM_X86_64 = 62
EM_AARCH64 = 183

ARCH_MACHINES = {"x86_64": EM_X86_64, "aarch64": EM_AARCH64, "arm": EM_ARM, "i386": EM_386}

TOOL_NAMES = ("gcc", "g++", "ar", "ranlib", "strip", "pkg-config")

GLIBC_INTERPRETER = "/lib64/ld-linux-x86-64.so.2"
DYNAMIC_NEEDED = ("libva.so.2", "libm.so.6", "libc.so.6")


# ---------------------------------------------------------------------------
# Binary builders
# ---------------------------------------------------------------------------


def make_elf(machine: int = EM_X86_64, *, little_endian: bool = True) -> bytes:
    """Smallest well-formed ELF64 relocatable: header, .shstrtab, two sections."""
    e = "<" if little_endian else ">"
    ident = b"\x7fELF" + bytes([2, 1 if little_endian else 2, 1, 0]) + b"\0" * 8
    header = struct.pack(
        e + "16sHHIQQQIHHHHHH",
        ident, 1, machine, 1, 0, 0, 80, 0, 64, 0, 0, 64, 2, 1,
    )
    strtab = b"\0.shstrtab\0".ljust(16, b"\0")
    null_section = b"\0" * 64
    strtab_section = struct.pack(e + "IIQQQQIIQQ", 1, 3, 0, 0, 64, 11, 0, 0, 1, 0)
    return header + strtab + null_section + strtab_section


def make_dynamic_elf(
    machine: int = EM_X86_64, *, interpreter: str = "", needed: Iterable[str] = ()
) -> bytes:
    """ELF64 executable with a ``.dynamic`` table and an optional PT_INTERP.

    With neither an interpreter nor needed libraries it reads like a
    static-pie binary: dynamic table present, nothing to load.
    """
    dynstr = bytearray(b"\0")
    entries = []
    for soname in needed:
        entries.append((1, len(dynstr)))  # DT_NEEDED
        dynstr += soname.encode("ascii") + b"\0"
    entries.append((0, 0))  # DT_NULL
    dynamic = b"".join(struct.pack("<qQ", tag, value) for tag, value in entries)
    interp = interpreter.encode("ascii") + b"\0" if interpreter else b""
    shstrtab = b"\0.interp\0.dynstr\0.dynamic\0.shstrtab\0"

    phnum = 2 if interp else 1
    interp_off = 64 + 56 * phnum
    dynstr_off = interp_off + len(interp)
    dynamic_off = (dynstr_off + len(dynstr) + 7) & ~7
    shstrtab_off = dynamic_off + len(dynamic)
    sh_off = (shstrtab_off + len(shstrtab) + 7) & ~7

    ident = b"\x7fELF" + bytes([2, 1, 1, 0]) + b"\0" * 8
    header = struct.pack(
        "<16sHHIQQQIHHHHHH",
        ident, 2, machine, 1, 0, 64, sh_off, 0, 64, 56, phnum, 64, 5, 4,
    )
    program_headers = b""
    if interp:
        program_headers += struct.pack(
            "<IIQQQQQQ", 3, 4, interp_off, interp_off, interp_off, len(interp), len(interp), 1
        )
    program_headers += struct.pack(
        "<IIQQQQQQ", 2, 6, dynamic_off, dynamic_off, dynamic_off, len(dynamic), len(dynamic), 8
    )
    sections = [
        b"\0" * 64,
        struct.pack("<IIQQQQIIQQ", 1, 1, 2, interp_off, interp_off, len(interp), 0, 0, 1, 0),
        struct.pack("<IIQQQQIIQQ", 9, 3, 2, dynstr_off, dynstr_off, len(dynstr), 0, 0, 1, 0),
        struct.pack("<IIQQQQIIQQ", 17, 6, 3, dynamic_off, dynamic_off, len(dynamic), 2, 0, 8, 16),
        struct.pack("<IIQQQQIIQQ", 26, 3, 0, 0, shstrtab_off, len(shstrtab), 0, 0, 1, 0),
    ]
    body = header + program_headers + interp + bytes(dynstr)
    body = body.ljust(dynamic_off, b"\0") + dynamic + shstrtab
    return body.ljust(sh_off, b"\0") + b"".join(sections)


def make_corrupt_bsd_ar() -> bytes:
    """``ar`` archive whose BSD long-name member has a non-numeric name length."""
    header = f"{'#1/zz':<16}{0:<12}{0:<6}{0:<6}{644:<8}{4:<10}`\n"
    return b"!<arch>\n" + header.encode("ascii") + b"\0\0\0\0"


def make_ar(members: Iterable[tuple[str, bytes]]) -> bytes:
    """GNU-style ``ar`` archive with a leading (empty) symbol table."""
    out = bytearray(b"!<arch>\n")
    for name, data in [("/", b"\0\0\0\0"), *members]:
        member_name = name if name == "/" else f"{name}/"
        out += (
            f"{member_name:<16}{0:<12}{0:<6}{0:<6}{644:<8}{len(data):<10}`\n"
        ).encode("ascii")
        out += data
        if len(data) % 2:
            out += b"\n"
    return bytes(out)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class StaticToolchainProbe:
    """Reports a fixed architecture instead of compiling anything."""

    def __init__(self, arch: str = "x86_64") -> None:
        self.arch = arch
        self.calls = 0

    def probe(self, config: BuildConfiguration, environment: EnvironmentDescriptor) -> str:
        self.calls += 1
        return self.arch


class FakeAction:
    """In-process unit action that installs an ELF artifact and a ``.pc`` file.

    Parameters
    ----------
    registry:
        Used to write ``Requires`` for each unit's dependencies.
    fail:
        Units whose action exits non-zero.
    hollow:
        Units whose action exits 0 without installing anything.
    wrong_arch:
        Units that install an aarch64 artifact.
    no_descriptor:
        Units that install the artifact but no ``.pc`` file.
    corrupt:
        Units that install a malformed ``ar`` archive.
    dynamic:
        Units that install a dynamically linked glibc executable.
    """

    def __init__(
        self,
        registry: UnitRegistry,
        *,
        arch: str = "x86_64",
        fail: Iterable[str] = (),
        hollow: Iterable[str] = (),
        wrong_arch: Iterable[str] = (),
        no_descriptor: Iterable[str] = (),
        corrupt: Iterable[str] = (),
        dynamic: Iterable[str] = (),
    ) -> None:
        self.registry = registry
        self.machine = ARCH_MACHINES[arch]
        self.fail = set(fail)
        self.hollow = set(hollow)
        self.wrong_arch = set(wrong_arch)
        self.no_descriptor = set(no_descriptor)
        self.corrupt = set(corrupt)
        self.dynamic = set(dynamic)
        self.calls: list[str] = []
        self.environments: dict[str, EnvironmentDescriptor] = {}
        self._lock = threading.Lock()

    def run(
        self,
        unit: Unit,
        config: BuildConfiguration,
        environment: EnvironmentDescriptor,
        output_dir: Path,
    ) -> int:
        uid = unit.unit_id
        with self._lock:
            self.calls.append(uid)
            self.environments[uid] = environment
        if uid in self.fail:
            return 2
        if uid in self.hollow:
            return 0

        artifact = config.artifact_path(unit)
        artifact.parent.mkdir(parents=True, exist_ok=True)
        machine = EM_AARCH64 if uid in self.wrong_arch else self.machine
        if uid in self.corrupt:
            artifact.write_bytes(make_corrupt_bsd_ar())
        elif uid in self.dynamic:
            artifact.write_bytes(
                make_dynamic_elf(machine, interpreter=GLIBC_INTERPRETER, needed=DYNAMIC_NEEDED)
            )
        else:
            artifact.write_bytes(make_elf(machine))

        if uid not in self.no_descriptor:
            requires = sorted(
                self.registry.get_unit(dep).artifact.pkg_config for dep in unit.dependencies
            )
            write_descriptor(output_dir, unit.artifact.pkg_config, requires=requires)
        return 0


def write_descriptor(
    unit_root: Path,
    name: str,
    *,
    requires: Iterable[str] = (),
    libdir: str = "${prefix}/lib",
    extra: str = "",
) -> Path:
    pc_dir = unit_root / "lib" / "pkgconfig"
    pc_dir.mkdir(parents=True, exist_ok=True)
    lines = [
        f"prefix={unit_root}",
        f"libdir={libdir}",
        "includedir=${prefix}/include",
        "",
        f"Name: {name}",
        f"Description: {name} test build",
        "Version: 1.0.0",
    ]
    requires = list(requires)
    if requires:
        lines.append(f"Requires: {', '.join(requires)}")
    lines += [f"Libs: -L${{libdir}} -l{name}", "Cflags: -I${includedir}"]
    if extra:
        lines.append(extra)
    path = pc_dir / f"{name}.pc"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------


def make_unit(
    unit_id: str,
    *deps: str,
    license_class: LicenseClass = LicenseClass.PERMISSIVE,
    aggregate: bool = False,
    version_key: str = "",
) -> Unit:
    if aggregate:
        artifact = ArtifactDescriptor(
            artifact=f"bin/{unit_id}", pkg_config=unit_id, kind=ArtifactKind.EXECUTABLE
        )
    else:
        artifact = ArtifactDescriptor(artifact=f"lib/lib{unit_id}.a", pkg_config=unit_id)
    return Unit(
        unit_id=unit_id,
        display_name=unit_id.upper(),
        license_class=license_class,
        artifact=artifact,
        dependencies=frozenset(deps),
        version_key=version_key,
        is_aggregate=aggregate,
    )


TEST_ALIASES = {"basic": "simple", "everything": "rich"}


@pytest.fixture
def test_registry() -> UnitRegistry:
    """x <- y, independent z, aggregate ``app``; tiers simple={x,y}, rich=simple+{z}."""
    return UnitRegistry(
        units=[
            make_unit("x"),
            make_unit("y", "x"),
            make_unit("z"),
            make_unit("app", aggregate=True),
        ],
        tiers=[
            TierDefinition(name="simple", units=("x", "y"), license_label="permissive"),
            TierDefinition(name="rich", extends=("simple",), units=("z",)),
        ],
    )


# ---------------------------------------------------------------------------
# Configuration and orchestrator
# ---------------------------------------------------------------------------


@pytest.fixture
def tool_dir(tmp_path: Path) -> Path:
    """Directory of no-op executables standing in for a toolchain."""
    bin_dir = tmp_path / "toolchain" / "bin"
    bin_dir.mkdir(parents=True)
    for name in TOOL_NAMES:
        tool = bin_dir / name
        tool.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
        tool.chmod(0o755)
    return bin_dir


@pytest.fixture
def layout(tmp_path: Path) -> BuildLayout:
    return BuildLayout(root=tmp_path / "build" / "test-x64")


@pytest.fixture
def build_config(layout: BuildLayout, tool_dir: Path) -> BuildConfiguration:
    return BuildConfiguration(
        platform="test-x64",
        target_arch="x86_64",
        prefix=layout.prefix,
        toolchain=ToolchainSpec(search_dirs=(tool_dir,)),
        cflags=("-O2",),
        parallelism=2,
    )


@pytest.fixture
def make_orchestrator(
    build_config: BuildConfiguration,
    layout: BuildLayout,
    test_registry: UnitRegistry,
) -> Callable[..., BuildOrchestrator]:
    """Factory fixture: orchestrator over the test registry with a fake probe."""

    def _factory(
        action: Any = None,
        *,
        config: BuildConfiguration | None = None,
        registry: UnitRegistry | None = None,
        probe_arch: str = "x86_64",
        aliases: dict[str, str] | None = None,
    ) -> BuildOrchestrator:
        registry = registry or test_registry
        return BuildOrchestrator(
            config or build_config,
            layout=layout,
            action=action if action is not None else FakeAction(registry),
            registry=registry,
            toolchain_probe=StaticToolchainProbe(probe_arch),
            aliases=TEST_ALIASES if aliases is None else aliases,
        )

    return _factory
