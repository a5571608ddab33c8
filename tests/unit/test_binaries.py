"""Tests for artifact architecture inspection."""

from __future__ import annotations

import struct
from pathlib import Path

import pytest

from conftest import (
    EM_386,
    EM_AARCH64,
    EM_ARM,
    EM_X86_64,
    make_ar,
    make_corrupt_bsd_ar,
    make_dynamic_elf,
    make_elf,
)
from codecforge.core.binaries import (
    DynamicLinkage,
    inspect_architectures,
    inspect_linkage,
    matches_arch,
)


def _write(tmp_path: Path, name: str, data: bytes) -> Path:
    path = tmp_path / name
    path.write_bytes(data)
    return path


def _macho(cputype: int, *, magic: int = 0xFEEDFACF) -> bytes:
    return struct.pack("<III", magic, cputype, 0) + b"\0" * 52


def _pe(machine: int) -> bytes:
    image = bytearray(b"MZ" + b"\0" * 0x7E)
    struct.pack_into("<I", image, 0x3C, 0x80)
    image += b"PE\0\0" + struct.pack("<H", machine) + b"\0" * 18
    return bytes(image)


class TestElf:
    @pytest.mark.parametrize(
        "machine,arch",
        [(EM_X86_64, "x86_64"), (EM_AARCH64, "aarch64"), (EM_ARM, "arm"), (EM_386, "i386")],
    )
    def test_machine(self, tmp_path: Path, machine: int, arch: str):
        path = _write(tmp_path, "obj.o", make_elf(machine))
        assert inspect_architectures(path) == {arch}

    def test_big_endian_ppc64(self, tmp_path: Path):
        path = _write(tmp_path, "obj.o", make_elf(21, little_endian=False))
        assert inspect_architectures(path) == {"ppc64"}

    def test_little_endian_ppc64(self, tmp_path: Path):
        path = _write(tmp_path, "obj.o", make_elf(21))
        assert inspect_architectures(path) == {"ppc64le"}

    def test_truncated_elf_unrecognised(self, tmp_path: Path):
        path = _write(tmp_path, "obj.o", make_elf()[:20])
        assert inspect_architectures(path) == frozenset()


class TestArchive:
    def test_single_arch(self, tmp_path: Path):
        data = make_ar([("a.o", make_elf(EM_X86_64)), ("b.o", make_elf(EM_X86_64))])
        path = _write(tmp_path, "libx.a", data)
        assert inspect_architectures(path) == {"x86_64"}

    def test_mixed_members_reported(self, tmp_path: Path):
        data = make_ar([("a.o", make_elf(EM_X86_64)), ("b.o", make_elf(EM_AARCH64))])
        path = _write(tmp_path, "libx.a", data)
        found = inspect_architectures(path)
        assert found == {"x86_64", "aarch64"}
        assert not matches_arch(found, "x86_64")

    def test_odd_sized_member_padding(self, tmp_path: Path):
        data = make_ar([("notes.txt", b"abc"), ("a.o", make_elf(EM_AARCH64))])
        path = _write(tmp_path, "libx.a", data)
        assert inspect_architectures(path) == {"aarch64"}

    def test_bsd_long_names(self, tmp_path: Path):
        obj = make_elf(EM_X86_64)
        name = b"a_long_member_name.o"
        payload = name + obj
        header = f"#1/{len(name):<13}{0:<12}{0:<6}{0:<6}{644:<8}{len(payload):<10}`\n"
        path = _write(tmp_path, "libx.a", b"!<arch>\n" + header.encode("ascii") + payload)
        assert inspect_architectures(path) == {"x86_64"}

    def test_empty_archive(self, tmp_path: Path):
        path = _write(tmp_path, "libx.a", b"!<arch>\n")
        assert inspect_architectures(path) == frozenset()

    def test_malformed_bsd_name_length(self, tmp_path: Path):
        path = _write(tmp_path, "libx.a", make_corrupt_bsd_ar())
        assert inspect_architectures(path) == frozenset()

    def test_corrupt_member_after_valid_one(self, tmp_path: Path):
        data = make_ar([("a.o", make_elf(EM_X86_64))]) + make_corrupt_bsd_ar()[8:]
        path = _write(tmp_path, "libx.a", data)
        assert inspect_architectures(path) == frozenset()

    def test_bsd_name_longer_than_member(self, tmp_path: Path):
        header = f"{'#1/64':<16}{0:<12}{0:<6}{0:<6}{644:<8}{4:<10}`\n"
        path = _write(tmp_path, "libx.a", b"!<arch>\n" + header.encode("ascii") + b"a.o\0")
        assert inspect_architectures(path) == frozenset()

    def test_negative_member_size(self, tmp_path: Path):
        header = f"{'a.o/':<16}{0:<12}{0:<6}{0:<6}{644:<8}{-5:<10}`\n"
        path = _write(tmp_path, "libx.a", b"!<arch>\n" + header.encode("ascii") + make_elf())
        assert inspect_architectures(path) == frozenset()


class TestOtherFormats:
    def test_macho_arm64(self, tmp_path: Path):
        path = _write(tmp_path, "ffmpeg", _macho(0x0100000C))
        assert inspect_architectures(path) == {"aarch64"}

    def test_macho_x86_64(self, tmp_path: Path):
        path = _write(tmp_path, "ffmpeg", _macho(0x01000007))
        assert inspect_architectures(path) == {"x86_64"}

    def test_fat_binary(self, tmp_path: Path):
        fat = struct.pack(">II", 0xCAFEBABE, 2)
        fat += struct.pack(">IIIII", 0x01000007, 3, 0x1000, 0x100, 12)
        fat += struct.pack(">IIIII", 0x0100000C, 0, 0x2000, 0x100, 14)
        path = _write(tmp_path, "ffmpeg", fat + b"\0" * 64)
        assert inspect_architectures(path) == {"x86_64", "aarch64"}

    def test_java_class_is_not_fat(self, tmp_path: Path):
        path = _write(tmp_path, "A.class", struct.pack(">IHH", 0xCAFEBABE, 0, 61) + b"\0" * 64)
        assert inspect_architectures(path) == frozenset()

    def test_pe_x64(self, tmp_path: Path):
        path = _write(tmp_path, "ffmpeg.exe", _pe(0x8664))
        assert inspect_architectures(path) == {"x86_64"}

    def test_pe_arm64(self, tmp_path: Path):
        path = _write(tmp_path, "ffmpeg.exe", _pe(0xAA64))
        assert inspect_architectures(path) == {"aarch64"}

    def test_text_unrecognised(self, tmp_path: Path):
        path = _write(tmp_path, "libx.a", b"this is not a library, only text pretending" * 2)
        assert inspect_architectures(path) == frozenset()

    def test_truncated_fat_header(self, tmp_path: Path):
        path = _write(tmp_path, "ffmpeg", b"\xca\xfe\xba\xbe")
        assert inspect_architectures(path) == frozenset()


class TestMatchesArch:
    def test_alias_expected(self):
        assert matches_arch(frozenset({"aarch64"}), "arm64")

    def test_empty_never_matches(self):
        assert not matches_arch(frozenset(), "x86_64")


class TestLinkage:
    def test_needed_and_interpreter(self, tmp_path: Path):
        data = make_dynamic_elf(
            interpreter="/lib64/ld-linux-x86-64.so.2", needed=("libva.so.2", "libc.so.6")
        )
        linkage = inspect_linkage(_write(tmp_path, "ffmpeg", data))
        assert linkage.interpreter == "/lib64/ld-linux-x86-64.so.2"
        assert linkage.needed == ("libva.so.2", "libc.so.6")
        assert linkage.is_dynamic

    def test_static_pie_is_static(self, tmp_path: Path):
        linkage = inspect_linkage(_write(tmp_path, "ffmpeg", make_dynamic_elf()))
        assert linkage == DynamicLinkage()
        assert not linkage.is_dynamic

    def test_relocatable_object_is_static(self, tmp_path: Path):
        assert not inspect_linkage(_write(tmp_path, "a.o", make_elf())).is_dynamic

    def test_non_elf_reports_nothing(self, tmp_path: Path):
        assert inspect_linkage(_write(tmp_path, "ffmpeg.exe", _pe(0x8664))) == DynamicLinkage()

    def test_truncated_elf_reports_nothing(self, tmp_path: Path):
        data = make_dynamic_elf(needed=("libc.so",))[:40]
        assert inspect_linkage(_write(tmp_path, "ffmpeg", data)) == DynamicLinkage()

    def test_dynamic_executable_arch(self, tmp_path: Path):
        path = _write(tmp_path, "ffmpeg", make_dynamic_elf(EM_AARCH64, needed=("libc.so",)))
        assert inspect_architectures(path) == {"aarch64"}
