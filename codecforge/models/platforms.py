"""Platform parameter table and architecture naming.

Each supported platform maps to a target architecture, a compiler family,
an optional cross-compilation prefix, and the flags its recipes are built
with. Platform gating of units (``excluded_units``) is kept on the platform
rather than folded into tier identity.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# Canonical architecture names and the aliases tools and vendors use for them.
ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x86_64",
    "x64": "x86_64",
    "amd64": "x86_64",
    "x86-64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armv8": "aarch64",
    "armv8-a": "aarch64",
    "arm": "arm",
    "armv6": "arm",
    "armv7": "arm",
    "armv7-a": "arm",
    "armhf": "arm",
    "i386": "i386",
    "i686": "i386",
    "x86": "i386",
    "ppc64le": "ppc64le",
    "powerpc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
}


def normalize_arch(name: str) -> str:
    """Map an architecture alias onto its canonical name.

    Unknown names are returned lower-cased so that a mismatch is still
    reported with the value the caller supplied.
    """
    key = name.strip().lower()
    return ARCH_ALIASES.get(key, key)


class PlatformDescriptor(BaseModel):
    """Static build parameters for one target platform."""

    model_config = ConfigDict(frozen=True)

    name: str
    os: str  # linux | darwin | windows
    arch: str  # canonical target architecture
    libc: str = ""
    cc: str = "gcc"
    cxx: str = "g++"
    cross_prefix: str = ""
    host_triplet: str = ""
    arch_flags: tuple[str, ...] = ()
    cflags: tuple[str, ...] = ("-O3", "-fPIC")
    ldflags: tuple[str, ...] = ()
    executable_suffix: str = ""
    excluded_units: frozenset[str] = frozenset()

    @property
    def is_cross(self) -> bool:
        return bool(self.cross_prefix)


DEFAULT_PLATFORMS: tuple[PlatformDescriptor, ...] = (
    PlatformDescriptor(
        name="linux-x64-glibc",
        os="linux",
        arch="x86_64",
        libc="glibc",
        arch_flags=("-m64",),
    ),
    PlatformDescriptor(
        name="linux-x64-musl",
        os="linux",
        arch="x86_64",
        libc="musl",
        cc="musl-gcc",
        arch_flags=("-m64",),
        ldflags=("-static",),
    ),
    PlatformDescriptor(
        name="linux-arm64-glibc",
        os="linux",
        arch="aarch64",
        libc="glibc",
        cross_prefix="aarch64-linux-gnu-",
        host_triplet="aarch64-linux-gnu",
        cflags=("-O3", "-fPIC", "-pthread"),
        ldflags=("-pthread",),
    ),
    PlatformDescriptor(
        name="linux-arm64-musl",
        os="linux",
        arch="aarch64",
        libc="musl",
        cross_prefix="aarch64-linux-musl-",
        host_triplet="aarch64-linux-musl",
        ldflags=("-static",),
    ),
    PlatformDescriptor(
        name="linux-armv7-glibc",
        os="linux",
        arch="arm",
        libc="glibc",
        cross_prefix="arm-linux-gnueabihf-",
        host_triplet="arm-linux-gnueabihf",
        arch_flags=("-march=armv7-a", "-mfpu=neon", "-mfloat-abi=hard"),
    ),
    PlatformDescriptor(
        name="linux-armv6-glibc",
        os="linux",
        arch="arm",
        libc="glibc",
        arch_flags=("-march=armv6", "-mfpu=vfp", "-mfloat-abi=hard"),
        cflags=("-O2", "-fPIC", "-fstack-protector-strong"),
        ldflags=("-static-libgcc",),
        # SVT-AV1 requires a 64-bit target.
        excluded_units=frozenset({"svt-av1"}),
    ),
    PlatformDescriptor(name="linux-ppc64le", os="linux", arch="ppc64le", libc="glibc"),
    PlatformDescriptor(name="linux-s390x", os="linux", arch="s390x", libc="glibc"),
    PlatformDescriptor(name="linux-riscv64", os="linux", arch="riscv64", libc="glibc"),
    PlatformDescriptor(
        name="darwin-x64",
        os="darwin",
        arch="x86_64",
        cc="clang",
        cxx="clang++",
        arch_flags=("-arch", "x86_64", "-mmacosx-version-min=11.0"),
    ),
    PlatformDescriptor(
        name="darwin-arm64",
        os="darwin",
        arch="aarch64",
        cc="clang",
        cxx="clang++",
        arch_flags=("-arch", "arm64", "-mmacosx-version-min=11.0"),
    ),
    PlatformDescriptor(
        name="windows-x64",
        os="windows",
        arch="x86_64",
        cross_prefix="x86_64-w64-mingw32-",
        host_triplet="x86_64-w64-mingw32",
        cflags=("-O3",),
        ldflags=("-static", "-static-libgcc"),
        executable_suffix=".exe",
    ),
)


def get_platform(name: str) -> PlatformDescriptor | None:
    """Return the platform descriptor for ``name``, or None."""
    for platform in DEFAULT_PLATFORMS:
        if platform.name == name:
            return platform
    return None
