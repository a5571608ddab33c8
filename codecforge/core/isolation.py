"""Environment isolation — explicit search paths and pinned tool names.

Every subprocess launched for a unit receives exactly the environment
produced here. Its library, include and descriptor roots are the per-unit
trees of the unit's scope under the build prefix and nothing else, so a
cross build cannot pick up a host library of the same name and a tier
build cannot see a unit outside its tier.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from codecforge.core.errors import ToolchainError
from codecforge.core.registry import UnitRegistry
from codecforge.models.config import BuildConfiguration, FrozenStrMap
from codecforge.models.reports import Diagnostic, FailureCategory

logger = logging.getLogger(__name__)

_TOOL_VARIABLES = {
    "cc": "CC",
    "cxx": "CXX",
    "ar": "AR",
    "ranlib": "RANLIB",
    "strip": "STRIP",
    "pkg_config": "PKG_CONFIG",
}

_CMAKE_SYSTEM_NAMES = {"linux": "Linux", "darwin": "Darwin", "windows": "Windows"}

_MESON_CPU_FAMILIES = {
    "x86_64": "x86_64",
    "aarch64": "aarch64",
    "arm": "arm",
    "i386": "x86",
    "ppc64le": "ppc64",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

_BIG_ENDIAN = frozenset({"ppc64", "s390x"})


class EnvironmentDescriptor(BaseModel):
    """The complete, explicit environment for one unit invocation."""

    model_config = ConfigDict(frozen=True)

    prefix: Path
    scope: tuple[str, ...]
    descriptor_roots: tuple[Path, ...]
    library_roots: tuple[Path, ...]
    include_roots: tuple[Path, ...]
    path_dirs: tuple[Path, ...]
    tools: FrozenStrMap
    variables: FrozenStrMap
    cmake_args: tuple[str, ...] = ()
    meson_cross_file: str = ""

    @property
    def search_path(self) -> str:
        return self.variables["PATH"]

    def as_env(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        """Subprocess environment: the descriptor variables plus ``extra``."""
        env = dict(self.variables)
        if extra:
            env.update(extra)
        return env


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


class EnvironmentIsolation:
    """Builds isolated environments from a configuration and a unit scope.

    Parameters
    ----------
    registry:
        Used to compute scopes (a unit plus its transitive dependencies).
    """

    def __init__(self, registry: UnitRegistry) -> None:
        self._registry = registry

    def scope_for(self, unit_id: str, active: Sequence[str]) -> tuple[str, ...]:
        """Units whose trees ``unit_id`` may see: itself and its dependencies.

        The aggregate sees every active unit.
        """
        graph = self._registry.graph_for(active)
        visible = {unit_id, *graph.get_ancestors(unit_id)}
        return tuple(uid for uid in active if uid in visible)

    def build_environment(
        self, config: BuildConfiguration, scope: Iterable[str]
    ) -> EnvironmentDescriptor:
        """Produce the environment for ``scope``. Pure: no filesystem access."""
        scope_ids = tuple(dict.fromkeys(scope))
        roots = [config.unit_root(uid) for uid in scope_ids]
        descriptor_roots = tuple(r / "lib" / "pkgconfig" for r in roots)
        library_roots = tuple(r / "lib" for r in roots)
        include_roots = tuple(r / "include" for r in roots)
        path_dirs = (
            *(r / "bin" for r in roots),
            *config.toolchain.search_dirs,
        )
        tools = config.toolchain.pinned_tools()

        cflags = [*config.cflags, *(f"-I{p}" for p in include_roots)]
        cxxflags = [*config.cxxflags, *(f"-I{p}" for p in include_roots)]
        ldflags = [*config.ldflags, *(f"-L{p}" for p in library_roots)]

        variables = {
            "PATH": os.pathsep.join(str(p) for p in path_dirs),
            "PKG_CONFIG_LIBDIR": os.pathsep.join(str(p) for p in descriptor_roots),
            "PKG_CONFIG_PATH": "",
            "CFLAGS": " ".join(cflags),
            "CXXFLAGS": " ".join(cxxflags),
            "LDFLAGS": " ".join(ldflags),
            "PREFIX": str(config.prefix),
        }
        for role, var in _TOOL_VARIABLES.items():
            variables[var] = tools[role]

        return EnvironmentDescriptor(
            prefix=config.prefix,
            scope=scope_ids,
            descriptor_roots=descriptor_roots,
            library_roots=library_roots,
            include_roots=include_roots,
            path_dirs=tuple(path_dirs),
            tools=tools,
            variables=variables,
            cmake_args=self._cmake_args(config, tools, roots),
            meson_cross_file=(
                self._meson_cross_file(config, tools, descriptor_roots)
                if config.toolchain.cross_prefix
                else ""
            ),
        )

    # ------------------------------------------------------------------
    # Build-system glue
    # ------------------------------------------------------------------

    @staticmethod
    def _cmake_args(
        config: BuildConfiguration, tools: Mapping[str, str], roots: Sequence[Path]
    ) -> tuple[str, ...]:
        joined = ";".join(str(r) for r in roots)
        args = [
            f"-DCMAKE_INSTALL_PREFIX={config.prefix}",
            f"-DCMAKE_FIND_ROOT_PATH={joined}",
            f"-DCMAKE_PREFIX_PATH={joined}",
            "-DCMAKE_FIND_ROOT_PATH_MODE_PROGRAM=NEVER",
            "-DCMAKE_FIND_ROOT_PATH_MODE_LIBRARY=ONLY",
            "-DCMAKE_FIND_ROOT_PATH_MODE_INCLUDE=ONLY",
            "-DCMAKE_FIND_ROOT_PATH_MODE_PACKAGE=ONLY",
            f"-DCMAKE_C_COMPILER={tools['cc']}",
            f"-DCMAKE_CXX_COMPILER={tools['cxx']}",
            f"-DCMAKE_AR={tools['ar']}",
            f"-DCMAKE_RANLIB={tools['ranlib']}",
            f"-DPKG_CONFIG_EXECUTABLE={tools['pkg_config']}",
            "-DBUILD_SHARED_LIBS=OFF",
        ]
        if config.toolchain.cross_prefix:
            args += [
                f"-DCMAKE_SYSTEM_NAME={_CMAKE_SYSTEM_NAMES.get(config.target_os, config.target_os)}",
                f"-DCMAKE_SYSTEM_PROCESSOR={config.target_arch}",
            ]
        return tuple(args)

    @staticmethod
    def _meson_cross_file(
        config: BuildConfiguration,
        tools: Mapping[str, str],
        descriptor_roots: Sequence[Path],
    ) -> str:
        family = _MESON_CPU_FAMILIES.get(config.target_arch, config.target_arch)
        libdirs = ", ".join(f"'{p}'" for p in descriptor_roots)
        return "\n".join(
            [
                "[binaries]",
                f"c = '{tools['cc']}'",
                f"cpp = '{tools['cxx']}'",
                f"ar = '{tools['ar']}'",
                f"strip = '{tools['strip']}'",
                f"pkgconfig = '{tools['pkg_config']}'",
                "",
                "[properties]",
                f"pkg_config_libdir = [{libdirs}]",
                "",
                "[host_machine]",
                f"system = '{config.target_os}'",
                f"cpu_family = '{family}'",
                f"cpu = '{config.target_arch}'",
                f"endian = '{'big' if config.target_arch in _BIG_ENDIAN else 'little'}'",
                "",
            ]
        )

    # ------------------------------------------------------------------
    # Capability probe and leak check
    # ------------------------------------------------------------------

    def probe_tools(
        self, config: BuildConfiguration, environment: EnvironmentDescriptor
    ) -> dict[str, Path]:
        """Resolve every pinned tool inside the environment's PATH.

        Returns role -> absolute path. Raises ``ToolchainError`` naming every
        missing tool rather than letting a build silently drop a feature.
        """
        found: dict[str, Path] = {}
        diagnostics: list[Diagnostic] = []
        for role, name in environment.tools.items():
            if os.sep in name:
                resolved = name if os.access(name, os.X_OK) else None
            else:
                resolved = shutil.which(name, path=environment.search_path)
            if resolved is None:
                diagnostics.append(
                    Diagnostic(
                        category=FailureCategory.TOOL_NOT_FOUND,
                        expected=f"{_TOOL_VARIABLES[role]}={name} on PATH",
                        actual=f"not found in {environment.search_path or '(empty PATH)'}",
                    )
                )
            else:
                found[role] = Path(resolved)
        if diagnostics:
            missing = ", ".join(d.expected.split(" ")[0] for d in diagnostics)
            raise ToolchainError(
                f"Toolchain for {config.platform} is incomplete: {missing}",
                diagnostics=diagnostics,
            )
        return found

    def check_isolation(
        self, config: BuildConfiguration, environment: EnvironmentDescriptor
    ) -> list[Diagnostic]:
        """Diagnostics for every search root that escapes the prefix."""
        diagnostics: list[Diagnostic] = []
        roots = (
            *environment.descriptor_roots,
            *environment.library_roots,
            *environment.include_roots,
        )
        for root in roots:
            if not _is_within(root, config.prefix):
                diagnostics.append(
                    Diagnostic(
                        category=FailureCategory.ISOLATION_LEAK,
                        expected=f"search root under {config.prefix}",
                        actual=str(root),
                    )
                )
        if environment.variables.get("PKG_CONFIG_PATH"):
            diagnostics.append(
                Diagnostic(
                    category=FailureCategory.ISOLATION_LEAK,
                    expected="PKG_CONFIG_PATH to be empty",
                    actual=environment.variables["PKG_CONFIG_PATH"],
                )
            )
        for diagnostic in diagnostics:
            logger.warning("Isolation leak: %s", diagnostic.actual)
        return diagnostics
