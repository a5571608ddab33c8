"""Assemble a frozen ``BuildConfiguration`` for one platform.

The configuration is built once, before any unit runs, from the platform
table, operator settings and the versions file, then threaded explicitly
through every call.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from pydantic import ValidationError

from codecforge.config import ForgeSettings
from codecforge.core.errors import ConfigurationError
from codecforge.core.version_pins import load_versions
from codecforge.models.config import BuildConfiguration, BuildLayout, ToolchainSpec
from codecforge.models.platforms import DEFAULT_PLATFORMS, get_platform
from codecforge.models.reports import Diagnostic, FailureCategory

logger = logging.getLogger(__name__)


def build_configuration(
    platform: str,
    settings: ForgeSettings,
    *,
    layout: BuildLayout | None = None,
    versions: Mapping[str, str] | None = None,
) -> BuildConfiguration:
    """Build the configuration for ``platform``.

    Parameters
    ----------
    platform:
        A name from the platform table, e.g. ``linux-arm64-glibc``.
    settings:
        Operator settings (build root, toolchain dirs, workers, timeout).
    layout:
        On-disk layout; defaults to ``<build_root>/<platform>``.
    versions:
        Version pins; read from ``settings.versions_file`` when omitted.

    Raises
    ------
    ConfigurationError
        Unknown platform, missing versions file, or invalid values.
    """
    descriptor = get_platform(platform)
    if descriptor is None:
        known = ", ".join(p.name for p in DEFAULT_PLATFORMS)
        raise ConfigurationError(
            f"Unknown platform: '{platform}'",
            diagnostics=[
                Diagnostic(
                    category=FailureCategory.INVALID_CONFIGURATION,
                    expected=f"one of: {known}",
                    actual=platform,
                )
            ],
        )
    layout = layout or BuildLayout.for_platform(settings.build_root, platform)
    if versions is None:
        versions = load_versions(settings.versions_file)

    toolchain = ToolchainSpec(
        cc=descriptor.cc,
        cxx=descriptor.cxx,
        cross_prefix=descriptor.cross_prefix,
        search_dirs=tuple(settings.toolchain_dirs),
    )
    try:
        config = BuildConfiguration(
            platform=descriptor.name,
            target_os=descriptor.os,
            target_arch=descriptor.arch,
            prefix=layout.prefix,
            toolchain=toolchain,
            cflags=(*descriptor.arch_flags, *descriptor.cflags),
            cxxflags=(*descriptor.arch_flags, *descriptor.cflags),
            ldflags=(*descriptor.arch_flags, *descriptor.ldflags),
            host_triplet=descriptor.host_triplet,
            libc=descriptor.libc,
            executable_suffix=descriptor.executable_suffix,
            parallelism=settings.max_workers,
            unit_timeout=settings.unit_timeout_seconds,
            versions=dict(versions),
            excluded_units=descriptor.excluded_units,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration for {platform}: {exc}") from exc
    logger.debug(
        "Configuration for %s: arch=%s prefix=%s cross=%r",
        config.platform,
        config.target_arch,
        config.prefix,
        toolchain.cross_prefix,
    )
    return config
