"""Runtime settings — env-driven.

Centralized settings using pydantic-settings. Reads from a .env file and
CODECFORGE_* environment variables. Settings only feed configuration
assembly; nothing in the build core reads them directly.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ForgeSettings(BaseSettings):
    """Operator settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export CODECFORGE_BUILD_ROOT=/srv/prebuilds
        export CODECFORGE_MAX_WORKERS=8
        export CODECFORGE_LOG_LEVEL=DEBUG

    Or via .env file::

        CODECFORGE_DEFAULT_TIER=non-free
        CODECFORGE_UNIT_TIMEOUT_SECONDS=3600
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CODECFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Paths
    build_root: Path = Path("artifacts")
    recipes_dir: Path = Path("recipes")
    versions_file: Path = Path("versions.properties")

    # Directories searched for toolchain binaries (compilers, ar, pkg-config).
    # Set as JSON, e.g. CODECFORGE_TOOLCHAIN_DIRS='["/opt/cross/bin", "/usr/bin"]'
    toolchain_dirs: list[Path] = Field(
        default_factory=lambda: [Path("/usr/local/bin"), Path("/usr/bin"), Path("/bin")]
    )

    # Execution
    max_workers: int = Field(default=4, ge=1)
    # Per-unit action timeout in seconds; unset means no limit.
    unit_timeout_seconds: float | None = None

    default_tier: str = "free"
    default_platform: str = "linux-x64-glibc"


# Module-level singleton — import as `from codecforge.config import settings`
settings = ForgeSettings()
