"""Unit actions — the narrow boundary to external build recipes.

An action receives the isolated environment, the build configuration and
the unit's own output directory, and returns a process exit status. Its
logs are kept for operators but never parsed: success is decided by the
exit status and the verification gate alone.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

from codecforge.core.errors import UnitBuildError
from codecforge.core.isolation import EnvironmentDescriptor
from codecforge.models.config import BuildConfiguration
from codecforge.models.reports import Diagnostic, FailureCategory
from codecforge.models.units import Unit

logger = logging.getLogger(__name__)

# Host variables a recipe may legitimately need; nothing else is inherited.
PASSTHROUGH_VARIABLES = ("HOME", "LANG", "LC_ALL", "TMPDIR", "USER")

RECIPE_NOT_FOUND = 127
NOT_STARTED = 126
TIMED_OUT = 124


@runtime_checkable
class UnitAction(Protocol):
    """Protocol for unit build actions.

    Any object with this ``run`` method satisfies the protocol; tests
    substitute in-process fakes.
    """

    def run(
        self,
        unit: Unit,
        config: BuildConfiguration,
        environment: EnvironmentDescriptor,
        output_dir: Path,
    ) -> int:
        """Build ``unit`` into ``output_dir`` and return the exit status."""
        ...


class RecipeAction:
    """Runs ``<recipes_dir>/<unit_id>.sh`` for each unit.

    Parameters
    ----------
    recipes_dir:
        Directory holding one shell recipe per unit id.
    logs_dir:
        Per-unit logs are written to ``<logs_dir>/<unit_id>.log``.
    shell:
        Interpreter used to run the recipe.
    """

    def __init__(self, recipes_dir: Path, logs_dir: Path, *, shell: str = "/bin/sh") -> None:
        self.recipes_dir = Path(recipes_dir)
        self.logs_dir = Path(logs_dir)
        self.shell = shell

    def recipe_path(self, unit: Unit) -> Path:
        return self.recipes_dir / f"{unit.unit_id}.sh"

    def build_env(
        self,
        unit: Unit,
        config: BuildConfiguration,
        environment: EnvironmentDescriptor,
        output_dir: Path,
    ) -> dict[str, str]:
        extra = {
            name: os.environ[name] for name in PASSTHROUGH_VARIABLES if name in os.environ
        }
        extra.update(
            {
                "CODECFORGE_UNIT": unit.unit_id,
                "CODECFORGE_OUTPUT": str(output_dir),
                "CODECFORGE_VERSION": config.versions.get(unit.version_key, ""),
                "CODECFORGE_JOBS": str(config.parallelism),
                "CODECFORGE_SCOPE": " ".join(environment.scope),
                "CODECFORGE_TARGET_ARCH": config.target_arch,
                "HOST_TRIPLET": config.host_triplet,
                "CODECFORGE_CMAKE_ARGS": " ".join(environment.cmake_args),
            }
        )
        if environment.meson_cross_file:
            cross_file = self.logs_dir / f"{unit.unit_id}.meson-cross.ini"
            cross_file.write_text(environment.meson_cross_file, encoding="utf-8")
            extra["MESON_CROSS_FILE"] = str(cross_file)
        return environment.as_env(extra)

    def run(
        self,
        unit: Unit,
        config: BuildConfiguration,
        environment: EnvironmentDescriptor,
        output_dir: Path,
    ) -> int:
        recipe = self.recipe_path(unit)
        log_path = self.logs_dir / f"{unit.unit_id}.log"
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            if not recipe.is_file():
                logger.error("No recipe for %s at %s", unit.unit_id, recipe)
                return RECIPE_NOT_FOUND

            output_dir.mkdir(parents=True, exist_ok=True)
            env = self.build_env(unit, config, environment, output_dir)
            logger.info("Running %s (log: %s)", recipe.name, log_path)
            with open(log_path, "wb") as log:
                result = subprocess.run(
                    [self.shell, str(recipe)],
                    cwd=output_dir,
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    timeout=config.unit_timeout,
                )
        except subprocess.TimeoutExpired:
            raise UnitBuildError(
                unit.unit_id,
                TIMED_OUT,
                message=f"Action for '{unit.unit_id}' timed out after {config.unit_timeout}s",
                diagnostics=[
                    Diagnostic(
                        category=FailureCategory.ACTION_TIMEOUT,
                        unit_id=unit.unit_id,
                        expected=f"completion within {config.unit_timeout}s",
                        actual="timed out",
                    )
                ],
            ) from None
        except (OSError, subprocess.SubprocessError) as exc:
            raise UnitBuildError(
                unit.unit_id,
                NOT_STARTED,
                message=f"Could not run {recipe.name} for '{unit.unit_id}': {exc}",
                diagnostics=[
                    Diagnostic(
                        category=FailureCategory.ACTION_FAILED,
                        unit_id=unit.unit_id,
                        expected=f"{self.shell} to run {recipe}",
                        actual=str(exc),
                    )
                ],
            ) from exc
        return result.returncode
