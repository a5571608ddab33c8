"""``codecforge build [TIER]`` — build every unit of a tier for one platform.

Runs preflight, builds what has no valid stamp, gates the aggregate and
writes ``summary.json`` on success. Exit status 0 only when the aggregate
is verified; 1 on unit or verification failures; 2 when configuration or
the toolchain is broken (in which case nothing was built).
"""

from __future__ import annotations

import typer

from codecforge.cli.context import (
    EXIT_FAILED,
    EXIT_OK,
    console,
    current_settings,
    open_orchestrator,
    report_error,
)
from codecforge.cli.render import ReportRenderer
from codecforge.core.errors import ConfigurationError, ToolchainError


def build_cmd(
    tier: str = typer.Argument(
        None,
        help="Tier to build (free, non-free). Defaults to CODECFORGE_DEFAULT_TIER.",
    ),
    platform: str = typer.Option(
        None,
        "--platform",
        "-p",
        help="Target platform. Defaults to CODECFORGE_DEFAULT_PLATFORM.",
    ),
    jobs: int = typer.Option(
        None,
        "--jobs",
        "-j",
        min=1,
        help="Maximum units built concurrently.",
    ),
) -> None:
    """Build a tier, reusing every unit whose stamp is still valid."""
    settings = current_settings()
    if jobs is not None:
        settings = settings.model_copy(update={"max_workers": jobs})
    try:
        orchestrator = open_orchestrator(platform, settings)
        report = orchestrator.build(tier or settings.default_tier)
    except (ConfigurationError, ToolchainError) as exc:
        raise typer.Exit(code=report_error(exc)) from None

    ReportRenderer(console).print_build_report(report)
    raise typer.Exit(code=EXIT_OK if report.exit_code == 0 else EXIT_FAILED)
