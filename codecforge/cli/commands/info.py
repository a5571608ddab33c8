"""``codecforge info [TIER]`` — show which units have a valid stamp."""

from __future__ import annotations

import typer

from codecforge.cli.context import console, current_settings, open_orchestrator, report_error
from codecforge.cli.render import ReportRenderer
from codecforge.core.errors import ConfigurationError


def info_cmd(
    tier: str = typer.Argument(None, help="Tier to inspect."),
    platform: str = typer.Option(None, "--platform", "-p", help="Target platform."),
) -> None:
    """Print per-unit stamp status (complete, stale, missing). Builds nothing."""
    settings = current_settings()
    try:
        orchestrator = open_orchestrator(platform, settings)
        report = orchestrator.info(tier or settings.default_tier)
    except ConfigurationError as exc:
        raise typer.Exit(code=report_error(exc)) from None
    ReportRenderer(console).print_info(report)
