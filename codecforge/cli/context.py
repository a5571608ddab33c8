"""Shared wiring for CLI commands: settings, orchestrator, error exits."""

from __future__ import annotations

from rich.console import Console

import codecforge.config as forge_config
from codecforge.cli.render import ReportRenderer
from codecforge.config import ForgeSettings
from codecforge.core.actions import RecipeAction
from codecforge.core.configuration import build_configuration
from codecforge.core.errors import ConfigurationError, ForgeError, ToolchainError
from codecforge.core.orchestrator import BuildOrchestrator
from codecforge.models.config import BuildLayout

# Exit codes
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

console = Console()


def current_settings() -> ForgeSettings:
    return forge_config.settings


def open_orchestrator(platform: str | None, settings: ForgeSettings | None = None) -> BuildOrchestrator:
    """Assemble the configuration and orchestrator for ``platform``."""
    settings = settings or current_settings()
    platform = platform or settings.default_platform
    layout = BuildLayout.for_platform(settings.build_root, platform)
    config = build_configuration(platform, settings, layout=layout)
    action = RecipeAction(settings.recipes_dir, layout.logs_dir)
    return BuildOrchestrator(config, layout=layout, action=action)


def exit_code_for(exc: ForgeError) -> int:
    if isinstance(exc, (ConfigurationError, ToolchainError)):
        return EXIT_CONFIG
    return EXIT_FAILED


def report_error(exc: ForgeError) -> int:
    """Print ``exc`` with its diagnostics and return the exit code."""
    kind = "Toolchain error" if isinstance(exc, ToolchainError) else "Configuration error"
    console.print(f"[bold red]{kind}:[/bold red] {exc}")
    ReportRenderer(console).print_diagnostics(exc.diagnostics)
    return exit_code_for(exc)
