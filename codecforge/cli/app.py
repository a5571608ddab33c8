"""Main Typer application — imports and registers all CLI commands.

Entry point: ``codecforge`` (configured via pyproject.toml scripts).

Commands: build, info, clean, verify, platforms, tiers.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from codecforge.cli.commands.build import build_cmd
from codecforge.cli.commands.catalog import platforms_cmd, tiers_cmd
from codecforge.cli.commands.clean import clean_cmd
from codecforge.cli.commands.info import info_cmd
from codecforge.cli.commands.verify import verify_cmd
from codecforge.cli.context import current_settings

app = typer.Typer(
    name="codecforge",
    help="codecforge: incremental, verified builds of static codec libraries and FFmpeg.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def configure_logging(level: str) -> None:
    """Send log records to stderr through Rich. No-op if already configured."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Logging level. Defaults to CODECFORGE_LOG_LEVEL."
    ),
) -> None:
    configure_logging(log_level or current_settings().log_level)


# Register subcommands
app.command(name="build", help="Build a tier for one platform.")(build_cmd)
app.command(name="info", help="Show stamp status for a tier.")(info_cmd)
app.command(name="clean", help="Invalidate stamps (all or one unit and its dependents).")(clean_cmd)
app.command(name="verify", help="Check that every unit of a tier is resolvable.")(verify_cmd)
app.command(name="platforms", help="List supported platforms.")(platforms_cmd)
app.command(name="tiers", help="List tiers and deprecated aliases.")(tiers_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
