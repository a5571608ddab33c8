"""``codecforge clean [all|UNIT]`` — invalidate stamps.

Cleaning one unit also invalidates every unit that depends on it, so the
next build rebuilds the whole affected subtree.
"""

from __future__ import annotations

import typer

from codecforge.cli.context import console, open_orchestrator, report_error
from codecforge.core.errors import ConfigurationError


def clean_cmd(
    scope: str = typer.Argument("all", help="'all' or a unit id."),
    platform: str = typer.Option(None, "--platform", "-p", help="Target platform."),
) -> None:
    """Remove stamps so the next build treats those units as unbuilt."""
    try:
        orchestrator = open_orchestrator(platform)
        removed = orchestrator.clean(scope)
    except ConfigurationError as exc:
        raise typer.Exit(code=report_error(exc)) from None

    if removed:
        console.print(f"[bold]Invalidated {len(removed)} stamp(s):[/bold] {', '.join(removed)}")
    else:
        console.print("[dim]No stamps to invalidate.[/dim]")
