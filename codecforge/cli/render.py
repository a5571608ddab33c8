"""Rich terminal rendering for build reports, stamp status and diagnostics.

Color scheme
------------
- green     : VERIFIED, complete, OK
- cyan      : CACHED
- red       : FAILED, FAIL
- bold red  : BLOCKED
- yellow    : stale
- dim       : missing, pending
"""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codecforge.models.reports import (
    BuildReport,
    Diagnostic,
    InfoReport,
    StampStatus,
    VerificationRecord,
)
from codecforge.models.units import UnitState

_STATE_ICONS: dict[UnitState, str] = {
    UnitState.VERIFIED: "[green]VERIFIED[/green]",
    UnitState.CACHED: "[cyan]CACHED[/cyan]",
    UnitState.FAILED: "[bold red]FAILED[/bold red]",
    UnitState.BLOCKED: "[bold red]BLOCKED[/bold red]",
    UnitState.RUNNING: "[yellow]RUNNING[/yellow]",
    UnitState.PENDING: "[dim]PENDING[/dim]",
}

_STAMP_ICONS: dict[StampStatus, str] = {
    StampStatus.COMPLETE: "[green]complete[/green]",
    StampStatus.STALE: "[yellow]stale[/yellow]",
    StampStatus.MISSING: "[dim]missing[/dim]",
}


class ReportRenderer:
    """Prints codecforge reports to a Rich console.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def print_build_report(self, report: BuildReport) -> None:
        table = Table(
            title=f"Build [bold]{report.tier}[/bold] for {report.platform}",
            show_header=True,
            header_style="bold",
        )
        table.add_column("Unit", style="cyan", min_width=12)
        table.add_column("State", justify="center", min_width=10)
        table.add_column("Time", justify="right")
        table.add_column("Detail")
        for outcome in report.outcomes.values():
            detail = "; ".join(d.actual for d in outcome.diagnostics if d.actual)
            if outcome.warnings:
                detail = "; ".join(filter(None, [detail, *outcome.warnings]))
            table.add_row(
                outcome.unit_id,
                _STATE_ICONS.get(outcome.state, outcome.state.value),
                f"{outcome.duration_seconds:.1f}s" if outcome.duration_seconds else "",
                detail,
            )
        self.console.print(table)

        if report.pre_aggregate is not None and not report.pre_aggregate.passed:
            self.print_verification(report.pre_aggregate)

        for outcome in report.failures:
            self.print_diagnostics(outcome.diagnostics, title=f"{outcome.unit_id} failed")

        if report.exit_code == 0:
            self.console.print(
                f"[bold green]Build complete[/bold green] "
                f"({len(report.invoked)} built, "
                f"{len(report.stamped) - len(report.invoked)} cached)"
            )
            if report.summary_path is not None:
                self.console.print(f"[dim]Summary: {report.summary_path}[/dim]")
        else:
            self.console.print(
                f"[bold red]Build failed:[/bold red] {len(report.failures)} failed, "
                f"{len(report.blocked)} blocked"
            )

    def print_info(self, report: InfoReport) -> None:
        table = Table(title=f"Tier [bold]{report.tier}[/bold] on {report.platform}")
        table.add_column("Unit", style="cyan")
        table.add_column("Name")
        table.add_column("License")
        table.add_column("Stamp", justify="center")
        for status in report.units:
            table.add_row(
                status.unit_id,
                status.display_name,
                status.license_class,
                _STAMP_ICONS[status.status],
            )
        self.console.print(table)
        self.console.print(f"[dim]Fingerprint: {report.fingerprint}[/dim]")

    def print_verification(self, record: VerificationRecord) -> None:
        if record.checks:
            table = Table(title=f"{record.checkpoint.value} check")
            table.add_column("", justify="center")
            table.add_column("Unit", style="cyan")
            table.add_column("Descriptor")
            for check in record.checks:
                mark = "[green]OK[/green]" if check.passed else "[bold red]FAIL[/bold red]"
                table.add_row(mark, check.unit_id, check.descriptor)
            self.console.print(table)
        if record.passed:
            self.console.print(f"[bold green]Passed:[/bold green] {record.message}")
            return
        self.console.print(f"[bold red]Failed:[/bold red] {record.message}")
        if record.available_descriptors:
            self.console.print(
                "Available descriptors: " + ", ".join(record.available_descriptors)
            )
        self.print_diagnostics(record.diagnostics)

    def print_diagnostics(
        self, diagnostics: Iterable[Diagnostic], *, title: str = "Diagnostic"
    ) -> None:
        for diagnostic in diagnostics:
            lines = [f"[bold]Category:[/bold] {diagnostic.category.value}"]
            if diagnostic.unit_id:
                lines.append(f"[bold]Unit:[/bold] {diagnostic.unit_id}")
            lines.append(f"[bold]Expected:[/bold] {diagnostic.expected}")
            lines.append(f"[bold]Actual:[/bold] {diagnostic.actual}")
            if diagnostic.remediation:
                lines.append(f"[bold]Fix:[/bold] {diagnostic.remediation}")
            self.console.print(
                Panel("\n".join(lines), title=title, border_style="red", expand=False)
            )
