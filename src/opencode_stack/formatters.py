"""CLI output formatting helpers.

Progress lines go through click.echo; the status overview is rendered as
rich tables.
"""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from .stack import (
    CheckResult,
    CleanOutcome,
    InstallAction,
    InstallResult,
    InstallRun,
    LifecycleResult,
    StatusSnapshot,
    VerificationReport,
)
from .stack.registry import ComponentKind

MARKS = {
    InstallAction.INSTALLED: "✓",
    InstallAction.SKIPPED: "-",
    InstallAction.FAILED: "✗",
}

STATE_STYLES = {
    "running": "green",
    "installed": "green",
    "stopped": "yellow",
    "absent": "red",
    "unknown": "dim",
}

KIND_TITLES = {
    ComponentKind.BINARY: "Binaries",
    ComponentKind.CONTAINER: "Containers",
    ComponentKind.CONFIG: "Configuration",
}


def print_install_result(result: InstallResult) -> None:
    """Print one install outcome as soon as it is known."""
    mark = MARKS[result.action]
    line = f"  {mark} {result.component}: {result.action.value}"
    if result.detail and result.action != InstallAction.SKIPPED:
        line += f" ({result.detail})"
    click.echo(line, err=result.failed)


def print_lifecycle_result(result: LifecycleResult) -> None:
    mark = "✓" if result.success else "✗"
    click.echo(f"  {mark} {result.component}: {result.detail}", err=not result.success)


def print_check(check: CheckResult) -> None:
    mark = "✓" if check.passed else "✗"
    click.echo(f"  {mark} {check.detail or check.name}")


def print_report(report: VerificationReport) -> None:
    """Print a verification report with a summary line.

    Args:
        report: Report to print
    """
    for check in report.checks:
        print_check(check)

    click.echo()
    if report.success:
        click.echo(f"✓ All {len(report.checks)} checks passed")
    else:
        click.echo(
            f"✗ {len(report.failures)} of {len(report.checks)} checks failed",
            err=True,
        )


def print_install_summary(run: InstallRun) -> None:
    """Print the closing section of an install run."""
    if run.workspace_errors:
        click.echo("\nWorkspace:")
        for error in run.workspace_errors:
            click.echo(f"  ✗ {error}", err=True)

    click.echo("\nVerification:")
    for check in run.report.checks:
        print_check(check)

    if run.desktop_file:
        click.echo(f"\nDesktop launcher: {run.desktop_file}")

    click.echo()
    if run.success:
        click.echo("✓ Installation complete")
    else:
        click.echo(f"⚠ Installation completed with {run.issues} issue(s)", err=True)


def print_clean_summary(outcome: CleanOutcome) -> None:
    if not outcome.confirmed:
        click.echo("Clean cancelled.")
        return
    for path in outcome.removed_paths:
        click.echo(f"  ✓ removed {path}")
    if outcome.success:
        click.echo("✓ Clean complete")
    else:
        click.echo("✗ Clean finished with errors", err=True)


def print_status(snapshot: StatusSnapshot, console: Console | None = None) -> None:
    """Render a status snapshot.

    Args:
        snapshot: Snapshot to render
        console: Rich console (default: stdout)
    """
    console = console or Console()

    system = snapshot.system
    console.print("[bold]System[/bold]")
    console.print(f"  Distribution: {system.distribution}")
    console.print(f"  Kernel:       {system.kernel}")
    console.print(f"  Architecture: {system.machine}")
    console.print("")

    for kind, title in KIND_TITLES.items():
        components = snapshot.by_kind(kind)
        if not components:
            continue
        table = Table(title=title, title_justify="left", show_edge=False)
        table.add_column("Component")
        table.add_column("State")
        table.add_column("Endpoint", style="dim")
        for component in components:
            style = STATE_STYLES.get(component.state, "")
            table.add_row(
                component.display_name,
                f"[{style}]{component.state}[/{style}]" if style else component.state,
                component.endpoint or "",
            )
        console.print(table)
        console.print("")

    models = Table(title="Models", title_justify="left", show_edge=False)
    models.add_column("Category")
    models.add_column("Files", justify="right")
    for category, count in snapshot.model_counts.items():
        models.add_row(category, str(count))
    console.print(models)
