"""CLI main entry point."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from .config import load_settings
from .formatters import (
    print_clean_summary,
    print_install_result,
    print_install_summary,
    print_lifecycle_result,
    print_report,
    print_status,
)
from .shared import StackPaths, configure_logging, level_for_verbosity
from .stack import Orchestrator, accept


def _confirm_interactively(prompt: str) -> bool:
    return click.confirm(prompt, default=False)


def get_orchestrator(ctx: click.Context, assume_yes: bool = False) -> Orchestrator:
    """Build the orchestrator for a command.

    Tests may place an `orchestrator_factory` in the context object.
    """
    factory = ctx.obj.get("orchestrator_factory", Orchestrator)
    confirm = accept if assume_yes else _confirm_interactively
    return factory(ctx.obj["paths"], ctx.obj["settings"], confirm=confirm)


@click.group(invoke_without_command=True)
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Settings file path",
)
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write logs to a file instead of stderr",
)
@click.pass_context
def cli(
    ctx: click.Context,
    settings_path: Path | None,
    verbose: int,
    log_json: bool,
    log_file: Path | None,
) -> None:
    """Install and manage the OpenCode AI development stack."""
    ctx.ensure_object(dict)
    if "paths" not in ctx.obj:
        ctx.obj["paths"] = StackPaths.from_home()
    paths = ctx.obj["paths"]
    settings = load_settings(settings_path or paths.settings_file)
    ctx.obj["settings"] = settings

    configure_logging(
        level=level_for_verbosity(verbose, default=settings.log_level),
        log_file=log_file,
        json_output=log_json,
    )

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(2)


@cli.command()
@click.pass_context
def install(ctx: click.Context) -> None:
    """Install every component of the stack."""
    orchestrator = get_orchestrator(ctx)

    click.echo("Installing OpenCode AI stack...\n")
    run = orchestrator.install(on_result=print_install_result)

    profile = run.profile
    click.echo(
        f"\nHardware: {profile.architecture.value}, "
        f"accelerator {profile.accelerator_kind.value} -> {run.plan.tier} tier"
    )
    print_install_summary(run)

    if not run.success:
        sys.exit(1)


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clean(ctx: click.Context, yes: bool) -> None:
    """Remove all components, models and configuration."""
    orchestrator = get_orchestrator(ctx, assume_yes=yes)
    outcome = orchestrator.clean(on_result=print_lifecycle_result)
    print_clean_summary(outcome)

    if not outcome.success:
        sys.exit(1)


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reinstall(ctx: click.Context, yes: bool) -> None:
    """Clean and install again."""
    orchestrator = get_orchestrator(ctx, assume_yes=yes)
    outcome = orchestrator.reinstall(
        on_removed=print_lifecycle_result,
        on_installed=print_install_result,
    )
    print_clean_summary(outcome.clean)

    if outcome.install is not None:
        print_install_summary(outcome.install)

    if not outcome.success:
        sys.exit(1)


@cli.command()
@click.pass_context
def test(ctx: click.Context) -> None:
    """Verify the installation, including live endpoints."""
    orchestrator = get_orchestrator(ctx)

    click.echo("Testing OpenCode AI stack...\n")
    report = orchestrator.test()
    print_report(report)

    if not report.success:
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show system information and component state."""
    orchestrator = get_orchestrator(ctx)
    print_status(orchestrator.status())


@cli.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Start long-running services."""
    orchestrator = get_orchestrator(ctx)
    results = orchestrator.start(on_result=print_lifecycle_result)

    if not all(r.success for r in results):
        sys.exit(1)


@cli.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop long-running services."""
    orchestrator = get_orchestrator(ctx)
    results = orchestrator.stop(on_result=print_lifecycle_result)

    if not all(r.success for r in results):
        sys.exit(1)


@cli.command("help")
@click.argument("command", required=False)
@click.pass_context
def help_command(ctx: click.Context, command: str | None) -> None:
    """Show help for the CLI or a single command."""
    parent = ctx.parent
    if command is None:
        click.echo(parent.get_help())
        return

    target = cli.get_command(parent, command)
    if target is None:
        raise click.UsageError(f"No such command '{command}'.", ctx=parent)
    with click.Context(target, info_name=command, parent=parent) as sub_ctx:
        click.echo(target.get_help(sub_ctx))


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
