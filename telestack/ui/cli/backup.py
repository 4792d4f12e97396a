"""
CLI commands for environment snapshots.

Thin wrappers over ``telestack.core.services.backup``.
"""

from __future__ import annotations

import json

import click

from telestack.ui.cli.common import build_controller, environment_arguments, guarded, print_report


def _controller(ctx: click.Context, environment: str, project: str | None, domain_base: str | None):
    from telestack.core.services.decisions import AutomationDecisions

    return build_controller(ctx, environment, project, domain_base, decisions=AutomationDecisions())


@click.group()
def backup() -> None:
    """Snapshots — create, list and restore environment backups."""


@backup.command()
@environment_arguments
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@guarded
def create(
    ctx: click.Context,
    environment: str,
    project: str | None,
    domain_base: str | None,
    as_json: bool,
) -> None:
    """Snapshot ENVIRONMENT's component directories and Jitsi config."""
    controller = _controller(ctx, environment, project, domain_base)
    print_report(controller.backup(), as_json=as_json)


@backup.command("list")
@environment_arguments
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@guarded
def list_snapshots_cmd(
    ctx: click.Context,
    environment: str,
    project: str | None,
    domain_base: str | None,
    as_json: bool,
) -> None:
    """List ENVIRONMENT's snapshots, newest first."""
    from telestack.core.services.backup import list_snapshots

    controller = _controller(ctx, environment, project, domain_base)
    snapshots = list_snapshots(controller.settings.backups_root, controller.config)

    if as_json:
        click.echo(json.dumps([s.model_dump(mode="json") for s in snapshots], indent=2))
        return

    if not snapshots:
        click.secho(f"No snapshots for {controller.config.environment_dir_name}", fg="yellow")
        return

    click.secho(
        f"📦 Snapshots of {controller.config.environment_dir_name} ({len(snapshots)}):",
        fg="cyan", bold=True,
    )
    for snap in snapshots:
        jitsi = " + jitsi config" if snap.jitsi_config_blob else ""
        click.echo(f"   {snap.path.name}  {len(snap.components)} component(s){jitsi}")


@backup.command()
@environment_arguments
@click.option("--timestamp", "-t", default=None, help="Snapshot to restore (default: newest).")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@guarded
def restore(
    ctx: click.Context,
    environment: str,
    project: str | None,
    domain_base: str | None,
    timestamp: str | None,
    yes: bool,
    as_json: bool,
) -> None:
    """Restore a snapshot into ENVIRONMENT's directory."""
    controller = _controller(ctx, environment, project, domain_base)
    if not yes:
        click.confirm(
            f"Overwrite files in {controller.env_dir} from snapshot "
            f"{timestamp or '(newest)'}?",
            abort=True,
        )
    print_report(controller.restore(timestamp), as_json=as_json)
