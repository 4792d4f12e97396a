"""
CLI commands for environment lifecycle: up, down, stop, status.

Thin wrappers over ``telestack.core.services.lifecycle``.  ENVIRONMENT
is one of dev, staging, test, production.
"""

from __future__ import annotations

import json
import sys

import click

from telestack.ui.cli.common import build_controller, environment_arguments, guarded, print_report


def _decisions(
    *,
    interactive: bool,
    existing: str = "update",
    volumes: bool = False,
    continue_on_removal_failure: bool = False,
):
    """Prompt on a terminal, fixed answers otherwise.  Flags hold either way."""
    from telestack.core.services.decisions import AutomationDecisions, ExistingChoice
    from telestack.ui.cli.prompts import InteractiveDecisions

    if interactive and sys.stdin.isatty():
        return InteractiveDecisions(
            volumes=volumes,
            continue_on_removal_failure=continue_on_removal_failure,
        )
    return AutomationDecisions(
        existing=ExistingChoice(existing),
        volumes=volumes,
        continue_on_removal_failure=continue_on_removal_failure,
    )


@click.command()
@environment_arguments
@click.option("--dev/--no-dev", "dev_mode", default=None,
              help="Use dev overlays and overrides (default: only for 'dev').")
@click.option("--cms/--no-cms", "include_cms", default=None, help="Include the WordPress add-on.")
@click.option("--yes", "-y", is_flag=True, help="Update an existing environment without asking.")
@click.option("--reconcile", is_flag=True,
              help="Rebuild an existing environment from scratch without asking.")
@click.option("--no-start", is_flag=True, help="Only materialize files.")
@click.option("--no-routes", is_flag=True, help="Do not publish proxy routes.")
@click.option("--shared-db", is_flag=True,
              help="Run one MariaDB container for all components.")
@click.option("--restart-proxy", is_flag=True,
              help="Restart the proxy after publishing routes.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@guarded
def up(
    ctx: click.Context,
    environment: str,
    project: str | None,
    domain_base: str | None,
    dev_mode: bool | None,
    include_cms: bool | None,
    yes: bool,
    reconcile: bool,
    no_start: bool,
    no_routes: bool,
    shared_db: bool,
    restart_proxy: bool,
    as_json: bool,
) -> None:
    """Provision ENVIRONMENT and bring it up.

    Examples:

        telestack up dev -p clinic -d example.com

        telestack up production --reconcile

        telestack up staging --shared-db --restart-proxy
    """
    from telestack.core.services.decisions import ExistingChoice

    decisions = _decisions(
        interactive=not (yes or reconcile),
        existing=ExistingChoice.RECONCILE if reconcile else ExistingChoice.UPDATE,
    )
    controller = build_controller(
        ctx, environment, project, domain_base,
        decisions=decisions,
        dev_mode=dev_mode,
        include_cms=include_cms,
        start=not no_start,
        publish_routes=not no_routes,
        shared_db=shared_db,
        restart_proxy=restart_proxy,
    )
    print_report(controller.provision(), as_json=as_json)


@click.command()
@environment_arguments
@click.option("--volumes", is_flag=True, help="Also delete data volumes.")
@click.option("--keep-going", is_flag=True,
              help="Finish even if the directory cannot be fully removed.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@guarded
def down(
    ctx: click.Context,
    environment: str,
    project: str | None,
    domain_base: str | None,
    volumes: bool,
    keep_going: bool,
    yes: bool,
    as_json: bool,
) -> None:
    """Snapshot ENVIRONMENT, then remove it.

    Containers and networks are removed, the environment directory is
    deleted.  Volumes are kept unless --volumes is given (or confirmed
    at the prompt).
    """
    decisions = _decisions(
        interactive=not yes,
        volumes=volumes,
        continue_on_removal_failure=keep_going,
    )
    controller = build_controller(ctx, environment, project, domain_base, decisions=decisions)

    if not yes and sys.stdin.isatty():
        click.confirm(f"Tear down {controller.env_dir}?", abort=True)

    print_report(controller.teardown(), as_json=as_json)


@click.command()
@environment_arguments
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@guarded
def stop(
    ctx: click.Context,
    environment: str,
    project: str | None,
    domain_base: str | None,
    as_json: bool,
) -> None:
    """Stop ENVIRONMENT's containers, keeping volumes, networks and files."""
    from telestack.core.services.decisions import AutomationDecisions

    controller = build_controller(
        ctx, environment, project, domain_base, decisions=AutomationDecisions(),
    )
    print_report(controller.stop(), as_json=as_json)


@click.command()
@environment_arguments
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@guarded
def status(
    ctx: click.Context,
    environment: str,
    project: str | None,
    domain_base: str | None,
    as_json: bool,
) -> None:
    """Show ENVIRONMENT's resolved configuration and running containers."""
    from telestack.core.services.decisions import AutomationDecisions

    controller = build_controller(
        ctx, environment, project, domain_base, decisions=AutomationDecisions(),
    )
    result = controller.status()

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    variant = "official" if result["official"] else "custom"
    click.secho(f"\n📋 {result['project']}-{result['environment']} ({variant})", fg="cyan", bold=True)
    marker = "" if result["exists"] else "  (not created)"
    click.echo(f"   Directory: {result['directory']}{marker}")
    click.echo(f"   Dev mode:  {'on' if result['dev_mode'] else 'off'}")
    click.echo()

    click.secho("   Networks:", fg="white", bold=True)
    for role, name in result["networks"].items():
        click.echo(f"     • {role}: {name}")
    click.echo()

    click.secho("   Components:", fg="white", bold=True)
    for name, info in result["components"].items():
        ports = ", ".join(f"{role} {port}" for role, port in info["ports"].items())
        if info["container"]:
            click.secho(f"     ✓ {name}", fg="green", nl=False)
            click.echo(f"  {info['domain']}  [{ports}]  → {info['container']}")
        else:
            click.secho(f"     · {name}", fg="white", nl=False)
            click.echo(f"  {info['domain']}  [{ports}]")
    click.echo()
