"""
Shared pieces of the environment commands: arguments, controller
construction, report printing and the fatal-error guard.
"""

from __future__ import annotations

import functools
import json
import sys
from collections.abc import Callable
from typing import Any

import click

from telestack.core.errors import ConfigError, DirectoryRemovalError
from telestack.core.models.report import RunReport

_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red"}


def environment_arguments(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ENVIRONMENT argument plus --project / --domain options."""
    fn = click.option(
        "--domain", "-d", "domain_base", default=None,
        help="Domain base (default: domain_base from telestack.yml).",
    )(fn)
    fn = click.option(
        "--project", "-p", "project", default=None,
        help="Project name (default: project from telestack.yml).",
    )(fn)
    fn = click.argument("environment")(fn)
    return fn


def guarded(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Turn fatal provisioning errors into a red message and exit 1."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except (ConfigError, DirectoryRemovalError) as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(1)

    return wrapper


def build_controller(
    ctx: click.Context,
    environment: str,
    project: str | None,
    domain_base: str | None,
    *,
    decisions: Any,
    dev_mode: bool | None = None,
    include_cms: bool | None = None,
    **option_overrides: Any,
):
    """Resolve config and settings, and wire a ``LifecycleController``.

    Raises:
        ConfigError: Settings or environment inputs are invalid.
    """
    from telestack.core.config.loader import load_settings
    from telestack.core.config.resolver import resolve_environment
    from telestack.core.models.options import ProvisionOptions
    from telestack.core.services.lifecycle import LifecycleController

    settings = load_settings(ctx.obj.get("config_path"))
    project = project or settings.project
    domain_base = domain_base or settings.domain_base
    if not project:
        raise ConfigError("No project given (use --project or set 'project' in telestack.yml)")
    if not domain_base:
        raise ConfigError("No domain given (use --domain or set 'domain_base' in telestack.yml)")

    config = resolve_environment(project, environment, domain_base)
    options = ProvisionOptions.for_environment(
        config.environment_kind,
        dev_mode=dev_mode,
        include_cms=settings.include_cms if include_cms is None else include_cms,
        **option_overrides,
    )
    return LifecycleController(config, settings, options, decisions)


def print_report(report: RunReport, *, as_json: bool) -> None:
    """Print a run report, JSON or human-readable."""
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    click.secho(
        f"\n⚡ {report.operation} — {report.project_name}-{report.environment}",
        fg="cyan", bold=True,
    )
    for step in report.steps:
        detail = f"  {step.detail}" if step.detail else ""
        if step.ok:
            click.secho(f"   ✓ {step.name}", fg="green", nl=False)
        elif step.failed:
            click.secho(f"   ✗ {step.name}", fg="red", nl=False)
        else:
            click.secho(f"   ⊘ {step.name}", fg="yellow", nl=False)
        click.echo(detail)

    click.echo()
    click.secho(
        f"   Result: {report.status} "
        f"({report.succeeded} ok, {report.failed} failed, {report.skipped} skipped)",
        fg=_STATUS_COLORS.get(report.status, "white"),
        bold=True,
    )
    click.echo()
