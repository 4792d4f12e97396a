"""
telestack — CLI entrypoint.

Usage:
    python -m telestack.main --help
    telestack up dev --project clinic --domain example.com
    telestack down staging -y
    telestack backup list production
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from telestack import __version__
from telestack.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="telestack")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to telestack.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """telestack — provision EMR / telehealth / video environments."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("TELESTACK_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("TELESTACK_LOG_FILE"),
        log_file_level=os.environ.get("TELESTACK_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── Register commands from telestack/ui/cli/ ──────────────────────

from telestack.ui.cli.backup import backup  # noqa: E402
from telestack.ui.cli.env import down, status, stop, up  # noqa: E402

cli.add_command(up)
cli.add_command(down)
cli.add_command(stop)
cli.add_command(status)
cli.add_command(backup)


if __name__ == "__main__":
    cli()
