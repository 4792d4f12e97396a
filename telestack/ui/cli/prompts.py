"""
Interactive decision source — asks the operator on the terminal.
"""

from __future__ import annotations

from pathlib import Path

import click

from telestack.core.services.decisions import ExistingChoice


class InteractiveDecisions:
    """``DecisionSource`` backed by click prompts.

    Answers already given as command-line flags are not asked again.

    Args:
        volumes: ``--volumes`` was given; delete volumes without asking.
        continue_on_removal_failure: ``--keep-going`` was given.
    """

    def __init__(self, *, volumes: bool = False, continue_on_removal_failure: bool = False):
        self.volumes = volumes
        self.continue_on_removal_failure = continue_on_removal_failure

    def existing_environment(self, env_dir: Path) -> ExistingChoice:
        click.secho(f"⚠️  {env_dir} already exists.", fg="yellow")
        click.echo("   update     re-materialize files in place")
        click.echo("   reconcile  snapshot, tear down and rebuild from scratch")
        click.echo("   abort      leave it alone")
        answer = click.prompt(
            "What should happen",
            type=click.Choice([c.value for c in ExistingChoice]),
            default=ExistingChoice.UPDATE.value,
        )
        return ExistingChoice(answer)

    def remove_volumes(self, volumes: list[str]) -> bool:
        if self.volumes:
            return True
        click.secho(f"⚠️  {len(volumes)} data volume(s) belong to this environment:", fg="yellow")
        for name in volumes:
            click.echo(f"     • {name}")
        return click.confirm("Delete them? This destroys their data", default=False)

    def continue_after_removal(self, path: Path, error: str) -> bool:
        click.secho(f"❌ {error}", fg="red")
        if self.continue_on_removal_failure:
            return True
        return click.confirm(f"Continue with {path} partly in place?", default=False)
