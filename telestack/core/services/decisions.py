"""
Decision points of a provisioning run.

The lifecycle controller never prompts.  Whenever it needs an operator
answer it asks an injected ``DecisionSource``:

    existing_environment    update in place, reconcile, or abort?
    remove_volumes          delete data volumes during teardown?
    continue_after_removal  go on with a directory that would not die?

``AutomationDecisions`` answers from fixed values (``--yes``, ``--force``
and friends); the CLI's interactive source lives in ``ui/cli/prompts.py``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Protocol


class ExistingChoice(StrEnum):
    """What to do with an environment directory that already exists."""

    UPDATE = "update"
    RECONCILE = "reconcile"
    ABORT = "abort"


class DecisionSource(Protocol):
    def existing_environment(self, env_dir: Path) -> ExistingChoice: ...

    def remove_volumes(self, volumes: list[str]) -> bool: ...

    def continue_after_removal(self, path: Path, error: str) -> bool: ...


@dataclass(frozen=True)
class AutomationDecisions:
    """Fixed answers for unattended runs."""

    existing: ExistingChoice = ExistingChoice.UPDATE
    volumes: bool = False
    continue_on_removal_failure: bool = False

    def existing_environment(self, env_dir: Path) -> ExistingChoice:
        return self.existing

    def remove_volumes(self, volumes: list[str]) -> bool:
        return self.volumes

    def continue_after_removal(self, path: Path, error: str) -> bool:
        return self.continue_on_removal_failure
