"""
Run report — per-step outcomes of a provisioning or teardown run.

Steps never raise past the controller; they land here as ``ok``,
``skipped`` or ``failed`` and the CLI prints the summary at the end.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepResult(BaseModel):
    """Outcome of one step (e.g. ``materialize:openemr``)."""

    name: str
    status: Literal["ok", "skipped", "failed"] = "ok"
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"


class RunReport(BaseModel):
    """Ordered step results for one run."""

    operation: str
    project_name: str = ""
    environment: str = ""
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""
    aborted: bool = False
    steps: list[StepResult] = Field(default_factory=list)

    def ok(self, name: str, detail: str = "") -> StepResult:
        return self._add(name, "ok", detail)

    def skip(self, name: str, detail: str = "") -> StepResult:
        return self._add(name, "skipped", detail)

    def fail(self, name: str, detail: str = "") -> StepResult:
        return self._add(name, "failed", detail)

    def _add(self, name: str, status: str, detail: str) -> StepResult:
        step = StepResult(name=name, status=status, detail=detail)  # type: ignore[arg-type]
        self.steps.append(step)
        return step

    def finish(self) -> RunReport:
        self.ended_at = _now_iso()
        return self

    def step(self, name: str) -> StepResult | None:
        for s in self.steps:
            if s.name == name:
                return s
        return None

    @property
    def succeeded(self) -> int:
        return sum(1 for s in self.steps if s.ok)

    @property
    def failed(self) -> int:
        return sum(1 for s in self.steps if s.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for s in self.steps if s.status == "skipped")

    @property
    def status(self) -> str:
        """``ok`` / ``partial`` / ``failed`` (aborted runs are ``failed``)."""
        if self.aborted:
            return "failed"
        if self.failed == 0:
            return "ok"
        if self.succeeded == 0:
            return "failed"
        return "partial"

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["status"] = self.status
        data["summary"] = {
            "ok": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }
        return data
