# stackstrap/reporter.py
# -*- coding: utf-8 -*-
"""
End-of-run summary.

`render` is a pure function of the ledger: it lists every requirement check,
every step result and every service result, the endpoints to use and the
overall outcome.
"""

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from stackstrap.config_models import SYMBOLS_DEFAULT
from stackstrap.models import (
    CheckResult,
    CheckStatus,
    RunLedger,
    RunOutcome,
    ServiceOutcome,
    ServiceResult,
    StepOutcome,
    StepResult,
)

STEP_LABELS = {
    StepOutcome.SKIPPED: "SKIPPED (already satisfied)",
    StepOutcome.SUCCEEDED: "SUCCEEDED",
    StepOutcome.FAILED: "FAILED",
}

SERVICE_LABELS = {
    ServiceOutcome.HEALTHY: "HEALTHY",
    ServiceOutcome.UNHEALTHY: "UNHEALTHY",
    ServiceOutcome.TIMED_OUT: "TIMED OUT",
}


class Report(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    outcome: RunOutcome
    exit_code: int
    requirement_lines: List[str] = Field(default_factory=list)
    step_lines: List[str] = Field(default_factory=list)
    service_lines: List[str] = Field(default_factory=list)
    endpoint_lines: List[str] = Field(default_factory=list)
    step_counts: Dict[str, int] = Field(default_factory=dict)
    service_counts: Dict[str, int] = Field(default_factory=dict)
    notes: List[str] = Field(default_factory=list)

    def to_text(self) -> str:
        symbols = SYMBOLS_DEFAULT
        headline_symbol = (
            symbols["success"]
            if self.outcome == RunOutcome.SUCCESS
            else symbols["error"]
        )
        out = [f"=== Bootstrap summary: {self.name} ==="]
        out.append("")
        out.append("Requirements:")
        out.extend(self.requirement_lines or ["  (none declared)"])
        out.append("")
        out.append("Steps:")
        out.extend(self.step_lines or ["  (none declared)"])
        out.append("")
        out.append("Services:")
        out.extend(self.service_lines or ["  (none verified)"])
        if self.endpoint_lines:
            out.append("")
            out.append("Endpoints:")
            out.extend(self.endpoint_lines)
        if self.notes:
            out.append("")
            out.extend(self.notes)
        out.append("")
        out.append(
            f"{headline_symbol} Overall outcome: {self.outcome.value.upper()} (exit code {self.exit_code})"
        )
        return "\n".join(out)


def _requirement_line(result: CheckResult) -> str:
    status = "OK" if result.status == CheckStatus.OK else "WARN"
    return f"  [{status}] {result.requirement.label}: {result.detail}"


def _step_line(result: StepResult) -> str:
    label = STEP_LABELS[result.outcome]
    if result.outcome == StepOutcome.FAILED and not result.required:
        label += " (non-fatal)"
    line = f"  [{label}] {result.step_id}"
    if result.description:
        line += f" - {result.description}"
    line += f" ({result.duration:.1f}s)"
    if result.error:
        line += f": {result.error.message}"
    return line


def _service_line(result: ServiceResult) -> str:
    line = (
        f"  [{SERVICE_LABELS[result.outcome]}] {result.service} "
        f"after {result.attempts_used} attempt(s)"
    )
    if result.detail:
        line += f": {result.detail}"
    return line


def render(ledger: RunLedger) -> Report:
    notes = []
    if ledger.aborted_by:
        notes.append(
            f"Run aborted by required step '{ledger.aborted_by}'; remaining steps and service verification were skipped."
        )
    if ledger.cancelled:
        notes.append("Run cancelled by the caller; the ledger is partial.")

    return Report(
        name=ledger.name,
        outcome=ledger.outcome,
        exit_code=ledger.exit_code,
        requirement_lines=[_requirement_line(r) for r in ledger.check_results],
        step_lines=[_step_line(r) for r in ledger.step_results],
        service_lines=[_service_line(r) for r in ledger.service_results],
        endpoint_lines=[f"  {e.name}: {e.url}" for e in ledger.endpoints],
        step_counts={
            outcome.value: len(ledger.steps_with(outcome))
            for outcome in StepOutcome
        },
        service_counts={
            outcome.value: len(ledger.services_with(outcome))
            for outcome in ServiceOutcome
        },
        notes=notes,
    )
