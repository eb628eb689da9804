# stackstrap/models.py
# -*- coding: utf-8 -*-
"""
Data model for a single bootstrap run.

Declarations (requirements, steps, probes, endpoints) describe what a run
should do; results (check, step and service results) record what happened.
Result models are frozen: once recorded in the ledger they never change.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stackstrap.config import (
    EXIT_CANCELLED,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    PROBE_EXPECTED_STATUS_DEFAULT,
    PROBE_MAX_ATTEMPTS_DEFAULT,
    PROBE_RETRY_INTERVAL_DEFAULT,
    PROBE_TIMEOUT_DEFAULT,
)


class StackDefinitionError(ValueError):
    """Raised when a stack definition cannot be loaded or is inconsistent."""


# --- Requirements ---


class ResourceKind(str, Enum):
    CPU_CORES = "cpu_cores"
    MEMORY_MB = "memory_mb"
    DISK_MB = "disk_mb"
    COMMAND = "command"


class CheckStatus(str, Enum):
    OK = "ok"
    WARN = "warn"


class ResourceRequirement(BaseModel):
    """A host resource and the minimum value it should have."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    resource: ResourceKind
    minimum: float = Field(ge=0)
    name: Optional[str] = Field(
        default=None,
        description="Executable name for 'command', filesystem path for 'disk_mb'.",
    )

    @model_validator(mode="after")
    def _command_needs_name(self) -> "ResourceRequirement":
        if self.resource == ResourceKind.COMMAND and not self.name:
            raise ValueError("a 'command' requirement needs a 'name'")
        return self

    @property
    def label(self) -> str:
        if self.resource == ResourceKind.COMMAND:
            return f"command:{self.name}"
        if self.resource == ResourceKind.DISK_MB:
            return f"disk_mb:{self.name or '/'}"
        return self.resource.value


class CheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    requirement: ResourceRequirement
    status: CheckStatus
    observed: Optional[float] = None
    detail: str = ""


# --- Steps ---


class StepOutcome(str, Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StepSpec(BaseModel):
    """
    One provisioning step.

    `check` must be callable before `action` without side effects and returns
    True when the step's goal state already holds. `action` signals failure by
    returning False or raising.
    """

    id: str = Field(min_length=1)
    description: str = ""
    check: Callable[[], bool]
    action: Callable[[], Any]
    required: bool = True


class StepError(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    exit_code: Optional[int] = None
    output: Optional[str] = None


class StepResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    step_id: str
    description: str = ""
    outcome: StepOutcome
    required: bool = True
    error: Optional[StepError] = None
    duration: float = 0.0

    @property
    def fatal(self) -> bool:
        return self.outcome == StepOutcome.FAILED and self.required


# --- Services ---


class ProbeKind(str, Enum):
    PROCESS_ALIVE = "process_alive"
    HTTP_HEALTH = "http_health"


class ProcessLookup(str, Enum):
    PROCESS = "process"
    CONTAINER = "container"


class ServiceProbe(BaseModel):
    """Readiness probe for one service, polled with a fixed interval."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    service: str = Field(min_length=1)
    kind: ProbeKind
    process_name: Optional[str] = None
    lookup: ProcessLookup = ProcessLookup.PROCESS
    url: Optional[str] = None
    expected_status: int = PROBE_EXPECTED_STATUS_DEFAULT
    max_attempts: int = Field(default=PROBE_MAX_ATTEMPTS_DEFAULT, ge=1)
    retry_interval: float = Field(default=PROBE_RETRY_INTERVAL_DEFAULT, ge=0)
    timeout: float = Field(default=PROBE_TIMEOUT_DEFAULT, gt=0)

    @model_validator(mode="after")
    def _target_matches_kind(self) -> "ServiceProbe":
        if self.kind == ProbeKind.HTTP_HEALTH and not self.url:
            raise ValueError(f"http_health probe '{self.service}' needs a 'url'")
        if self.kind == ProbeKind.PROCESS_ALIVE and not self.process_name:
            raise ValueError(
                f"process_alive probe '{self.service}' needs a 'process_name'"
            )
        return self

    @property
    def target(self) -> str:
        if self.kind == ProbeKind.HTTP_HEALTH:
            return str(self.url)
        return str(self.process_name)


class ServiceOutcome(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    TIMED_OUT = "timed_out"


class ServiceResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str
    outcome: ServiceOutcome
    attempts_used: int = 0
    detail: str = ""


class Endpoint(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    url: str


# --- Ledger ---


class RunState(str, Enum):
    INIT = "init"
    CHECKING_REQUIREMENTS = "checking_requirements"
    EXECUTING_STEPS = "executing_steps"
    VERIFYING_SERVICES = "verifying_services"
    DONE = "done"


class RunOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


EXIT_CODES = {
    RunOutcome.SUCCESS: EXIT_SUCCESS,
    RunOutcome.FAILURE: EXIT_FAILURE,
    RunOutcome.CANCELLED: EXIT_CANCELLED,
}


class RunLedger(BaseModel):
    """
    Ordered record of one bootstrap run.

    Owned by the orchestrator while the run is in progress; the reporter
    derives everything it prints from this object alone.
    """

    name: str = "stack"
    state: RunState = RunState.INIT
    check_results: List[CheckResult] = Field(default_factory=list)
    step_results: List[StepResult] = Field(default_factory=list)
    service_results: List[ServiceResult] = Field(default_factory=list)
    endpoints: List[Endpoint] = Field(default_factory=list)
    cancelled: bool = False
    aborted_by: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def record_step(self, result: StepResult) -> None:
        self.step_results.append(result)
        if result.fatal and self.aborted_by is None:
            self.aborted_by = result.step_id

    def record_service(self, result: ServiceResult) -> None:
        self.service_results.append(result)

    def steps_with(self, outcome: StepOutcome) -> List[StepResult]:
        return [r for r in self.step_results if r.outcome == outcome]

    def services_with(self, outcome: ServiceOutcome) -> List[ServiceResult]:
        return [r for r in self.service_results if r.outcome == outcome]

    @property
    def warnings(self) -> List[CheckResult]:
        return [r for r in self.check_results if r.status == CheckStatus.WARN]

    @property
    def outcome(self) -> RunOutcome:
        if any(r.fatal for r in self.step_results):
            return RunOutcome.FAILURE
        if self.cancelled:
            return RunOutcome.CANCELLED
        if any(
            r.outcome != ServiceOutcome.HEALTHY for r in self.service_results
        ):
            return RunOutcome.FAILURE
        return RunOutcome.SUCCESS

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.outcome]
