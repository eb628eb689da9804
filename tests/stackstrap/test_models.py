import pytest
from pydantic import ValidationError

from stackstrap.models import (
    CheckResult,
    CheckStatus,
    ResourceRequirement,
    RunLedger,
    RunOutcome,
    ServiceOutcome,
    ServiceProbe,
    ServiceResult,
    StepOutcome,
    StepResult,
)


def _step(step_id, outcome, required=True):
    return StepResult(step_id=step_id, outcome=outcome, required=required)


def _service(name, outcome):
    return ServiceResult(service=name, outcome=outcome, attempts_used=1)


class TestResourceRequirement:
    def test_labels(self):
        assert ResourceRequirement(resource="cpu_cores", minimum=2).label == "cpu_cores"
        assert (
            ResourceRequirement(resource="disk_mb", minimum=1).label == "disk_mb:/"
        )
        assert (
            ResourceRequirement(resource="command", name="node", minimum=18).label
            == "command:node"
        )

    def test_command_requirement_needs_name(self):
        with pytest.raises(ValidationError):
            ResourceRequirement(resource="command", minimum=1)

    def test_negative_minimum_rejected(self):
        with pytest.raises(ValidationError):
            ResourceRequirement(resource="memory_mb", minimum=-1)


class TestServiceProbe:
    def test_http_probe_needs_url(self):
        with pytest.raises(ValidationError, match="needs a 'url'"):
            ServiceProbe(service="api", kind="http_health")

    def test_process_probe_needs_process_name(self):
        with pytest.raises(ValidationError, match="process_name"):
            ServiceProbe(service="db", kind="process_alive")

    def test_max_attempts_at_least_one(self):
        with pytest.raises(ValidationError):
            ServiceProbe(
                service="db",
                kind="process_alive",
                process_name="mongod",
                max_attempts=0,
            )

    def test_defaults_and_target(self):
        probe = ServiceProbe(
            service="api", kind="http_health", url="http://localhost/health"
        )
        assert probe.expected_status == 200
        assert probe.max_attempts == 5
        assert probe.target == "http://localhost/health"

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            ServiceProbe(
                service="db",
                kind="process_alive",
                process_name="mongod",
                retries=3,
            )


def test_results_are_frozen():
    result = _step("a", StepOutcome.SUCCEEDED)
    with pytest.raises(ValidationError):
        result.outcome = StepOutcome.FAILED


def test_step_result_fatal_only_when_required_and_failed():
    assert _step("a", StepOutcome.FAILED).fatal
    assert not _step("a", StepOutcome.FAILED, required=False).fatal
    assert not _step("a", StepOutcome.SKIPPED).fatal


class TestRunLedger:
    def test_empty_ledger_is_success(self):
        ledger = RunLedger()
        assert ledger.outcome == RunOutcome.SUCCESS
        assert ledger.exit_code == 0

    def test_record_step_remembers_first_fatal_step(self):
        ledger = RunLedger()
        ledger.record_step(_step("a", StepOutcome.FAILED, required=False))
        ledger.record_step(_step("b", StepOutcome.FAILED))
        ledger.record_step(_step("c", StepOutcome.FAILED))

        assert ledger.aborted_by == "b"
        assert ledger.outcome == RunOutcome.FAILURE
        assert ledger.exit_code == 1

    def test_non_fatal_failure_does_not_fail_run(self):
        ledger = RunLedger()
        ledger.record_step(_step("a", StepOutcome.FAILED, required=False))
        ledger.record_service(_service("api", ServiceOutcome.HEALTHY))

        assert ledger.outcome == RunOutcome.SUCCESS

    @pytest.mark.parametrize(
        "outcome", [ServiceOutcome.UNHEALTHY, ServiceOutcome.TIMED_OUT]
    )
    def test_unhealthy_service_fails_run(self, outcome):
        ledger = RunLedger()
        ledger.record_service(_service("api", ServiceOutcome.HEALTHY))
        ledger.record_service(_service("db", outcome))

        assert ledger.outcome == RunOutcome.FAILURE

    def test_cancelled_run(self):
        ledger = RunLedger(cancelled=True)
        ledger.record_service(_service("api", ServiceOutcome.UNHEALTHY))

        assert ledger.outcome == RunOutcome.CANCELLED
        assert ledger.exit_code == 130

    def test_fatal_step_wins_over_cancellation(self):
        ledger = RunLedger(cancelled=True)
        ledger.record_step(_step("a", StepOutcome.FAILED))

        assert ledger.outcome == RunOutcome.FAILURE

    def test_filters(self):
        ledger = RunLedger(
            check_results=[
                CheckResult(
                    requirement=ResourceRequirement(resource="cpu_cores", minimum=2),
                    status=CheckStatus.WARN,
                    observed=1,
                ),
                CheckResult(
                    requirement=ResourceRequirement(resource="memory_mb", minimum=1),
                    status=CheckStatus.OK,
                    observed=2,
                ),
            ]
        )
        ledger.record_step(_step("a", StepOutcome.SKIPPED))
        ledger.record_step(_step("b", StepOutcome.SUCCEEDED))
        ledger.record_service(_service("api", ServiceOutcome.TIMED_OUT))

        assert [w.requirement.label for w in ledger.warnings] == ["cpu_cores"]
        assert [r.step_id for r in ledger.steps_with(StepOutcome.SKIPPED)] == ["a"]
        assert ledger.services_with(ServiceOutcome.HEALTHY) == []
