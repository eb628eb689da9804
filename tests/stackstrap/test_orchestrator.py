# tests/stackstrap/test_orchestrator.py
# -*- coding: utf-8 -*-
"""
Tests for the bootstrap orchestrator, run against real checker, executor and
verifier instances with an in-memory host.
"""

from unittest.mock import MagicMock

import pytest

from stackstrap.models import (
    CheckStatus,
    Endpoint,
    ResourceRequirement,
    RunOutcome,
    RunState,
    ServiceOutcome,
    ServiceProbe,
    StackDefinitionError,
    StepOutcome,
    StepSpec,
)
from stackstrap.orchestrator import BootstrapOrchestrator
from stackstrap.reporter import render
from stackstrap.requirement_checker import RequirementChecker
from stackstrap.service_verifier import CancellationToken, ServiceVerifier
from stackstrap.step_executor import StepExecutor


class FakeHost:
    """Installed packages, running processes and HTTP answers of a pretend host."""

    def __init__(self):
        self.installed = set()
        self.running = set()
        self.http = {}
        self.resources = {"cpu_cores": 4.0, "memory_mb": 8192.0}
        self.actions_run = []

    def install_step(self, name, required=True, starts=None, fails=False):
        def check():
            return name in self.installed

        def action():
            self.actions_run.append(name)
            if fails:
                raise RuntimeError(f"cannot install {name}")
            self.installed.add(name)
            if starts:
                self.running.add(starts)

        return StepSpec(
            id=f"install-{name}",
            description=f"Install {name}",
            check=check,
            action=action,
            required=required,
        )

    def read(self, requirement):
        return self.resources.get(requirement.label)

    def lookup(self, probe):
        return probe.process_name in self.running

    def http_probe(self, url, timeout):
        return self.http.get(url, 503)


def _process_probe(name, max_attempts=3):
    return ServiceProbe(
        service=name,
        kind="process_alive",
        process_name=name,
        max_attempts=max_attempts,
        retry_interval=1.0,
    )


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def token():
    return CancellationToken()


@pytest.fixture
def make_orchestrator(host, token, app_settings, mock_logger, fake_clock):
    def factory(lookup=None, sleep=None, metrics=None):
        checker = RequirementChecker(host.read, app_settings, mock_logger)
        executor = StepExecutor(app_settings, mock_logger, clock=fake_clock)
        verifier = ServiceVerifier(
            process_lookup=lookup or host.lookup,
            http_probe=host.http_probe,
            sleep=sleep or fake_clock.sleep,
            cancel_token=token,
            app_settings=app_settings,
            current_logger=mock_logger,
        )
        return BootstrapOrchestrator(
            checker,
            executor,
            verifier,
            app_settings=app_settings,
            orchestrator_logger=mock_logger,
            metrics=metrics,
            name="fleet-stack",
        )

    return factory


class TestBootstrapOrchestrator:
    def test_fresh_host_reaches_success(self, host, make_orchestrator):
        """Requirements met, every step runs, both services come up."""
        host.http["http://localhost:3001/health"] = 200
        steps = [
            host.install_step("nodejs"),
            host.install_step("mongodb", starts="mongod"),
            host.install_step("pm2"),
        ]
        probes = [
            _process_probe("mongod"),
            ServiceProbe(
                service="api",
                kind="http_health",
                url="http://localhost:3001/health",
            ),
        ]
        requirements = [
            ResourceRequirement(resource="cpu_cores", minimum=2),
            ResourceRequirement(resource="memory_mb", minimum=4000),
        ]

        ledger = make_orchestrator().bootstrap(
            requirements,
            steps,
            probes,
            endpoints=[Endpoint(name="Backend API", url="http://localhost:3001")],
        )

        assert ledger.state == RunState.DONE
        assert [c.status for c in ledger.check_results] == [CheckStatus.OK] * 2
        assert [r.outcome for r in ledger.step_results] == [StepOutcome.SUCCEEDED] * 3
        assert [r.outcome for r in ledger.service_results] == [
            ServiceOutcome.HEALTHY
        ] * 2
        assert ledger.outcome == RunOutcome.SUCCESS
        assert ledger.exit_code == 0
        assert ledger.started_at <= ledger.finished_at
        assert render(ledger).endpoint_lines == [
            "  Backend API: http://localhost:3001"
        ]

    def test_low_core_host_with_slow_database_succeeds(
        self, host, make_orchestrator, fake_clock
    ):
        """A core-count warning and a database that needs several polls still end in success."""
        host.resources["cpu_cores"] = 1.0
        lookup = MagicMock(side_effect=[False, False, True])
        steps = [host.install_step("nodejs"), host.install_step("mongodb")]

        ledger = make_orchestrator(lookup=lookup).bootstrap(
            [ResourceRequirement(resource="cpu_cores", minimum=2)],
            steps,
            [_process_probe("mongod", max_attempts=5)],
        )

        assert [c.status for c in ledger.check_results] == [CheckStatus.WARN]
        assert ledger.check_results[0].observed == 1.0
        assert [r.outcome for r in ledger.step_results] == [
            StepOutcome.SUCCEEDED,
            StepOutcome.SUCCEEDED,
        ]
        (service,) = ledger.service_results
        assert service.outcome == ServiceOutcome.HEALTHY
        assert service.attempts_used == 3
        assert lookup.call_count == 3
        assert fake_clock.sleeps == [1.0, 1.0]
        assert ledger.outcome == RunOutcome.SUCCESS
        assert ledger.exit_code == 0

    def test_rerun_skips_every_step(self, host, make_orchestrator):
        steps = [host.install_step("nodejs"), host.install_step("mongodb", starts="mongod")]
        probes = [_process_probe("mongod")]

        first = make_orchestrator().bootstrap([], steps, probes)
        second = make_orchestrator().bootstrap([], steps, probes)

        assert first.outcome == second.outcome == RunOutcome.SUCCESS
        assert [r.outcome for r in second.step_results] == [StepOutcome.SKIPPED] * 2
        assert host.actions_run == ["nodejs", "mongodb"]

    def test_required_failure_stops_later_steps_and_probes(
        self, host, make_orchestrator
    ):
        lookup = MagicMock(return_value=True)
        steps = [
            host.install_step("nodejs"),
            host.install_step("mongodb", fails=True),
            host.install_step("pm2"),
        ]

        ledger = make_orchestrator(lookup=lookup).bootstrap(
            [], steps, [_process_probe("mongod")]
        )

        assert [r.step_id for r in ledger.step_results] == [
            "install-nodejs",
            "install-mongodb",
        ]
        assert ledger.step_results[-1].error.message == "RuntimeError: cannot install mongodb"
        assert "pm2" not in host.actions_run
        assert ledger.service_results == []
        lookup.assert_not_called()
        assert ledger.aborted_by == "install-mongodb"
        assert ledger.outcome == RunOutcome.FAILURE
        assert ledger.exit_code == 1

    def test_non_required_failure_continues(self, host, make_orchestrator):
        steps = [
            host.install_step("redis", required=False, fails=True),
            host.install_step("mongodb", starts="mongod"),
        ]

        ledger = make_orchestrator().bootstrap([], steps, [_process_probe("mongod")])

        assert [r.outcome for r in ledger.step_results] == [
            StepOutcome.FAILED,
            StepOutcome.SUCCEEDED,
        ]
        assert ledger.aborted_by is None
        assert ledger.service_results[0].outcome == ServiceOutcome.HEALTHY
        assert ledger.outcome == RunOutcome.SUCCESS

    def test_each_probe_is_verified_independently(self, host, make_orchestrator):
        host.running.add("redis-server")

        ledger = make_orchestrator().bootstrap(
            [],
            [],
            [_process_probe("mongod", max_attempts=2), _process_probe("redis-server")],
        )

        assert [(r.service, r.outcome) for r in ledger.service_results] == [
            ("mongod", ServiceOutcome.TIMED_OUT),
            ("redis-server", ServiceOutcome.HEALTHY),
        ]
        assert ledger.outcome == RunOutcome.FAILURE

    def test_requirement_warnings_do_not_stop_the_run(self, host, make_orchestrator):
        metrics = MagicMock()
        host.resources["memory_mb"] = 1024.0

        ledger = make_orchestrator(metrics=metrics).bootstrap(
            [
                ResourceRequirement(resource="memory_mb", minimum=4000),
                ResourceRequirement(resource="command", name="node", minimum=18),
            ],
            [host.install_step("nodejs")],
            [],
        )

        assert [w.requirement.label for w in ledger.warnings] == [
            "memory_mb",
            "command:node",
        ]
        assert ledger.step_results[0].outcome == StepOutcome.SUCCEEDED
        assert ledger.outcome == RunOutcome.SUCCESS
        assert metrics.record_requirement_warning.call_count == 2
        metrics.record_run.assert_called_once_with("fleet-stack", True)

    def test_duplicate_step_ids_rejected_before_anything_runs(
        self, host, make_orchestrator
    ):
        steps = [host.install_step("nodejs"), host.install_step("nodejs")]

        with pytest.raises(StackDefinitionError, match="install-nodejs"):
            make_orchestrator().bootstrap([], steps, [])

        assert host.actions_run == []

    def test_cancel_between_steps(self, host, token, make_orchestrator):
        cancelling = host.install_step("nodejs")
        original_action = cancelling.action

        def action_then_cancel():
            original_action()
            token.cancel()

        steps = [
            StepSpec(id="install-nodejs", check=cancelling.check, action=action_then_cancel),
            host.install_step("mongodb"),
        ]

        ledger = make_orchestrator().bootstrap([], steps, [_process_probe("mongod")])

        assert [r.step_id for r in ledger.step_results] == ["install-nodejs"]
        assert ledger.service_results == []
        assert ledger.cancelled
        assert ledger.outcome == RunOutcome.CANCELLED
        assert ledger.exit_code == 130

    def test_cancel_during_probe_polling(self, host, token, make_orchestrator):
        def sleep(seconds):
            token.cancel()

        ledger = make_orchestrator(sleep=sleep).bootstrap(
            [], [], [_process_probe("mongod", max_attempts=5), _process_probe("api")]
        )

        assert len(ledger.service_results) == 1
        assert ledger.service_results[0].detail == "verification cancelled"
        assert ledger.outcome == RunOutcome.CANCELLED

    @pytest.mark.parametrize("count", [0, 1, 5])
    def test_report_lists_every_step_and_service(self, host, make_orchestrator, count):
        for i in range(count):
            host.running.add(f"svc{i}")
        steps = [host.install_step(f"pkg{i}") for i in range(count)]
        probes = [_process_probe(f"svc{i}") for i in range(count)]

        report = render(make_orchestrator().bootstrap([], steps, probes))

        assert len(report.step_lines) == count
        assert len(report.service_lines) == count
        assert sum(report.step_counts.values()) == count
        assert sum(report.service_counts.values()) == count
        assert report.exit_code == 0
