# stackstrap/orchestrator.py
# -*- coding: utf-8 -*-
"""
Sequences one bootstrap run.

init -> checking_requirements -> executing_steps -> verifying_services -> done

Requirement warnings never stop the run. Steps run strictly in declared
order because later steps depend on host state earlier ones create; the
first failed required step ends the run without verifying services. Every
declared service is verified, independently of the others.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from common.command_utils import get_symbols, log_bootstrap
from common.metrics import BootstrapMetrics
from stackstrap.config_models import AppSettings
from stackstrap.models import (
    Endpoint,
    ResourceRequirement,
    RunLedger,
    RunOutcome,
    RunState,
    ServiceProbe,
    StackDefinitionError,
    StepSpec,
)
from stackstrap.requirement_checker import RequirementChecker
from stackstrap.service_verifier import CancellationToken, ServiceVerifier
from stackstrap.step_executor import StepExecutor

module_logger = logging.getLogger(__name__)


class BootstrapOrchestrator:
    """Drives the checker, executor and verifier and owns the run ledger."""

    def __init__(
        self,
        checker: RequirementChecker,
        executor: StepExecutor,
        verifier: ServiceVerifier,
        cancel_token: Optional[CancellationToken] = None,
        app_settings: Optional[AppSettings] = None,
        orchestrator_logger: Optional[logging.Logger] = None,
        metrics: Optional[BootstrapMetrics] = None,
        name: str = "stack",
    ):
        self.checker = checker
        self.executor = executor
        self.verifier = verifier
        self.cancel_token = cancel_token or verifier.cancel_token
        self.app_settings = app_settings
        self.logger = orchestrator_logger or module_logger
        self.metrics = metrics
        self.name = name

    def bootstrap(
        self,
        requirements: Iterable[ResourceRequirement],
        steps: Sequence[StepSpec],
        probes: Sequence[ServiceProbe],
        endpoints: Iterable[Endpoint] = (),
    ) -> RunLedger:
        """
        Runs requirements, steps and probes and returns the ledger.

        Raises:
            StackDefinitionError: Two steps share an id. Nothing has run yet.
        """
        duplicates = [
            step_id
            for step_id, count in Counter(s.id for s in steps).items()
            if count > 1
        ]
        if duplicates:
            raise StackDefinitionError(
                f"duplicate step ids: {', '.join(sorted(duplicates))}"
            )

        symbols = get_symbols(self.app_settings)
        ledger = RunLedger(
            name=self.name,
            endpoints=list(endpoints),
            started_at=datetime.now(timezone.utc),
        )
        log_bootstrap(
            f"{symbols.get('rocket', '🚀')} Bootstrap of '{self.name}' started.",
            "info",
            self.logger,
            self.app_settings,
        )

        ledger.state = RunState.CHECKING_REQUIREMENTS
        ledger.check_results = self.checker.check(requirements)
        if self.metrics:
            for warning in ledger.warnings:
                self.metrics.record_requirement_warning(
                    warning.requirement.label
                )

        ledger.state = RunState.EXECUTING_STEPS
        if self._execute_steps(ledger, steps):
            ledger.state = RunState.VERIFYING_SERVICES
            self._verify_services(ledger, probes)

        return self._done(ledger)

    def _execute_steps(
        self, ledger: RunLedger, steps: Sequence[StepSpec]
    ) -> bool:
        """Returns False when the run must not continue to service verification."""
        for i, step in enumerate(steps):
            if self._cancel_requested(ledger):
                return False
            self.logger.info(
                f"--- Stage {i + 1}/{len(steps)}: step '{step.id}' ---"
            )
            result = self.executor.run(step)
            ledger.record_step(result)
            if result.fatal:
                self.logger.error(
                    f"Required step '{step.id}' failed. Skipping the remaining {len(steps) - i - 1} step(s) and service verification."
                )
                return False
        return True

    def _verify_services(
        self, ledger: RunLedger, probes: Sequence[ServiceProbe]
    ) -> None:
        for probe in probes:
            if self._cancel_requested(ledger):
                return
            ledger.record_service(self.verifier.verify(probe))
            if self.cancel_token.cancelled:
                ledger.cancelled = True
                return

    def _cancel_requested(self, ledger: RunLedger) -> bool:
        if self.cancel_token.cancelled:
            symbols = get_symbols(self.app_settings)
            log_bootstrap(
                f"{symbols.get('warning', '!')} Cancellation requested. Stopping at the next safe point.",
                "warning",
                self.logger,
                self.app_settings,
            )
            ledger.cancelled = True
            return True
        return False

    def _done(self, ledger: RunLedger) -> RunLedger:
        ledger.state = RunState.DONE
        ledger.finished_at = datetime.now(timezone.utc)
        outcome = ledger.outcome
        symbols = get_symbols(self.app_settings)
        if outcome == RunOutcome.SUCCESS:
            log_bootstrap(
                f"{symbols.get('sparkles', '✨')} Bootstrap of '{self.name}' finished successfully.",
                "info",
                self.logger,
                self.app_settings,
            )
        else:
            log_bootstrap(
                f"{symbols.get('critical', '🔥')} Bootstrap of '{self.name}' finished with outcome '{outcome.value}'.",
                "error",
                self.logger,
                self.app_settings,
            )
        if self.metrics:
            self.metrics.record_run(self.name, outcome == RunOutcome.SUCCESS)
        return ledger
