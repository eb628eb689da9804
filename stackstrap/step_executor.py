# stackstrap/step_executor.py
# -*- coding: utf-8 -*-
"""
Provides functionality to execute individual provisioning steps.

A step is first checked against its idempotency predicate; a step whose goal
state already holds is skipped. Otherwise its action runs once. Actions are
never retried here: re-running a partially applied install is not safe, so
recovery is done by re-running the whole bootstrap, which skips every step
that already completed.
"""

import logging
import subprocess
import time
from typing import Callable, Optional

from common.command_utils import get_symbols, log_bootstrap
from common.metrics import BootstrapMetrics
from stackstrap.config_models import AppSettings
from stackstrap.models import StepError, StepOutcome, StepResult, StepSpec

module_logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 2000


def _output_tail(*streams) -> Optional[str]:
    text = "\n".join(
        s.strip() for s in streams if isinstance(s, str) and s.strip()
    )
    if not text:
        return None
    return text[-OUTPUT_TAIL_CHARS:]


def error_from_exception(exc: BaseException) -> StepError:
    """Builds a structured step error, keeping exit code and output of failed commands."""
    if isinstance(exc, subprocess.CalledProcessError):
        cmd = (
            subprocess.list2cmdline(exc.cmd)
            if isinstance(exc.cmd, list)
            else str(exc.cmd)
        )
        return StepError(
            message=f"command `{cmd}` exited with status {exc.returncode}",
            exit_code=exc.returncode,
            output=_output_tail(exc.stdout, exc.stderr),
        )
    if isinstance(exc, subprocess.TimeoutExpired):
        return StepError(
            message=f"command timed out after {exc.timeout}s",
            output=_output_tail(exc.stdout, exc.stderr),
        )
    return StepError(message=f"{type(exc).__name__}: {exc}")


class StepExecutor:
    """Runs one StepSpec and turns whatever happens into a StepResult."""

    def __init__(
        self,
        app_settings: Optional[AppSettings] = None,
        current_logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[BootstrapMetrics] = None,
    ):
        self.app_settings = app_settings
        self.logger = current_logger or module_logger
        self.clock = clock
        self.metrics = metrics

    def run(self, step: StepSpec) -> StepResult:
        """
        Execute a single step.

        Returns:
            StepResult with outcome SKIPPED when the idempotency check reports
            the goal state already holds, SUCCEEDED when the action completes,
            and FAILED when the check or the action raises, or the action
            returns False.
        """
        symbols = get_symbols(self.app_settings)
        started = self.clock()

        try:
            satisfied = bool(step.check())
        except Exception as e:
            log_bootstrap(
                f"{symbols.get('error', '❌')} Idempotency check of '{step.id}' raised: {e}",
                "error",
                self.logger,
                self.app_settings,
                exc_info=True,
            )
            return self._finish(
                step,
                StepOutcome.FAILED,
                started,
                StepError(message=f"idempotency check failed: {e}"),
            )

        if satisfied:
            log_bootstrap(
                f"{symbols.get('skip', '⏭️')} Step '{step.description or step.id}' ({step.id}) is already satisfied. Skipping.",
                "info",
                self.logger,
                self.app_settings,
            )
            return self._finish(step, StepOutcome.SKIPPED, started)

        log_bootstrap(
            f"--- {symbols.get('step', '➡️')} Executing: {step.description or step.id} ({step.id}) ---",
            "info",
            self.logger,
            self.app_settings,
        )
        try:
            action_result = step.action()
        except Exception as e:
            error = error_from_exception(e)
            self._log_failure(step, error)
            return self._finish(step, StepOutcome.FAILED, started, error)

        if action_result is False:
            error = StepError(message="action reported failure")
            self._log_failure(step, error)
            return self._finish(step, StepOutcome.FAILED, started, error)

        log_bootstrap(
            f"--- {symbols.get('success', '✅')} Successfully completed: {step.description or step.id} ({step.id}) ---",
            "info",
            self.logger,
            self.app_settings,
        )
        return self._finish(step, StepOutcome.SUCCEEDED, started)

    def _log_failure(self, step: StepSpec, error: StepError) -> None:
        symbols = get_symbols(self.app_settings)
        level = "error" if step.required else "warning"
        qualifier = "" if step.required else " (non-fatal)"
        log_bootstrap(
            f"{symbols.get('error', '❌')} FAILED{qualifier}: {step.description or step.id} ({step.id})",
            level,
            self.logger,
            self.app_settings,
        )
        log_bootstrap(
            f"   Error details: {error.message}",
            level,
            self.logger,
            self.app_settings,
        )
        if error.output:
            log_bootstrap(
                f"   Output: {error.output}",
                level,
                self.logger,
                self.app_settings,
            )

    def _finish(
        self,
        step: StepSpec,
        outcome: StepOutcome,
        started: float,
        error: Optional[StepError] = None,
    ) -> StepResult:
        duration = max(0.0, self.clock() - started)
        if self.metrics:
            self.metrics.record_step(step.id, outcome.value, duration)
        return StepResult(
            step_id=step.id,
            description=step.description,
            outcome=outcome,
            required=step.required,
            error=error,
            duration=duration,
        )
