# stackstrap/service_verifier.py
# -*- coding: utf-8 -*-
"""
Bounded readiness polling of services.

Services are probed up to `max_attempts` times with a fixed pause between
attempts. A refused connection, a timeout or an unexpected status is just a
failed attempt; only running out of attempts yields TIMED_OUT.
"""

import logging
import threading
from typing import Callable, Optional

from common.command_utils import get_symbols, log_bootstrap
from common.metrics import BootstrapMetrics
from common.network_utils import ProbeTransportError
from stackstrap.config_models import AppSettings
from stackstrap.models import (
    ProbeKind,
    ServiceOutcome,
    ServiceProbe,
    ServiceResult,
)

module_logger = logging.getLogger(__name__)

# (probe) -> whether a matching process/container is running
ProcessLookupFunc = Callable[[ServiceProbe], bool]
# (url, timeout) -> HTTP status code; raises ProbeTransportError
HttpProbeFunc = Callable[[str, float], int]


class CancellationToken:
    """Cooperative cancellation signal shared by the orchestrator and verifier."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep for up to `timeout` seconds, returning early on cancel."""
        return self._event.wait(timeout)


class ServiceVerifier:
    def __init__(
        self,
        process_lookup: ProcessLookupFunc,
        http_probe: HttpProbeFunc,
        sleep: Optional[Callable[[float], object]] = None,
        cancel_token: Optional[CancellationToken] = None,
        app_settings: Optional[AppSettings] = None,
        current_logger: Optional[logging.Logger] = None,
        metrics: Optional[BootstrapMetrics] = None,
    ):
        self.process_lookup = process_lookup
        self.http_probe = http_probe
        self.cancel_token = cancel_token or CancellationToken()
        self.sleep = sleep or self.cancel_token.wait
        self.app_settings = app_settings
        self.logger = current_logger or module_logger
        self.metrics = metrics

    def verify(self, probe: ServiceProbe) -> ServiceResult:
        symbols = get_symbols(self.app_settings)
        last_detail = ""

        for attempt in range(1, probe.max_attempts + 1):
            if self.cancel_token.cancelled:
                return self._finish(
                    probe,
                    ServiceOutcome.UNHEALTHY,
                    attempt - 1,
                    "verification cancelled",
                )

            try:
                healthy, last_detail = self._attempt(probe)
            except Exception as e:
                log_bootstrap(
                    f"{symbols.get('error', '❌')} Probe for '{probe.service}' could not be evaluated: {e}",
                    "error",
                    self.logger,
                    self.app_settings,
                    exc_info=True,
                )
                return self._finish(
                    probe,
                    ServiceOutcome.UNHEALTHY,
                    attempt,
                    f"probe error: {e}",
                )

            if self.metrics:
                self.metrics.record_probe_attempt(probe.service, healthy)

            if healthy:
                log_bootstrap(
                    f"{symbols.get('success', '✅')} {probe.service} is healthy ({last_detail}, attempt {attempt}/{probe.max_attempts}).",
                    "info",
                    self.logger,
                    self.app_settings,
                )
                return self._finish(
                    probe, ServiceOutcome.HEALTHY, attempt, last_detail
                )

            log_bootstrap(
                f"{symbols.get('hourglass', '⏳')} {probe.service} not ready yet ({last_detail}, attempt {attempt}/{probe.max_attempts}).",
                "debug",
                self.logger,
                self.app_settings,
            )
            if attempt < probe.max_attempts:
                self.sleep(probe.retry_interval)

        log_bootstrap(
            f"{symbols.get('error', '❌')} {probe.service} did not become healthy after {probe.max_attempts} attempts: {last_detail}",
            "error",
            self.logger,
            self.app_settings,
        )
        return self._finish(
            probe, ServiceOutcome.TIMED_OUT, probe.max_attempts, last_detail
        )

    def _attempt(self, probe: ServiceProbe):
        if probe.kind == ProbeKind.PROCESS_ALIVE:
            if self.process_lookup(probe):
                return True, f"{probe.lookup.value} '{probe.process_name}' running"
            return False, f"{probe.lookup.value} '{probe.process_name}' not running"

        try:
            status = self.http_probe(str(probe.url), probe.timeout)
        except ProbeTransportError as e:
            return False, str(e)
        if status == probe.expected_status:
            return True, f"HTTP {status}"
        return False, f"HTTP {status}, expected {probe.expected_status}"

    def _finish(
        self,
        probe: ServiceProbe,
        outcome: ServiceOutcome,
        attempts: int,
        detail: str,
    ) -> ServiceResult:
        if self.metrics:
            self.metrics.record_service(probe.service, outcome.value)
        return ServiceResult(
            service=probe.service,
            outcome=outcome,
            attempts_used=attempts,
            detail=detail,
        )
