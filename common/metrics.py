"""
Prometheus metrics collection for bootstrap runs.

A bootstrap is a short-lived process, so metrics live in a private registry
and are written to a node-exporter textfile at the end of the run rather
than served over HTTP.
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    write_to_textfile,
)

from stackstrap.config import SCRIPT_VERSION

logger = logging.getLogger(__name__)


class BootstrapMetrics:
    """Metrics for steps, service probes and the overall run."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics collectors.

        Args:
            registry: Optional registry. A fresh private one is used if None.
        """
        self.registry = registry or CollectorRegistry()

        self.steps_total = Counter(
            "stackstrap_steps_total",
            "Provisioning steps by outcome",
            ["step", "outcome"],
            registry=self.registry,
        )

        self.step_duration = Histogram(
            "stackstrap_step_duration_seconds",
            "Time spent executing a provisioning step",
            ["step"],
            registry=self.registry,
        )

        self.probe_attempts = Counter(
            "stackstrap_probe_attempts_total",
            "Readiness probe attempts by result",
            ["service", "result"],
            registry=self.registry,
        )

        self.services_total = Counter(
            "stackstrap_services_total",
            "Verified services by outcome",
            ["service", "outcome"],
            registry=self.registry,
        )

        self.requirement_warnings = Counter(
            "stackstrap_requirement_warnings_total",
            "Host requirements below their recommended minimum",
            ["requirement"],
            registry=self.registry,
        )

        self.run_success = Gauge(
            "stackstrap_last_run_success",
            "1 if the last bootstrap run succeeded, 0 otherwise",
            ["stack"],
            registry=self.registry,
        )

        self.build_info = Info(
            "stackstrap_build",
            "Bootstrap engine build information",
            registry=self.registry,
        )
        self.build_info.info({"version": SCRIPT_VERSION})

    def record_step(self, step_id: str, outcome: str, duration: float):
        """Record a finished step."""
        self.steps_total.labels(step=step_id, outcome=outcome).inc()
        self.step_duration.labels(step=step_id).observe(duration)

    def record_probe_attempt(self, service: str, healthy: bool):
        """Record one readiness probe attempt."""
        result = "healthy" if healthy else "unhealthy"
        self.probe_attempts.labels(service=service, result=result).inc()

    def record_service(self, service: str, outcome: str):
        """Record a service verification outcome."""
        self.services_total.labels(service=service, outcome=outcome).inc()

    def record_requirement_warning(self, requirement: str):
        self.requirement_warnings.labels(requirement=requirement).inc()

    def record_run(self, stack: str, succeeded: bool):
        self.run_success.labels(stack=stack).set(1 if succeeded else 0)

    def write_textfile(self, path: str):
        """Write all collected metrics in the Prometheus text format."""
        write_to_textfile(path, self.registry)
        logger.info(f"Metrics written to {path}")
