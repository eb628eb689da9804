# stackstrap/runner.py
# -*- coding: utf-8 -*-
"""
Wires a stack definition to the real host collaborators and runs it.
"""

import functools
import logging
from typing import Optional

import requests

from common.metrics import BootstrapMetrics
from common.system_utils import read_host_resource
from stackstrap.actions import StepFactory, make_http_probe, make_process_lookup
from stackstrap.config_models import AppSettings, StackDefinition
from stackstrap.models import RunLedger
from stackstrap.orchestrator import BootstrapOrchestrator
from stackstrap.requirement_checker import RequirementChecker
from stackstrap.service_verifier import CancellationToken, ServiceVerifier
from stackstrap.step_executor import StepExecutor

module_logger = logging.getLogger(__name__)


def build_orchestrator(
    definition: StackDefinition,
    app_settings: AppSettings,
    cancel_token: Optional[CancellationToken] = None,
    metrics: Optional[BootstrapMetrics] = None,
    session: Optional[requests.Session] = None,
    current_logger: Optional[logging.Logger] = None,
) -> BootstrapOrchestrator:
    logger_to_use = current_logger if current_logger else module_logger
    cancel_token = cancel_token or CancellationToken()

    checker = RequirementChecker(
        functools.partial(
            read_host_resource,
            app_settings=app_settings,
            current_logger=logger_to_use,
        ),
        app_settings=app_settings,
        current_logger=logger_to_use,
    )
    executor = StepExecutor(
        app_settings=app_settings,
        current_logger=logger_to_use,
        metrics=metrics,
    )
    verifier = ServiceVerifier(
        process_lookup=make_process_lookup(app_settings, logger_to_use),
        http_probe=make_http_probe(session, logger_to_use),
        cancel_token=cancel_token,
        app_settings=app_settings,
        current_logger=logger_to_use,
        metrics=metrics,
    )
    return BootstrapOrchestrator(
        checker,
        executor,
        verifier,
        cancel_token=cancel_token,
        app_settings=app_settings,
        orchestrator_logger=logger_to_use,
        metrics=metrics,
        name=definition.name,
    )


def run_stack(
    definition: StackDefinition,
    app_settings: AppSettings,
    cancel_token: Optional[CancellationToken] = None,
    metrics: Optional[BootstrapMetrics] = None,
    current_logger: Optional[logging.Logger] = None,
) -> RunLedger:
    """Runs the full bootstrap for a loaded stack definition."""
    steps = StepFactory(definition, app_settings, current_logger).build_steps()
    with requests.Session() as session:
        orchestrator = build_orchestrator(
            definition,
            app_settings,
            cancel_token=cancel_token,
            metrics=metrics,
            session=session,
            current_logger=current_logger,
        )
        return orchestrator.bootstrap(
            definition.requirements,
            steps,
            definition.probes,
            endpoints=definition.endpoints,
        )
