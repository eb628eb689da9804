# stackstrap/requirement_checker.py
# -*- coding: utf-8 -*-
"""
Checks host resources against recommended minimums.

Requirement checks only annotate the run: a host below a minimum produces a
warning, never a failure.
"""

import logging
from typing import Callable, Iterable, List, Optional

from common.command_utils import get_symbols, log_bootstrap
from stackstrap.config_models import AppSettings
from stackstrap.models import (
    CheckResult,
    CheckStatus,
    ResourceRequirement,
)

module_logger = logging.getLogger(__name__)

ResourceAccessor = Callable[[ResourceRequirement], Optional[float]]


class RequirementChecker:
    """Classifies each requirement as OK or WARN using an injected accessor."""

    def __init__(
        self,
        accessor: ResourceAccessor,
        app_settings: Optional[AppSettings] = None,
        current_logger: Optional[logging.Logger] = None,
    ):
        self.accessor = accessor
        self.app_settings = app_settings
        self.logger = current_logger or module_logger

    def check(
        self, requirements: Iterable[ResourceRequirement]
    ) -> List[CheckResult]:
        return [self._check_one(requirement) for requirement in requirements]

    def _check_one(self, requirement: ResourceRequirement) -> CheckResult:
        symbols = get_symbols(self.app_settings)
        try:
            observed = self.accessor(requirement)
        except Exception as e:
            log_bootstrap(
                f"{symbols.get('warning', '!')} Could not read {requirement.label}: {e}",
                "warning",
                self.logger,
                self.app_settings,
            )
            return CheckResult(
                requirement=requirement,
                status=CheckStatus.WARN,
                detail=f"unavailable ({e})",
            )

        if observed is None:
            log_bootstrap(
                f"{symbols.get('warning', '!')} {requirement.label}: unavailable, recommended minimum is {requirement.minimum:g}.",
                "warning",
                self.logger,
                self.app_settings,
            )
            return CheckResult(
                requirement=requirement,
                status=CheckStatus.WARN,
                detail="unavailable",
            )

        if observed >= requirement.minimum:
            log_bootstrap(
                f"{symbols.get('success', '✅')} {requirement.label}: {observed:g} - OK",
                "info",
                self.logger,
                self.app_settings,
            )
            return CheckResult(
                requirement=requirement,
                status=CheckStatus.OK,
                observed=observed,
                detail=f"{observed:g} >= {requirement.minimum:g}",
            )

        log_bootstrap(
            f"{symbols.get('warning', '!')} {requirement.label}: {observed:g} is below the recommended minimum of {requirement.minimum:g}.",
            "warning",
            self.logger,
            self.app_settings,
        )
        return CheckResult(
            requirement=requirement,
            status=CheckStatus.WARN,
            observed=observed,
            detail=f"{observed:g} < {requirement.minimum:g}",
        )
