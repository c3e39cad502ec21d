"""Hibernation flow triggered by the idle alarm."""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..aws.clients import AwsClients
from ..aws.compute import ComputeScaler
from ..aws.database import DatabasePowerController
from ..aws.routing import RoutingRuleSwapper
from ..config.settings import SpinDownSettings
from ..models import RuleTarget
from .steps import OrchestrationStep, RunReport, StepPolicy, run_steps
from .waiters import DrainWaiter

logger = logging.getLogger(__name__)

FLOW_NAME = "shutdown"


class ShutdownOrchestrator:
    """Routes traffic to the placeholder, scales to zero, stops the database.

    Only the desired-count update is required; every other step is best
    effort so that a routing or database hiccup cannot leave the backend
    running. A stuck drain is logged and the database is stopped anyway.
    """

    def __init__(
        self,
        swapper: RoutingRuleSwapper,
        scaler: ComputeScaler,
        database: DatabasePowerController,
        drain_waiter: DrainWaiter,
    ):
        self.swapper = swapper
        self.scaler = scaler
        self.database = database
        self.drain_waiter = drain_waiter

    @classmethod
    def from_settings(
        cls,
        settings: SpinDownSettings,
        clients: AwsClients,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "ShutdownOrchestrator":
        scaler = ComputeScaler.from_settings(settings, clients.ecs)
        return cls(
            swapper=RoutingRuleSwapper.from_settings(settings, clients.elbv2),
            scaler=scaler,
            database=DatabasePowerController.from_settings(settings, clients.rds),
            drain_waiter=DrainWaiter(
                scaler,
                poll_interval=settings.drain_poll_interval_seconds,
                max_attempts=settings.drain_max_attempts,
                sleep=sleep,
            ),
        )

    def steps(self) -> list[OrchestrationStep]:
        return [
            OrchestrationStep(
                "route_to_placeholder",
                lambda: self.swapper.route_to(RuleTarget.PLACEHOLDER),
                StepPolicy.BEST_EFFORT,
            ),
            OrchestrationStep(
                "scale_to_zero",
                lambda: self.scaler.set_desired_count(0),
                StepPolicy.REQUIRED,
            ),
            OrchestrationStep("wait_for_drain", self._wait_for_drain, StepPolicy.BEST_EFFORT),
            OrchestrationStep(
                "stop_database", self.database.stop_if_available, StepPolicy.BEST_EFFORT
            ),
        ]

    def run(self) -> RunReport:
        """Run the hibernation sequence.

        Raises:
            StepFailedError: If the desired count could not be set to zero.
        """
        logger.info("Shutting down infrastructure")
        report = run_steps(FLOW_NAME, self.steps())
        logger.info("Infrastructure shutdown initiated", extra={"report": report.as_dict()})
        return report

    def _wait_for_drain(self) -> bool:
        drained = self.drain_waiter.wait_until_drained()
        if not drained:
            logger.warning("ECS tasks still running; stopping database regardless")
        return drained
