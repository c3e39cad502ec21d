"""Wake flow triggered by a request reaching the placeholder target.

Concurrent cold requests each run this flow independently. All of them drive
the same external state toward the same target (desired count 1, database
started, backend rule first) through idempotent calls, then each replays its
own captured request.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..aws.clients import AwsClients
from ..aws.compute import ComputeScaler
from ..aws.database import DatabasePowerController
from ..aws.routing import RoutingRuleSwapper
from ..config.settings import SpinDownSettings, StartupStrategy
from ..exceptions import ReplayBudgetExhaustedError, RoutingError, StepFailedError
from ..models import RuleTarget
from .replay import BackendResponse, InboundRequest, RequestReplayer
from .steps import OrchestrationStep, RunReport, StepPolicy, run_steps
from .waiters import ReadinessWaiter

logger = logging.getLogger(__name__)

FLOW_NAME = "startup"


class StartupOrchestrator:
    """Powers the backend up, routes traffic to it and replays the request."""

    def __init__(
        self,
        swapper: RoutingRuleSwapper,
        scaler: ComputeScaler,
        database: DatabasePowerController,
        replayer: RequestReplayer,
        readiness_waiter: Optional[ReadinessWaiter] = None,
        replay_attempts: Optional[int] = None,
        propagation_delay: float = 0.0,
        retry_after_seconds: int = 30,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.swapper = swapper
        self.scaler = scaler
        self.database = database
        self.replayer = replayer
        self.readiness_waiter = readiness_waiter
        self.replay_attempts = replay_attempts
        self.propagation_delay = propagation_delay
        self.retry_after_seconds = retry_after_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: SpinDownSettings,
        clients: AwsClients,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "StartupOrchestrator":
        scaler = ComputeScaler.from_settings(settings, clients.ecs)
        database = DatabasePowerController.from_settings(settings, clients.rds)

        readiness_waiter = None
        if settings.startup_strategy is StartupStrategy.WAIT_FOR_READY:
            readiness_waiter = ReadinessWaiter(
                scaler,
                database if settings.readiness_includes_database else None,
                poll_interval=settings.readiness_poll_interval_seconds,
                max_attempts=settings.readiness_max_attempts,
                sleep=sleep,
            )

        return cls(
            swapper=RoutingRuleSwapper.from_settings(settings, clients.elbv2),
            scaler=scaler,
            database=database,
            replayer=RequestReplayer(
                clients.http,
                retry_interval=settings.replay_retry_interval_seconds,
                max_attempts=settings.replay_max_attempts,
                request_timeout=settings.replay_request_timeout_seconds,
                sleep=sleep,
            ),
            readiness_waiter=readiness_waiter,
            replay_attempts=settings.replay_attempt_budget,
            propagation_delay=settings.rule_propagation_delay_seconds,
            retry_after_seconds=settings.retry_after_seconds,
            sleep=sleep,
        )

    def steps(self) -> list[OrchestrationStep]:
        steps = [
            OrchestrationStep(
                "scale_to_one", lambda: self.scaler.set_desired_count(1), StepPolicy.REQUIRED
            ),
            OrchestrationStep(
                "start_database", self.database.start_if_stopped, StepPolicy.BEST_EFFORT
            ),
            OrchestrationStep("route_to_backend", self._route_to_backend, StepPolicy.REQUIRED),
        ]
        if self.readiness_waiter is not None:
            steps.append(
                OrchestrationStep(
                    "wait_for_ready", self.readiness_waiter.wait_until_ready, StepPolicy.REQUIRED
                )
            )
        return steps

    def wake(self) -> RunReport:
        """Run the control steps without replaying anything.

        Raises:
            StepFailedError: If a required step fails.
        """
        logger.info("Starting up infrastructure")
        report = run_steps(FLOW_NAME, self.steps())
        logger.info("Infrastructure startup completed", extra={"report": report.as_dict()})
        return report

    def handle(self, request: InboundRequest) -> BackendResponse:
        """Wake the backend and answer ``request`` with the replayed response.

        Hard failures before or during replay are turned into a 503 carrying a
        Retry-After hint, so the client comes back to the placeholder later.
        """
        try:
            self.wake()
        except StepFailedError as e:
            logger.error(
                "Error starting infrastructure",
                extra={"step": e.step_name, "error": str(e.cause)},
            )
            return BackendResponse.service_unavailable(e.cause, self.retry_after_seconds)

        if self.propagation_delay:
            logger.info(
                "Waiting for rule priority changes to propagate",
                extra={"delay_seconds": self.propagation_delay},
            )
            self._sleep(self.propagation_delay)

        try:
            return self.replayer.replay(request, max_attempts=self.replay_attempts)
        except ReplayBudgetExhaustedError as e:
            logger.error(
                "Replay budget exhausted", extra={"attempts": e.attempts, "error": str(e)}
            )
            return BackendResponse.service_unavailable(
                e, self.retry_after_seconds, attempts=e.attempts
            )

    def _route_to_backend(self) -> bool:
        # Replaying while the placeholder still wins would loop back into it.
        if not self.swapper.route_to(RuleTarget.BACKEND):
            raise RoutingError("Backend listener rule could not be given top priority")
        return True
