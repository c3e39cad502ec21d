"""Polling waiters for backend drain (shutdown) and readiness (startup)."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..aws.compute import ComputeScaler
from ..aws.database import DatabasePowerController
from ..exceptions import BackendNotReadyError, ComputeScalingError
from ..models import DatabasePowerState

logger = logging.getLogger(__name__)

Sleep = Callable[[float], None]


class DrainWaiter:
    """Waits for the backend service to reach zero running tasks.

    Exhausting the budget is reported, not raised: shutdown still powers the
    database down rather than blocking on a stuck drain.
    """

    def __init__(
        self,
        scaler: ComputeScaler,
        poll_interval: float = 5.0,
        max_attempts: int = 12,
        sleep: Sleep = time.sleep,
    ):
        self.scaler = scaler
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    def wait_until_drained(
        self, max_attempts: Optional[int] = None, poll_interval: Optional[float] = None
    ) -> bool:
        attempts = max_attempts or self.max_attempts
        interval = self.poll_interval if poll_interval is None else poll_interval

        for attempt in range(1, attempts + 1):
            try:
                state = self.scaler.describe()
            except ComputeScalingError as e:
                logger.warning(
                    "Error checking ECS service while draining",
                    extra={"attempt": attempt, "error": str(e)},
                )
            else:
                if state.drained:
                    logger.info("ECS service drained", extra={"attempt": attempt})
                    return True
                logger.info(
                    "Waiting for ECS service to drain",
                    extra={"attempt": attempt, "max_attempts": attempts, **state.as_dict()},
                )
            if attempt < attempts:
                self._sleep(interval)

        logger.warning(
            "ECS service did not drain within budget",
            extra={"max_attempts": attempts, "poll_interval": interval},
        )
        return False


class ReadinessWaiter:
    """Waits until the backend service (and optionally the database) serves."""

    def __init__(
        self,
        scaler: ComputeScaler,
        database: Optional[DatabasePowerController] = None,
        poll_interval: float = 10.0,
        max_attempts: int = 30,
        sleep: Sleep = time.sleep,
    ):
        self.scaler = scaler
        self.database = database
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    def wait_until_ready(
        self, max_attempts: Optional[int] = None, poll_interval: Optional[float] = None
    ) -> bool:
        """Poll until ready.

        Returns:
            True once the service runs its desired task count with nothing
            pending and, when configured, the database is available.

        Raises:
            BackendNotReadyError: If the budget is exhausted first.
        """
        attempts = max_attempts or self.max_attempts
        interval = self.poll_interval if poll_interval is None else poll_interval

        for attempt in range(1, attempts + 1):
            if self._service_ready(attempt, attempts) and self._database_ready(attempt):
                logger.info("Backend is ready", extra={"attempt": attempt})
                return True
            if attempt < attempts:
                self._sleep(interval)

        raise BackendNotReadyError(
            f"Backend did not become ready within {attempts} attempts"
        )

    def _service_ready(self, attempt: int, attempts: int) -> bool:
        try:
            state = self.scaler.describe()
        except ComputeScalingError as e:
            logger.warning(
                "Error checking ECS service readiness",
                extra={"attempt": attempt, "error": str(e)},
            )
            return False
        if not state.ready:
            logger.info(
                "Waiting for ECS service to be ready",
                extra={"attempt": attempt, "max_attempts": attempts, **state.as_dict()},
            )
        return state.ready

    def _database_ready(self, attempt: int) -> bool:
        if self.database is None:
            return True
        try:
            state = self.database.describe_state()
        except (BotoCoreError, ClientError, LookupError) as e:
            logger.warning(
                "Error checking RDS status", extra={"attempt": attempt, "error": str(e)}
            )
            return False
        if state is not DatabasePowerState.AVAILABLE:
            logger.info(
                "Waiting for RDS instance", extra={"attempt": attempt, "state": state.value}
            )
            return False
        return True
