"""ECS service desired-count control."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ..config.settings import SpinDownSettings
from ..exceptions import ComputeScalingError
from ..models import BackendServiceState

logger = logging.getLogger(__name__)


class ComputeScaler:
    """Sets and observes the desired task count of the backend service.

    Updates are fire-and-forget; convergence is observed separately through
    :meth:`describe`. Control-plane errors are raised as
    :class:`ComputeScalingError` because a wrong desired count is never safe
    to ignore.
    """

    def __init__(self, ecs_client: Any, cluster_name: str, service_name: str):
        self._ecs = ecs_client
        self.cluster_name = cluster_name
        self.service_name = service_name

    @classmethod
    def from_settings(cls, settings: SpinDownSettings, ecs_client: Any) -> "ComputeScaler":
        return cls(ecs_client, settings.ecs_cluster_name, settings.ecs_service_name)

    def set_desired_count(self, count: int) -> None:
        if count < 0:
            raise ValueError(f"Desired count must be non-negative, got {count}")
        try:
            self._ecs.update_service(
                cluster=self.cluster_name,
                service=self.service_name,
                desiredCount=count,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to update ECS desired count",
                extra={"service": self.service_name, "desired_count": count, "error": str(e)},
            )
            raise ComputeScalingError(
                f"Could not set desired count of {self.service_name} to {count}: {e}"
            ) from e
        logger.info(
            "ECS service desired count set",
            extra={
                "cluster": self.cluster_name,
                "service": self.service_name,
                "desired_count": count,
            },
        )

    def describe(self) -> BackendServiceState:
        """Return the current desired, running and pending task counts."""
        try:
            response = self._ecs.describe_services(
                cluster=self.cluster_name, services=[self.service_name]
            )
        except (BotoCoreError, ClientError) as e:
            raise ComputeScalingError(
                f"Could not describe ECS service {self.service_name}: {e}"
            ) from e

        services = response.get("services") or []
        if not services:
            failures = response.get("failures") or []
            raise ComputeScalingError(
                f"ECS service {self.service_name} not found: {failures}"
            )

        service = services[0]
        return BackendServiceState(
            desired=service.get("desiredCount", 0),
            running=service.get("runningCount", 0),
            pending=service.get("pendingCount", 0),
            status=service.get("status", "UNKNOWN"),
        )
