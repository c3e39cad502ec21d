"""RDS instance power control.

Transitions are only issued from the state the caller expects (stop from
``available``, start from ``stopped``). Anything else is a successful no-op,
which keeps concurrent runs from double-triggering an instance that is
already stopping or starting. Errors are logged and swallowed here: the
database is never allowed to block the traffic path.
"""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ..config.settings import SpinDownSettings
from ..models import DatabasePowerState

logger = logging.getLogger(__name__)


class DatabasePowerController:
    def __init__(self, rds_client: Any, instance_id: str):
        self._rds = rds_client
        self.instance_id = instance_id

    @classmethod
    def from_settings(
        cls, settings: SpinDownSettings, rds_client: Any
    ) -> "DatabasePowerController":
        return cls(rds_client, settings.rds_instance_id)

    def describe_state(self) -> DatabasePowerState:
        """Read the instance state.

        Raises:
            ClientError: If the instance cannot be described.
            LookupError: If the response does not contain the instance.
        """
        response = self._rds.describe_db_instances(DBInstanceIdentifier=self.instance_id)
        instances = response.get("DBInstances") or []
        if not instances:
            raise LookupError(f"RDS instance {self.instance_id} not found")
        return DatabasePowerState.from_status(instances[0].get("DBInstanceStatus"))

    def stop_if_available(self) -> bool:
        """Stop the instance if it is available.

        Returns:
            True when the instance was stopped or needed no action, False when
            an error was logged and swallowed.
        """
        return self._transition(
            expected=DatabasePowerState.AVAILABLE,
            operation=self._rds.stop_db_instance,
            action="stop",
        )

    def start_if_stopped(self) -> bool:
        """Start the instance if it is stopped; see :meth:`stop_if_available`."""
        return self._transition(
            expected=DatabasePowerState.STOPPED,
            operation=self._rds.start_db_instance,
            action="start",
        )

    def _transition(self, expected: DatabasePowerState, operation: Any, action: str) -> bool:
        try:
            state = self.describe_state()
            if state is not expected:
                logger.info(
                    f"RDS instance not {expected.value}; skipping {action}",
                    extra={"instance_id": self.instance_id, "state": state.value},
                )
                return True

            operation(DBInstanceIdentifier=self.instance_id)
            logger.info(
                f"RDS instance {action} initiated",
                extra={"instance_id": self.instance_id},
            )
            return True
        except (BotoCoreError, ClientError, LookupError) as e:
            logger.warning(
                f"Could not {action} RDS instance",
                extra={"instance_id": self.instance_id, "error": str(e)},
            )
            return False
