"""Idle-alarm handler that hibernates the backend.

Invoked by the CloudWatch request-count alarm (directly or through SNS) or
manually with an empty event. Alarm transitions to any state other than
ALARM are ignored.
"""

import json
from typing import Any, Dict, Optional

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from spin_down.aws.clients import AwsClients
from spin_down.config.settings import get_settings
from spin_down.core.shutdown import ShutdownOrchestrator
from spin_down.exceptions import StepFailedError

tracer = Tracer(service="spin-down-shutdown")
logger = Logger(service="spin-down-shutdown")
metrics = Metrics(namespace="SpinDown", service="spin-down-shutdown")

copy_config_to_registered_loggers(source_logger=logger, include={"spin_down"})

ALARM_STATE = "ALARM"

_orchestrator: Optional[ShutdownOrchestrator] = None


def get_orchestrator() -> ShutdownOrchestrator:
    """Build the orchestrator once per execution environment."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        _orchestrator = ShutdownOrchestrator.from_settings(
            settings, AwsClients.from_settings(settings)
        )
    return _orchestrator


def alarm_state(event: Any) -> Optional[str]:
    """Extract the alarm state from a CloudWatch or SNS alarm event.

    Returns None for events that carry no alarm information, such as a manual
    invocation with an empty payload.
    """
    if not isinstance(event, dict):
        return None

    alarm_data = event.get("alarmData")
    if isinstance(alarm_data, dict):
        return (alarm_data.get("state") or {}).get("value")

    for record in event.get("Records") or []:
        message = (record.get("Sns") or {}).get("Message")
        if not message:
            continue
        try:
            payload = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON SNS message")
            continue
        if isinstance(payload, dict) and "NewStateValue" in payload:
            return payload["NewStateValue"]
    return None


@tracer.capture_lambda_handler
@logger.inject_lambda_context(log_event=True)
@metrics.log_metrics
def handler(event: Dict[str, Any], context: LambdaContext) -> Dict[str, Any]:
    state = alarm_state(event)
    if state is not None and state != ALARM_STATE:
        logger.info("Alarm not in ALARM state; nothing to do", extra={"alarm_state": state})
        metrics.add_metric(name="ShutdownSkipped", unit=MetricUnit.Count, value=1)
        return {"statusCode": 200, "body": json.dumps({"skipped": True, "alarm_state": state})}

    metrics.add_metric(name="ShutdownStarted", unit=MetricUnit.Count, value=1)
    try:
        report = get_orchestrator().run()
    except StepFailedError as e:
        logger.error(
            "Error shutting down infrastructure",
            extra={"step": e.step_name, "error": str(e.cause)},
        )
        metrics.add_metric(name="ShutdownFailed", unit=MetricUnit.Count, value=1)
        raise

    drain = report.outcome("wait_for_drain")
    if drain is not None and drain.result is False:
        metrics.add_metric(name="DrainTimeout", unit=MetricUnit.Count, value=1)
    metrics.add_metric(name="ShutdownCompleted", unit=MetricUnit.Count, value=1)

    return {"statusCode": 200, "body": json.dumps(report.as_dict())}
