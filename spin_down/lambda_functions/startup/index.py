"""Placeholder target handler that wakes the backend.

Registered as the Lambda target of the ALB placeholder rule. Every request
that arrives here while the backend sleeps starts it, flips routing back to
the backend and answers with the backend's response to the replayed request.
"""

from typing import Any, Dict, Optional

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.data_classes import ALBEvent, event_source
from aws_lambda_powertools.utilities.typing import LambdaContext

from spin_down.aws.clients import AwsClients
from spin_down.config.settings import SpinDownSettings, get_settings
from spin_down.core.replay import BackendResponse, InboundRequest, ReplayOutcome
from spin_down.core.startup import StartupOrchestrator
from spin_down.exceptions import ConfigurationError

tracer = Tracer(service="spin-down-startup")
logger = Logger(service="spin-down-startup")
metrics = Metrics(namespace="SpinDown", service="spin-down-startup")

copy_config_to_registered_loggers(source_logger=logger, include={"spin_down"})

DEFAULT_RETRY_AFTER_SECONDS = 30
MISCONFIGURED_MESSAGE = "Wake handler is misconfigured"

_orchestrator: Optional[StartupOrchestrator] = None


def get_orchestrator(settings: SpinDownSettings) -> StartupOrchestrator:
    """Build the orchestrator once per execution environment.

    Raises:
        ConfigurationError: If the backend URL cannot be rebuilt.
    """
    global _orchestrator
    if _orchestrator is None:
        settings.require_backend_base_url()
        _orchestrator = StartupOrchestrator.from_settings(
            settings, AwsClients.from_settings(settings)
        )
    return _orchestrator


@event_source(data_class=ALBEvent)
@tracer.capture_lambda_handler
@logger.inject_lambda_context
@metrics.log_metrics(capture_cold_start_metric=True)
def handler(event: ALBEvent, context: LambdaContext) -> Dict[str, Any]:
    metrics.add_metric(name="WakeRequests", unit=MetricUnit.Count, value=1)
    multi_value = event.get("multiValueHeaders") is not None

    try:
        settings = get_settings()
        orchestrator = get_orchestrator(settings)
        request = InboundRequest.from_alb_event(event, settings.backend_base_url)
        logger.info(
            "Wake request received", extra={"method": request.method, "url": request.url}
        )
        response = orchestrator.handle(request)
    except ConfigurationError as e:
        # Not retryable: no Retry-After.
        logger.exception("Wake handler is misconfigured")
        metrics.add_metric(name="WakeMisconfigured", unit=MetricUnit.Count, value=1)
        response = BackendResponse.json_error(500, MISCONFIGURED_MESSAGE, e)
        return response.to_alb_response(multi_value_headers=multi_value)
    except Exception as e:
        logger.exception("Error starting infrastructure")
        response = BackendResponse.service_unavailable(e, DEFAULT_RETRY_AFTER_SECONDS)

    record_metrics(response)
    return response.to_alb_response(multi_value_headers=multi_value)


def record_metrics(response: BackendResponse) -> None:
    if response.attempts:
        metrics.add_metric(
            name="ReplayAttempts", unit=MetricUnit.Count, value=response.attempts
        )
    last = response.history[-1].outcome if response.history else None
    if last is ReplayOutcome.SUCCESS:
        metrics.add_metric(name="ReplaySucceeded", unit=MetricUnit.Count, value=1)
    elif last is ReplayOutcome.TERMINAL_FAILURE:
        metrics.add_metric(name="ReplayTerminalResponse", unit=MetricUnit.Count, value=1)
    else:
        metrics.add_metric(name="WakeFailed", unit=MetricUnit.Count, value=1)
