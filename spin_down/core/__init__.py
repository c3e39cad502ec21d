"""Hibernation and wake orchestration."""

from .replay import BackendResponse, InboundRequest, RequestReplayer
from .shutdown import ShutdownOrchestrator
from .startup import StartupOrchestrator
from .steps import OrchestrationStep, RunReport, StepPolicy, run_steps
from .waiters import DrainWaiter, ReadinessWaiter

__all__ = [
    "BackendResponse",
    "DrainWaiter",
    "InboundRequest",
    "OrchestrationStep",
    "ReadinessWaiter",
    "RequestReplayer",
    "RunReport",
    "ShutdownOrchestrator",
    "StartupOrchestrator",
    "StepPolicy",
    "run_steps",
]
