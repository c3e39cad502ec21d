"""Ordered orchestration steps with an explicit failure policy per step."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from ..exceptions import StepFailedError

logger = logging.getLogger(__name__)


class StepPolicy(str, Enum):
    """What a step failure means for the rest of the run."""

    BEST_EFFORT = "best_effort"
    REQUIRED = "required"


@dataclass(frozen=True)
class OrchestrationStep:
    name: str
    action: Callable[[], Any]
    policy: StepPolicy


@dataclass
class StepOutcome:
    name: str
    policy: StepPolicy
    succeeded: bool
    result: Any = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "step": self.name,
            "policy": self.policy.value,
            "succeeded": self.succeeded,
            "result": self.result,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class RunReport:
    flow: str
    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(outcome.succeeded for outcome in self.outcomes)

    def outcome(self, name: str) -> Optional[StepOutcome]:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        return None

    def as_dict(self) -> dict[str, Any]:
        return {
            "flow": self.flow,
            "succeeded": self.succeeded,
            "steps": [outcome.as_dict() for outcome in self.outcomes],
        }


def run_steps(flow: str, steps: Iterable[OrchestrationStep]) -> RunReport:
    """Run ``steps`` in order.

    A best-effort step that raises is logged and recorded, and the run moves
    on. A required step that raises aborts the run.

    Args:
        flow: Name of the flow, used in logs and the report.
        steps: Steps to run in order.

    Returns:
        Report with one outcome per executed step.

    Raises:
        StepFailedError: If a required step raises.
    """
    report = RunReport(flow=flow)
    for step in steps:
        started = time.monotonic()
        logger.info(
            "Running step",
            extra={"flow": flow, "step": step.name, "policy": step.policy.value},
        )
        try:
            result = step.action()
        except Exception as e:
            report.outcomes.append(
                StepOutcome(
                    name=step.name,
                    policy=step.policy,
                    succeeded=False,
                    error=str(e),
                    duration_seconds=time.monotonic() - started,
                )
            )
            if step.policy is StepPolicy.REQUIRED:
                logger.exception(
                    "Required step failed; aborting run",
                    extra={"flow": flow, "step": step.name},
                )
                raise StepFailedError(step.name, e) from e
            logger.exception(
                "Best-effort step failed; continuing",
                extra={"flow": flow, "step": step.name},
            )
            continue

        report.outcomes.append(
            StepOutcome(
                name=step.name,
                policy=step.policy,
                succeeded=True,
                result=result,
                duration_seconds=time.monotonic() - started,
            )
        )
    return report
