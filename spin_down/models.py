"""Value types shared by the control-plane wrappers and the orchestrators."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RuleTarget(str, Enum):
    """Which side of the managed rule pair a listener rule forwards to."""

    PLACEHOLDER = "placeholder"
    BACKEND = "backend"

    @property
    def other(self) -> "RuleTarget":
        if self is RuleTarget.PLACEHOLDER:
            return RuleTarget.BACKEND
        return RuleTarget.PLACEHOLDER


@dataclass(frozen=True)
class RoutingRule:
    """A listener rule as returned by DescribeRules.

    Only ``priority`` is ever changed by this package; ``conditions`` and
    ``actions`` are kept so they can be logged and compared, never rewritten.
    """

    arn: str
    priority: int
    target_group_arns: tuple[str, ...]
    conditions: list[dict[str, Any]] = field(default_factory=list, compare=False)
    actions: list[dict[str, Any]] = field(default_factory=list, compare=False)

    @classmethod
    def from_api(cls, rule: dict[str, Any]) -> "RoutingRule | None":
        """Build a rule from a DescribeRules entry.

        Returns None for the listener's default rule, which has no numeric
        priority and is never managed.
        """
        if rule.get("IsDefault") or str(rule.get("Priority")) == "default":
            return None
        return cls(
            arn=rule["RuleArn"],
            priority=int(rule["Priority"]),
            target_group_arns=forward_target_groups(rule.get("Actions", [])),
            conditions=rule.get("Conditions", []),
            actions=rule.get("Actions", []),
        )


def forward_target_groups(actions: list[dict[str, Any]]) -> tuple[str, ...]:
    """Collect the target group ARNs of every forward action."""
    arns: list[str] = []
    for action in actions:
        if action.get("Type") != "forward":
            continue
        if action.get("TargetGroupArn"):
            arns.append(action["TargetGroupArn"])
        for group in action.get("ForwardConfig", {}).get("TargetGroups", []):
            arn = group.get("TargetGroupArn")
            if arn and arn not in arns:
                arns.append(arn)
    return tuple(arns)


@dataclass(frozen=True)
class RulePair:
    placeholder: RoutingRule
    backend: RoutingRule

    def rule_for(self, target: RuleTarget) -> RoutingRule:
        if target is RuleTarget.PLACEHOLDER:
            return self.placeholder
        return self.backend

    @property
    def active_target(self) -> RuleTarget:
        """Target currently receiving matching traffic."""
        if self.placeholder.priority < self.backend.priority:
            return RuleTarget.PLACEHOLDER
        return RuleTarget.BACKEND


@dataclass(frozen=True)
class BackendServiceState:
    desired: int
    running: int
    pending: int
    status: str = "ACTIVE"

    @property
    def drained(self) -> bool:
        return self.desired == 0 and self.running == 0

    @property
    def ready(self) -> bool:
        return self.desired >= 1 and self.running == self.desired and self.pending == 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "desired": self.desired,
            "running": self.running,
            "pending": self.pending,
            "status": self.status,
        }


class DatabasePowerState(str, Enum):
    AVAILABLE = "available"
    STOPPING = "stopping"
    STOPPED = "stopped"
    STARTING = "starting"
    OTHER = "other"

    @classmethod
    def from_status(cls, status: str | None) -> "DatabasePowerState":
        """Map an RDS DBInstanceStatus onto the states this package acts on."""
        try:
            return cls((status or "").lower())
        except ValueError:
            return cls.OTHER
