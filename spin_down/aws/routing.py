"""Listener rule priority swapping between the placeholder and the backend."""

from __future__ import annotations

import logging
from typing import Any, Optional

from botocore.exceptions import ClientError

from ..config.settings import SpinDownSettings
from ..models import RoutingRule, RulePair, RuleTarget

logger = logging.getLogger(__name__)


class RoutingRuleSwapper:
    """Gives one of the two managed listener rules top priority.

    The pair is located by stored rule ARNs when both are known, otherwise by
    inspecting the forward targets of every rule on the listener. Priorities
    are always re-derived from the live rules, so repeated or concurrent calls
    converge on the same assignment.
    """

    def __init__(
        self,
        elbv2_client: Any,
        listener_arn: Optional[str] = None,
        placeholder_rule_arn: Optional[str] = None,
        backend_rule_arn: Optional[str] = None,
        placeholder_target_group_arn: Optional[str] = None,
        backend_target_group_arn: Optional[str] = None,
        placeholder_target_marker: str = "Lambd",
    ):
        self._elbv2 = elbv2_client
        self.listener_arn = listener_arn
        self.placeholder_rule_arn = placeholder_rule_arn
        self.backend_rule_arn = backend_rule_arn
        self.placeholder_target_group_arn = placeholder_target_group_arn
        self.backend_target_group_arn = backend_target_group_arn
        self.placeholder_target_marker = placeholder_target_marker

    @classmethod
    def from_settings(
        cls, settings: SpinDownSettings, elbv2_client: Any
    ) -> "RoutingRuleSwapper":
        return cls(
            elbv2_client,
            listener_arn=settings.listener_arn,
            placeholder_rule_arn=settings.placeholder_rule_arn,
            backend_rule_arn=settings.backend_rule_arn,
            placeholder_target_group_arn=settings.placeholder_target_group_arn,
            backend_target_group_arn=settings.backend_target_group_arn,
            placeholder_target_marker=settings.placeholder_target_marker,
        )

    def route_to(self, target: RuleTarget) -> bool:
        """Send matching traffic to ``target``."""
        return self.swap(target.other, target)

    def swap(
        self, low_priority_target: RuleTarget, high_priority_target: RuleTarget
    ) -> bool:
        """Reorder the managed pair so ``high_priority_target`` wins.

        Args:
            low_priority_target: Target that should stop receiving traffic.
            high_priority_target: Target that should receive traffic.

        Returns:
            True when the requested ordering is in place after the call,
            False when the pair could not be found or did not verify.

        Raises:
            ValueError: If both arguments name the same target.
            ClientError: If the priority update itself is rejected.
        """
        if low_priority_target is high_priority_target:
            raise ValueError("low and high priority targets must differ")

        pair = self.discover()
        if pair is None:
            logger.warning(
                "Managed listener rules not found; leaving routing unchanged",
                extra={"requested_target": high_priority_target.value},
            )
            return False

        winner = pair.rule_for(high_priority_target)
        loser = pair.rule_for(low_priority_target)
        top, second = sorted((winner.priority, loser.priority))
        logger.info(
            "Current rule priorities",
            extra={
                "placeholder_priority": pair.placeholder.priority,
                "backend_priority": pair.backend.priority,
            },
        )

        if winner.priority == top:
            logger.info(
                "Rule priorities already route to target",
                extra={"target": high_priority_target.value, "priority": top},
            )
            return True

        self._elbv2.set_rule_priorities(
            RulePriorities=[
                {"RuleArn": winner.arn, "Priority": top},
                {"RuleArn": loser.arn, "Priority": second},
            ]
        )
        logger.info(
            "Listener rule priorities swapped",
            extra={
                "target": high_priority_target.value,
                "winner_rule": winner.arn,
                "winner_priority": top,
                "loser_rule": loser.arn,
                "loser_priority": second,
            },
        )
        return self._verify(winner.arn, top, loser.arn, second)

    def discover(self) -> Optional[RulePair]:
        """Locate the placeholder and backend rules, or None on a miss."""
        if self.placeholder_rule_arn and self.backend_rule_arn:
            return self._discover_by_arn()
        return self._discover_by_target()

    def _discover_by_arn(self) -> Optional[RulePair]:
        try:
            rules = self._describe(
                RuleArns=[self.placeholder_rule_arn, self.backend_rule_arn]
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "RuleNotFound":
                logger.warning(
                    "Stored listener rule ARN not found", extra={"error": str(e)}
                )
                return None
            raise
        by_arn = {rule.arn: rule for rule in rules}
        placeholder = by_arn.get(self.placeholder_rule_arn)
        backend = by_arn.get(self.backend_rule_arn)
        if placeholder is None or backend is None:
            return None
        return RulePair(placeholder=placeholder, backend=backend)

    def _discover_by_target(self) -> Optional[RulePair]:
        if not self.listener_arn:
            logger.warning("No listener ARN configured for rule discovery")
            return None

        rules = self._describe(ListenerArn=self.listener_arn)
        placeholders = [r for r in rules if self._is_placeholder_rule(r)]
        backends = [r for r in rules if self._is_backend_rule(r)]
        logger.info(
            "Discovered listener rules",
            extra={
                "placeholder_rules": [r.arn for r in placeholders],
                "backend_rules": [r.arn for r in backends],
            },
        )

        if len(placeholders) != 1 or len(backends) != 1:
            if len(placeholders) > 1 or len(backends) > 1:
                logger.warning(
                    "Ambiguous listener rules; configure PLACEHOLDER_RULE_ARN "
                    "and BACKEND_RULE_ARN",
                    extra={
                        "placeholder_matches": len(placeholders),
                        "backend_matches": len(backends),
                    },
                )
            return None
        return RulePair(placeholder=placeholders[0], backend=backends[0])

    def _describe(self, **kwargs: Any) -> list[RoutingRule]:
        rules: list[RoutingRule] = []
        while True:
            response = self._elbv2.describe_rules(**kwargs)
            for entry in response.get("Rules", []):
                rule = RoutingRule.from_api(entry)
                if rule is not None:
                    rules.append(rule)
            marker = response.get("NextMarker")
            if not marker:
                return rules
            kwargs["Marker"] = marker

    def _is_placeholder_group(self, target_group_arn: str) -> bool:
        if self.placeholder_target_group_arn:
            return target_group_arn == self.placeholder_target_group_arn
        return self.placeholder_target_marker in target_group_arn

    def _is_placeholder_rule(self, rule: RoutingRule) -> bool:
        return any(self._is_placeholder_group(arn) for arn in rule.target_group_arns)

    def _is_backend_rule(self, rule: RoutingRule) -> bool:
        if not rule.target_group_arns or self._is_placeholder_rule(rule):
            return False
        if self.backend_target_group_arn:
            return self.backend_target_group_arn in rule.target_group_arns
        return True

    def _verify(
        self, winner_arn: str, winner_priority: int, loser_arn: str, loser_priority: int
    ) -> bool:
        updated = {r.arn: r.priority for r in self._describe(RuleArns=[winner_arn, loser_arn])}
        verified = (
            updated.get(winner_arn) == winner_priority
            and updated.get(loser_arn) == loser_priority
        )
        if verified:
            logger.info("Rule priorities verified", extra={"priorities": updated})
        else:
            logger.error(
                "Rule priorities were not updated as expected",
                extra={
                    "expected": {winner_arn: winner_priority, loser_arn: loser_priority},
                    "actual": updated,
                },
            )
        return verified
