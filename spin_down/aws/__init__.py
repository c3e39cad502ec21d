"""Thin wrappers over the ELBv2, ECS and RDS control planes."""

from .clients import AwsClients, create_http_session
from .compute import ComputeScaler
from .database import DatabasePowerController
from .routing import RoutingRuleSwapper

__all__ = [
    "AwsClients",
    "ComputeScaler",
    "DatabasePowerController",
    "RoutingRuleSwapper",
    "create_http_session",
]
