#!/usr/bin/env python3
"""
Command-line interface for operating the spin-down controller by hand.
"""

import argparse
import json
import logging
import sys
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..aws.clients import AwsClients
from ..aws.compute import ComputeScaler
from ..aws.database import DatabasePowerController
from ..aws.routing import RoutingRuleSwapper
from ..config.settings import SpinDownSettings, get_settings
from ..core.shutdown import ShutdownOrchestrator
from ..core.startup import StartupOrchestrator
from ..exceptions import SpinDownError

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def status_command(settings: SpinDownSettings, clients: AwsClients) -> dict:
    """Collect routing, service and database state."""
    pair = RoutingRuleSwapper.from_settings(settings, clients.elbv2).discover()
    routing = None
    if pair is not None:
        routing = {
            "active_target": pair.active_target.value,
            "placeholder": {"rule_arn": pair.placeholder.arn, "priority": pair.placeholder.priority},
            "backend": {"rule_arn": pair.backend.arn, "priority": pair.backend.priority},
        }
    service = ComputeScaler.from_settings(settings, clients.ecs).describe()
    database = DatabasePowerController.from_settings(settings, clients.rds).describe_state()
    return {
        "routing": routing,
        "service": service.as_dict(),
        "database": database.value,
    }


def sleep_command(settings: SpinDownSettings, clients: AwsClients) -> dict:
    return ShutdownOrchestrator.from_settings(settings, clients).run().as_dict()


def wake_command(settings: SpinDownSettings, clients: AwsClients) -> dict:
    return StartupOrchestrator.from_settings(settings, clients).wake().as_dict()


COMMANDS = {
    "status": status_command,
    "sleep": sleep_command,
    "wake": wake_command,
}


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spin-down",
        description="Hibernate or wake the on-demand backend",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override LOG_LEVEL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("status", help="Show rule priorities, task counts and database state")
    subparsers.add_parser("sleep", help="Route to the placeholder, scale to zero, stop the database")
    subparsers.add_parser("wake", help="Scale up, start the database, route to the backend")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = create_parser().parse_args(argv)

    try:
        settings = get_settings()
    except SpinDownError as e:
        setup_logging(args.log_level or "INFO")
        logger.error(f"Configuration error: {e}")
        return 2

    setup_logging(args.log_level or settings.log_level)

    try:
        result = COMMANDS[args.command](settings, AwsClients.from_settings(settings))
    except (SpinDownError, BotoCoreError, ClientError, LookupError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
