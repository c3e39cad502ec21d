"""
Spin Down When Not Used

Hibernates an ALB-fronted ECS service and its RDS database when idle, and
wakes them on the first request reaching the placeholder Lambda target.
"""

from .aws.clients import AwsClients
from .config.settings import SpinDownSettings, get_settings, reset_settings, update_settings
from .core.shutdown import ShutdownOrchestrator
from .core.startup import StartupOrchestrator

__version__ = "0.1.0"

__all__ = [
    "AwsClients",
    "ShutdownOrchestrator",
    "SpinDownSettings",
    "StartupOrchestrator",
    "get_settings",
    "reset_settings",
    "update_settings",
]
