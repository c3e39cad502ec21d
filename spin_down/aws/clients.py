"""Client bundle shared by every component of one process.

The bundle is built once per Lambda execution environment (or CLI run) and
passed explicitly into the orchestrators, so tests can hand in fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3
import requests
from botocore.config import Config
from requests.adapters import HTTPAdapter

from ..config.settings import SpinDownSettings

BOTO_CONFIG = Config(retries={"max_attempts": 3, "mode": "standard"})


def create_http_session() -> requests.Session:
    """Create the HTTP session used for request replay.

    Transport-level retries stay disabled: the replayer owns the retry loop
    and classifies every attempt itself.
    """
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=0, pool_connections=1, pool_maxsize=4)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


@dataclass
class AwsClients:
    """Explicit bundle of control-plane clients and the replay HTTP session."""

    ecs: Any
    rds: Any
    elbv2: Any
    http: requests.Session

    @classmethod
    def from_settings(cls, settings: SpinDownSettings) -> "AwsClients":
        session = boto3.session.Session(region_name=settings.aws_region)
        return cls(
            ecs=session.client("ecs", config=BOTO_CONFIG),
            rds=session.client("rds", config=BOTO_CONFIG),
            elbv2=session.client("elbv2", config=BOTO_CONFIG),
            http=create_http_session(),
        )
