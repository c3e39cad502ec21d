"""In-memory fakes of the ECS, RDS and ELBv2 clients plus a scripted HTTP session.

Each fake implements only the boto3 calls the package makes, with the same
keyword arguments and response shapes, and records every call.
"""

import copy
from typing import Any, Iterable, Optional, Union

import requests
from botocore.exceptions import ClientError
from requests.structures import CaseInsensitiveDict

from spin_down.aws.clients import AwsClients

LISTENER_ARN = (
    "arn:aws:elasticloadbalancing:us-east-1:123456789012:listener/app/demo-alb/abc/def"
)
PLACEHOLDER_RULE_ARN = (
    "arn:aws:elasticloadbalancing:us-east-1:123456789012:listener-rule/app/demo-alb/abc/def/lambda"
)
BACKEND_RULE_ARN = (
    "arn:aws:elasticloadbalancing:us-east-1:123456789012:listener-rule/app/demo-alb/abc/def/ecs"
)
DEFAULT_RULE_ARN = (
    "arn:aws:elasticloadbalancing:us-east-1:123456789012:listener-rule/app/demo-alb/abc/def/default"
)
PLACEHOLDER_TG_ARN = (
    "arn:aws:elasticloadbalancing:us-east-1:123456789012:targetgroup/StartupLambdaTG/111"
)
BACKEND_TG_ARN = "arn:aws:elasticloadbalancing:us-east-1:123456789012:targetgroup/EcsTG/222"

HOST_CONDITION = [
    {
        "Field": "host-header",
        "Values": ["app.example.com"],
        "HostHeaderConfig": {"Values": ["app.example.com"]},
    }
]


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def forward_rule(arn: str, priority: Union[int, str], target_group_arn: str) -> dict:
    return {
        "RuleArn": arn,
        "Priority": str(priority),
        "Conditions": copy.deepcopy(HOST_CONDITION),
        "Actions": [{"Type": "forward", "TargetGroupArn": target_group_arn, "Order": 1}],
        "IsDefault": False,
    }


class FakeElbv2Client:
    def __init__(self, placeholder_priority: int = 2, backend_priority: int = 1):
        self.rules = {
            PLACEHOLDER_RULE_ARN: forward_rule(
                PLACEHOLDER_RULE_ARN, placeholder_priority, PLACEHOLDER_TG_ARN
            ),
            BACKEND_RULE_ARN: forward_rule(BACKEND_RULE_ARN, backend_priority, BACKEND_TG_ARN),
            DEFAULT_RULE_ARN: {
                "RuleArn": DEFAULT_RULE_ARN,
                "Priority": "default",
                "Conditions": [],
                "Actions": [{"Type": "fixed-response", "FixedResponseConfig": {"StatusCode": "404"}}],
                "IsDefault": True,
            },
        }
        self.set_priority_calls: list[list[dict]] = []
        self.describe_calls: list[dict] = []
        self.fail_set_priorities: Optional[Exception] = None
        self.ignore_writes = False

    def priority(self, arn: str) -> int:
        return int(self.rules[arn]["Priority"])

    def describe_rules(self, ListenerArn: Optional[str] = None, RuleArns: Optional[list] = None, Marker: Optional[str] = None):
        self.describe_calls.append({"ListenerArn": ListenerArn, "RuleArns": RuleArns})
        if RuleArns is not None:
            missing = [arn for arn in RuleArns if arn not in self.rules]
            if missing:
                raise client_error("RuleNotFound", "DescribeRules")
            return {"Rules": [copy.deepcopy(self.rules[arn]) for arn in RuleArns]}
        return {"Rules": [copy.deepcopy(rule) for rule in self.rules.values()]}

    def set_rule_priorities(self, RulePriorities: list):
        self.set_priority_calls.append(copy.deepcopy(RulePriorities))
        if self.fail_set_priorities is not None:
            raise self.fail_set_priorities
        if self.ignore_writes:
            return {"Rules": []}
        for entry in RulePriorities:
            self.rules[entry["RuleArn"]]["Priority"] = str(entry["Priority"])
        return {"Rules": [copy.deepcopy(self.rules[e["RuleArn"]]) for e in RulePriorities]}


class FakeEcsClient:
    """ECS service whose running count converges to desired on each describe."""

    def __init__(self, desired: int = 1, running: Optional[int] = None, stuck: bool = False):
        self.desired = desired
        self.running = desired if running is None else running
        self.pending = 0
        self.stuck = stuck
        self.update_calls: list[dict] = []
        self.describe_count = 0
        self.fail_update: Optional[Exception] = None

    def update_service(self, cluster: str, service: str, desiredCount: int):
        self.update_calls.append(
            {"cluster": cluster, "service": service, "desiredCount": desiredCount}
        )
        if self.fail_update is not None:
            raise self.fail_update
        self.desired = desiredCount
        return {"service": {"serviceName": service, "desiredCount": desiredCount}}

    def describe_services(self, cluster: str, services: list):
        self.describe_count += 1
        if not self.stuck:
            self.running = self.desired
        return {
            "services": [
                {
                    "serviceName": services[0],
                    "status": "ACTIVE",
                    "desiredCount": self.desired,
                    "runningCount": self.running,
                    "pendingCount": self.pending,
                }
            ],
            "failures": [],
        }


class FakeRdsClient:
    """RDS instance that transitions instantly, like an eventually settled state."""

    def __init__(self, status: str = "available"):
        self.status = status
        self.write_calls: list[str] = []
        self.fail_describe: Optional[Exception] = None

    def describe_db_instances(self, DBInstanceIdentifier: str):
        if self.fail_describe is not None:
            raise self.fail_describe
        return {
            "DBInstances": [
                {"DBInstanceIdentifier": DBInstanceIdentifier, "DBInstanceStatus": self.status}
            ]
        }

    def stop_db_instance(self, DBInstanceIdentifier: str):
        self.write_calls.append("stop")
        if self.status != "available":
            raise client_error("InvalidDBInstanceState", "StopDBInstance")
        self.status = "stopped"
        return {"DBInstance": {"DBInstanceStatus": "stopping"}}

    def start_db_instance(self, DBInstanceIdentifier: str):
        self.write_calls.append("start")
        if self.status != "stopped":
            raise client_error("InvalidDBInstanceState", "StartDBInstance")
        self.status = "available"
        return {"DBInstance": {"DBInstanceStatus": "starting"}}


def make_response(
    status_code: int,
    body: bytes = b"",
    headers: Optional[dict] = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body
    response.headers = CaseInsensitiveDict(headers or {"Content-Type": "application/json"})
    return response


class ScriptedSession:
    """Stand-in for requests.Session returning scripted responses in order.

    A script entry is either a status code, a ``requests.Response`` or an
    exception instance to raise. The last entry repeats once the script runs
    out.
    """

    def __init__(self, script: Iterable[Union[int, requests.Response, Exception]]):
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []
        self.on_request = None

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.on_request is not None:
            self.on_request()
        index = min(len(self.calls), len(self.script)) - 1
        entry = self.script[index]
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, int):
            return make_response(entry, b'{"ok": true}' if entry < 300 else b"")
        return entry


class FakeControlPlane:
    """ECS, RDS and ELBv2 fakes sharing one awake or asleep starting state."""

    def __init__(self, awake: bool = True, stuck_drain: bool = False):
        if awake:
            self.elbv2 = FakeElbv2Client(placeholder_priority=2, backend_priority=1)
            self.ecs = FakeEcsClient(desired=1, stuck=stuck_drain)
            self.rds = FakeRdsClient(status="available")
        else:
            self.elbv2 = FakeElbv2Client(placeholder_priority=1, backend_priority=2)
            self.ecs = FakeEcsClient(desired=0, stuck=stuck_drain)
            self.rds = FakeRdsClient(status="stopped")

    def snapshot(self) -> dict:
        return {
            "placeholder_priority": self.elbv2.priority(PLACEHOLDER_RULE_ARN),
            "backend_priority": self.elbv2.priority(BACKEND_RULE_ARN),
            "desired": self.ecs.desired,
            "database": self.rds.status,
        }


def make_clients(plane: FakeControlPlane, http: Any) -> AwsClients:
    return AwsClients(ecs=plane.ecs, rds=plane.rds, elbv2=plane.elbv2, http=http)
