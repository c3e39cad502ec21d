"""Global pytest configuration and fixtures for the spin-down tests."""

import os
from dataclasses import dataclass

import pytest

from spin_down.config.settings import SpinDownSettings, reset_settings
from tests.fakes import LISTENER_ARN, FakeControlPlane, ScriptedSession, make_clients

TEST_ENV = {
    "AWS_DEFAULT_REGION": "us-east-1",
    "AWS_REGION": "us-east-1",
    # Prevent actual AWS API calls during testing
    "AWS_ACCESS_KEY_ID": "testing",
    "AWS_SECRET_ACCESS_KEY": "testing",
    "AWS_SECURITY_TOKEN": "testing",
    "AWS_SESSION_TOKEN": "testing",
    "POWERTOOLS_TRACE_DISABLED": "true",
    "POWERTOOLS_METRICS_NAMESPACE": "SpinDown",
}


def pytest_configure(config):
    """Configure environment variables before handler modules are imported."""
    for key, value in TEST_ENV.items():
        os.environ.setdefault(key, value)


@pytest.fixture(autouse=True)
def clear_settings():
    """Drop cached settings between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings_kwargs():
    return {
        "ecs_cluster_name": "demo-cluster",
        "ecs_service_name": "demo-service",
        "rds_instance_id": "demo-db",
        "listener_arn": LISTENER_ARN,
        "domain_name": "app.example.com",
        "drain_poll_interval_seconds": 5,
        "drain_max_attempts": 4,
        "readiness_poll_interval_seconds": 10,
        "readiness_max_attempts": 3,
        "replay_retry_interval_seconds": 5,
        "replay_max_attempts": 6,
        "rule_propagation_delay_seconds": 0,
    }


@pytest.fixture
def settings(settings_kwargs):
    return SpinDownSettings(**settings_kwargs)


@pytest.fixture
def control_plane():
    """Fake control plane in its awake state."""
    return FakeControlPlane(awake=True)


@pytest.fixture
def sleeping_plane():
    """Fake control plane in its hibernated state."""
    return FakeControlPlane(awake=False)


@pytest.fixture
def session():
    return ScriptedSession([200])


@pytest.fixture
def clients(control_plane, session):
    return make_clients(control_plane, session)


@pytest.fixture
def sleeps():
    """Records requested sleeps instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def lambda_context():
    """Lambda context with the attributes powertools reads."""

    @dataclass
    class LambdaContext:
        function_name: str = "spin-down-test"
        memory_limit_in_mb: int = 128
        invoked_function_arn: str = "arn:aws:lambda:us-east-1:123456789012:function:spin-down-test"
        aws_request_id: str = "da658bd3-2d6f-4e7b-8ec2-937234644fdc"

    return LambdaContext()


@pytest.fixture
def alb_event():
    return {
        "requestContext": {
            "elb": {
                "targetGroupArn": "arn:aws:elasticloadbalancing:us-east-1:123456789012:targetgroup/StartupLambdaTG/111"
            }
        },
        "httpMethod": "GET",
        "path": "/api/items",
        "queryStringParameters": {"page": "2", "q": "blue%20shoes"},
        "headers": {
            "host": "app.example.com",
            "accept": "application/json",
            "user-agent": "pytest",
            "x-amzn-trace-id": "Root=1-5f84c7a9-0e5b1e1e",
            "x-forwarded-for": "203.0.113.9",
        },
        "body": "",
        "isBase64Encoded": False,
    }
