"""Tests for the drain and readiness waiters."""

from unittest.mock import MagicMock

import pytest

from spin_down.aws.compute import ComputeScaler
from spin_down.aws.database import DatabasePowerController
from spin_down.core.waiters import DrainWaiter, ReadinessWaiter
from spin_down.exceptions import BackendNotReadyError, ComputeScalingError
from spin_down.models import BackendServiceState, DatabasePowerState
from tests.fakes import FakeEcsClient, FakeRdsClient, client_error


def scaler_for(ecs):
    return ComputeScaler(ecs, "demo-cluster", "demo-service")


def test_drain_converges(fake_sleep, sleeps):
    ecs = FakeEcsClient(desired=0, running=1)
    waiter = DrainWaiter(scaler_for(ecs), poll_interval=5, max_attempts=4, sleep=fake_sleep)

    assert waiter.wait_until_drained() is True
    assert ecs.describe_count == 1
    assert sleeps == []


def test_drain_budget_exhausted(fake_sleep, sleeps):
    """Test a stuck drain gives up without sleeping after the last poll."""
    ecs = FakeEcsClient(desired=0, running=1, stuck=True)
    waiter = DrainWaiter(scaler_for(ecs), poll_interval=5, max_attempts=4, sleep=fake_sleep)

    assert waiter.wait_until_drained() is False
    assert ecs.describe_count == 4
    assert sleeps == [5, 5, 5]


def test_drain_tolerates_describe_errors(fake_sleep):
    scaler = MagicMock()
    scaler.describe.side_effect = [
        ComputeScalingError("throttled"),
        BackendServiceState(desired=0, running=0, pending=0),
    ]
    waiter = DrainWaiter(scaler, poll_interval=1, max_attempts=3, sleep=fake_sleep)

    assert waiter.wait_until_drained() is True
    assert scaler.describe.call_count == 2


def test_drain_override_budget(fake_sleep, sleeps):
    ecs = FakeEcsClient(desired=0, running=2, stuck=True)
    waiter = DrainWaiter(scaler_for(ecs), sleep=fake_sleep)

    assert waiter.wait_until_drained(max_attempts=2, poll_interval=0.5) is False
    assert sleeps == [0.5]


def test_readiness_with_database(fake_sleep, sleeps):
    """Test readiness waits for the database after the service is up."""
    ecs = FakeEcsClient(desired=1)
    database = MagicMock(spec=DatabasePowerController)
    database.describe_state.side_effect = [
        DatabasePowerState.STARTING,
        DatabasePowerState.AVAILABLE,
    ]
    waiter = ReadinessWaiter(
        scaler_for(ecs), database, poll_interval=10, max_attempts=3, sleep=fake_sleep
    )

    assert waiter.wait_until_ready() is True
    assert sleeps == [10]


def test_readiness_exhausted(fake_sleep, sleeps):
    ecs = FakeEcsClient(desired=1, running=0, stuck=True)
    waiter = ReadinessWaiter(scaler_for(ecs), poll_interval=10, max_attempts=3, sleep=fake_sleep)

    with pytest.raises(BackendNotReadyError):
        waiter.wait_until_ready()
    assert sleeps == [10, 10]


def test_readiness_without_database(fake_sleep):
    ecs = FakeEcsClient(desired=1)
    waiter = ReadinessWaiter(scaler_for(ecs), None, max_attempts=1, sleep=fake_sleep)

    assert waiter.wait_until_ready() is True


def test_readiness_database_errors_retry(fake_sleep):
    ecs = FakeEcsClient(desired=1)
    rds = FakeRdsClient(status="available")
    rds.fail_describe = client_error("Throttling", "DescribeDBInstances")
    waiter = ReadinessWaiter(
        scaler_for(ecs),
        DatabasePowerController(rds, "demo-db"),
        max_attempts=2,
        sleep=fake_sleep,
    )

    with pytest.raises(BackendNotReadyError):
        waiter.wait_until_ready()

