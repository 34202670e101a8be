"""Pytest configuration and fixtures."""

import asyncio
from collections import defaultdict

import pytest
from botocore.exceptions import ClientError

from awsreconcile.services.provisioning.base import ReconcilerConfig


class FakeClock:
    """Manual clock; sleeping advances time instantly and is recorded."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeAWSClient:
    """
    Scripted stand-in for AWSClient.

    Outcomes are queued per (service, operation). Each call consumes the next
    outcome; the last one keeps being returned. An outcome that is an
    exception is raised, a callable is invoked with the request parameters.
    """

    def __init__(self):
        self.outcomes = defaultdict(list)
        self.calls = []

    def script(self, service, operation, *outcomes):
        self.outcomes[(service, operation)].extend(outcomes)

    async def call(self, service, operation, **params):
        self.calls.append((service, operation, params))
        queue = self.outcomes.get((service, operation))
        if not queue:
            raise AssertionError(f"Unexpected call {service}.{operation}({params})")
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(**params)
        return outcome

    def requests(self, operation):
        """Parameters of every call made to an operation."""
        return [params for _, op, params in self.calls if op == operation]

    def operations(self):
        return [op for _, op, _ in self.calls]


def make_client_error(code, message="", operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture
def clock():
    """Fake monotonic clock with an instant sleep."""
    return FakeClock()


@pytest.fixture
def aws():
    """Scripted AWS client."""
    return FakeAWSClient()


@pytest.fixture
def client_error():
    """Factory for botocore ClientError instances."""
    return make_client_error


@pytest.fixture
def reconciler_config(clock):
    """Reconciler configuration running on the fake clock."""
    return ReconcilerConfig(
        region="us-east-1",
        poll_min_interval=10,
        poll_max_interval=10,
        clock=clock,
        sleep=clock.sleep,
    )
