"""Shared pytest fixtures."""

from __future__ import annotations

import os
import tempfile

# keep the settings singleton away from the working tree
os.environ.setdefault("CIRRUS_STATE_DIR", tempfile.mkdtemp(prefix="cirrus-state-"))
os.environ.setdefault("CIRRUS_LOG_DIR", tempfile.mkdtemp(prefix="cirrus-logs-"))

from collections import defaultdict  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from google.cloud import compute_v1  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cirrus import models  # noqa: E402,F401
from cirrus.db import Base  # noqa: E402
from cirrus.providers.gcp.context import ComputeContext  # noqa: E402
from cirrus.services.lifecycle import ResourceController  # noqa: E402
from cirrus.services.operations import OperationPoller  # noqa: E402

PROJECT = "my-project"
REGION = "us-central1"
ZONE = "us-central1-a"
BASE = "https://www.googleapis.com/compute/v1/projects/my-project"


def done_op(name: str = "operation-1", errors=(), zone: str = "", region: str = "") -> compute_v1.Operation:
    """A finished operation, optionally carrying ``(code, message)`` errors."""
    op = compute_v1.Operation(name=name, status="DONE")
    if zone:
        op.zone = f"{BASE}/zones/{zone}"
    if region:
        op.region = f"{BASE}/regions/{region}"
    if errors:
        op.error = compute_v1.Error(
            errors=[compute_v1.Errors(code=code, message=message) for code, message in errors]
        )
    return op


def running_op(name: str = "operation-1", status: str = "RUNNING", zone: str = "") -> compute_v1.Operation:
    op = compute_v1.Operation(name=name, status=status)
    if zone:
        op.zone = f"{BASE}/zones/{zone}"
    return op


def call_names(client: MagicMock) -> list[str]:
    return [c[0] for c in client.method_calls if not c[0].startswith("transport")]


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clients() -> defaultdict:
    """Mock compute clients keyed by client class name, e.g. ``DisksClient``."""
    return defaultdict(MagicMock)


@pytest.fixture
def ctx(clients) -> ComputeContext:
    return ComputeContext(
        project_id=PROJECT,
        region=REGION,
        zone=ZONE,
        client_factory=lambda name, credentials: clients[name],
        poll_interval=1.0,
        operation_timeout=10.0,
        not_ready_attempts=3,
        not_ready_delay=2.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def controller(ctx, clock):
    """Factory: ``controller(kind, store=None)`` with a clock that never waits."""

    def make(kind, store=None, cancel=None):
        poller = OperationPoller(ctx, sleep=clock.sleep, clock=clock)
        return ResourceController(kind, ctx, store=store, poller=poller, cancel=cancel, sleep=clock.sleep)

    return make


@pytest.fixture
def session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    s = Session()
    yield s
    s.close()
    engine.dispose()
