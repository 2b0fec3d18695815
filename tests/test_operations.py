"""Tests for cirrus.services.operations: submit and await long-running operations."""

from __future__ import annotations

import logging
import threading

import pytest
from google.api_core import exceptions as api_exceptions
from google.cloud import compute_v1

from cirrus.errors import (
    OperationAbandoned,
    OperationFailure,
    OperationTimeout,
    TransientNotReady,
    TransportError,
)
from cirrus.services.operations import OperationHandle, OperationPoller, OperationStatus

from conftest import ZONE, done_op, running_op


@pytest.fixture
def poller(ctx, clock):
    return OperationPoller(ctx, sleep=clock.sleep, clock=clock)


def test_done_immediately_needs_no_polling(poller, clients):
    handle = poller.run(lambda: done_op("op-insert"))
    assert handle.name == "op-insert"
    assert handle.done
    assert "GlobalOperationsClient" not in clients


def test_polls_zone_operation_until_done(poller, clients, clock):
    ops = clients["ZoneOperationsClient"]
    ops.get.side_effect = [
        running_op("op-1", status="RUNNING", zone=ZONE),
        done_op("op-1", zone=ZONE),
    ]
    handle = poller.run(lambda: running_op("op-1", status="PENDING", zone=ZONE))

    assert handle.status is OperationStatus.DONE
    ops.get.assert_called_with(project="my-project", zone=ZONE, operation="op-1")
    assert clock.sleeps == [1.0, 1.0]


def test_global_operation_polled_through_global_client(poller, clients):
    clients["GlobalOperationsClient"].get.return_value = done_op("op-2")
    poller.run(lambda: running_op("op-2"))
    clients["GlobalOperationsClient"].get.assert_called_once_with(project="my-project", operation="op-2")


def test_done_with_errors_raises_operation_failure(poller):
    with pytest.raises(OperationFailure) as info:
        poller.run(lambda: done_op(errors=[("RESOURCE_ALREADY_EXISTS", "The resource 'data' already exists")]))
    assert info.value.codes == ["RESOURCE_ALREADY_EXISTS"]
    assert info.value.errors[0].message == "The resource 'data' already exists"


def test_await_completion_returns_error_list(poller):
    handle = poller.track(done_op(errors=[("QUOTA_EXCEEDED", "Quota exceeded")]))
    errors = poller.await_completion(handle)
    assert [e.code for e in errors] == ["QUOTA_EXCEEDED"]


def test_timeout_is_transient(poller, clients, clock, caplog):
    clients["GlobalOperationsClient"].get.return_value = running_op("op-slow")

    with caplog.at_level(logging.WARNING, logger="cirrus.services.operations"):
        with pytest.raises(OperationTimeout) as info:
            poller.run(lambda: running_op("op-slow"), timeout=3.0)

    assert isinstance(info.value, TransientNotReady)
    assert info.value.operation == "op-slow"
    assert clock.now == pytest.approx(3.0)
    assert "not done after" in caplog.text


def test_abandon_stops_waiting(poller, clients, caplog):
    cancel = threading.Event()

    def fetch(**kwargs):
        cancel.set()
        return running_op("op-long")

    clients["GlobalOperationsClient"].get.side_effect = fetch

    with caplog.at_level(logging.WARNING, logger="cirrus.services.operations"):
        with pytest.raises(OperationAbandoned, match="op-long"):
            poller.run(lambda: running_op("op-long"), cancel=cancel)
    assert "abandoned" in caplog.text


def test_synchronous_call_returns_no_handle(poller):
    assert poller.run(lambda: None) is None


def test_submit_not_ready_is_transient(poller):
    def submit():
        raise api_exceptions.BadRequest("not ready", errors=[{"reason": "resourceNotReady"}])

    with pytest.raises(TransientNotReady) as info:
        poller.submit(submit, dependency="source-snapshot 'snap'")
    assert info.value.dependency == "source-snapshot 'snap'"


def test_submit_other_errors_are_transport_errors(poller):
    def submit():
        raise api_exceptions.Conflict("already exists")

    with pytest.raises(TransportError, match="already exists"):
        poller.submit(submit)


def test_handle_scope_client():
    assert OperationHandle("a", zone="z").scope_client == "ZoneOperationsClient"
    assert OperationHandle("a", region="r").scope_client == "RegionOperationsClient"
    assert OperationHandle("a").scope_client == "GlobalOperationsClient"


def test_status_read_from_proto_enum():
    op = compute_v1.Operation(name="op", status=compute_v1.Operation.Status.DONE)
    assert OperationHandle.from_wire(op).status is OperationStatus.DONE
    assert OperationHandle.from_wire(compute_v1.Operation(name="op")).status is OperationStatus.PENDING


def test_run_returns_the_final_state(poller, clients):
    finished = done_op("op-3", zone=ZONE)
    finished.target_link = "https://www.googleapis.com/compute/v1/projects/my-project/zones/us-central1-a/disks/data"
    finished.warnings = [compute_v1.Warnings(code="DEPRECATED_RESOURCE_USED", message="old image")]
    clients["ZoneOperationsClient"].get.return_value = finished

    handle = poller.run(lambda: running_op("op-3", status="PENDING", zone=ZONE))

    assert handle.done
    assert handle.target_link.endswith("/disks/data")
    assert handle.zone == ZONE
    assert handle.warnings == ["DEPRECATED_RESOURCE_USED: old image"]
