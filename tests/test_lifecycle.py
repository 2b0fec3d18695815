"""Tests for cirrus.services.lifecycle: refresh, create, update and delete."""

from __future__ import annotations

import pytest
import requests
from google.api_core import exceptions as api_exceptions
from google.cloud import compute_v1

from cirrus.errors import (
    NotReadyExhausted,
    OperationFailure,
    TransientNotReady,
    TransportError,
    ValidationError,
)
from cirrus.providers.base import DeclaredResource, LifecycleState
from cirrus.providers.gcp.backend_service import BackendServiceModel, backend_service_kind
from cirrus.providers.gcp.disk import DiskModel, disk_kind
from cirrus.providers.gcp.firewall import FirewallModel, firewall_kind
from cirrus.services.state_store import StateStore

from conftest import BASE, ZONE, call_names, done_op


class RecordingStore(StateStore):
    """In-memory store remembering every checkpoint."""

    def __init__(self):
        self.saved: list[tuple[str, LifecycleState]] = []
        self.removed: list[tuple[str, str]] = []
        self.actions: list[tuple[str, str, str]] = []
        self.items: dict = {}

    def save(self, resource):
        self.saved.append((resource.name, resource.state))
        self.items[(resource.kind, resource.name)] = resource

    def load(self, kind, name):
        return self.items.get((kind, name))

    def remove(self, kind, name):
        self.removed.append((kind, name))
        self.items.pop((kind, name), None)

    def list(self, kind=None):
        return list(self.items.values())

    def record(self, kind, name, action, status, details=None):
        self.actions.append((name, action, status))


def _firewall(**fields) -> DeclaredResource:
    values = {"name": "allow-ssh", "rule-type": "ALLOW", "allowed": [{"protocol": "tcp", "ports": ["22"]}],
              "source-ranges": ["0.0.0.0/0"]}
    values.update(fields)
    return DeclaredResource("compute-firewall-rule", FirewallModel.model_validate(values))


def _firewall_wire(priority: int = 1000) -> compute_v1.Firewall:
    return compute_v1.Firewall(
        name="allow-ssh",
        network=f"{BASE}/global/networks/default",
        allowed=[compute_v1.Allowed(I_p_protocol="tcp", ports=["22"])],
        direction="INGRESS",
        priority=priority,
        source_ranges=["0.0.0.0/0"],
        self_link=f"{BASE}/global/firewalls/allow-ssh",
    )


def _disk_wire(size_gb: int = 100, **fields) -> compute_v1.Disk:
    return compute_v1.Disk(
        name="data",
        size_gb=size_gb,
        zone=f"{BASE}/zones/{ZONE}",
        self_link=f"{BASE}/zones/{ZONE}/disks/data",
        **fields,
    )


# ── Create ────────────────────────────────────────────────────────────────


class TestCreate:
    def test_create_inserts_then_refreshes(self, controller, clients):
        client = clients["FirewallsClient"]
        client.insert_unary.return_value = done_op()
        client.get.return_value = _firewall_wire()
        store = RecordingStore()
        resource = _firewall()

        controller(firewall_kind(), store=store).create(resource)

        assert call_names(client) == ["insert_unary", "get"]
        sent = client.insert_unary.call_args.kwargs["firewall_resource"]
        assert sent.network == f"{BASE}/global/networks/default"
        assert resource.state is LifecycleState.PRESENT
        assert resource.model.self_link == f"{BASE}/global/firewalls/allow-ssh"
        assert store.saved[0] == ("allow-ssh", LifecycleState.CREATING)
        assert store.saved[-1] == ("allow-ssh", LifecycleState.PRESENT)
        assert store.actions == [("allow-ssh", "create", "success")]

    def test_connection_failure_is_a_transport_error(self, controller, clients):
        client = clients["FirewallsClient"]
        client.insert_unary.side_effect = requests.exceptions.ConnectionError("Connection reset by peer")
        client.get.side_effect = api_exceptions.NotFound("gone")
        store = RecordingStore()
        resource = _firewall()

        with pytest.raises(TransportError, match="Connection reset by peer"):
            controller(firewall_kind(), store=store).create(resource)

        assert resource.state is LifecycleState.ABSENT
        assert store.saved[-1] == ("allow-ssh", LifecycleState.ABSENT)
        assert store.actions[-1][1:] == ("create", "failed")

    def test_invalid_model_makes_no_call(self, controller, clients):
        resource = _firewall(allowed=[])
        with pytest.raises(ValidationError, match="'allowed' needs to be set"):
            controller(firewall_kind()).create(resource)
        assert not clients

    def test_operation_error_is_surfaced(self, controller, clients):
        client = clients["FirewallsClient"]
        client.insert_unary.return_value = done_op(
            errors=[("INVALID_USAGE", "Invalid value for field 'resource.sourceRanges[0]'")])
        client.get.side_effect = api_exceptions.NotFound("gone")
        store = RecordingStore()
        resource = _firewall()

        with pytest.raises(OperationFailure) as info:
            controller(firewall_kind(), store=store).create(resource)

        assert info.value.codes == ["INVALID_USAGE"]
        assert info.value.errors[0].message == "Invalid value for field 'resource.sourceRanges[0]'"
        assert resource.state is LifecycleState.ABSENT
        assert ("allow-ssh", LifecycleState.PRESENT) not in store.saved
        assert store.actions[-1][1:] == ("create", "failed")

    def test_failed_step_after_insert_taints(self, controller, clients):
        client = clients["BackendServicesClient"]
        client.insert_unary.return_value = done_op()
        client.set_security_policy_unary.return_value = done_op(errors=[("NOT_FOUND", "no such policy")])
        client.get.return_value = compute_v1.BackendService(name="web")
        resource = DeclaredResource(
            "compute-backend-service",
            BackendServiceModel(name="web", security_policy="edge"),
        )

        with pytest.raises(OperationFailure):
            controller(backend_service_kind()).create(resource)
        assert resource.state is LifecycleState.TAINTED

    def test_checkpoint_before_each_post_create_step(self, controller, clients):
        client = clients["BackendServicesClient"]
        client.insert_unary.return_value = done_op()
        client.set_security_policy_unary.return_value = done_op()
        client.add_signed_url_key_unary.return_value = done_op()
        client.get.return_value = compute_v1.BackendService(name="web")
        store = RecordingStore()
        resource = DeclaredResource("compute-backend-service", BackendServiceModel.model_validate({
            "name": "web",
            "security-policy": "edge",
            "signed-url-keys": [{"key-name": "k1", "key-value": "c2VjcmV0"}],
        }))

        controller(backend_service_kind(), store=store).create(resource)

        assert call_names(client) == [
            "insert_unary", "set_security_policy_unary", "add_signed_url_key_unary", "get",
        ]
        assert [state for _, state in store.saved] == [
            LifecycleState.CREATING,
            LifecycleState.CREATING,
            LifecycleState.CREATING,
            LifecycleState.PRESENT,
        ]

    def test_not_ready_dependency_is_resubmitted(self, controller, clients, clock):
        client = clients["DisksClient"]
        not_ready = api_exceptions.BadRequest("snapshot not ready", errors=[{"reason": "resourceNotReady"}])
        client.insert_unary.side_effect = [not_ready, not_ready, done_op()]
        client.get.return_value = _disk_wire()
        resource = DeclaredResource("compute-disk", DiskModel(name="data", source_snapshot="snap-1"))

        controller(disk_kind()).create(resource)

        assert client.insert_unary.call_count == 3
        assert clock.sleeps == [2.0, 2.0]
        assert resource.state is LifecycleState.PRESENT

    def test_not_ready_budget_exhausted(self, controller, clients):
        client = clients["DisksClient"]
        client.insert_unary.side_effect = api_exceptions.BadRequest(
            "snapshot not ready", errors=[{"reason": "resourceNotReady"}])
        client.get.side_effect = api_exceptions.NotFound("gone")
        resource = DeclaredResource("compute-disk", DiskModel(name="data", source_snapshot="snap-1"))

        with pytest.raises(NotReadyExhausted, match="source-snapshot 'snap-1'"):
            controller(disk_kind()).create(resource)
        assert client.insert_unary.call_count == 3
        assert resource.state is LifecycleState.ABSENT

    def test_no_resubmit_without_dependency(self, controller, clients):
        client = clients["DisksClient"]
        client.insert_unary.side_effect = api_exceptions.BadRequest(
            "not ready", errors=[{"reason": "resourceNotReady"}])
        client.get.side_effect = api_exceptions.NotFound("gone")

        with pytest.raises(TransientNotReady):
            controller(disk_kind()).create(DeclaredResource("compute-disk", DiskModel(name="data")))
        assert client.insert_unary.call_count == 1


# ── Update ────────────────────────────────────────────────────────────────


class TestUpdate:
    @pytest.mark.parametrize("changed", [
        set(),
        {"name"},
        {"network", "direction"},
        {"not-a-field"},
    ])
    def test_no_patchable_change_makes_no_call(self, controller, clients, changed):
        resource = _firewall()
        assert controller(firewall_kind()).update(resource, _firewall().model, changed) is False
        assert not clients

    def test_disk_block_size_change_makes_no_call(self, controller, clients):
        resource = DeclaredResource("compute-disk", DiskModel(name="data", physical_block_size_bytes=16384))
        current = DiskModel(name="data")
        assert controller(disk_kind()).update(resource, current, {"physical-block-size-bytes"}) is False
        assert not clients

    def test_patch_changed_fields(self, controller, clients):
        client = clients["FirewallsClient"]
        client.patch_unary.return_value = done_op()
        client.get.return_value = _firewall_wire(priority=900)
        store = RecordingStore()
        resource = _firewall(priority=900)
        current = _firewall().model

        assert controller(firewall_kind(), store=store).update(resource, current, {"priority"}) is True

        kwargs = client.patch_unary.call_args.kwargs
        assert kwargs["project"] == "my-project"
        assert kwargs["firewall"] == "allow-ssh"
        assert kwargs["firewall_resource"].priority == 900
        assert "allowed" not in kwargs["firewall_resource"]
        assert resource.model.priority == 900
        assert store.actions == [("allow-ssh", "update", "success")]

    def test_update_operation_error(self, controller, clients):
        client = clients["FirewallsClient"]
        client.patch_unary.return_value = done_op(errors=[("CONFLICT", "fingerprint mismatch")])
        client.get.return_value = _firewall_wire()
        resource = _firewall(priority=900)

        with pytest.raises(OperationFailure, match="CONFLICT: fingerprint mismatch"):
            controller(firewall_kind()).update(resource, _firewall().model, {"priority"})
        # refreshed to what the server really holds
        assert resource.model.priority == 1000
        assert resource.state is LifecycleState.PRESENT


# ── Refresh ───────────────────────────────────────────────────────────────


class TestRefresh:
    def test_refresh_copies_remote_state(self, controller, clients):
        clients["DisksClient"].get.return_value = _disk_wire(size_gb=250)
        resource = DeclaredResource("compute-disk", DiskModel(name="data", size_gb=100))

        assert controller(disk_kind()).refresh(resource) is True

        clients["DisksClient"].get.assert_called_once_with(project="my-project", zone=ZONE, disk="data")
        assert resource.model.size_gb == 250
        assert resource.state is LifecycleState.PRESENT

    @pytest.mark.parametrize("error", [
        api_exceptions.NotFound("The resource 'data' was not found"),
        api_exceptions.BadRequest("Invalid value for field 'disk'"),
    ])
    def test_missing_object_is_absent(self, controller, clients, error):
        clients["DisksClient"].get.side_effect = error
        store = RecordingStore()
        resource = DeclaredResource("compute-disk", DiskModel(name="data"))

        assert controller(disk_kind(), store=store).refresh(resource) is False
        assert resource.state is LifecycleState.ABSENT
        assert store.removed == [("compute-disk", "data")]

    def test_other_errors_propagate(self, controller, clients):
        clients["DisksClient"].get.side_effect = api_exceptions.Forbidden("permission denied")
        with pytest.raises(TransportError, match="permission denied"):
            controller(disk_kind()).refresh(DeclaredResource("compute-disk", DiskModel(name="data")))


# ── Delete ────────────────────────────────────────────────────────────────


class TestDelete:
    def test_delete(self, controller, clients):
        client = clients["DisksClient"]
        client.delete_unary.return_value = done_op()
        store = RecordingStore()
        resource = DeclaredResource("compute-disk", DiskModel(name="data"), state=LifecycleState.PRESENT)

        controller(disk_kind(), store=store).delete(resource)

        client.delete_unary.assert_called_once_with(project="my-project", zone=ZONE, disk="data")
        assert resource.state is LifecycleState.ABSENT
        assert store.removed == [("compute-disk", "data")]
        assert store.actions == [("data", "delete", "success")]

    def test_already_gone_counts_as_deleted(self, controller, clients):
        clients["DisksClient"].delete_unary.side_effect = api_exceptions.NotFound("gone")
        resource = DeclaredResource("compute-disk", DiskModel(name="data"))
        controller(disk_kind()).delete(resource)
        assert resource.state is LifecycleState.ABSENT

    def test_not_found_operation_error_counts_as_deleted(self, controller, clients):
        clients["DisksClient"].delete_unary.return_value = done_op(
            errors=[("RESOURCE_NOT_FOUND", "The resource 'data' was not found")])
        resource = DeclaredResource("compute-disk", DiskModel(name="data"))
        controller(disk_kind()).delete(resource)
        assert resource.state is LifecycleState.ABSENT

    def test_in_use_error_is_raised(self, controller, clients):
        client = clients["DisksClient"]
        client.delete_unary.return_value = done_op(
            errors=[("RESOURCE_IN_USE_BY_ANOTHER_RESOURCE", "The disk is in use by instance 'vm-1'")])
        client.get.return_value = _disk_wire()
        resource = DeclaredResource("compute-disk", DiskModel(name="data"))

        with pytest.raises(OperationFailure, match="in use"):
            controller(disk_kind()).delete(resource)
        assert resource.state is LifecycleState.PRESENT


def test_image_kind_gets_longer_timeout(controller):
    from cirrus.providers.gcp.image import image_kind

    assert controller(image_kind()).timeout == 180.0
    assert controller(firewall_kind()).timeout == 10.0
