"""Zonal network endpoint groups.

The group itself is immutable; its endpoints are attached and detached
through dedicated verbs and listed through a separate call on refresh.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from google.cloud import compute_v1
from pydantic import Field

from ...errors import FieldError
from ...services.changeset import apply_member_changes, member_changes
from ...services.lifecycle import LifecycleStep
from ...services.references import NETWORK, SUBNETWORK, extract_name, link_for, region_of_zone, to_reference
from ...services.validation import Check
from ..base import DeclaredModel, NamedModel, Ref, ResourceKind, WireAdapter, output, updatable, wire_value
from .scope import ComputeApi, ZonalScope
from .shared import DEFAULT_NETWORK

NetworkRef = Ref(NETWORK)
SubnetworkRef = Ref(SUBNETWORK)


class NetworkEndpoint(DeclaredModel):
    # instance name in the group's zone
    instance: Optional[str] = None
    ip_address: Optional[str] = None
    port: Optional[int] = Field(None, ge=1, le=65535)

    @classmethod
    def from_wire(cls, wire: Any) -> "NetworkEndpoint":
        return cls(
            instance=extract_name(wire_value(wire, "instance")),
            ip_address=wire_value(wire, "ip_address"),
            port=wire_value(wire, "port"),
        )

    def to_wire(self) -> compute_v1.NetworkEndpoint:
        return compute_v1.NetworkEndpoint(**self.model_dump(exclude_none=True))


class NetworkEndpointGroupModel(NamedModel):
    zone: Optional[str] = None
    network_endpoint_type: Literal["GCE_VM_IP_PORT", "NON_GCP_PRIVATE_IP_PORT"] = "GCE_VM_IP_PORT"
    network: Optional[NetworkRef] = None
    subnetwork: Optional[SubnetworkRef] = None
    default_port: Optional[int] = Field(None, ge=1, le=65535)
    endpoints: list[NetworkEndpoint] = updatable(default_factory=list)

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    size: Optional[int] = output()
    creation_timestamp: Optional[str] = output()


class NetworkEndpointGroupAdapter(WireAdapter):
    """Endpoints are not part of the group object; see ``_list_endpoints``."""

    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        model.zone = extract_name(wire_value(wire, "zone"))
        model.network_endpoint_type = wire_value(wire, "network_endpoint_type", "GCE_VM_IP_PORT")
        model.network = to_reference(wire_value(wire, "network"), NETWORK)
        model.subnetwork = to_reference(wire_value(wire, "subnetwork"), SUBNETWORK)
        model.default_port = wire_value(wire, "default_port")
        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.size = wire_value(wire, "size")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")

    def to_wire(self, model, ctx, changed=None):
        project = ctx.project_id
        group = compute_v1.NetworkEndpointGroup(
            name=model.name,
            network_endpoint_type=model.network_endpoint_type,
            network=link_for(model.network or DEFAULT_NETWORK, project),
        )
        if model.description is not None:
            group.description = model.description
        if model.subnetwork is not None:
            group.subnetwork = link_for(model.subnetwork, project, region_of_zone(model.zone or ctx.zone))
        if model.default_port is not None:
            group.default_port = model.default_port
        return group


def _attach(step, endpoints: list[NetworkEndpoint]) -> None:
    step.call(
        "attach_network_endpoints_unary",
        network_endpoint_group=step.name,
        network_endpoint_groups_attach_endpoints_request_resource=(
            compute_v1.NetworkEndpointGroupsAttachEndpointsRequest(
                network_endpoints=[e.to_wire() for e in endpoints])
        ),
    )


def _detach(step, endpoints: list[NetworkEndpoint]) -> None:
    step.call(
        "detach_network_endpoints_unary",
        network_endpoint_group=step.name,
        network_endpoint_groups_detach_endpoints_request_resource=(
            compute_v1.NetworkEndpointGroupsDetachEndpointsRequest(
                network_endpoints=[e.to_wire() for e in endpoints])
        ),
    )


def _attach_all(step) -> None:
    if step.model.endpoints:
        _attach(step, step.model.endpoints)


def _sync_endpoints(step) -> None:
    old = step.current.endpoints if step.current is not None else []
    changes = member_changes(old, step.model.endpoints)
    apply_member_changes(
        changes,
        add=lambda items: _attach(step, items),
        remove=lambda items: _detach(step, items),
    )


def _list_endpoints(step) -> None:
    pager = step.read(
        "list_network_endpoints",
        network_endpoint_group=step.name,
        network_endpoint_groups_list_endpoints_request_resource=(
            compute_v1.NetworkEndpointGroupsListEndpointsRequest()
        ),
    )
    step.model.endpoints = [NetworkEndpoint.from_wire(item.network_endpoint) for item in pager]


def check_endpoints(model) -> list[FieldError]:
    errors = []
    for endpoint in model.endpoints:
        if model.network_endpoint_type == "GCE_VM_IP_PORT" and not endpoint.instance:
            errors.append(FieldError(
                "endpoints",
                "'instance' needs to be set when 'network-endpoint-type' set to 'GCE_VM_IP_PORT'.",
            ))
        if model.network_endpoint_type == "NON_GCP_PRIVATE_IP_PORT":
            if endpoint.instance:
                errors.append(FieldError(
                    "endpoints",
                    "'instance' cannot be set when 'network-endpoint-type' set to 'NON_GCP_PRIVATE_IP_PORT'",
                ))
            if not endpoint.ip_address or (endpoint.port is None and model.default_port is None):
                errors.append(FieldError(
                    "endpoints",
                    "'ip-address' and a port are required for 'NON_GCP_PRIVATE_IP_PORT' endpoints.",
                ))
    return errors


def network_endpoint_group_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-network-endpoint-group",
        model=NetworkEndpointGroupModel,
        adapter=NetworkEndpointGroupAdapter(),
        scope=ZonalScope(),
        api=ComputeApi("NetworkEndpointGroupsClient", "network_endpoint_group", patch_method=None),
        rules=(Check(check_endpoints, "endpoints", "network-endpoint-type"),),
        post_create=(LifecycleStep("attach-endpoints", _attach_all),),
        update_steps=(LifecycleStep("sync-endpoints", _sync_endpoints, fields=frozenset({"endpoints"})),),
        refresh_steps=(LifecycleStep("list-endpoints", _list_endpoints),),
        description="Zonal network endpoint group",
    )
