"""Persistent disks, zonal and regional.

Disks have no generic patch call. Size, labels and resource policies are
changed through their own verbs, and the size can only grow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional

from google.cloud import compute_v1
from pydantic import Field

from ...services.changeset import NonDecreasing, apply_member_changes, member_changes
from ...services.lifecycle import LifecycleStep
from ...services.references import (
    DISK_TYPE,
    IMAGE,
    REGION_DISK_TYPE,
    RESOURCE_POLICY,
    SNAPSHOT,
    expand_link,
    extract_name,
    link_for,
    region_of_zone,
    to_reference,
    zone_link,
)
from ...services.resilience import NotReadyPolicy
from ...services.validation import ConflictsWith, ItemCount
from ..base import NamedModel, Ref, ResourceKind, WireAdapter, has_field, output, updatable, wanted, wire_value
from .scope import ComputeApi, RegionalScope, ZonalScope
from .shared import EncryptionKey, copy_key, labels_step

DiskTypeRef = Ref(DISK_TYPE)
RegionDiskTypeRef = Ref(REGION_DISK_TYPE)
ResourcePolicyRef = Ref(RESOURCE_POLICY)
SnapshotRef = Ref(SNAPSHOT)


class _DiskFields(NamedModel):
    size_gb: Optional[int] = updatable(None, ge=1, le=65536)
    physical_block_size_bytes: Literal[4096, 16384] = 4096
    labels: dict[str, str] = updatable(default_factory=dict)
    resource_policies: list[ResourcePolicyRef] = updatable(default_factory=list)
    # a link, a path such as ``global/images/family/debian-12`` or a bare name
    source_image: Optional[str] = None
    source_snapshot: Optional[SnapshotRef] = None
    disk_encryption_key: Optional[EncryptionKey] = None
    source_image_encryption_key: Optional[EncryptionKey] = None
    source_snapshot_encryption_key: Optional[EncryptionKey] = None

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    status: Optional[str] = output()
    label_fingerprint: Optional[str] = output()
    source_image_id: Optional[str] = output()
    source_snapshot_id: Optional[str] = output()
    creation_timestamp: Optional[str] = output()
    last_attach_timestamp: Optional[str] = output()
    users: list[str] = Field(default_factory=list, json_schema_extra={"output": True})


class DiskModel(_DiskFields):
    zone: Optional[str] = None
    type: Optional[DiskTypeRef] = None


class RegionDiskModel(_DiskFields):
    region: Optional[str] = None
    type: Optional[RegionDiskTypeRef] = None
    replica_zones: list[str] = Field(default_factory=list)


class DiskAdapter(WireAdapter):
    def __init__(self, regional: bool = False):
        self.regional = regional
        self.type_kind = REGION_DISK_TYPE if regional else DISK_TYPE

    def _location(self, model, ctx) -> str:
        if self.regional:
            return model.region or ctx.region
        return model.zone or ctx.zone

    def _policy_region(self, model, ctx) -> str:
        location = self._location(model, ctx)
        return location if self.regional else region_of_zone(location)

    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        model.size_gb = wire_value(wire, "size_gb")
        model.type = to_reference(wire.type_ or None, self.type_kind)
        if has_field(wire, "physical_block_size_bytes"):
            model.physical_block_size_bytes = wire.physical_block_size_bytes
        model.labels = dict(wire.labels)
        model.resource_policies = [
            ref for ref in (to_reference(link, RESOURCE_POLICY) for link in wire.resource_policies)
            if ref is not None
        ]
        model.source_image = wire_value(wire, "source_image")
        model.source_snapshot = to_reference(wire_value(wire, "source_snapshot"), SNAPSHOT)
        model.disk_encryption_key = copy_key(model.disk_encryption_key, wire, "disk_encryption_key")
        model.source_image_encryption_key = copy_key(
            model.source_image_encryption_key, wire, "source_image_encryption_key")
        model.source_snapshot_encryption_key = copy_key(
            model.source_snapshot_encryption_key, wire, "source_snapshot_encryption_key")
        if self.regional:
            model.region = extract_name(wire_value(wire, "region"))
            model.replica_zones = [extract_name(z) for z in wire.replica_zones]
        else:
            model.zone = extract_name(wire_value(wire, "zone"))

        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.status = wire_value(wire, "status")
        model.label_fingerprint = wire_value(wire, "label_fingerprint")
        model.source_image_id = wire_value(wire, "source_image_id")
        model.source_snapshot_id = wire_value(wire, "source_snapshot_id")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")
        model.last_attach_timestamp = wire_value(wire, "last_attach_timestamp")
        model.users = list(wire.users)

    def to_wire(self, model, ctx, changed=None):
        project, location = ctx.project_id, self._location(model, ctx)
        disk = compute_v1.Disk(name=model.name)
        if changed is None:
            if model.description is not None:
                disk.description = model.description
            if model.type is not None:
                disk.type_ = link_for(model.type, project, location)
            # the server applies the same default when it is left out
            if "physical_block_size_bytes" in model.model_fields_set:
                disk.physical_block_size_bytes = model.physical_block_size_bytes
            if model.source_image:
                disk.source_image = expand_link(model.source_image, IMAGE, project)
            if model.source_snapshot is not None:
                disk.source_snapshot = link_for(model.source_snapshot, project)
            for attr in ("disk_encryption_key", "source_image_encryption_key",
                         "source_snapshot_encryption_key"):
                key = getattr(model, attr)
                if key is not None:
                    setattr(disk, attr, key.to_wire())
            if self.regional:
                disk.replica_zones = [zone_link(project, z) for z in model.replica_zones]
        if wanted("size-gb", changed) and model.size_gb is not None:
            disk.size_gb = model.size_gb
        if wanted("labels", changed):
            disk.labels = dict(model.labels)
        if wanted("resource-policies", changed):
            region = self._policy_region(model, ctx)
            disk.resource_policies = [link_for(p, project, region) for p in model.resource_policies]
        return disk


@dataclass(frozen=True)
class DiskVerbs:
    """Request types of the zonal or regional disk verbs."""

    resize: Any
    resize_kwarg: str
    set_labels: Any
    set_labels_kwarg: str
    add_policies: Any
    add_policies_kwarg: str
    remove_policies: Any
    remove_policies_kwarg: str


ZONAL_VERBS = DiskVerbs(
    compute_v1.DisksResizeRequest, "disks_resize_request_resource",
    compute_v1.ZoneSetLabelsRequest, "zone_set_labels_request_resource",
    compute_v1.DisksAddResourcePoliciesRequest, "disks_add_resource_policies_request_resource",
    compute_v1.DisksRemoveResourcePoliciesRequest, "disks_remove_resource_policies_request_resource",
)

REGIONAL_VERBS = DiskVerbs(
    compute_v1.RegionDisksResizeRequest, "region_disks_resize_request_resource",
    compute_v1.RegionSetLabelsRequest, "region_set_labels_request_resource",
    compute_v1.RegionDisksAddResourcePoliciesRequest, "region_disks_add_resource_policies_request_resource",
    compute_v1.RegionDisksRemoveResourcePoliciesRequest,
    "region_disks_remove_resource_policies_request_resource",
)


def _resize_step(verbs: DiskVerbs) -> LifecycleStep:
    def run(step):
        step.call(
            "resize_unary",
            disk=step.name,
            **{verbs.resize_kwarg: verbs.resize(size_gb=step.model.size_gb)},
        )

    return LifecycleStep("resize", run, fields=frozenset({"size-gb"}))


def _resource_policies_step(verbs: DiskVerbs, regional: bool) -> LifecycleStep:
    def run(step):
        location = step.location if regional else region_of_zone(step.location)
        old = step.current.resource_policies if step.current is not None else []
        changes = member_changes(
            [link_for(p, step.project, location) for p in old],
            [link_for(p, step.project, location) for p in step.model.resource_policies],
        )

        def remove(links):
            step.call("remove_resource_policies_unary", disk=step.name,
                      **{verbs.remove_policies_kwarg: verbs.remove_policies(resource_policies=links)})

        def add(links):
            step.call("add_resource_policies_unary", disk=step.name,
                      **{verbs.add_policies_kwarg: verbs.add_policies(resource_policies=links)})

        apply_member_changes(changes, add=add, remove=remove)

    return LifecycleStep("sync-resource-policies", run, fields=frozenset({"resource-policies"}))


def disk_steps(regional: bool = False) -> tuple[LifecycleStep, ...]:
    verbs = REGIONAL_VERBS if regional else ZONAL_VERBS
    return (
        _resize_step(verbs),
        labels_step(verbs.set_labels, verbs.set_labels_kwarg),
        _resource_policies_step(verbs, regional),
    )


DISK_RULES = (
    ItemCount("resource-policies", at_most=1,
              message="Attaching more than one resource policy is not supported."),
    ConflictsWith("source-image", "source-snapshot"),
    ConflictsWith("source-image-encryption-key", "source-snapshot", "source-snapshot-encryption-key"),
    ConflictsWith("source-snapshot-encryption-key", "source-image"),
)

DISK_CHANGE_RULES = (NonDecreasing("size-gb", "Size of the disk"),)

# a snapshot that is still being created rejects the insert as not ready
SNAPSHOT_NOT_READY = NotReadyPolicy(dependency_field="source-snapshot")

DISK_API = ComputeApi("DisksClient", "disk", patch_method=None)
REGION_DISK_API = ComputeApi("RegionDisksClient", "disk", patch_method=None)


def disk_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-disk",
        model=DiskModel,
        adapter=DiskAdapter(),
        scope=ZonalScope(),
        api=DISK_API,
        rules=DISK_RULES,
        change_rules=DISK_CHANGE_RULES,
        update_steps=disk_steps(),
        create_retry=SNAPSHOT_NOT_READY,
        description="Zonal persistent disk",
    )


def region_disk_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-region-disk",
        model=RegionDiskModel,
        adapter=DiskAdapter(regional=True),
        scope=RegionalScope(),
        api=REGION_DISK_API,
        rules=DISK_RULES + (
            ItemCount("replica-zones", exactly=2,
                      message="'replica-zones' must name exactly two zones."),
        ),
        change_rules=DISK_CHANGE_RULES,
        update_steps=disk_steps(regional=True),
        create_retry=SNAPSHOT_NOT_READY,
        description="Regional persistent disk replicated across two zones",
    )
