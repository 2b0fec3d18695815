"""Secondary disks attached to an existing instance.

There is no object of its own to insert or delete: creating attaches the
declared disks to the instance named by ``name`` and deleting detaches them.
Replacement disks are attached before the old ones are detached, so the
instance never runs without one of them. Reads of an instance that is
still being set up are retried.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from google.cloud import compute_v1

from ...services.changeset import MemberChanges, apply_member_changes, member_changes
from ...services.lifecycle import LifecycleStep
from ...services.references import DISK, extract_name, link_for, to_reference
from ...services.resilience import NotReadyPolicy
from ..base import DeclaredModel, NamedModel, Ref, ResourceKind, WireAdapter, output, updatable, wire_value
from .scope import ComputeApi, ZonalScope

logger = logging.getLogger(__name__)

DiskRef = Ref(DISK)


class AttachedDisk(DeclaredModel):
    source: DiskRef
    device_name: Optional[str] = None
    mode: Literal["READ_WRITE", "READ_ONLY"] = "READ_WRITE"
    auto_delete: bool = False


class InstanceDisksModel(NamedModel):
    """``name`` is the instance the disks are attached to."""

    zone: Optional[str] = None
    disks: list[AttachedDisk] = updatable(default_factory=list)

    instance_self_link: Optional[str] = output()
    status: Optional[str] = output()


class InstanceDisksAdapter(WireAdapter):
    def copy_from(self, model, wire):
        model.name = wire.name
        model.zone = extract_name(wire_value(wire, "zone"))
        declared = {d.source.name: d for d in (model.disks or [])}
        disks = []
        for attached in wire.disks:
            if attached.boot:
                continue
            source = to_reference(wire_value(attached, "source"), DISK)
            if source is None:
                continue
            disk = AttachedDisk(
                source=source,
                device_name=wire_value(attached, "device_name"),
                mode=wire_value(attached, "mode", "READ_WRITE"),
                auto_delete=wire_value(attached, "auto_delete", False),
            )
            # a device name the server picked is not recorded unless declared
            previous = declared.get(source.name)
            if previous is not None and previous.device_name is None:
                disk.device_name = None
            disks.append(disk)
        model.disks = disks
        model.instance_self_link = wire_value(wire, "self_link")
        model.status = wire_value(wire, "status")

    def to_wire(self, model, ctx, changed=None):
        return [_attached_disk(d, ctx.project_id, model.zone or ctx.zone) for d in model.disks]


def _attached_disk(disk: AttachedDisk, project: str, zone: str) -> compute_v1.AttachedDisk:
    wire = compute_v1.AttachedDisk(
        source=link_for(disk.source, project, zone),
        mode=disk.mode,
        auto_delete=disk.auto_delete,
    )
    if disk.device_name is not None:
        wire.device_name = disk.device_name
    return wire


class InstanceDisksApi(ComputeApi):
    """Reads go to the instance; there is nothing to insert or delete."""

    def insert(self, client, request, wire):
        return None

    def delete(self, client, request, name):
        return None


def _attach(step, disks: list[AttachedDisk]) -> None:
    for disk in disks:
        step.call(
            "attach_disk_unary",
            retry_not_ready=True,
            dependency=f"instance '{step.name}'",
            instance=step.name,
            attached_disk_resource=_attached_disk(disk, step.project, step.location),
        )


def _device_names(step) -> dict[str, str]:
    instance = step.read("get", instance=step.name)
    return {
        link_for(to_reference(d.source, DISK), step.project, step.location): d.device_name
        for d in instance.disks
        if not d.boot and d.source
    }


def _detach(step, disks: list[AttachedDisk]) -> None:
    names = None
    for disk in disks:
        device_name = disk.device_name
        if device_name is None:
            if names is None:
                names = _device_names(step)
            device_name = names.get(link_for(disk.source, step.project, step.location))
        if device_name is None:
            logger.info("Disk %s is not attached to instance '%s'", disk.source, step.name)
            continue
        step.call("detach_disk_unary", instance=step.name, device_name=device_name)


def _attach_all(step) -> None:
    _attach(step, step.model.disks)


def _detach_all(step) -> None:
    _detach(step, step.model.disks)


def _placement(disk: AttachedDisk, project: str, zone: str) -> tuple[str, Optional[str], str]:
    return link_for(disk.source, project, zone), disk.device_name, disk.mode


def _sync_disks(step) -> None:
    project, zone = step.project, step.location
    old = step.current.disks if step.current is not None else []
    new = step.model.disks
    old_by_placement = {_placement(d, project, zone): d for d in old}
    new_by_placement = {_placement(d, project, zone): d for d in new}
    changes = member_changes(list(old_by_placement), list(new_by_placement))

    # a disk whose mode or device name changed must come off before it goes back on
    reattached = {p[0] for p in changes.add} & {p[0] for p in changes.remove}
    apply_member_changes(
        MemberChanges(
            add=[new_by_placement[p] for p in changes.add if p[0] in reattached],
            remove=[old_by_placement[p] for p in changes.remove if p[0] in reattached],
        ),
        add=lambda disks: _attach(step, disks),
        remove=lambda disks: _detach(step, disks),
    )
    apply_member_changes(
        MemberChanges(
            add=[new_by_placement[p] for p in changes.add if p[0] not in reattached],
            remove=[old_by_placement[p] for p in changes.remove if p[0] not in reattached],
        ),
        add=lambda disks: _attach(step, disks),
        remove=lambda disks: _detach(step, disks),
        add_first=True,
    )

    for placement, disk in new_by_placement.items():
        previous = old_by_placement.get(placement)
        if previous is not None and previous.auto_delete != disk.auto_delete:
            _set_auto_delete(step, disk)


def _set_auto_delete(step, disk: AttachedDisk) -> None:
    device_name = disk.device_name
    if device_name is None:
        device_name = _device_names(step).get(link_for(disk.source, step.project, step.location))
    step.call(
        "set_disk_auto_delete_unary",
        instance=step.name,
        auto_delete=disk.auto_delete,
        device_name=device_name,
    )


def instance_disks_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-instance-attached-disks",
        model=InstanceDisksModel,
        adapter=InstanceDisksAdapter(),
        scope=ZonalScope(),
        api=InstanceDisksApi("InstancesClient", "instance", patch_method=None),
        post_create=(LifecycleStep("attach-disks", _attach_all),),
        update_steps=(LifecycleStep("sync-disks", _sync_disks, fields=frozenset({"disks"})),),
        pre_delete=(LifecycleStep("detach-disks", _detach_all),),
        read_retry=NotReadyPolicy(dependency_field="name"),
        description="Secondary disks attached to an existing instance",
    )
