"""Custom images.

Image creation is slow, so operations on images get a longer timeout.
Only the labels can change in place.
"""

from __future__ import annotations

from typing import Optional

from google.cloud import compute_v1
from pydantic import Field

from ...services.references import DISK, IMAGE, SNAPSHOT, expand_link, link_for, to_reference
from ...services.validation import ExactlyOneOf
from ..base import NamedModel, Ref, ResourceKind, WireAdapter, output, updatable, wire_value
from .scope import ComputeApi, GlobalScope
from .shared import EncryptionKey, copy_key, labels_step

IMAGE_OPERATION_TIMEOUT = 180.0

DiskRef = Ref(DISK)
SnapshotRef = Ref(SNAPSHOT)


class ImageModel(NamedModel):
    family: Optional[str] = Field(None, pattern=r"^[a-z](?:[-a-z0-9]{0,61}[a-z0-9])?$")
    labels: dict[str, str] = updatable(default_factory=dict)
    source_disk: Optional[DiskRef] = None
    source_image: Optional[str] = None
    source_snapshot: Optional[SnapshotRef] = None
    # gs:// URL of a tar.gz holding disk.raw
    raw_disk_source: Optional[str] = None
    disk_size_gb: Optional[int] = Field(None, ge=1)
    storage_locations: list[str] = Field(default_factory=list)
    licenses: list[str] = Field(default_factory=list)
    guest_os_features: list[str] = Field(default_factory=list)
    image_encryption_key: Optional[EncryptionKey] = None
    source_disk_encryption_key: Optional[EncryptionKey] = None

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    status: Optional[str] = output()
    archive_size_bytes: Optional[int] = output()
    label_fingerprint: Optional[str] = output()
    source_disk_id: Optional[str] = output()
    creation_timestamp: Optional[str] = output()


class ImageAdapter(WireAdapter):
    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        model.family = wire_value(wire, "family")
        model.labels = dict(wire.labels)
        model.source_disk = to_reference(wire_value(wire, "source_disk"), DISK)
        model.source_image = wire_value(wire, "source_image")
        model.source_snapshot = to_reference(wire_value(wire, "source_snapshot"), SNAPSHOT)
        raw_disk = wire_value(wire, "raw_disk")
        model.raw_disk_source = wire_value(raw_disk, "source") if raw_disk is not None else None
        model.disk_size_gb = wire_value(wire, "disk_size_gb")
        model.storage_locations = list(wire.storage_locations)
        model.licenses = list(wire.licenses)
        model.guest_os_features = [f.type_ for f in wire.guest_os_features]
        model.image_encryption_key = copy_key(model.image_encryption_key, wire, "image_encryption_key")
        model.source_disk_encryption_key = copy_key(
            model.source_disk_encryption_key, wire, "source_disk_encryption_key")
        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.status = wire_value(wire, "status")
        model.archive_size_bytes = wire_value(wire, "archive_size_bytes")
        model.label_fingerprint = wire_value(wire, "label_fingerprint")
        model.source_disk_id = wire_value(wire, "source_disk_id")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")

    def to_wire(self, model, ctx, changed=None):
        project = ctx.project_id
        image = compute_v1.Image(
            name=model.name,
            labels=dict(model.labels),
            storage_locations=model.storage_locations,
            licenses=model.licenses,
            guest_os_features=[compute_v1.GuestOsFeature(type_=f) for f in model.guest_os_features],
        )
        if model.description is not None:
            image.description = model.description
        if model.family is not None:
            image.family = model.family
        if model.source_disk is not None:
            image.source_disk = link_for(model.source_disk, project, ctx.zone)
        if model.source_image:
            image.source_image = expand_link(model.source_image, IMAGE, project)
        if model.source_snapshot is not None:
            image.source_snapshot = link_for(model.source_snapshot, project)
        if model.raw_disk_source:
            image.raw_disk = compute_v1.RawDisk(source=model.raw_disk_source)
        if model.disk_size_gb is not None:
            image.disk_size_gb = model.disk_size_gb
        if model.image_encryption_key is not None:
            image.image_encryption_key = model.image_encryption_key.to_wire()
        if model.source_disk_encryption_key is not None:
            image.source_disk_encryption_key = model.source_disk_encryption_key.to_wire()
        return image


def image_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-image",
        model=ImageModel,
        adapter=ImageAdapter(),
        scope=GlobalScope(),
        api=ComputeApi("ImagesClient", "image", patch_method=None),
        rules=(ExactlyOneOf("source-disk", "source-image", "source-snapshot", "raw-disk-source"),),
        update_steps=(labels_step(compute_v1.GlobalSetLabelsRequest, "global_set_labels_request_resource"),),
        timeout=IMAGE_OPERATION_TIMEOUT,
        description="Custom boot image",
    )
