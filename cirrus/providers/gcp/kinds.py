"""Built-in compute resource kinds."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .attached_disk import instance_disks_kind
from .autoscaler import autoscaler_kind, region_autoscaler_kind
from .backend_bucket import backend_bucket_kind
from .backend_service import backend_service_kind, region_backend_service_kind
from .disk import disk_kind, region_disk_kind
from .firewall import firewall_kind
from .image import image_kind
from .network_endpoint_group import network_endpoint_group_kind
from .router import router_kind
from .url_map import region_url_map_kind, url_map_kind

if TYPE_CHECKING:
    from ...services.registry import ResourceRegistry

COMPUTE_KINDS = (
    disk_kind,
    region_disk_kind,
    firewall_kind,
    backend_bucket_kind,
    backend_service_kind,
    region_backend_service_kind,
    url_map_kind,
    region_url_map_kind,
    autoscaler_kind,
    region_autoscaler_kind,
    router_kind,
    network_endpoint_group_kind,
    image_kind,
    instance_disks_kind,
)


def register_compute_kinds(registry: "ResourceRegistry") -> None:
    for factory in COMPUTE_KINDS:
        registry.register(factory())
