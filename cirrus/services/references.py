"""Cross-resource references — self-links <-> typed resource handles.

A Compute self-link takes one of three shapes::

    https://www.googleapis.com/compute/v1/projects/<p>/global/<collection>/<name>
    https://www.googleapis.com/compute/v1/projects/<p>/zones/<zone>/<collection>/<name>
    https://www.googleapis.com/compute/v1/projects/<p>/regions/<region>/<collection>/<name>

``to_reference`` never fetches anything; it only builds a handle keyed by
identity. It returns None for links of another kind so callers can probe
several kinds in turn.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Optional, Union

COMPUTE_BASE_URL = "https://www.googleapis.com/compute/v1/"

GLOBAL = "global"
REGIONAL = "regions"
ZONAL = "zones"

_LINK_RE = re.compile(
    r"^(?:https?://(?:www|compute)\.googleapis\.com/compute/(?:v1|beta|alpha)/)?"
    r"projects/(?P<project>[^/]+)/"
    r"(?:(?P<global>global)|zones/(?P<zone>[^/]+)|regions/(?P<region>[^/]+))/"
    r"(?P<collection>[A-Za-z]+)/(?P<name>(?:family/)?[^/]+)$"
)


@dataclass(frozen=True)
class RefKind:
    """A collection of referenceable resources and the scope they live in."""

    collection: str
    scope: str = GLOBAL

    def __str__(self) -> str:
        return self.collection if self.scope == GLOBAL else f"{self.scope}/{self.collection}"


BACKEND_BUCKET = RefKind("backendBuckets")
BACKEND_SERVICE = RefKind("backendServices")
REGION_BACKEND_SERVICE = RefKind("backendServices", REGIONAL)
DISK = RefKind("disks", ZONAL)
REGION_DISK = RefKind("disks", REGIONAL)
DISK_TYPE = RefKind("diskTypes", ZONAL)
REGION_DISK_TYPE = RefKind("diskTypes", REGIONAL)
FIREWALL = RefKind("firewalls")
HEALTH_CHECK = RefKind("healthChecks")
IMAGE = RefKind("images")
INSTANCE = RefKind("instances", ZONAL)
INSTANCE_GROUP = RefKind("instanceGroups", ZONAL)
INSTANCE_GROUP_MANAGER = RefKind("instanceGroupManagers", ZONAL)
REGION_INSTANCE_GROUP_MANAGER = RefKind("instanceGroupManagers", REGIONAL)
NETWORK = RefKind("networks")
NETWORK_ENDPOINT_GROUP = RefKind("networkEndpointGroups", ZONAL)
RESOURCE_POLICY = RefKind("resourcePolicies", REGIONAL)
ROUTER = RefKind("routers", REGIONAL)
SECURITY_POLICY = RefKind("securityPolicies")
SNAPSHOT = RefKind("snapshots")
SUBNETWORK = RefKind("subnetworks", REGIONAL)
URL_MAP = RefKind("urlMaps")
REGION_URL_MAP = RefKind("urlMaps", REGIONAL)
AUTOSCALER = RefKind("autoscalers", ZONAL)
REGION_AUTOSCALER = RefKind("autoscalers", REGIONAL)


@dataclass(frozen=True)
class ResourceRef:
    """Typed handle to another resource.

    ``project`` and ``location`` may be empty for a handle declared by bare
    name; ``qualified`` fills them from the calling context.
    """

    kind: RefKind
    name: str
    project: str = ""
    location: str = ""

    @property
    def is_qualified(self) -> bool:
        return bool(self.project) and (self.kind.scope == GLOBAL or bool(self.location))

    def qualified(self, project: str, location: str = "") -> "ResourceRef":
        return replace(
            self,
            project=self.project or project,
            location=self.location or ("" if self.kind.scope == GLOBAL else location),
        )

    def __str__(self) -> str:
        return to_self_link(self) if self.is_qualified else self.name


def to_reference(value: Union[str, ResourceRef, None], kind: RefKind) -> Optional[ResourceRef]:
    """Resolve a self-link (or an existing handle) into a handle of ``kind``.

    Returns None when ``value`` is empty or denotes a different kind.
    """
    if value is None:
        return None
    if isinstance(value, ResourceRef):
        return value if value.kind == kind else None
    match = _LINK_RE.match(value.strip())
    if match is None:
        return None
    if match["global"]:
        scope, location = GLOBAL, ""
    elif match["zone"]:
        scope, location = ZONAL, match["zone"]
    else:
        scope, location = REGIONAL, match["region"]
    if match["collection"] != kind.collection or scope != kind.scope:
        return None
    return ResourceRef(kind, match["name"], project=match["project"], location=location)


def to_self_link(ref: ResourceRef) -> str:
    if not ref.project:
        raise ValueError(f"Reference to {ref.kind} '{ref.name}' has no project")
    if ref.kind.scope == GLOBAL:
        path = f"projects/{ref.project}/global"
    else:
        if not ref.location:
            raise ValueError(f"Reference to {ref.kind} '{ref.name}' has no location")
        path = f"projects/{ref.project}/{ref.kind.scope}/{ref.location}"
    return f"{COMPUTE_BASE_URL}{path}/{ref.kind.collection}/{ref.name}"


def coerce_reference(value: Any, kind: RefKind) -> ResourceRef:
    """Accept a handle, a self-link or a bare name as a reference of ``kind``."""
    if isinstance(value, ResourceRef):
        if value.kind != kind:
            raise ValueError(f"expected a reference to {kind}, got {value.kind}")
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"expected a reference to {kind}")
    ref = to_reference(value, kind)
    if ref is not None:
        return ref
    if "/" not in value:
        return ResourceRef(kind, value.strip())
    raise ValueError(f"'{value}' is not a link to {kind}")


def link_for(ref: Optional[ResourceRef], project: str, location: str = "") -> Optional[str]:
    """Self-link of ``ref``, qualifying bare names with the given context."""
    if ref is None:
        return None
    return to_self_link(ref.qualified(project, location))


def extract_name(link: Optional[str]) -> Optional[str]:
    """Last path segment of a link (zone and region URLs come back this way)."""
    if not link:
        return None
    return link.rstrip("/").rsplit("/", 1)[-1]


def expand_link(value: str, kind: RefKind, project: str, location: str = "") -> str:
    """Canonical self-link for a full URL, a ``projects/...`` path, a
    ``global/``, ``zones/`` or ``regions/`` path, or a bare name.

    Image families (``global/images/family/<f>``) are preserved.
    """
    value = value.strip()
    if value.startswith(("http://", "https://")):
        return value
    if value.startswith("projects/"):
        return COMPUTE_BASE_URL + value
    if value.startswith(("global/", "zones/", "regions/")):
        return f"{COMPUTE_BASE_URL}projects/{project}/{value}"
    return to_self_link(ResourceRef(kind, value, project=project, location=location))


def zone_link(project: str, zone: str) -> str:
    return f"{COMPUTE_BASE_URL}projects/{project}/zones/{zone}"


def region_link(project: str, region: str) -> str:
    return f"{COMPUTE_BASE_URL}projects/{project}/regions/{region}"


def region_of_zone(zone: str) -> str:
    """``us-central1-a`` -> ``us-central1``."""
    return zone.rsplit("-", 1)[0] if zone else ""
