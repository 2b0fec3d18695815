"""URL maps, global and regional.

A URL map routes to exactly one default target. The API carries all three
kinds of target in the single ``default_service`` link, so reading it back
means probing which kind of link it is.
"""

from __future__ import annotations

from typing import Any, Optional

from google.cloud import compute_v1
from pydantic import Field

from ...errors import FieldError
from ...services.references import (
    BACKEND_BUCKET,
    BACKEND_SERVICE,
    REGION_BACKEND_SERVICE,
    extract_name,
    link_for,
    to_reference,
)
from ...services.validation import Check, ExactlyOneOf, Nested
from ..base import DeclaredModel, NamedModel, Ref, ResourceKind, WireAdapter, output, updatable, wanted, wire_value
from .scope import ComputeApi, GlobalScope, RegionalScope

BackendBucketRef = Ref(BACKEND_BUCKET)
BackendServiceRef = Ref(BACKEND_SERVICE)
RegionBackendServiceRef = Ref(REGION_BACKEND_SERVICE)

# probe order when reading a target link back
_TARGETS = (
    ("backend_bucket", BACKEND_BUCKET),
    ("backend_service", BACKEND_SERVICE),
    ("region_backend_service", REGION_BACKEND_SERVICE),
)


def _target_link(model: DeclaredModel, prefix: str, project: str, region: str) -> Optional[str]:
    for attr, _ in _TARGETS:
        ref = getattr(model, prefix + attr)
        if ref is not None:
            return link_for(ref, project, region)
    return None


def _copy_target(model: DeclaredModel, prefix: str, link: Optional[str]) -> None:
    for attr, kind in _TARGETS:
        setattr(model, prefix + attr, to_reference(link, kind))


class HostRule(DeclaredModel):
    hosts: list[str] = Field(..., min_length=1)
    path_matcher: str
    description: Optional[str] = None

    @classmethod
    def from_wire(cls, wire: Any) -> "HostRule":
        return cls(
            hosts=list(wire.hosts),
            path_matcher=wire.path_matcher,
            description=wire_value(wire, "description"),
        )

    def to_wire(self) -> compute_v1.HostRule:
        rule = compute_v1.HostRule(hosts=self.hosts, path_matcher=self.path_matcher)
        if self.description is not None:
            rule.description = self.description
        return rule


class PathRule(DeclaredModel):
    paths: list[str] = Field(..., min_length=1)
    backend_bucket: Optional[BackendBucketRef] = None
    backend_service: Optional[BackendServiceRef] = None
    region_backend_service: Optional[RegionBackendServiceRef] = None

    @classmethod
    def from_wire(cls, wire: Any) -> "PathRule":
        rule = cls(paths=list(wire.paths))
        _copy_target(rule, "", wire_value(wire, "service"))
        return rule

    def to_wire(self, project: str, region: str) -> compute_v1.PathRule:
        rule = compute_v1.PathRule(paths=self.paths)
        service = _target_link(self, "", project, region)
        if service is not None:
            rule.service = service
        return rule


class PathMatcher(DeclaredModel):
    name: str
    description: Optional[str] = None
    default_backend_bucket: Optional[BackendBucketRef] = None
    default_backend_service: Optional[BackendServiceRef] = None
    default_region_backend_service: Optional[RegionBackendServiceRef] = None
    path_rules: list[PathRule] = Field(default_factory=list)

    @classmethod
    def from_wire(cls, wire: Any) -> "PathMatcher":
        matcher = cls(
            name=wire.name,
            description=wire_value(wire, "description"),
            path_rules=[PathRule.from_wire(r) for r in wire.path_rules],
        )
        _copy_target(matcher, "default_", wire_value(wire, "default_service"))
        return matcher

    def to_wire(self, project: str, region: str) -> compute_v1.PathMatcher:
        matcher = compute_v1.PathMatcher(
            name=self.name,
            path_rules=[r.to_wire(project, region) for r in self.path_rules],
        )
        if self.description is not None:
            matcher.description = self.description
        default = _target_link(self, "default_", project, region)
        if default is not None:
            matcher.default_service = default
        return matcher


class UrlMapModel(NamedModel):
    description: Optional[str] = updatable(None)
    default_backend_bucket: Optional[BackendBucketRef] = updatable(None)
    default_backend_service: Optional[BackendServiceRef] = updatable(None)
    default_region_backend_service: Optional[RegionBackendServiceRef] = updatable(None)
    host_rules: list[HostRule] = updatable(default_factory=list)
    path_matchers: list[PathMatcher] = updatable(default_factory=list)

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    fingerprint: Optional[str] = output()
    creation_timestamp: Optional[str] = output()


class RegionUrlMapModel(UrlMapModel):
    region: Optional[str] = None


_DEFAULT_TARGETS = ("default-backend-bucket", "default-backend-service", "default-region-backend-service")


class UrlMapAdapter(WireAdapter):
    def __init__(self, regional: bool = False):
        self.regional = regional

    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        _copy_target(model, "default_", wire_value(wire, "default_service"))
        model.host_rules = [HostRule.from_wire(r) for r in wire.host_rules]
        model.path_matchers = [PathMatcher.from_wire(m) for m in wire.path_matchers]
        if self.regional:
            model.region = extract_name(wire_value(wire, "region"))
        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.fingerprint = wire_value(wire, "fingerprint")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")

    def to_wire(self, model, ctx, changed=None):
        project = ctx.project_id
        region = getattr(model, "region", None) or ctx.region
        url_map = compute_v1.UrlMap(name=model.name)
        if changed is not None and model.fingerprint:
            url_map.fingerprint = model.fingerprint
        if wanted("description", changed) and model.description is not None:
            url_map.description = model.description
        if changed is None or set(_DEFAULT_TARGETS) & set(changed):
            default = _target_link(model, "default_", project, region)
            if default is not None:
                url_map.default_service = default
        if wanted("host-rules", changed):
            url_map.host_rules = [r.to_wire() for r in model.host_rules]
        if wanted("path-matchers", changed):
            url_map.path_matchers = [m.to_wire(project, region) for m in model.path_matchers]
        return url_map


def check_path_matcher_names(model) -> list[FieldError]:
    names = {m.name for m in model.path_matchers}
    return [
        FieldError("host-rules", f"host rule refers to unknown path matcher '{rule.path_matcher}'")
        for rule in model.host_rules
        if rule.path_matcher not in names
    ]


URL_MAP_RULES = (
    ExactlyOneOf(*_DEFAULT_TARGETS),
    Nested(
        "path-matchers",
        ExactlyOneOf("default-backend-bucket", "default-backend-service", "default-region-backend-service"),
        Nested("path-rules", ExactlyOneOf("backend-bucket", "backend-service", "region-backend-service")),
    ),
    Check(check_path_matcher_names, "host-rules", "path-matchers"),
)


def url_map_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-url-map",
        model=UrlMapModel,
        adapter=UrlMapAdapter(),
        scope=GlobalScope(),
        api=ComputeApi("UrlMapsClient", "url_map"),
        rules=URL_MAP_RULES,
        change_rules=(ExactlyOneOf(*_DEFAULT_TARGETS),),
        description="Global URL map routing requests to backends",
    )


def region_url_map_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-region-url-map",
        model=RegionUrlMapModel,
        adapter=UrlMapAdapter(regional=True),
        scope=RegionalScope(),
        api=ComputeApi("RegionUrlMapsClient", "url_map"),
        rules=URL_MAP_RULES,
        change_rules=(ExactlyOneOf(*_DEFAULT_TARGETS),),
        description="Regional URL map",
    )
