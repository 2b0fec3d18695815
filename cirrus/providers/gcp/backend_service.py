"""Backend services, global and regional.

The global service carries the CDN features (cdn policy, signed URL keys,
custom request headers) and the security policy, which is attached through
its own verb rather than the patch body.
"""

from __future__ import annotations

from typing import Literal, Optional

from google.cloud import compute_v1
from pydantic import Field

from ...errors import FieldError
from ...services.changeset import CannotUnset
from ...services.lifecycle import LifecycleStep
from ...services.references import HEALTH_CHECK, SECURITY_POLICY, extract_name, link_for, to_reference
from ...services.validation import Check
from ..base import DeclaredModel, NamedModel, Ref, ResourceKind, WireAdapter, output, updatable, wanted, wire_value
from .scope import ComputeApi, GlobalScope, RegionalScope
from .shared import (
    CdnPolicy,
    SignedUrlKey,
    add_signed_url_keys_step,
    copy_signed_url_keys,
    headers_from_wire,
    headers_to_wire,
    sync_signed_url_keys_step,
)

HealthCheckRef = Ref(HEALTH_CHECK)
SecurityPolicyRef = Ref(SECURITY_POLICY)


class Backend(DeclaredModel):
    # instance group or network endpoint group link
    group: str
    balancing_mode: Literal["UTILIZATION", "RATE", "CONNECTION"] = "UTILIZATION"
    capacity_scaler: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_utilization: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_rate_per_instance: Optional[float] = None
    max_connections: Optional[int] = None
    description: Optional[str] = None

    @classmethod
    def from_wire(cls, wire) -> "Backend":
        values = {
            attr: wire_value(wire, attr)
            for attr in cls.model_fields
            if attr != "balancing_mode" and wire_value(wire, attr) is not None
        }
        return cls(balancing_mode=wire_value(wire, "balancing_mode", "UTILIZATION"), **values)

    def to_wire(self) -> compute_v1.Backend:
        return compute_v1.Backend(**self.model_dump(exclude_none=True))


class _BackendServiceFields(NamedModel):
    description: Optional[str] = updatable(None)
    backends: list[Backend] = updatable(default_factory=list)
    health_checks: list[HealthCheckRef] = updatable(default_factory=list)
    protocol: Optional[Literal["HTTP", "HTTPS", "HTTP2", "TCP", "SSL", "UDP", "GRPC"]] = updatable(None)
    port_name: Optional[str] = updatable(None)
    timeout_sec: Optional[int] = updatable(None, ge=1)
    load_balancing_scheme: Literal[
        "EXTERNAL", "EXTERNAL_MANAGED", "INTERNAL", "INTERNAL_MANAGED", "INTERNAL_SELF_MANAGED"
    ] = "EXTERNAL"
    session_affinity: Optional[str] = updatable(None)
    affinity_cookie_ttl_sec: Optional[int] = updatable(None)
    connection_draining_timeout_sec: Optional[int] = updatable(None)
    enable_logging: Optional[bool] = updatable(None)
    log_sample_rate: Optional[float] = updatable(None, ge=0.0, le=1.0)

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    fingerprint: Optional[str] = output()
    creation_timestamp: Optional[str] = output()


class BackendServiceModel(_BackendServiceFields):
    enable_cdn: Optional[bool] = updatable(None)
    cdn_policy: Optional[CdnPolicy] = updatable(None)
    custom_request_headers: dict[str, str] = updatable(default_factory=dict)
    security_policy: Optional[SecurityPolicyRef] = updatable(None)
    signed_url_keys: list[SignedUrlKey] = updatable(default_factory=list)


class RegionBackendServiceModel(_BackendServiceFields):
    region: Optional[str] = None


class BackendServiceAdapter(WireAdapter):
    def __init__(self, regional: bool = False):
        self.regional = regional

    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        model.backends = [Backend.from_wire(b) for b in wire.backends]
        model.health_checks = [
            ref for ref in (to_reference(link, HEALTH_CHECK) for link in wire.health_checks)
            if ref is not None
        ]
        model.protocol = wire_value(wire, "protocol")
        model.port_name = wire_value(wire, "port_name")
        model.timeout_sec = wire_value(wire, "timeout_sec")
        model.load_balancing_scheme = wire_value(wire, "load_balancing_scheme", "EXTERNAL")
        model.session_affinity = wire_value(wire, "session_affinity")
        model.affinity_cookie_ttl_sec = wire_value(wire, "affinity_cookie_ttl_sec")
        draining = wire_value(wire, "connection_draining")
        model.connection_draining_timeout_sec = (
            wire_value(draining, "draining_timeout_sec") if draining is not None else None
        )
        log_config = wire_value(wire, "log_config")
        model.enable_logging = wire_value(log_config, "enable") if log_config is not None else None
        model.log_sample_rate = wire_value(log_config, "sample_rate") if log_config is not None else None

        if self.regional:
            model.region = extract_name(wire_value(wire, "region"))
        else:
            model.enable_cdn = wire_value(wire, "enable_c_d_n")
            policy = wire_value(wire, "cdn_policy")
            model.cdn_policy = CdnPolicy.from_wire(policy) if policy is not None else None
            model.custom_request_headers = headers_from_wire(wire.custom_request_headers)
            model.security_policy = to_reference(wire_value(wire, "security_policy"), SECURITY_POLICY)
            model.signed_url_keys = copy_signed_url_keys(model.signed_url_keys or [], policy)

        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.fingerprint = wire_value(wire, "fingerprint")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")

    def to_wire(self, model, ctx, changed=None):
        project = ctx.project_id
        service = compute_v1.BackendService(name=model.name)
        if changed is None:
            service.load_balancing_scheme = model.load_balancing_scheme
        elif model.fingerprint:
            service.fingerprint = model.fingerprint

        if wanted("description", changed) and model.description is not None:
            service.description = model.description
        if wanted("backends", changed):
            service.backends = [b.to_wire() for b in model.backends]
        if wanted("health-checks", changed):
            service.health_checks = [link_for(h, project) for h in model.health_checks]
        for attr in ("protocol", "port_name", "timeout_sec", "session_affinity", "affinity_cookie_ttl_sec"):
            value = getattr(model, attr)
            if wanted(attr.replace("_", "-"), changed) and value is not None:
                setattr(service, attr, value)
        if wanted("connection-draining-timeout-sec", changed) and model.connection_draining_timeout_sec is not None:
            service.connection_draining = compute_v1.ConnectionDraining(
                draining_timeout_sec=model.connection_draining_timeout_sec)
        if (wanted("enable-logging", changed) or wanted("log-sample-rate", changed)) and (
                model.enable_logging is not None or model.log_sample_rate is not None):
            log_config = compute_v1.BackendServiceLogConfig()
            if model.enable_logging is not None:
                log_config.enable = model.enable_logging
            if model.log_sample_rate is not None:
                log_config.sample_rate = model.log_sample_rate
            service.log_config = log_config

        if self.regional:
            return service

        if wanted("enable-cdn", changed) and model.enable_cdn is not None:
            service.enable_c_d_n = model.enable_cdn
        if wanted("cdn-policy", changed) and model.cdn_policy is not None:
            service.cdn_policy = model.cdn_policy.to_wire(compute_v1.BackendServiceCdnPolicy)
        if wanted("custom-request-headers", changed):
            # the whole map is re-sent; entries left out are removed
            service.custom_request_headers = headers_to_wire(model.custom_request_headers)
        return service


def _set_security_policy(step) -> None:
    reference = compute_v1.SecurityPolicyReference()
    if step.model.security_policy is not None:
        reference.security_policy = link_for(step.model.security_policy, step.project)
    step.call(
        "set_security_policy_unary",
        backend_service=step.name,
        security_policy_reference_resource=reference,
    )


def _attach_security_policy(step) -> None:
    if step.model.security_policy is not None:
        _set_security_policy(step)


def _policy_before_cdn(step) -> None:
    # a policy must be detached before CDN can be switched on
    current = step.current
    if step.model.enable_cdn and current is not None and current.security_policy is not None:
        _set_security_policy(step)


def _policy_after_patch(step) -> None:
    already_set = (
        "enable-cdn" in step.changed
        and step.model.enable_cdn
        and step.current is not None
        and step.current.security_policy is not None
    )
    if not already_set:
        _set_security_policy(step)


def check_cdn_and_security_policy(model) -> list[FieldError]:
    if model.enable_cdn and model.security_policy is not None:
        return [FieldError("enable-cdn", "'enable-cdn' can't be true when a security policy is provided.")]
    return []


def backend_service_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-backend-service",
        model=BackendServiceModel,
        adapter=BackendServiceAdapter(),
        scope=GlobalScope(),
        api=ComputeApi("BackendServicesClient", "backend_service"),
        rules=(Check(check_cdn_and_security_policy, "enable-cdn", "security-policy"),),
        change_rules=(CannotUnset("cdn-policy"),),
        post_create=(
            LifecycleStep("set-security-policy", _attach_security_policy),
            add_signed_url_keys_step(),
        ),
        update_steps=(
            LifecycleStep("detach-security-policy", _policy_before_cdn,
                          fields=frozenset({"enable-cdn"}), before_patch=True, exclusive=False),
            sync_signed_url_keys_step(),
            LifecycleStep("set-security-policy", _policy_after_patch,
                          fields=frozenset({"security-policy"})),
        ),
        description="Global backend service with CDN and security policy support",
    )


def region_backend_service_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-region-backend-service",
        model=RegionBackendServiceModel,
        adapter=BackendServiceAdapter(regional=True),
        scope=RegionalScope(),
        api=ComputeApi("RegionBackendServicesClient", "backend_service"),
        description="Regional backend service",
    )
