"""VPC firewall rules."""

from __future__ import annotations

import re
from typing import Literal, Optional

from google.cloud import compute_v1
from pydantic import Field

from ...errors import FieldError
from ...services.references import NETWORK, link_for, to_reference
from ...services.validation import (
    AnyRequiredWhen,
    Check,
    ConflictsWith,
    ForbiddenWhen,
    RequiredWhen,
)
from ..base import (
    DeclaredModel,
    NamedModel,
    Ref,
    ResourceKind,
    WireAdapter,
    output,
    updatable,
    wanted,
    wire_value,
)
from .scope import ComputeApi, GlobalScope
from .shared import DEFAULT_NETWORK

NetworkRef = Ref(NETWORK)

_PORT_RE = re.compile(r"^(\d+)(?:-(\d+))?$")


class FirewallProtocol(DeclaredModel):
    """One protocol entry of an allow or deny list."""

    protocol: str
    ports: list[str] = Field(default_factory=list)


class FirewallModel(NamedModel):
    description: Optional[str] = updatable(None)
    network: Optional[NetworkRef] = None
    rule_type: Literal["ALLOW", "DENY"]
    allowed: list[FirewallProtocol] = updatable(default_factory=list)
    denied: list[FirewallProtocol] = updatable(default_factory=list)
    direction: Literal["INGRESS", "EGRESS"] = "INGRESS"
    priority: int = updatable(1000, ge=0, le=65535)
    disabled: bool = updatable(False)
    enable_logging: Optional[bool] = updatable(None)
    source_ranges: list[str] = updatable(default_factory=list)
    source_tags: list[str] = updatable(default_factory=list)
    source_service_accounts: list[str] = updatable(default_factory=list)
    destination_ranges: list[str] = updatable(default_factory=list)
    target_tags: list[str] = updatable(default_factory=list)
    target_service_accounts: list[str] = updatable(default_factory=list)

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    creation_timestamp: Optional[str] = output()


def _protocols_from_wire(entries) -> list[FirewallProtocol]:
    return [FirewallProtocol(protocol=e.I_p_protocol, ports=list(e.ports)) for e in entries]


class FirewallAdapter(WireAdapter):
    _LISTS = (
        "source_ranges",
        "source_tags",
        "source_service_accounts",
        "destination_ranges",
        "target_tags",
        "target_service_accounts",
    )

    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        model.network = to_reference(wire_value(wire, "network"), NETWORK)
        model.allowed = _protocols_from_wire(wire.allowed)
        model.denied = _protocols_from_wire(wire.denied)
        if wire.allowed:
            model.rule_type = "ALLOW"
        elif wire.denied:
            model.rule_type = "DENY"
        model.direction = wire_value(wire, "direction", "INGRESS")
        model.priority = wire_value(wire, "priority", 1000)
        model.disabled = wire_value(wire, "disabled", False)
        model.enable_logging = (
            wire.log_config.enable if "log_config" in wire and "enable" in wire.log_config else None
        )
        for attr in self._LISTS:
            setattr(model, attr, list(getattr(wire, attr)))
        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")

    def to_wire(self, model, ctx, changed=None):
        firewall = compute_v1.Firewall(name=model.name)
        if changed is None:
            firewall.network = link_for(model.network or DEFAULT_NETWORK, ctx.project_id)
            firewall.direction = model.direction
        if wanted("description", changed) and model.description is not None:
            firewall.description = model.description
        if wanted("allowed", changed):
            firewall.allowed = [
                compute_v1.Allowed(I_p_protocol=p.protocol, ports=p.ports) for p in model.allowed
            ]
        if wanted("denied", changed):
            firewall.denied = [
                compute_v1.Denied(I_p_protocol=p.protocol, ports=p.ports) for p in model.denied
            ]
        if wanted("priority", changed):
            firewall.priority = model.priority
        if wanted("disabled", changed):
            firewall.disabled = model.disabled
        if wanted("enable-logging", changed) and model.enable_logging is not None:
            firewall.log_config = compute_v1.FirewallLogConfig(enable=model.enable_logging)
        for attr in self._LISTS:
            if wanted(attr.replace("_", "-"), changed):
                setattr(firewall, attr, list(getattr(model, attr)))
        return firewall


def check_ports(model) -> list[FieldError]:
    errors = []
    for attr in ("allowed", "denied"):
        for entry in getattr(model, attr):
            if entry.ports and entry.protocol.lower() not in ("tcp", "udp"):
                errors.append(FieldError(
                    f"{attr}.ports",
                    "'ports' can only be set when 'protocol' is set to either 'tcp' or 'udp'",
                ))
            for port in entry.ports:
                match = _PORT_RE.match(port)
                low = int(match[1]) if match else -1
                high = int(match[2]) if match and match[2] else low
                if not match or not 0 <= low <= high <= 65535:
                    errors.append(FieldError(
                        f"{attr}.ports",
                        f"invalid entry {port}. Must be an integer or a valid range",
                    ))
    return errors


FIREWALL_RULES = (
    RequiredWhen("allowed", "rule-type", "ALLOW"),
    RequiredWhen("denied", "rule-type", "DENY"),
    ForbiddenWhen("denied", "rule-type", "ALLOW"),
    ForbiddenWhen("allowed", "rule-type", "DENY"),
    ForbiddenWhen("destination-ranges", "direction", "INGRESS"),
    AnyRequiredWhen(("source-ranges", "source-tags", "source-service-accounts"), "direction", "INGRESS"),
    ForbiddenWhen("source-ranges", "direction", "EGRESS"),
    ForbiddenWhen("source-tags", "direction", "EGRESS"),
    ForbiddenWhen("source-service-accounts", "direction", "EGRESS"),
    ConflictsWith("source-service-accounts", "source-tags"),
    ConflictsWith("target-service-accounts", "target-tags"),
    Check(check_ports, "allowed", "denied"),
)


def firewall_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-firewall-rule",
        model=FirewallModel,
        adapter=FirewallAdapter(),
        scope=GlobalScope(),
        api=ComputeApi("FirewallsClient", "firewall"),
        rules=FIREWALL_RULES,
        description="VPC firewall rule",
    )
