"""Cloud Routers with their BGP settings, interfaces and NAT gateways.

NAT gateways cannot be part of the insert; they are patched in once the
router exists. BGP settings only change through a full update of the
router, so that step reads the live object and writes it back.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from google.cloud import compute_v1
from pydantic import Field

from ...errors import FieldError
from ...services.lifecycle import LifecycleStep
from ...services.references import NETWORK, SUBNETWORK, extract_name, link_for, to_reference
from ...services.validation import Check, ForbiddenWhen, Nested, RequiredWhen
from ..base import (
    DeclaredModel,
    NamedModel,
    Ref,
    ResourceKind,
    WireAdapter,
    has_field,
    output,
    updatable,
    wanted,
    wire_value,
)
from .scope import ComputeApi, RegionalScope

NetworkRef = Ref(NETWORK)
SubnetworkRef = Ref(SUBNETWORK)

AdvertiseMode = Literal["DEFAULT", "CUSTOM"]


class RouterIpRange(DeclaredModel):
    range: str
    description: Optional[str] = None

    def to_wire(self) -> compute_v1.RouterAdvertisedIpRange:
        ip_range = compute_v1.RouterAdvertisedIpRange(range_=self.range)
        if self.description is not None:
            ip_range.description = self.description
        return ip_range


def _ip_ranges(entries) -> list[RouterIpRange]:
    return [RouterIpRange(range=r.range_, description=wire_value(r, "description")) for r in entries]


class RouterBgp(DeclaredModel):
    asn: int
    advertise_mode: AdvertiseMode = "DEFAULT"
    advertised_groups: list[str] = Field(default_factory=list)
    advertised_ip_ranges: list[RouterIpRange] = Field(default_factory=list)
    keepalive_interval: Optional[int] = Field(None, ge=20, le=60)

    @classmethod
    def from_wire(cls, wire: Any) -> "RouterBgp":
        return cls(
            asn=wire.asn,
            advertise_mode=wire_value(wire, "advertise_mode", "DEFAULT"),
            advertised_groups=list(wire.advertised_groups),
            advertised_ip_ranges=_ip_ranges(wire.advertised_ip_ranges),
            keepalive_interval=wire_value(wire, "keepalive_interval"),
        )

    def to_wire(self) -> compute_v1.RouterBgp:
        bgp = compute_v1.RouterBgp(
            asn=self.asn,
            advertise_mode=self.advertise_mode,
            advertised_groups=self.advertised_groups,
            advertised_ip_ranges=[r.to_wire() for r in self.advertised_ip_ranges],
        )
        if self.keepalive_interval is not None:
            bgp.keepalive_interval = self.keepalive_interval
        return bgp


class RouterBgpPeer(DeclaredModel):
    name: str
    peer_asn: int
    interface_name: Optional[str] = None
    ip_address: Optional[str] = None
    peer_ip_address: Optional[str] = None
    advertised_route_priority: Optional[int] = Field(None, ge=0)
    advertise_mode: AdvertiseMode = "DEFAULT"
    advertised_groups: list[str] = Field(default_factory=list)
    advertised_ip_ranges: list[RouterIpRange] = Field(default_factory=list)

    @classmethod
    def from_wire(cls, wire: Any) -> "RouterBgpPeer":
        return cls(
            name=wire.name,
            peer_asn=wire.peer_asn,
            interface_name=wire_value(wire, "interface_name"),
            ip_address=wire_value(wire, "ip_address"),
            peer_ip_address=wire_value(wire, "peer_ip_address"),
            advertised_route_priority=wire_value(wire, "advertised_route_priority"),
            advertise_mode=wire_value(wire, "advertise_mode", "DEFAULT"),
            advertised_groups=list(wire.advertised_groups),
            advertised_ip_ranges=_ip_ranges(wire.advertised_ip_ranges),
        )

    def to_wire(self) -> compute_v1.RouterBgpPeer:
        peer = compute_v1.RouterBgpPeer(
            name=self.name,
            peer_asn=self.peer_asn,
            advertise_mode=self.advertise_mode,
            advertised_groups=self.advertised_groups,
            advertised_ip_ranges=[r.to_wire() for r in self.advertised_ip_ranges],
        )
        for attr in ("interface_name", "ip_address", "peer_ip_address", "advertised_route_priority"):
            value = getattr(self, attr)
            if value is not None:
                setattr(peer, attr, value)
        return peer


class RouterInterface(DeclaredModel):
    name: str
    ip_range: Optional[str] = None
    linked_vpn_tunnel: Optional[str] = None
    linked_interconnect_attachment: Optional[str] = None

    @classmethod
    def from_wire(cls, wire: Any) -> "RouterInterface":
        return cls(name=wire.name, **{
            attr: wire_value(wire, attr)
            for attr in ("ip_range", "linked_vpn_tunnel", "linked_interconnect_attachment")
        })

    def to_wire(self) -> compute_v1.RouterInterface:
        return compute_v1.RouterInterface(**self.model_dump(exclude_none=True))


class RouterNatSubnetwork(DeclaredModel):
    subnetwork: SubnetworkRef
    source_ip_ranges_to_nat: list[Literal["ALL_IP_RANGES", "PRIMARY_IP_RANGE", "LIST_OF_SECONDARY_IP_RANGES"]] = (
        Field(default_factory=lambda: ["ALL_IP_RANGES"])
    )
    secondary_ip_range_names: list[str] = Field(default_factory=list)


_NAT_TIMEOUTS = (
    "min_ports_per_vm",
    "udp_idle_timeout_sec",
    "icmp_idle_timeout_sec",
    "tcp_established_idle_timeout_sec",
    "tcp_transitory_idle_timeout_sec",
)


class RouterNat(DeclaredModel):
    name: str
    source_subnetwork_ip_ranges_to_nat: Literal[
        "ALL_SUBNETWORKS_ALL_IP_RANGES", "ALL_SUBNETWORKS_ALL_PRIMARY_IP_RANGES", "LIST_OF_SUBNETWORKS"
    ] = "ALL_SUBNETWORKS_ALL_IP_RANGES"
    subnetworks: list[RouterNatSubnetwork] = Field(default_factory=list)
    nat_ip_allocate_option: Literal["AUTO_ONLY", "MANUAL_ONLY"] = "AUTO_ONLY"
    # address self-links
    nat_ips: list[str] = Field(default_factory=list)
    min_ports_per_vm: Optional[int] = Field(None, ge=2, le=65536)
    udp_idle_timeout_sec: Optional[int] = None
    icmp_idle_timeout_sec: Optional[int] = None
    tcp_established_idle_timeout_sec: Optional[int] = None
    tcp_transitory_idle_timeout_sec: Optional[int] = None
    enable_logging: Optional[bool] = None
    log_filter: Optional[Literal["ERRORS_ONLY", "TRANSLATIONS_ONLY", "ALL"]] = None

    @classmethod
    def from_wire(cls, wire: Any) -> "RouterNat":
        log_config = wire_value(wire, "log_config")
        return cls(
            name=wire.name,
            source_subnetwork_ip_ranges_to_nat=wire_value(
                wire, "source_subnetwork_ip_ranges_to_nat", "ALL_SUBNETWORKS_ALL_IP_RANGES"),
            subnetworks=[
                RouterNatSubnetwork(
                    subnetwork=s.name,
                    source_ip_ranges_to_nat=list(s.source_ip_ranges_to_nat),
                    secondary_ip_range_names=list(s.secondary_ip_range_names),
                )
                for s in wire.subnetworks
            ],
            nat_ip_allocate_option=wire_value(wire, "nat_ip_allocate_option", "AUTO_ONLY"),
            nat_ips=list(wire.nat_ips),
            enable_logging=wire_value(log_config, "enable") if log_config is not None else None,
            log_filter=wire_value(log_config, "filter") if log_config is not None else None,
            **{attr: wire_value(wire, attr) for attr in _NAT_TIMEOUTS},
        )

    def to_wire(self, project: str, region: str) -> compute_v1.RouterNat:
        nat = compute_v1.RouterNat(
            name=self.name,
            source_subnetwork_ip_ranges_to_nat=self.source_subnetwork_ip_ranges_to_nat,
            nat_ip_allocate_option=self.nat_ip_allocate_option,
            nat_ips=self.nat_ips,
            subnetworks=[
                compute_v1.RouterNatSubnetworkToNat(
                    name=link_for(s.subnetwork, project, region),
                    source_ip_ranges_to_nat=s.source_ip_ranges_to_nat,
                    secondary_ip_range_names=s.secondary_ip_range_names,
                )
                for s in self.subnetworks
            ],
        )
        for attr in _NAT_TIMEOUTS:
            value = getattr(self, attr)
            if value is not None:
                setattr(nat, attr, value)
        if self.enable_logging is not None or self.log_filter is not None:
            log_config = compute_v1.RouterNatLogConfig()
            if self.enable_logging is not None:
                log_config.enable = self.enable_logging
            if self.log_filter is not None:
                log_config.filter = self.log_filter
            nat.log_config = log_config
        return nat


class RouterModel(NamedModel):
    description: Optional[str] = updatable(None)
    region: Optional[str] = None
    network: NetworkRef
    bgp: Optional[RouterBgp] = updatable(None)
    bgp_peers: list[RouterBgpPeer] = updatable(default_factory=list)
    interfaces: list[RouterInterface] = updatable(default_factory=list)
    nats: list[RouterNat] = updatable(default_factory=list)

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    creation_timestamp: Optional[str] = output()


class RouterAdapter(WireAdapter):
    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        model.region = extract_name(wire_value(wire, "region"))
        network = to_reference(wire_value(wire, "network"), NETWORK)
        if network is not None:
            model.network = network
        model.bgp = RouterBgp.from_wire(wire.bgp) if has_field(wire, "bgp") else None
        model.bgp_peers = [RouterBgpPeer.from_wire(p) for p in wire.bgp_peers]
        model.interfaces = [RouterInterface.from_wire(i) for i in wire.interfaces]
        model.nats = [RouterNat.from_wire(n) for n in wire.nats]
        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")

    def to_wire(self, model, ctx, changed=None):
        project, region = ctx.project_id, model.region or ctx.region
        router = compute_v1.Router(name=model.name)
        if changed is None:
            router.network = link_for(model.network, project)
            if model.bgp is not None:
                router.bgp = model.bgp.to_wire()
        if wanted("description", changed) and model.description is not None:
            router.description = model.description
        # lists are re-sent whole
        if wanted("bgp-peers", changed):
            router.bgp_peers = [p.to_wire() for p in model.bgp_peers]
        if wanted("interfaces", changed):
            router.interfaces = [i.to_wire() for i in model.interfaces]
        # gateways are never part of the insert
        if changed is not None and "nats" in changed:
            router.nats = [n.to_wire(project, region) for n in model.nats]
        return router


def _patch_nats(step) -> None:
    if not step.model.nats:
        return
    router = step.kind.adapter.to_wire(step.model, step.ctx, frozenset({"nats"}))
    step.call("patch_unary", router=step.name, router_resource=router)


def _update_bgp(step) -> None:
    router = step.read("get", router=step.name)
    if step.model.bgp is not None:
        router.bgp = step.model.bgp.to_wire()
    else:
        router.bgp = compute_v1.RouterBgp()
    step.call("update_unary", router=step.name, router_resource=router)


def _check_advertisement(item) -> list[FieldError]:
    if item.advertise_mode != "CUSTOM" and (item.advertised_ip_ranges or item.advertised_groups):
        return [FieldError(
            None,
            "'advertised-ip-ranges' and 'advertised-groups' can only be set if 'advertise-mode' is set to 'CUSTOM'",
        )]
    return []


def _check_peer_address(peer) -> list[FieldError]:
    if not (peer.interface_name or peer.ip_address or peer.peer_ip_address):
        return [FieldError(
            None,
            "At least one of 'interface-name' or 'ip-address' or 'peer-ip-address' is required",
        )]
    return []


def _check_nat_subnetworks(nat) -> list[FieldError]:
    if nat.subnetworks and nat.source_subnetwork_ip_ranges_to_nat != "LIST_OF_SUBNETWORKS":
        return [FieldError(
            "subnetworks",
            "'subnetworks' can only be set if 'source-subnetwork-ip-ranges-to-nat' is set to 'LIST_OF_SUBNETWORKS'",
        )]
    return []


def _check_secondary_ranges(subnetwork) -> list[FieldError]:
    if subnetwork.secondary_ip_range_names and \
            "LIST_OF_SECONDARY_IP_RANGES" not in subnetwork.source_ip_ranges_to_nat:
        return [FieldError(
            "secondary-ip-range-names",
            "'secondary-ip-range-names' can only be set if 'source-ip-ranges-to-nat' "
            "is set to 'LIST_OF_SECONDARY_IP_RANGES'",
        )]
    return []


ROUTER_RULES = (
    Nested("bgp", Check(_check_advertisement, "advertise-mode")),
    Nested(
        "bgp-peers",
        Check(_check_advertisement, "advertise-mode"),
        Check(_check_peer_address, "interface-name", "ip-address", "peer-ip-address"),
    ),
    Nested(
        "nats",
        RequiredWhen("subnetworks", "source-subnetwork-ip-ranges-to-nat", "LIST_OF_SUBNETWORKS"),
        Check(_check_nat_subnetworks, "subnetworks"),
        RequiredWhen("nat-ips", "nat-ip-allocate-option", "MANUAL_ONLY"),
        ForbiddenWhen("nat-ips", "nat-ip-allocate-option", "AUTO_ONLY"),
        Nested("subnetworks", Check(_check_secondary_ranges, "secondary-ip-range-names")),
    ),
)


def router_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-router",
        model=RouterModel,
        adapter=RouterAdapter(),
        scope=RegionalScope(),
        api=ComputeApi("RoutersClient", "router"),
        rules=ROUTER_RULES,
        post_create=(LifecycleStep("patch-nats", _patch_nats),),
        update_steps=(LifecycleStep("update-bgp", _update_bgp, fields=frozenset({"bgp"})),),
        description="Cloud Router with BGP and NAT gateways",
    )
