"""Autoscalers for managed instance groups, zonal and regional."""

from __future__ import annotations

from typing import Any, Literal, Optional

from google.cloud import compute_v1
from pydantic import Field

from ...services.references import (
    INSTANCE_GROUP_MANAGER,
    REGION_INSTANCE_GROUP_MANAGER,
    extract_name,
    link_for,
    to_reference,
)
from ...services.validation import ConflictsWith, Nested, NotLessThan
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
from .scope import ComputeApi, RegionalScope, ZonalScope

InstanceGroupManagerRef = Ref(INSTANCE_GROUP_MANAGER)
RegionInstanceGroupManagerRef = Ref(REGION_INSTANCE_GROUP_MANAGER)


class CpuUtilization(DeclaredModel):
    utilization_target: float = Field(..., gt=0.0, le=1.0)
    predictive_method: Optional[Literal["NONE", "OPTIMIZE_AVAILABILITY"]] = None


class LoadBalancingUtilization(DeclaredModel):
    utilization_target: float = Field(..., gt=0.0, le=1.0)


class CustomMetricUtilization(DeclaredModel):
    metric: str
    filter: Optional[str] = None
    utilization_target: Optional[float] = None
    utilization_target_type: Optional[Literal["GAUGE", "DELTA_PER_SECOND", "DELTA_PER_MINUTE"]] = None
    single_instance_assignment: Optional[float] = None


class ScaleInControl(DeclaredModel):
    max_scaled_in_replicas_fixed: Optional[int] = Field(None, ge=0)
    max_scaled_in_replicas_percent: Optional[int] = Field(None, ge=0, le=100)
    time_window_sec: Optional[int] = Field(None, ge=0)


class AutoscalingPolicy(DeclaredModel):
    min_num_replicas: Optional[int] = Field(None, ge=0)
    max_num_replicas: int = Field(..., ge=0)
    cool_down_period_sec: Optional[int] = Field(None, ge=0)
    mode: Optional[Literal["ON", "OFF", "ONLY_SCALE_OUT", "ONLY_UP"]] = None
    cpu_utilization: Optional[CpuUtilization] = None
    load_balancing_utilization: Optional[LoadBalancingUtilization] = None
    custom_metric_utilizations: list[CustomMetricUtilization] = Field(default_factory=list)
    scale_in_control: Optional[ScaleInControl] = None

    @classmethod
    def from_wire(cls, wire: Any) -> "AutoscalingPolicy":
        values: dict[str, Any] = {
            attr: wire_value(wire, attr)
            for attr in ("min_num_replicas", "cool_down_period_sec", "mode")
            if has_field(wire, attr)
        }
        # each sub-policy has its own presence test
        if has_field(wire, "cpu_utilization"):
            cpu = wire.cpu_utilization
            values["cpu_utilization"] = CpuUtilization(
                utilization_target=cpu.utilization_target,
                predictive_method=wire_value(cpu, "predictive_method"),
            )
        if has_field(wire, "load_balancing_utilization"):
            values["load_balancing_utilization"] = LoadBalancingUtilization(
                utilization_target=wire.load_balancing_utilization.utilization_target,
            )
        values["custom_metric_utilizations"] = [
            CustomMetricUtilization(
                metric=m.metric,
                filter=wire_value(m, "filter"),
                utilization_target=wire_value(m, "utilization_target"),
                utilization_target_type=wire_value(m, "utilization_target_type"),
                single_instance_assignment=wire_value(m, "single_instance_assignment"),
            )
            for m in wire.custom_metric_utilizations
        ]
        if has_field(wire, "scale_in_control"):
            control = wire.scale_in_control
            replicas = wire_value(control, "max_scaled_in_replicas")
            values["scale_in_control"] = ScaleInControl(
                max_scaled_in_replicas_fixed=wire_value(replicas, "fixed") if replicas is not None else None,
                max_scaled_in_replicas_percent=wire_value(replicas, "percent") if replicas is not None else None,
                time_window_sec=wire_value(control, "time_window_sec"),
            )
        return cls(max_num_replicas=wire.max_num_replicas, **values)

    def to_wire(self) -> compute_v1.AutoscalingPolicy:
        policy = compute_v1.AutoscalingPolicy(max_num_replicas=self.max_num_replicas)
        for attr in ("min_num_replicas", "cool_down_period_sec", "mode"):
            value = getattr(self, attr)
            if value is not None:
                setattr(policy, attr, value)
        if self.cpu_utilization is not None:
            policy.cpu_utilization = compute_v1.AutoscalingPolicyCpuUtilization(
                **self.cpu_utilization.model_dump(exclude_none=True))
        if self.load_balancing_utilization is not None:
            policy.load_balancing_utilization = compute_v1.AutoscalingPolicyLoadBalancingUtilization(
                **self.load_balancing_utilization.model_dump(exclude_none=True))
        policy.custom_metric_utilizations = [
            compute_v1.AutoscalingPolicyCustomMetricUtilization(**m.model_dump(exclude_none=True))
            for m in self.custom_metric_utilizations
        ]
        if self.scale_in_control is not None:
            control = compute_v1.AutoscalingPolicyScaleInControl()
            replicas = compute_v1.FixedOrPercent()
            if self.scale_in_control.max_scaled_in_replicas_fixed is not None:
                replicas.fixed = self.scale_in_control.max_scaled_in_replicas_fixed
            if self.scale_in_control.max_scaled_in_replicas_percent is not None:
                replicas.percent = self.scale_in_control.max_scaled_in_replicas_percent
            control.max_scaled_in_replicas = replicas
            if self.scale_in_control.time_window_sec is not None:
                control.time_window_sec = self.scale_in_control.time_window_sec
            policy.scale_in_control = control
        return policy


class _AutoscalerFields(NamedModel):
    description: Optional[str] = updatable(None)
    autoscaling_policy: AutoscalingPolicy = updatable(...)

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    status: Optional[str] = output()
    recommended_size: Optional[int] = output()
    creation_timestamp: Optional[str] = output()


class AutoscalerModel(_AutoscalerFields):
    zone: Optional[str] = None
    target: InstanceGroupManagerRef = updatable(...)


class RegionAutoscalerModel(_AutoscalerFields):
    region: Optional[str] = None
    target: RegionInstanceGroupManagerRef = updatable(...)


class AutoscalerAdapter(WireAdapter):
    def __init__(self, regional: bool = False):
        self.regional = regional
        self.target_kind = REGION_INSTANCE_GROUP_MANAGER if regional else INSTANCE_GROUP_MANAGER

    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        target = to_reference(wire_value(wire, "target"), self.target_kind)
        if target is not None:
            model.target = target
        if has_field(wire, "autoscaling_policy"):
            model.autoscaling_policy = AutoscalingPolicy.from_wire(wire.autoscaling_policy)
        if self.regional:
            model.region = extract_name(wire_value(wire, "region"))
        else:
            model.zone = extract_name(wire_value(wire, "zone"))
        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.status = wire_value(wire, "status")
        model.recommended_size = wire_value(wire, "recommended_size")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")

    def to_wire(self, model, ctx, changed=None):
        if self.regional:
            location = model.region or ctx.region
        else:
            location = model.zone or ctx.zone
        autoscaler = compute_v1.Autoscaler(name=model.name)
        if wanted("description", changed) and model.description is not None:
            autoscaler.description = model.description
        if wanted("target", changed):
            autoscaler.target = link_for(model.target, ctx.project_id, location)
        if wanted("autoscaling-policy", changed):
            autoscaler.autoscaling_policy = model.autoscaling_policy.to_wire()
        return autoscaler


class AutoscalerApi(ComputeApi):
    """Autoscaler patches name the target through the body, not the path."""

    def patch(self, client, request, name, wire):
        return client.patch_unary(**request, autoscaler_resource=wire)


AUTOSCALER_RULES = (
    Nested(
        "autoscaling-policy",
        NotLessThan("max-num-replicas", "min-num-replicas"),
        Nested("custom-metric-utilizations", ConflictsWith("single-instance-assignment", "utilization-target")),
        Nested("scale-in-control",
               ConflictsWith("max-scaled-in-replicas-fixed", "max-scaled-in-replicas-percent")),
    ),
)


def autoscaler_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-autoscaler",
        model=AutoscalerModel,
        adapter=AutoscalerAdapter(),
        scope=ZonalScope(),
        api=AutoscalerApi("AutoscalersClient", "autoscaler"),
        rules=AUTOSCALER_RULES,
        description="Autoscaler for a zonal managed instance group",
    )


def region_autoscaler_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-region-autoscaler",
        model=RegionAutoscalerModel,
        adapter=AutoscalerAdapter(regional=True),
        scope=RegionalScope(),
        api=AutoscalerApi("RegionAutoscalersClient", "autoscaler"),
        rules=AUTOSCALER_RULES,
        description="Autoscaler for a regional managed instance group",
    )
