"""Backend buckets: Cloud Storage buckets behind a load balancer."""

from __future__ import annotations

from typing import Literal, Optional

from google.cloud import compute_v1

from ...services.changeset import CannotUnset
from ..base import NamedModel, ResourceKind, WireAdapter, output, updatable, wanted, wire_value
from .scope import ComputeApi, GlobalScope
from .shared import (
    CdnPolicy,
    SignedUrlKey,
    add_signed_url_keys_step,
    copy_signed_url_keys,
    headers_from_wire,
    headers_to_wire,
    sync_signed_url_keys_step,
)


class BackendBucketModel(NamedModel):
    description: Optional[str] = updatable(None)
    bucket_name: str = updatable(...)
    enable_cdn: Optional[bool] = updatable(None)
    cdn_policy: Optional[CdnPolicy] = updatable(None)
    compression_mode: Optional[Literal["AUTOMATIC", "DISABLED"]] = updatable(None)
    custom_response_headers: dict[str, str] = updatable(default_factory=dict)
    signed_url_keys: list[SignedUrlKey] = updatable(default_factory=list)

    self_link: Optional[str] = output()
    id: Optional[int] = output()
    creation_timestamp: Optional[str] = output()


class BackendBucketAdapter(WireAdapter):
    def copy_from(self, model, wire):
        model.name = wire.name
        model.description = wire_value(wire, "description")
        model.bucket_name = wire.bucket_name
        model.enable_cdn = wire_value(wire, "enable_cdn")
        policy = wire_value(wire, "cdn_policy")
        model.cdn_policy = CdnPolicy.from_wire(policy) if policy is not None else None
        model.compression_mode = wire_value(wire, "compression_mode")
        model.custom_response_headers = headers_from_wire(wire.custom_response_headers)
        model.signed_url_keys = copy_signed_url_keys(model.signed_url_keys or [], policy)
        model.self_link = wire_value(wire, "self_link")
        model.id = wire_value(wire, "id")
        model.creation_timestamp = wire_value(wire, "creation_timestamp")

    def to_wire(self, model, ctx, changed=None):
        bucket = compute_v1.BackendBucket(name=model.name)
        if wanted("description", changed) and model.description is not None:
            bucket.description = model.description
        if wanted("bucket-name", changed):
            bucket.bucket_name = model.bucket_name
        if wanted("enable-cdn", changed) and model.enable_cdn is not None:
            bucket.enable_cdn = model.enable_cdn
        if wanted("cdn-policy", changed) and model.cdn_policy is not None:
            bucket.cdn_policy = model.cdn_policy.to_wire(compute_v1.BackendBucketCdnPolicy)
        if wanted("compression-mode", changed) and model.compression_mode is not None:
            bucket.compression_mode = model.compression_mode
        if wanted("custom-response-headers", changed):
            bucket.custom_response_headers = headers_to_wire(model.custom_response_headers)
        return bucket


def backend_bucket_kind() -> ResourceKind:
    return ResourceKind(
        name="compute-backend-bucket",
        model=BackendBucketModel,
        adapter=BackendBucketAdapter(),
        scope=GlobalScope(),
        api=ComputeApi("BackendBucketsClient", "backend_bucket"),
        change_rules=(CannotUnset("cdn-policy"),),
        post_create=(add_signed_url_keys_step(),),
        update_steps=(sync_signed_url_keys_step(),),
        description="Cloud Storage bucket served through a load balancer",
    )
