"""Tests for backend buckets."""

from __future__ import annotations

from google.cloud import compute_v1

from cirrus.providers.base import DeclaredResource, LifecycleState
from cirrus.providers.gcp.backend_bucket import BackendBucketAdapter, BackendBucketModel, backend_bucket_kind

from conftest import call_names, done_op


def _model(**fields) -> BackendBucketModel:
    values = {"name": "static", "bucket-name": "static-assets", "enable-cdn": True}
    values.update(fields)
    return BackendBucketModel.model_validate(values)


def test_cdn_policy_to_wire(ctx):
    model = _model(**{"cdn-policy": {"cache-mode": "CACHE_ALL_STATIC", "default-ttl": 3600}})
    wire = BackendBucketAdapter().to_wire(model, ctx)
    assert wire.cdn_policy.cache_mode == "CACHE_ALL_STATIC"
    assert wire.cdn_policy.default_ttl == 3600
    assert "max_ttl" not in wire.cdn_policy
    assert wire.enable_cdn is True


def test_response_headers_are_replaced(controller, clients):
    client = clients["BackendBucketsClient"]
    client.patch_unary.return_value = done_op()
    client.get.return_value = compute_v1.BackendBucket(
        name="static", bucket_name="static-assets", enable_cdn=True,
        custom_response_headers=["Cache-Status: {cdn_cache_status}"])
    current = _model(**{"custom-response-headers": {"X-Old": "1"}})
    resource = DeclaredResource(
        "compute-backend-bucket",
        _model(**{"custom-response-headers": {"Cache-Status": "{cdn_cache_status}"}}),
        state=LifecycleState.PRESENT,
    )

    controller(backend_bucket_kind()).update(resource, current, {"custom-response-headers"})

    assert call_names(client) == ["patch_unary", "get"]
    body = client.patch_unary.call_args.kwargs["backend_bucket_resource"]
    assert list(body.custom_response_headers) == ["Cache-Status: {cdn_cache_status}"]
    assert "bucket_name" not in body
    assert resource.model.custom_response_headers == {"Cache-Status": "{cdn_cache_status}"}


def test_removed_key_is_deleted(controller, clients):
    client = clients["BackendBucketsClient"]
    client.delete_signed_url_key_unary.return_value = done_op()
    client.get.return_value = compute_v1.BackendBucket(name="static", bucket_name="static-assets")
    current = _model(**{"signed-url-keys": [{"key-name": "k1", "key-value": "v1"}]})
    resource = DeclaredResource("compute-backend-bucket", _model(), state=LifecycleState.PRESENT)

    controller(backend_bucket_kind()).update(resource, current, {"signed-url-keys"})

    assert call_names(client) == ["delete_signed_url_key_unary", "get"]
    assert client.delete_signed_url_key_unary.call_args.kwargs["backend_bucket"] == "static"
    assert resource.model.signed_url_keys == []
