"""Tests for cirrus.services.references: self-links and typed handles."""

from __future__ import annotations

import pytest

from cirrus.services.references import (
    BACKEND_BUCKET,
    BACKEND_SERVICE,
    DISK,
    IMAGE,
    NETWORK,
    REGION_BACKEND_SERVICE,
    REGION_DISK,
    SUBNETWORK,
    ResourceRef,
    coerce_reference,
    expand_link,
    extract_name,
    link_for,
    region_of_zone,
    to_reference,
    to_self_link,
)

BASE = "https://www.googleapis.com/compute/v1/projects/p1"


@pytest.mark.parametrize("ref", [
    ResourceRef(NETWORK, "default", project="p1"),
    ResourceRef(BACKEND_BUCKET, "static", project="p1"),
    ResourceRef(DISK, "data", project="p1", location="us-central1-a"),
    ResourceRef(REGION_DISK, "data", project="p1", location="us-central1"),
    ResourceRef(SUBNETWORK, "apps", project="other", location="europe-west1"),
])
def test_self_link_resolves_back_to_same_handle(ref):
    assert to_reference(to_self_link(ref), ref.kind) == ref


def test_self_link_shapes():
    assert to_self_link(ResourceRef(NETWORK, "default", project="p1")) == f"{BASE}/global/networks/default"
    assert (to_self_link(ResourceRef(DISK, "data", project="p1", location="us-east1-b"))
            == f"{BASE}/zones/us-east1-b/disks/data")
    assert (to_self_link(ResourceRef(REGION_BACKEND_SERVICE, "api", project="p1", location="us-east1"))
            == f"{BASE}/regions/us-east1/backendServices/api")


def test_wrong_kind_resolves_to_none():
    bucket = f"{BASE}/global/backendBuckets/static"
    assert to_reference(bucket, BACKEND_SERVICE) is None
    assert to_reference(bucket, BACKEND_BUCKET).name == "static"


def test_scope_mismatch_resolves_to_none():
    zonal = f"{BASE}/zones/us-central1-a/disks/data"
    regional = f"{BASE}/regions/us-central1/disks/data"
    assert to_reference(zonal, REGION_DISK) is None
    assert to_reference(regional, DISK) is None
    assert to_reference(regional, REGION_DISK).location == "us-central1"


def test_global_and_regional_services_are_distinct():
    link = f"{BASE}/regions/us-central1/backendServices/api"
    assert to_reference(link, BACKEND_SERVICE) is None
    assert to_reference(link, REGION_BACKEND_SERVICE).name == "api"


def test_empty_and_garbage_resolve_to_none():
    assert to_reference(None, NETWORK) is None
    assert to_reference("", NETWORK) is None
    assert to_reference("not a link", NETWORK) is None


def test_partial_path_is_accepted():
    ref = to_reference("projects/p1/global/networks/vpc", NETWORK)
    assert ref == ResourceRef(NETWORK, "vpc", project="p1")


def test_coerce_bare_name_and_link():
    bare = coerce_reference("default", NETWORK)
    assert bare.name == "default"
    assert not bare.is_qualified
    assert str(bare) == "default"

    linked = coerce_reference(f"{BASE}/global/networks/vpc", NETWORK)
    assert linked.is_qualified
    assert str(linked) == f"{BASE}/global/networks/vpc"


def test_coerce_rejects_link_of_other_kind():
    with pytest.raises(ValueError, match="is not a link to"):
        coerce_reference(f"{BASE}/global/backendBuckets/static", NETWORK)


def test_link_for_qualifies_bare_names():
    ref = ResourceRef(DISK, "data")
    assert link_for(ref, "p1", "us-central1-a") == f"{BASE}/zones/us-central1-a/disks/data"
    assert link_for(None, "p1") is None
    # an explicit project wins over the context
    other = ResourceRef(NETWORK, "vpc", project="shared")
    assert link_for(other, "p1").endswith("/projects/shared/global/networks/vpc")


def test_unqualified_handle_has_no_self_link():
    with pytest.raises(ValueError, match="no project"):
        to_self_link(ResourceRef(NETWORK, "vpc"))
    with pytest.raises(ValueError, match="no location"):
        to_self_link(ResourceRef(DISK, "data", project="p1"))


def test_expand_link_forms():
    full = f"{BASE}/global/images/debian"
    assert expand_link(full, IMAGE, "p1") == full
    assert expand_link("projects/p1/global/images/debian", IMAGE, "p2") == full
    assert expand_link("global/images/debian", IMAGE, "p1") == full
    assert expand_link("debian", IMAGE, "p1") == full
    assert (expand_link("projects/debian-cloud/global/images/family/debian-12", IMAGE, "p1")
            == "https://www.googleapis.com/compute/v1/projects/debian-cloud/global/images/family/debian-12")
    assert expand_link("global/images/family/debian-12", IMAGE, "p1") == f"{BASE}/global/images/family/debian-12"


def test_extract_name_and_region_of_zone():
    assert extract_name(f"{BASE}/zones/us-central1-a") == "us-central1-a"
    assert extract_name("") is None
    assert region_of_zone("us-central1-a") == "us-central1"
    assert region_of_zone("") == ""
