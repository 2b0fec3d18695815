"""Tests for SQL-backed state checkpoints."""

from __future__ import annotations

import pytest

from cirrus.models.state import ResourceState
from cirrus.providers.base import DeclaredResource, LifecycleState
from cirrus.services.registry import default_registry
from cirrus.services.state_store import SqlStateStore


@pytest.fixture
def store(session):
    return SqlStateStore(session, default_registry())


def _disk(name: str = "data", size: int = 10, state=LifecycleState.PRESENT) -> DeclaredResource:
    reg = default_registry()
    resource = reg.declare("compute-disk", {"name": name, "size-gb": size, "labels": {"env": "dev"}})
    resource.state = state
    resource.location = "us-central1-a"
    return resource


def test_save_and_load_round_trip(store):
    resource = _disk()
    resource.model.self_link = "https://www.googleapis.com/compute/v1/projects/p/zones/us-central1-a/disks/data"
    store.save(resource)

    loaded = store.load("compute-disk", "data")
    assert loaded.state is LifecycleState.PRESENT
    assert loaded.location == "us-central1-a"
    assert loaded.model.size_gb == 10
    assert loaded.model.labels == {"env": "dev"}
    # output fields come back too, so later diffs can carry them
    assert loaded.model.self_link == resource.model.self_link


def test_save_overwrites_the_checkpoint(store, session):
    store.save(_disk(state=LifecycleState.CREATING))
    store.save(_disk(size=20))

    assert session.query(ResourceState).count() == 1
    loaded = store.load("compute-disk", "data")
    assert loaded.state is LifecycleState.PRESENT
    assert loaded.model.size_gb == 20


def test_global_resources_have_no_location(store):
    resource = default_registry().declare("compute-firewall-rule", {
        "name": "fw", "rule-type": "ALLOW", "allowed": [{"protocol": "tcp"}], "source-ranges": ["0.0.0.0/0"],
    })
    store.save(resource)
    assert store.load("compute-firewall-rule", "fw").location == ""


def test_remove(store):
    store.save(_disk())
    store.remove("compute-disk", "data")
    store.remove("compute-disk", "data")
    assert store.load("compute-disk", "data") is None


def test_list_is_ordered_and_filtered(store):
    store.save(_disk("b"))
    store.save(_disk("a"))
    store.save(default_registry().declare("compute-image", {"name": "img", "source-disk": "a"}))

    assert [(r.kind, r.name) for r in store.list()] == [
        ("compute-disk", "a"), ("compute-disk", "b"), ("compute-image", "img"),
    ]
    assert [r.name for r in store.list("compute-image")] == ["img"]


def test_record_and_actions(store):
    store.record("compute-disk", "data", "create", "success")
    store.record("compute-disk", "data", "update", "failed", {"error": "boom"})
    store.record("compute-disk", "other", "delete", "success")

    actions = {a.action_type: a for a in store.actions("compute-disk", "data")}
    assert set(actions) == {"create", "update"}
    assert actions["update"].status == "failed"
    assert actions["update"].details == {"error": "boom"}
    assert actions["create"].initiated_by == "cli"
    assert len(store.actions()) == 3
