"""Tests for cirrus.services.changeset: patches, member sync and field diffs."""

from __future__ import annotations

import pytest

from cirrus.errors import ValidationError
from cirrus.providers.gcp.backend_service import BackendServiceModel
from cirrus.providers.gcp.disk import DiskModel
from cirrus.providers.gcp.firewall import FirewallModel, firewall_kind
from cirrus.services.changeset import (
    CannotUnset,
    MemberChanges,
    NonDecreasing,
    apply_member_changes,
    diff_fields,
    member_changes,
)


def _firewall(**fields):
    base = {"name": "fw", "rule-type": "ALLOW", "allowed": [{"protocol": "tcp", "ports": ["22"]}],
            "source-ranges": ["0.0.0.0/0"]}
    base.update(fields)
    return FirewallModel.model_validate(base)


class TestRules:
    def test_non_decreasing(self):
        rule = NonDecreasing("size-gb", "Size of the disk")
        current = DiskModel(name="data", size_gb=100)
        assert rule(DiskModel(name="data", size_gb=200), current) == []
        assert rule(DiskModel(name="data", size_gb=50)) == []
        errors = rule(DiskModel(name="data", size_gb=50), current)
        assert "Current size-gb: 100" in errors[0].message

    def test_cannot_unset(self):
        rule = CannotUnset("cdn-policy")
        current = BackendServiceModel(name="svc", cdn_policy={"cache-mode": "CACHE_ALL_STATIC"})
        assert rule(BackendServiceModel(name="svc"), None) == []
        assert rule(BackendServiceModel(name="svc"), current)[0].field == "cdn-policy"


class TestCalculator:
    def test_disjoint_change_set_builds_nothing(self, ctx):
        kind = firewall_kind()
        patch = kind.calculator.build_patch(kind.adapter, _firewall(), ctx, {"network", "direction", "name"})
        assert patch is None

    def test_patch_holds_only_changed_fields(self, ctx):
        kind = firewall_kind()
        patch = kind.calculator.build_patch(kind.adapter, _firewall(priority=900), ctx, {"priority"})
        assert patch.name == "fw"
        assert patch.priority == 900
        assert "allowed" not in patch
        assert "network" not in patch
        assert "source_ranges" not in patch

    def test_list_fields_are_sent_whole(self, ctx):
        kind = firewall_kind()
        model = _firewall(**{"source-ranges": ["10.0.0.0/8"]})
        patch = kind.calculator.build_patch(kind.adapter, model, ctx, {"source-ranges"})
        assert list(patch.source_ranges) == ["10.0.0.0/8"]

    def test_change_rules_checked_before_patch(self, ctx):
        kind = firewall_kind()
        calc = type(kind.calculator)(kind.patchable_fields, (NonDecreasing("priority"),))
        with pytest.raises(ValidationError, match="priority"):
            calc.build_patch(kind.adapter, _firewall(priority=10), ctx, {"priority"}, current=_firewall())

    def test_change_rules_only_for_changed_fields(self, ctx):
        kind = firewall_kind()
        calc = type(kind.calculator)(kind.patchable_fields, (NonDecreasing("priority"),))
        patch = calc.build_patch(kind.adapter, _firewall(priority=10, disabled=True), ctx, {"disabled"},
                                 current=_firewall())
        assert patch.disabled is True


class TestMemberChanges:
    def test_symmetric_difference_keeps_order(self):
        changes = member_changes(["a", "b", "c"], ["c", "d", "a", "e"])
        assert changes.add == ["d", "e"]
        assert changes.remove == ["b"]

    def test_empty(self):
        assert not member_changes(None, [])
        assert not member_changes(["a"], ["a"])

    def test_remove_runs_first_by_default(self):
        calls = []
        apply_member_changes(
            MemberChanges(add=["new"], remove=["old"]),
            add=lambda items: calls.append(("add", items)),
            remove=lambda items: calls.append(("remove", items)),
        )
        assert calls == [("remove", ["old"]), ("add", ["new"])]

    def test_add_first(self):
        calls = []
        apply_member_changes(
            MemberChanges(add=["new"], remove=["old"]),
            add=lambda items: calls.append("add"),
            remove=lambda items: calls.append("remove"),
            add_first=True,
        )
        assert calls == ["add", "remove"]

    def test_nothing_to_do_calls_nothing(self):
        calls = []
        apply_member_changes(MemberChanges(add=["x"]), add=calls.append, remove=calls.append)
        assert calls == [["x"]]


def test_diff_fields_ignores_outputs():
    current = _firewall()
    current.self_link = "https://example.invalid/fw"
    desired = _firewall(priority=900)
    assert diff_fields(current, desired) == {"priority"}


def test_diff_fields_matches_names_to_self_links():
    current = BackendServiceModel(
        name="svc", health_checks=["https://www.googleapis.com/compute/v1/projects/p/global/healthChecks/hc"])
    assert diff_fields(current, BackendServiceModel(name="svc", health_checks=["hc"])) == set()
    assert diff_fields(current, BackendServiceModel(name="svc", health_checks=["other"])) == {"health-checks"}
