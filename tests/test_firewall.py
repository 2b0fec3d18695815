"""Tests for firewall rules."""

from __future__ import annotations

from google.cloud import compute_v1

from cirrus.providers.gcp.firewall import FirewallAdapter, FirewallModel, firewall_kind

from conftest import BASE


def _model(**fields) -> FirewallModel:
    values = {"name": "fw", "rule-type": "ALLOW", "allowed": [{"protocol": "tcp", "ports": ["80", "8000-8080"]}],
              "source-ranges": ["0.0.0.0/0"]}
    values.update(fields)
    return FirewallModel.model_validate(values)


def _messages(controller, model) -> list[str]:
    return [e.message for e in controller(firewall_kind()).validate(model)]


def test_allow_rule_needs_allowed_list(controller):
    model = FirewallModel.model_validate({"name": "fw", "rule-type": "ALLOW", "source-ranges": ["10.0.0.0/8"]})
    assert _messages(controller, model) == ["'allowed' needs to be set when 'rule-type' set to 'ALLOW'."]


def test_deny_rule_cannot_carry_allowed(controller):
    model = _model(**{"rule-type": "DENY", "denied": [{"protocol": "all"}]})
    assert _messages(controller, model) == ["'allowed' cannot be set when 'rule-type' set to 'DENY'"]


def test_ingress_needs_a_source(controller):
    model = _model(**{"source-ranges": []})
    assert _messages(controller, model) == [
        "At least one of 'source-ranges', 'source-tags', or 'source-service-accounts' "
        "is required when 'direction' set to 'INGRESS'"
    ]


def test_egress_rejects_sources(controller):
    model = _model(direction="EGRESS", **{"destination-ranges": ["10.0.0.0/8"]})
    assert _messages(controller, model) == ["'source-ranges' cannot be set when 'direction' set to 'EGRESS'"]


def test_ports_need_tcp_or_udp(controller):
    model = _model(allowed=[{"protocol": "icmp", "ports": ["1"]}])
    assert _messages(controller, model) == [
        "'ports' can only be set when 'protocol' is set to either 'tcp' or 'udp'"
    ]


def test_port_ranges_are_checked(controller):
    model = _model(allowed=[{"protocol": "tcp", "ports": ["90-80", "http", "70000"]}])
    messages = _messages(controller, model)
    assert messages == [
        "invalid entry 90-80. Must be an integer or a valid range",
        "invalid entry http. Must be an integer or a valid range",
        "invalid entry 70000. Must be an integer or a valid range",
    ]


def test_valid_rule(controller):
    assert _messages(controller, _model()) == []


def test_copy_from_infers_rule_type():
    model = FirewallModel.model_construct()
    FirewallAdapter().copy_from(model, compute_v1.Firewall(
        name="deny-all",
        network=f"{BASE}/global/networks/vpc",
        denied=[compute_v1.Denied(I_p_protocol="all")],
        direction="EGRESS",
        priority=65534,
        destination_ranges=["0.0.0.0/0"],
        log_config=compute_v1.FirewallLogConfig(enable=True),
    ))
    assert model.rule_type == "DENY"
    assert model.allowed == []
    assert model.denied[0].protocol == "all"
    assert model.network.name == "vpc"
    assert model.direction == "EGRESS"
    assert model.enable_logging is True
    assert model.destination_ranges == ["0.0.0.0/0"]


def test_to_wire_defaults_network(ctx):
    wire = FirewallAdapter().to_wire(_model(), ctx)
    assert wire.network == f"{BASE}/global/networks/default"
    assert wire.allowed[0].I_p_protocol == "tcp"
    assert list(wire.allowed[0].ports) == ["80", "8000-8080"]
    assert wire.priority == 1000
    assert "log_config" not in wire
