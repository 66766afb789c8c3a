from __future__ import annotations

import pytest

from apirule import OWNER_LABEL, OWNER_LABEL_V1ALPHA1, parse_apirule
from config import CorsConfig, ReconciliationConfig
from errors import ConfigError
from virtualservice.creators import IstioVirtualServiceCreator, OryVirtualServiceCreator, new_creator

PROXY = "oathkeeper.kyma-system.svc.cluster.local"


def _cfg(**kw) -> ReconciliationConfig:
    base = dict(
        default_domain_name="example.com",
        oathkeeper_svc=PROXY,
        oathkeeper_svc_port=4455,
        http_timeout=180,
        additional_labels={"team": "gw"},
    )
    base.update(kw)
    return ReconciliationConfig(**base)


def _rule(path: str, *handlers, service=None, mutators=None) -> dict:
    r = {"path": path, "methods": ["GET"], "accessStrategies": [{"handler": h} for h in handlers]}
    if service:
        r["service"] = service
    if mutators:
        r["mutators"] = mutators
    return r


def _apirule(rules, host="foo", service=None) -> dict:
    return {
        "apiVersion": "gateway.kyma-project.io/v1beta1",
        "kind": "APIRule",
        "metadata": {"name": "orders", "namespace": "ns"},
        "spec": {
            "host": host,
            "gateway": "kyma-system/kyma-gateway",
            "service": service if service is not None else {"name": "svc", "port": 80},
            "rules": rules,
        },
    }


def _create(rules, cfg=None, **kw) -> dict:
    return IstioVirtualServiceCreator(cfg or _cfg()).create(parse_apirule(_apirule(rules, **kw)))


def _dst(route: dict) -> tuple:
    d = route["route"][0]["destination"]
    return d["host"], d["port"]["number"]


def test_wildcard_allow_rule_routes_to_service_with_prefix_match() -> None:
    vs = _create([_rule("/*", "allow")], host="foo.example")

    assert vs["spec"]["hosts"] == ["foo.example"]
    assert vs["spec"]["gateways"] == ["kyma-system/kyma-gateway"]
    http = vs["spec"]["http"]
    assert len(http) == 1
    assert http[0]["match"] == [{"uri": {"prefix": "/"}}]
    assert _dst(http[0]) == ("svc.ns.svc.cluster.local", 80)


def test_introspection_rule_routes_to_proxy_with_regex_match() -> None:
    vs = _create([_rule("/orders", "oauth2_introspection")])

    route = vs["spec"]["http"][0]
    assert route["match"] == [{"uri": {"regex": "/orders"}}]
    assert _dst(route) == (PROXY, 4455)


def test_duplicate_paths_keep_first_rule_only() -> None:
    vs = _create([_rule("/a", "allow"), _rule("/a", "noop"), _rule("/b", "noop")])

    http = vs["spec"]["http"]
    assert [r["match"][0]["uri"]["regex"] for r in http] == ["/a", "/b"]
    assert _dst(http[0]) == ("svc.ns.svc.cluster.local", 80)
    assert _dst(http[1]) == (PROXY, 4455)


def test_routing_target_per_access_strategy() -> None:
    rules = [
        _rule("/open"),
        _rule("/allow", "allow"),
        _rule("/jwt", "jwt"),
        _rule("/noop", "noop"),
        _rule("/introspect", "oauth2_introspection"),
        _rule("/mixed", "allow", "noop"),
    ]
    vs = _create(rules)

    targets = [_dst(r)[0] for r in vs["spec"]["http"]]
    svc = "svc.ns.svc.cluster.local"
    assert targets == [svc, svc, svc, PROXY, PROXY, PROXY]


def test_rule_service_overrides_default_service() -> None:
    rules = [
        _rule("/a", "jwt", service={"name": "other", "port": 8080}),
        _rule("/b", "allow", service={"name": "remote", "port": 9090, "namespace": "backend"}),
    ]
    vs = _create(rules)

    http = vs["spec"]["http"]
    assert _dst(http[0]) == ("other.ns.svc.cluster.local", 8080)
    assert _dst(http[1]) == ("remote.backend.svc.cluster.local", 9090)


def test_default_service_namespace_is_used_when_set() -> None:
    vs = _create([_rule("/*", "allow")], service={"name": "svc", "port": 80, "namespace": "shared"})
    assert _dst(vs["spec"]["http"][0]) == ("svc.shared.svc.cluster.local", 80)


def test_regex_path_is_not_escaped() -> None:
    vs = _create([_rule("/img/.*\\.png", "allow"), _rule("/a+b", "allow")])
    regexes = [r["match"][0]["uri"]["regex"] for r in vs["spec"]["http"]]
    assert regexes == ["/img/.*\\.png", "/a+b"]


def test_cors_and_timeout_are_uniform() -> None:
    cors = CorsConfig(allow_origins=({"exact": "https://a.example"},), allow_methods=("GET",), allow_headers=("X-Foo",))
    vs = _create([_rule("/a", "allow"), _rule("/b", "noop"), _rule("/c", "jwt")], cfg=_cfg(cors=cors, http_timeout=30))

    for r in vs["spec"]["http"]:
        assert r["corsPolicy"] == {
            "allowOrigins": [{"exact": "https://a.example"}],
            "allowMethods": ["GET"],
            "allowHeaders": ["X-Foo"],
        }
        assert r["timeout"] == "30s"


def test_host_header_uses_domain_resolved_host() -> None:
    vs = _create([_rule("/*", "noop")], host="foo")

    assert vs["spec"]["hosts"] == ["foo.example.com"]
    assert vs["spec"]["http"][0]["headers"] == {"request": {"set": {"x-forwarded-host": "foo.example.com"}}}


def test_jwt_rule_gets_cookie_and_header_mutations() -> None:
    mutators = [
        {"handler": "cookie", "config": {"cookies": {"b": "2", "a": "1"}}},
        {"handler": "header", "config": {"headers": {"X-Tenant": "t1"}}},
    ]
    vs = _create([_rule("/jwt", "jwt", mutators=mutators)])

    assert vs["spec"]["http"][0]["headers"]["request"]["set"] == {
        "x-forwarded-host": "foo.example.com",
        "Cookie": "a=1; b=2",
        "X-Tenant": "t1",
    }


def test_jwt_rule_without_mutators_only_sets_host_header() -> None:
    empty = [{"handler": "cookie", "config": {"cookies": {}}}]
    vs = _create([_rule("/jwt", "jwt"), _rule("/jwt2", "jwt", mutators=empty)])

    for r in vs["spec"]["http"]:
        assert r["headers"]["request"]["set"] == {"x-forwarded-host": "foo.example.com"}


def test_non_jwt_rule_never_gets_mutations() -> None:
    mutators = [{"handler": "header", "config": {"headers": {"X-Tenant": "t1"}}}]
    vs = _create([_rule("/noop", "noop", mutators=mutators)])

    assert vs["spec"]["http"][0]["headers"]["request"]["set"] == {"x-forwarded-host": "foo.example.com"}


def test_malformed_mutator_aborts_create() -> None:
    bad = [{"handler": "cookie", "config": "{not json"}]
    with pytest.raises(ConfigError):
        _create([_rule("/ok", "allow"), _rule("/jwt", "jwt", mutators=bad)])

    bad = [{"handler": "header", "config": {"headers": ["X-Tenant"]}}]
    with pytest.raises(ConfigError):
        _create([_rule("/jwt", "jwt", mutators=bad)])


def test_mutator_config_may_be_json_string() -> None:
    mutators = [{"handler": "header", "config": '{"headers": {"X-A": "1"}}'}]
    vs = _create([_rule("/jwt", "jwt", mutators=mutators)])
    assert vs["spec"]["http"][0]["headers"]["request"]["set"]["X-A"] == "1"


def test_metadata_has_generate_name_and_owner_labels() -> None:
    vs = _create([_rule("/*", "allow")])

    meta = vs["metadata"]
    assert meta.get("name", "") == ""
    assert meta["generateName"] == "orders-"
    assert meta["namespace"] == "ns"
    assert meta["labels"] == {
        OWNER_LABEL: "orders.ns",
        OWNER_LABEL_V1ALPHA1: "orders.ns",
        "team": "gw",
    }


def test_route_count_matches_filtered_rules() -> None:
    rules = [_rule(p, "allow") for p in ["/a", "/b", "/a", "/*", "/b", "/c"]]
    vs = _create(rules)
    assert len(vs["spec"]["http"]) == 4


def test_create_is_deterministic() -> None:
    mutators = [{"handler": "cookie", "config": {"cookies": {"z": "1", "y": "2", "x": "3"}}}]
    rules = [_rule("/*", "allow"), _rule("/jwt", "jwt", mutators=mutators)]
    creator = IstioVirtualServiceCreator(_cfg())
    api = parse_apirule(_apirule(rules))

    assert creator.create(api) == creator.create(api)


def test_missing_service_is_a_config_error() -> None:
    obj = _apirule([_rule("/*", "allow")])
    del obj["spec"]["service"]
    with pytest.raises(ConfigError):
        IstioVirtualServiceCreator(_cfg()).create(parse_apirule(obj))


def test_missing_host_is_a_config_error() -> None:
    obj = _apirule([_rule("/*", "allow")])
    del obj["spec"]["host"]
    with pytest.raises(ConfigError):
        IstioVirtualServiceCreator(_cfg()).create(parse_apirule(obj))


def test_ory_handler_sends_jwt_through_proxy_without_mutations() -> None:
    mutators = [{"handler": "header", "config": {"headers": {"X-Tenant": "t1"}}}]
    api = parse_apirule(_apirule([_rule("/open", "allow"), _rule("/jwt", "jwt", mutators=mutators)]))
    vs = OryVirtualServiceCreator(_cfg()).create(api)

    http = vs["spec"]["http"]
    assert _dst(http[0]) == ("svc.ns.svc.cluster.local", 80)
    assert _dst(http[1]) == (PROXY, 4455)
    assert http[1]["headers"]["request"]["set"] == {"x-forwarded-host": "foo.example.com"}


def test_new_creator_selects_by_jwt_handler() -> None:
    assert isinstance(new_creator(_cfg()), IstioVirtualServiceCreator)
    assert isinstance(new_creator(_cfg(jwt_handler="ory")), OryVirtualServiceCreator)
    with pytest.raises(ConfigError):
        new_creator(_cfg(jwt_handler="linkerd"))
