# apirule.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from errors import ConfigError

GROUP = "gateway.kyma-project.io"
VERSION = "v1beta1"
PLURAL = "apirules"

# Objects generated for an APIRule carry both keys; the v1alpha1 one is kept
# so objects created by older controllers are still found.
OWNER_LABEL = f"apirule.{GROUP}/{VERSION}"
OWNER_LABEL_V1ALPHA1 = f"apirule.{GROUP}/v1alpha1"

ALLOW = "allow"
NOOP = "noop"
JWT = "jwt"
OAUTH2_INTROSPECTION = "oauth2_introspection"

WILDCARD_PATH = "/*"


@dataclass(frozen=True)
class Service:
    name: str
    port: int
    namespace: Optional[str] = None


@dataclass(frozen=True)
class Handler:
    """An access strategy or mutator: handler name plus its raw config."""

    name: str
    config: Any = None


@dataclass(frozen=True)
class Rule:
    path: str
    methods: Tuple[str, ...] = ()
    access_strategies: Tuple[Handler, ...] = ()
    service: Optional[Service] = None
    mutators: Tuple[Handler, ...] = ()


@dataclass(frozen=True)
class APIRule:
    name: str
    namespace: str
    host: Optional[str]
    gateway: Optional[str]
    service: Optional[Service] = None
    rules: Tuple[Rule, ...] = field(default_factory=tuple)


# ─────────────────────────────────────────────
# Parsing from the custom resource body
# ─────────────────────────────────────────────
def _parse_service(raw: Optional[dict], where: str) -> Optional[Service]:
    if not raw:
        return None
    name = raw.get("name")
    port = raw.get("port")
    if not name or port is None:
        raise ConfigError(f"{where}: service needs both name and port")
    try:
        port = int(port)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}: service port {port!r} is not a number") from e
    return Service(name=str(name), port=port, namespace=raw.get("namespace") or None)


def _parse_handlers(raw: Optional[list], where: str) -> Tuple[Handler, ...]:
    out: List[Handler] = []
    for item in raw or []:
        # Accept both {"handler": "jwt", "config": {...}} and the bare "jwt" shorthand.
        if isinstance(item, str):
            out.append(Handler(name=item))
        elif not isinstance(item, dict):
            raise ConfigError(f"{where}: expected a handler name or object, got {item!r}")
        else:
            out.append(Handler(name=str(item.get("handler", "")), config=item.get("config")))
    return tuple(out)


def parse_apirule(obj: dict) -> APIRule:
    """Turn an APIRule custom resource (as returned by the API) into an APIRule."""
    meta = (obj or {}).get("metadata", {}) or {}
    spec = (obj or {}).get("spec", {}) or {}
    name = meta.get("name", "")
    namespace = meta.get("namespace", "")
    where = f"apirule {name}.{namespace}"

    rules: List[Rule] = []
    for i, r in enumerate(spec.get("rules", []) or []):
        rules.append(
            Rule(
                path=str(r.get("path", "")),
                methods=tuple(r.get("methods", []) or []),
                access_strategies=_parse_handlers(r.get("accessStrategies"), f"{where} rule[{i}] accessStrategies"),
                service=_parse_service(r.get("service"), f"{where} rule[{i}]"),
                mutators=_parse_handlers(r.get("mutators"), f"{where} rule[{i}] mutators"),
            )
        )

    return APIRule(
        name=name,
        namespace=namespace,
        host=spec.get("host"),
        gateway=spec.get("gateway"),
        service=_parse_service(spec.get("service"), where),
        rules=tuple(rules),
    )


# ─────────────────────────────────────────────
# Classification and lookup helpers
# ─────────────────────────────────────────────
def owner_label_value(api: APIRule) -> str:
    return f"{api.name}.{api.namespace}"


def owner_labels(api: APIRule) -> Dict[str, str]:
    value = owner_label_value(api)
    return {OWNER_LABEL: value, OWNER_LABEL_V1ALPHA1: value}


def filter_duplicate_paths(rules: Tuple[Rule, ...]) -> List[Rule]:
    """Keep the first rule for every path, preserving order."""
    seen = set()
    out: List[Rule] = []
    for rule in rules:
        if rule.path in seen:
            continue
        seen.add(rule.path)
        out.append(rule)
    return out


def is_secured(rule: Rule) -> bool:
    if rule.mutators:
        return True
    return any(s.name != ALLOW for s in rule.access_strategies)


def is_jwt_secured(rule: Rule) -> bool:
    return any(s.name == JWT for s in rule.access_strategies)


def host_with_domain(host: str, default_domain: str) -> str:
    # A host with a dot is treated as fully qualified already.
    if "." in host or not default_domain:
        return host
    return f"{host}.{default_domain}"


def host_local_domain(service_name: str, namespace: str) -> str:
    return f"{service_name}.{namespace}.svc.cluster.local"


def find_service_namespace(api: APIRule, rule: Rule) -> str:
    if rule.service is not None and rule.service.namespace:
        return rule.service.namespace
    if api.service is not None and api.service.namespace:
        return api.service.namespace
    return api.namespace
