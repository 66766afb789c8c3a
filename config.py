# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Literal, Mapping, Optional, Tuple

from errors import ConfigError

JwtHandler = Literal["istio", "ory"]

DEFAULT_CORS_ALLOW_ORIGINS = "regex:.*"
DEFAULT_CORS_ALLOW_METHODS = "GET,POST,PUT,DELETE,PATCH"
DEFAULT_CORS_ALLOW_HEADERS = "Authorization,Content-Type,*"
DEFAULT_OATHKEEPER_SVC = "ory-oathkeeper-proxy.kyma-system.svc.cluster.local"
DEFAULT_OATHKEEPER_SVC_PORT = 4455
DEFAULT_HTTP_TIMEOUT_SECONDS = 180

_STRING_MATCH_TYPES = ("regex", "exact", "prefix")


@dataclass(frozen=True)
class CorsConfig:
    # allow_origins holds Istio StringMatch entries, e.g. {"regex": ".*"}
    allow_origins: Tuple[Mapping[str, str], ...] = ({"regex": ".*"},)
    allow_methods: Tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH")
    allow_headers: Tuple[str, ...] = ("Authorization", "Content-Type", "*")


@dataclass(frozen=True)
class ReconciliationConfig:
    """Defaults captured once when the processor is built.

    Nothing here is mutated after construction; additional_labels is wrapped
    in a read-only mapping so creators can share one instance freely.
    """

    default_domain_name: str = ""
    cors: CorsConfig = field(default_factory=CorsConfig)
    oathkeeper_svc: str = DEFAULT_OATHKEEPER_SVC
    oathkeeper_svc_port: int = DEFAULT_OATHKEEPER_SVC_PORT
    http_timeout: int = DEFAULT_HTTP_TIMEOUT_SECONDS
    additional_labels: Mapping[str, str] = field(default_factory=dict)
    jwt_handler: JwtHandler = "istio"

    def __post_init__(self) -> None:
        object.__setattr__(self, "additional_labels", MappingProxyType(dict(self.additional_labels)))


def _split_list(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def parse_string_matches(raw: str) -> Tuple[Dict[str, str], ...]:
    """Parse "regex:.*,exact:https://a.example" into Istio StringMatch dicts."""
    out = []
    for item in _split_list(raw):
        kind, sep, value = item.partition(":")
        if not sep or kind not in _STRING_MATCH_TYPES:
            raise ConfigError(f"invalid CORS origin {item!r}; expected one of {_STRING_MATCH_TYPES} as '<type>:<value>'")
        out.append({kind: value})
    return tuple(out)


def parse_labels(raw: str) -> Dict[str, str]:
    labels: Dict[str, str] = {}
    for item in _split_list(raw):
        k, sep, v = item.partition("=")
        if not sep or not k.strip():
            raise ConfigError(f"invalid label {item!r}; expected 'key=value'")
        labels[k.strip()] = v.strip()
    return labels


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def load_config(environ: Optional[Mapping[str, str]] = None) -> ReconciliationConfig:
    """Build the reconciliation defaults from environment variables."""
    env = os.environ if environ is None else environ

    jwt_handler = env.get("JWT_HANDLER", "istio")
    if jwt_handler not in ("istio", "ory"):
        raise ConfigError(f"JWT_HANDLER must be 'istio' or 'ory', got {jwt_handler!r}")

    cors = CorsConfig(
        allow_origins=parse_string_matches(env.get("CORS_ALLOW_ORIGINS", DEFAULT_CORS_ALLOW_ORIGINS)),
        allow_methods=_split_list(env.get("CORS_ALLOW_METHODS", DEFAULT_CORS_ALLOW_METHODS)),
        allow_headers=_split_list(env.get("CORS_ALLOW_HEADERS", DEFAULT_CORS_ALLOW_HEADERS)),
    )

    return ReconciliationConfig(
        default_domain_name=env.get("DEFAULT_DOMAIN_NAME", ""),
        cors=cors,
        oathkeeper_svc=env.get("OATHKEEPER_SVC_ADDRESS", DEFAULT_OATHKEEPER_SVC),
        oathkeeper_svc_port=_env_int(env, "OATHKEEPER_SVC_PORT", DEFAULT_OATHKEEPER_SVC_PORT),
        http_timeout=_env_int(env, "HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
        additional_labels=parse_labels(env.get("ADDITIONAL_LABELS", "")),
        jwt_handler=jwt_handler,  # type: ignore[arg-type]
    )
