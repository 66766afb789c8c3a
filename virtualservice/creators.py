# virtualservice/creators.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from apirule import (
    WILDCARD_PATH,
    APIRule,
    Rule,
    filter_duplicate_paths,
    find_service_namespace,
    host_local_domain,
    host_with_domain,
    is_jwt_secured,
    is_secured,
    owner_labels,
)
from config import ReconciliationConfig
from errors import ConfigError
from mutators import cookie_mutator, header_mutator
from virtualservice import builders


class VirtualServiceCreator(ABC):
    """Builds the desired VirtualService for an APIRule.

    Subclasses only decide where a rule is routed and which request headers
    it gets; matching, CORS, timeout and metadata are shared.
    """

    def __init__(self, config: ReconciliationConfig):
        self.config = config

    @abstractmethod
    def routes_directly(self, rule: Rule) -> bool:
        ...

    def mutated_headers(self, rule: Rule) -> Tuple[Optional[str], Optional[Dict[str, str]]]:
        return None, None

    def create(self, api: APIRule) -> Dict:
        if not api.host:
            raise ConfigError(f"apirule {api.name}.{api.namespace}: spec.host is required")
        if not api.gateway:
            raise ConfigError(f"apirule {api.name}.{api.namespace}: spec.gateway is required")

        host = host_with_domain(api.host, self.config.default_domain_name)
        cors = builders.cors_policy(self.config.cors)
        route_timeout = builders.timeout(self.config.http_timeout)

        http = []
        for rule in filter_duplicate_paths(api.rules):
            if self.routes_directly(rule):
                dst_host, dst_port = self._service_target(api, rule)
            else:
                dst_host, dst_port = self.config.oathkeeper_svc, self.config.oathkeeper_svc_port

            # Paths other than the wildcard go in as a regex, unescaped.
            if rule.path == WILDCARD_PATH:
                match = builders.prefix_match("/")
            else:
                match = builders.regex_match(rule.path)

            cookies, headers = self.mutated_headers(rule)
            http.append(
                builders.http_route(
                    match=match,
                    route=builders.destination(dst_host, dst_port),
                    cors=cors,
                    route_timeout=route_timeout,
                    headers=builders.request_headers(host, cookies=cookies, headers=headers),
                )
            )

        labels = owner_labels(api)
        labels.update(self.config.additional_labels)

        return builders.virtual_service(
            generate_name=f"{api.name}-",
            namespace=api.namespace,
            labels=labels,
            host=host,
            gateway=api.gateway,
            http=http,
        )

    @staticmethod
    def _service_target(api: APIRule, rule: Rule) -> Tuple[str, int]:
        service = rule.service if rule.service is not None else api.service
        if service is None:
            raise ConfigError(
                f"apirule {api.name}.{api.namespace}: rule {rule.path!r} has no service and spec.service is not set"
            )
        return host_local_domain(service.name, find_service_namespace(api, rule)), service.port


class IstioVirtualServiceCreator(VirtualServiceCreator):
    """JWT is validated by Istio itself, so JWT rules bypass the auth proxy."""

    def routes_directly(self, rule: Rule) -> bool:
        return not is_secured(rule) or is_jwt_secured(rule)

    def mutated_headers(self, rule: Rule) -> Tuple[Optional[str], Optional[Dict[str, str]]]:
        # noop and oauth2_introspection rules get their mutators applied by the
        # proxy; allow does not support mutators at all.
        if not is_jwt_secured(rule):
            return None, None

        cookies = cookie_mutator(rule)
        headers = header_mutator(rule)
        return (
            cookies.to_string() if cookies.has_cookies() else None,
            headers.headers if headers.has_headers() else None,
        )


class OryVirtualServiceCreator(VirtualServiceCreator):
    """Every secured rule, JWT included, goes through the auth proxy."""

    def routes_directly(self, rule: Rule) -> bool:
        return not is_secured(rule)


CREATORS = {
    "istio": IstioVirtualServiceCreator,
    "ory": OryVirtualServiceCreator,
}


def new_creator(config: ReconciliationConfig) -> VirtualServiceCreator:
    try:
        cls = CREATORS[config.jwt_handler]
    except KeyError:
        raise ConfigError(f"unknown JWT handler {config.jwt_handler!r}") from None
    return cls(config)
