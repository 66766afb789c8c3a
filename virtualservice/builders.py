# virtualservice/builders.py
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

from config import CorsConfig

API_VERSION = "networking.istio.io/v1beta1"
KIND = "VirtualService"
GROUP = "networking.istio.io"
VERSION = "v1beta1"
PLURAL = "virtualservices"


def prefix_match(prefix: str) -> Dict:
    return {"uri": {"prefix": prefix}}


def regex_match(regex: str) -> Dict:
    return {"uri": {"regex": regex}}


def destination(host: str, port: int) -> Dict:
    return {"destination": {"host": host, "port": {"number": int(port)}}}


def cors_policy(cors: CorsConfig) -> Dict:
    return {
        "allowOrigins": [dict(o) for o in cors.allow_origins],
        "allowMethods": list(cors.allow_methods),
        "allowHeaders": list(cors.allow_headers),
    }


def timeout(seconds: int) -> str:
    return f"{int(seconds)}s"


def request_headers(
    forwarded_host: str,
    cookies: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> Dict:
    """
    headers.request.set for a route. x-forwarded-host is always present;
    Cookie and extra headers only when a mutator supplied them.
    """
    set_: Dict[str, str] = {"x-forwarded-host": forwarded_host}
    if cookies:
        set_["Cookie"] = cookies
    if headers:
        set_.update(headers)
    return {"request": {"set": set_}}


def http_route(match: Dict, route: Dict, cors: Dict, route_timeout: str, headers: Dict) -> Dict:
    return {
        "match": [match],
        "route": [route],
        "corsPolicy": cors,
        "timeout": route_timeout,
        "headers": headers,
    }


def virtual_service(
    generate_name: str,
    namespace: str,
    labels: Mapping[str, str],
    host: str,
    gateway: str,
    http: Iterable[Dict],
) -> Dict:
    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": {
            "generateName": generate_name,
            "namespace": namespace,
            "labels": dict(labels),
        },
        "spec": {
            "hosts": [host],
            "gateways": [gateway],
            "http": list(http),
        },
    }


def route_targets(vs: Dict) -> List[str]:
    """host:port of every route destination, in route order."""
    out: List[str] = []
    for r in ((vs or {}).get("spec", {}) or {}).get("http", []) or []:
        for dst in r.get("route", []) or []:
            d = dst.get("destination", {}) or {}
            out.append(f"{d.get('host')}:{(d.get('port') or {}).get('number')}")
    return out
