# k8s.py
from __future__ import annotations

from typing import Dict, List, Mapping

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

import apirule
from errors import ClusterReadError, ReconcileCancelled
from reconcile import ReconcileContext
from virtualservice import builders


def load_kube_config(tag: str = "controller") -> None:
    try:
        config.load_incluster_config()
        print(f"[{tag}] using in-cluster config")
    except config.ConfigException:
        config.load_kube_config()
        print(f"[{tag}] using kubeconfig (local)")


def label_selector(labels: Mapping[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


class GatewayClient:
    """APIRule and VirtualService access through the custom objects API."""

    def __init__(self, api=None):
        self.api = api if api is not None else client.CustomObjectsApi()

    def list_apirules(self, namespace: str = "") -> List[dict]:
        if namespace:
            res = self.api.list_namespaced_custom_object(
                group=apirule.GROUP,
                version=apirule.VERSION,
                namespace=namespace,
                plural=apirule.PLURAL,
            )
        else:
            res = self.api.list_cluster_custom_object(
                group=apirule.GROUP,
                version=apirule.VERSION,
                plural=apirule.PLURAL,
            )
        return res.get("items", [])

    def list_virtual_services(self, ctx: ReconcileContext, namespace: str, labels: Dict[str, str]) -> List[dict]:
        ctx.check()
        kwargs = {}
        remaining = ctx.remaining()
        if remaining is not None:
            kwargs["_request_timeout"] = remaining
        try:
            res = self.api.list_namespaced_custom_object(
                group=builders.GROUP,
                version=builders.VERSION,
                namespace=namespace,
                plural=builders.PLURAL,
                label_selector=label_selector(labels),
                **kwargs,
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            if ctx.done():
                raise ReconcileCancelled(f"listing virtualservices in {namespace} interrupted: {e}") from e
            raise ClusterReadError(f"listing virtualservices in {namespace} failed: {e}") from e
        return res.get("items", [])

    def create_virtual_service(self, obj: dict) -> dict:
        return self.api.create_namespaced_custom_object(
            group=builders.GROUP,
            version=builders.VERSION,
            namespace=obj["metadata"]["namespace"],
            plural=builders.PLURAL,
            body=obj,
        )

    def replace_virtual_service(self, obj: dict) -> dict:
        # Carries the listed resourceVersion; a stale object gets a 409.
        return self.api.replace_namespaced_custom_object(
            group=builders.GROUP,
            version=builders.VERSION,
            namespace=obj["metadata"]["namespace"],
            plural=builders.PLURAL,
            name=obj["metadata"]["name"],
            body=obj,
        )
