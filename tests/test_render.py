from __future__ import annotations

import io

from config import ReconciliationConfig
from tools.render import _read, render

MANIFEST = """
apiVersion: gateway.kyma-project.io/v1beta1
kind: APIRule
metadata:
  name: orders
  namespace: ns
spec:
  host: orders
  gateway: kyma-system/kyma-gateway
  service:
    name: orders
    port: 8080
  rules:
    - path: /*
      methods: ["GET"]
      accessStrategies:
        - handler: allow
    - path: /admin
      accessStrategies:
        - handler: oauth2_introspection
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: unrelated
"""


def test_render_only_apirules() -> None:
    docs = _read([], stdin=io.StringIO(MANIFEST))
    out = render(docs, ReconciliationConfig(default_domain_name="example.com"))

    assert len(out) == 1
    vs = out[0]
    assert vs["kind"] == "VirtualService"
    assert vs["spec"]["hosts"] == ["orders.example.com"]
    assert [r["match"][0]["uri"] for r in vs["spec"]["http"]] == [{"prefix": "/"}, {"regex": "/admin"}]
