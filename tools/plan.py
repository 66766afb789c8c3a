#!/usr/bin/env python3
"""Plan-only runner: prints the VirtualService change the controller would apply
for every APIRule, without applying anything.

Usage:
  NAMESPACE=default DEFAULT_DOMAIN_NAME=example.com python3 tools/plan.py

Notes:
- Uses the same config loading as app.py (in-cluster first, then kubeconfig).
- Only lists objects; never creates or updates.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from apirule import parse_apirule  # noqa: E402
from config import load_config  # noqa: E402
from errors import GatewayError  # noqa: E402
from k8s import GatewayClient, load_kube_config  # noqa: E402
from reconcile import ReconcileContext, new_virtual_service_processor, print_change  # noqa: E402


def main() -> int:
    namespace = os.environ.get("NAMESPACE", "")
    timeout_s = float(os.environ.get("RECONCILE_TIMEOUT_SECONDS", "30"))

    load_kube_config(tag="plan")
    gateway = GatewayClient()
    processor = new_virtual_service_processor(load_config())

    rc = 0
    for obj in gateway.list_apirules(namespace):
        meta = obj.get("metadata", {}) or {}
        try:
            api = parse_apirule(obj)
            ctx = ReconcileContext.with_timeout(timeout_s)
            for change in processor.evaluate_reconciliation(ctx, gateway, api):
                print_change(change)
        except GatewayError as e:
            rc = 1
            print(f"[plan] apirule {meta.get('namespace')}/{meta.get('name')}: {type(e).__name__}: {e}")
    return rc


if __name__ == "__main__":
    raise SystemExit(main())
