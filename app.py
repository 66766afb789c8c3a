# app.py
from __future__ import annotations

import os
import signal
import threading

from apirule import parse_apirule
from config import load_config
from errors import GatewayError
from k8s import GatewayClient, load_kube_config
from reconcile import ObjectChange, ReconcileContext, VirtualServiceProcessor, describe_change, new_virtual_service_processor

# ─────────────────────────────────────────────
# Config
# ─────────────────────────────────────────────
NAMESPACE = os.environ.get("NAMESPACE", "")
LOOP_SECONDS = int(os.environ.get("LOOP_SECONDS", "5"))
RECONCILE_TIMEOUT_SECONDS = float(os.environ.get("RECONCILE_TIMEOUT_SECONDS", "30"))
DEBUG = os.environ.get("CONTROLLER_DEBUG", "0") == "1"


# ─────────────────────────────────────────────
# Apply step
# ─────────────────────────────────────────────
def apply_change(gateway: GatewayClient, change: ObjectChange) -> dict:
    if change.action == "create":
        return gateway.create_virtual_service(change.obj)
    return gateway.replace_virtual_service(change.obj)


def reconcile_once(
    gateway: GatewayClient,
    processor: VirtualServiceProcessor,
    namespace: str,
    stop_event: threading.Event,
    timeout_s: float = RECONCILE_TIMEOUT_SECONDS,
) -> int:
    """One pass over every APIRule. Returns the number of APIRules that failed."""
    failed = 0
    for obj in gateway.list_apirules(namespace):
        if stop_event.is_set():
            break
        meta = obj.get("metadata", {}) or {}
        ref = f"{meta.get('namespace', '')}/{meta.get('name', '')}"
        if meta.get("deletionTimestamp"):
            # Removing the generated VirtualService is left to garbage collection.
            continue

        ctx = ReconcileContext.with_timeout(timeout_s, stop_event=stop_event)
        try:
            api = parse_apirule(obj)
            for change in processor.evaluate_reconciliation(ctx, gateway, api):
                if DEBUG:
                    print(f"[controller] {ref}: {describe_change(change)}")
                apply_change(gateway, change)
        except GatewayError as e:
            failed += 1
            print(f"[controller] apirule {ref}: {type(e).__name__}: {e}")
        except Exception as e:
            # Write failures (conflicts, admission) are retried next pass.
            failed += 1
            print(f"[controller] apirule {ref}: apply failed: {type(e).__name__}: {e}")
    return failed


# ─────────────────────────────────────────────
# Loop and shutdown
# ─────────────────────────────────────────────
def install_signal_handlers(stop_event: threading.Event) -> None:
    """SIGTERM/SIGINT set stop_event, so an in-flight pass sees its context cancelled."""

    def _stop(signum, frame) -> None:
        print(f"[controller] received {signal.Signals(signum).name}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)


def run_loop(
    gateway: GatewayClient,
    processor: VirtualServiceProcessor,
    namespace: str,
    stop_event: threading.Event,
    loop_seconds: float = LOOP_SECONDS,
) -> None:
    while not stop_event.is_set():
        try:
            failed = reconcile_once(gateway, processor, namespace, stop_event)
            if failed and DEBUG:
                print(f"[controller] {failed} apirule(s) failed this pass")
        except Exception as e:
            print(f"[controller] listing apirules failed: {type(e).__name__}: {e}")

        stop_event.wait(loop_seconds)


# ─────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────
def main() -> None:
    load_kube_config()

    processor = new_virtual_service_processor(load_config())
    gateway = GatewayClient()
    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    print(f"[controller] watching apirules in {NAMESPACE or 'all namespaces'} every {LOOP_SECONDS}s")
    run_loop(gateway, processor, NAMESPACE, stop_event)
    print("[controller] stopped")


if __name__ == "__main__":
    main()
