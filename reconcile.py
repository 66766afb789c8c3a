# reconcile.py
from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Protocol

from apirule import OWNER_LABEL, OWNER_LABEL_V1ALPHA1, APIRule, owner_label_value
from config import ReconciliationConfig
from errors import ReconcileCancelled
from virtualservice.builders import route_targets
from virtualservice.creators import VirtualServiceCreator, new_creator

Action = Literal["create", "update"]


class ReconcileContext:
    """Cancellation signal for one reconciliation pass.

    Either an Event set by the caller (shutdown) or an absolute deadline on
    the time.monotonic() clock ends the pass.
    """

    def __init__(self, stop_event: Optional[threading.Event] = None, deadline: Optional[float] = None):
        self.stop_event = stop_event
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float, stop_event: Optional[threading.Event] = None) -> "ReconcileContext":
        return cls(stop_event=stop_event, deadline=time.monotonic() + seconds)

    def done(self) -> bool:
        if self.stop_event is not None and self.stop_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        if self.stop_event is not None and self.stop_event.is_set():
            raise ReconcileCancelled("reconciliation cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise ReconcileCancelled("reconciliation deadline exceeded")


@dataclass(frozen=True)
class ObjectChange:
    action: Action
    obj: Dict

    @classmethod
    def create(cls, obj: Dict) -> "ObjectChange":
        return cls(action="create", obj=obj)

    @classmethod
    def update(cls, obj: Dict) -> "ObjectChange":
        return cls(action="update", obj=obj)


class VirtualServiceLister(Protocol):
    def list_virtual_services(self, ctx: ReconcileContext, namespace: str, labels: Dict[str, str]) -> List[Dict]:
        ...


class VirtualServiceProcessor:
    """Computes the single VirtualService change for one APIRule.

    Never writes to the cluster: the caller applies the returned change.
    """

    def __init__(self, creator: VirtualServiceCreator):
        self.creator = creator

    def evaluate_reconciliation(self, ctx: ReconcileContext, client: VirtualServiceLister, api: APIRule) -> List[ObjectChange]:
        desired = self.creator.create(api)
        ctx.check()
        actual = self.actual_state(ctx, client, api)
        return [self.object_change(desired, actual)]

    def actual_state(self, ctx: ReconcileContext, client: VirtualServiceLister, api: APIRule) -> Optional[Dict]:
        value = owner_label_value(api)
        # Current key first; the legacy key finds objects from older controllers.
        for key in (OWNER_LABEL, OWNER_LABEL_V1ALPHA1):
            items = client.list_virtual_services(ctx, api.namespace, {key: value})
            ctx.check()
            if not items:
                continue
            if len(items) > 1:
                names = [(i.get("metadata", {}) or {}).get("name", "") for i in items]
                print(f"[reconcile] apirule {value} owns {len(items)} VirtualServices {names}; using {names[0]}")
            return items[0]
        return None

    @staticmethod
    def object_change(desired: Dict, actual: Optional[Dict]) -> ObjectChange:
        # No equality check: an existing object is always updated.
        if actual is not None:
            updated = copy.deepcopy(actual)
            updated["spec"] = copy.deepcopy(desired["spec"])
            return ObjectChange.update(updated)
        return ObjectChange.create(desired)


def new_virtual_service_processor(config: ReconciliationConfig) -> VirtualServiceProcessor:
    return VirtualServiceProcessor(creator=new_creator(config))


def describe_change(change: ObjectChange) -> str:
    meta = change.obj.get("metadata", {}) or {}
    name = meta.get("name") or f"{meta.get('generateName', '')}<generated>"
    targets = ",".join(route_targets(change.obj)) or "-"
    return f"{change.action} virtualservice {meta.get('namespace', '')}/{name} routes={targets}"


def print_change(change: ObjectChange, tag: str = "plan") -> None:
    print(f"[{tag}] {describe_change(change)}")
