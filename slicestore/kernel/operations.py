"""
slicestore Kernel — Async Operation Tracker

Per-key state machine over the operation registry:

    idle ──begin──▶ pending ──fulfill──▶ fulfilled
                       │                     │
                       └──reject──▶ rejected │
                                      │      │
          fulfilled / rejected ──begin──▶ pending   (resting, not absorbing)
          any ──reset──▶ idle

Each pending request carries a request_id. Only the current request_id may
settle a key; anything else is a stale resolution and is refused.

Pure functions. Illegal transitions raise InvalidTransition; the reducer turns
that into a rejected ReduceResult.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from slicestore.kernel.errors import InvalidTransition
from slicestore.kernel.types import (
    EntityKey,
    OperationDescriptor,
    OperationStatus,
    now_iso,
    operation_key,
)

Registry = Mapping[str, OperationDescriptor]


def lookup(registry: Registry, kind: str, target: EntityKey) -> OperationDescriptor:
    """Descriptor for kind:target, created idle on first reference."""
    key = operation_key(kind, target)
    descriptor = registry.get(key)
    if descriptor is None:
        return OperationDescriptor(key=key, kind=kind, target=target)
    return descriptor


def is_current(registry: Registry, key: str, request_id: str) -> bool:
    """True if request_id is the in-flight request for key."""
    descriptor = registry.get(key)
    return (
        descriptor is not None
        and descriptor.status is OperationStatus.PENDING
        and descriptor.request_id == request_id
    )


def begin(
    registry: Registry,
    kind: str,
    target: EntityKey,
    request_id: str,
    *,
    supersede: bool = False,
) -> Registry:
    """
    Move kind:target to pending under request_id.

    From idle, fulfilled or rejected this is a plain transition. From pending
    it is only allowed with supersede=True: the status stays pending and the
    previous request_id is replaced, making that request stale.
    """
    descriptor = lookup(registry, kind, target)
    if descriptor.status is OperationStatus.PENDING and not supersede:
        raise InvalidTransition(f"{descriptor.key} is already pending ({descriptor.request_id})")

    started = descriptor.model_copy(
        update={
            "status": OperationStatus.PENDING,
            "error": None,
            "started_at": now_iso(),
            "settled_at": None,
            "request_id": request_id,
        }
    )
    return _replace(registry, started)


def fulfill(registry: Registry, key: str, request_id: str, value: Any) -> Registry:
    descriptor = _current(registry, key, request_id)
    settled = descriptor.model_copy(
        update={
            "status": OperationStatus.FULFILLED,
            "error": None,
            "settled_at": now_iso(),
            "value": value,
        }
    )
    return _replace(registry, settled)


def reject(registry: Registry, key: str, request_id: str, error: str) -> Registry:
    """pending → rejected. The last fulfilled value is kept for display."""
    descriptor = _current(registry, key, request_id)
    settled = descriptor.model_copy(
        update={
            "status": OperationStatus.REJECTED,
            "error": error,
            "settled_at": now_iso(),
        }
    )
    return _replace(registry, settled)


def reset(registry: Registry, key: str) -> Registry:
    """
    Any status → idle. Resetting a pending key drops its request_id, so the
    in-flight resolution will be discarded when it arrives.
    Unknown key is a no-op.
    """
    descriptor = registry.get(key)
    if descriptor is None or (
        descriptor.status is OperationStatus.IDLE and descriptor.request_id is None
    ):
        return registry
    cleared = OperationDescriptor(key=descriptor.key, kind=descriptor.kind, target=descriptor.target)
    return _replace(registry, cleared)


def pending_keys(registry: Registry) -> list[str]:
    return [key for key, d in registry.items() if d.status is OperationStatus.PENDING]


def normalize_error(failure: Any) -> str:
    """
    Collapse whatever a performer raised into a display message.
    Exceptions with an empty message fall back to their class name.
    """
    if isinstance(failure, BaseException):
        message = str(failure)
        return message if message else type(failure).__name__
    if failure is None:
        return "Unknown error"
    return str(failure)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _current(registry: Registry, key: str, request_id: str) -> OperationDescriptor:
    descriptor = registry.get(key)
    if descriptor is None or descriptor.status is not OperationStatus.PENDING:
        status = descriptor.status.value if descriptor else OperationStatus.IDLE.value
        raise InvalidTransition(f"{key} is {status}, not pending")
    if descriptor.request_id != request_id:
        raise InvalidTransition(f"{key}: request {request_id} is stale")
    return descriptor


def _replace(registry: Registry, descriptor: OperationDescriptor) -> Registry:
    updated = dict(registry)
    updated[descriptor.key] = descriptor
    return MappingProxyType(updated)
