"""
slicestore Kernel — Reducer

Pure function: (snapshot, intent) → ReduceResult
No IO. No performer calls. Never mutates the input snapshot.

Given the same sequence of intents, produces the same entities and statuses
every time (timestamps aside).

`operation.request` is not reducible: the dispatcher turns it into an
`operation.begin` plus a running performer.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping
from typing import Any

from slicestore.kernel import entities as entity_store
from slicestore.kernel import operations as tracker
from slicestore.kernel.errors import InvalidTransition
from slicestore.kernel.types import EntityKey, Intent, ReduceResult, Snapshot

logger = logging.getLogger(__name__)

# (entities, target, value) → entities. Maps a fulfilled result into the store.
Applier = Callable[[Mapping[EntityKey, Any], EntityKey, Any], Mapping[EntityKey, Any]]


# ---------------------------------------------------------------------------
# Appliers
# ---------------------------------------------------------------------------


def upsert_result(entities: Mapping[EntityKey, Any], target: EntityKey, value: Any) -> Mapping[EntityKey, Any]:
    """Default: the result is the entity for target."""
    return entity_store.upsert(entities, target, value)


def merge_result(entities: Mapping[EntityKey, Any], target: EntityKey, value: Any) -> Mapping[EntityKey, Any]:
    """The result is a partial entity merged into the existing one."""
    return entity_store.patch(entities, target, value)


def remove_target(entities: Mapping[EntityKey, Any], target: EntityKey, value: Any) -> Mapping[EntityKey, Any]:
    """For delete-style operations: drop target once the remote side confirms."""
    return entity_store.remove(entities, target)


def discard_result(entities: Mapping[EntityKey, Any], target: EntityKey, value: Any) -> Mapping[EntityKey, Any]:
    """Track status only; leave entities untouched."""
    return entities


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def empty_snapshot() -> Snapshot:
    """The initial snapshot: no entities, no operations, version 0."""
    return Snapshot()


def reduce(
    snapshot: Snapshot,
    intent: Intent,
    appliers: Mapping[str, Applier] | None = None,
) -> ReduceResult:
    """
    Apply one intent to the current snapshot.
    Returns new snapshot + applied flag + error code.

    `appliers` maps operation kind → Applier for operation.fulfill; kinds not
    listed use upsert_result.
    """
    handler = _HANDLERS.get(intent.type)
    if handler is None:
        if intent.type == "operation.request":
            return _reject(snapshot, "ASYNC_INTENT", "operation.request must go through Store.dispatch")
        return _reject(snapshot, "UNKNOWN_INTENT", intent.type)
    return handler(snapshot, intent.payload, appliers or {})


def replay(
    intents: list[Intent],
    appliers: Mapping[str, Applier] | None = None,
    snapshot: Snapshot | None = None,
) -> Snapshot:
    """
    Rebuild a snapshot by reducing over intents.
    replay([i1, i2, i3]) == reduce(reduce(reduce(empty(), i1), i2), i3)...
    Rejected intents are skipped.
    """
    snapshot = snapshot or empty_snapshot()
    for intent in intents:
        result = reduce(snapshot, intent, appliers)
        if result.applied:
            snapshot = result.snapshot
    return snapshot


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _reject(snap: Snapshot, code: str, msg: str) -> ReduceResult:
    return ReduceResult(snapshot=snap, applied=False, error=f"{code}: {msg}")


def _ok(snap: Snapshot, **changes: Any) -> ReduceResult:
    return ReduceResult(
        snapshot=dataclasses.replace(snap, version=snap.version + 1, **changes),
        applied=True,
    )


# ---------------------------------------------------------------------------
# Entity handlers
# ---------------------------------------------------------------------------


def _handle_entity_upsert(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    return _ok(snap, entities=entity_store.upsert(snap.entities, p["key"], p["entity"]))


def _handle_entity_patch(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    return _ok(snap, entities=entity_store.patch(snap.entities, p["key"], p["fields"]))


def _handle_entity_remove(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    # Absent key still publishes: the caller asked for a state, and it holds.
    return _ok(snap, entities=entity_store.remove(snap.entities, p["key"]))


def _handle_entity_upsert_many(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    return _ok(snap, entities=entity_store.upsert_many(snap.entities, p["items"]))


def _handle_entity_remove_many(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    return _ok(snap, entities=entity_store.remove_many(snap.entities, p["keys"]))


# ---------------------------------------------------------------------------
# Operation handlers
# ---------------------------------------------------------------------------


def _handle_operation_begin(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    try:
        registry = tracker.begin(
            snap.operations,
            p["kind"],
            p["target"],
            p["request_id"],
            supersede=p.get("supersede", False),
        )
    except InvalidTransition as e:
        return _reject(snap, "ALREADY_PENDING", str(e))
    return _ok(snap, operations=registry)


def _handle_operation_fulfill(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    key, request_id = p["key"], p["request_id"]
    if not tracker.is_current(snap.operations, key, request_id):
        return _reject(snap, "STALE_RESOLUTION", f"{key} request {request_id}")

    applier = appliers.get(p["kind"], upsert_result)
    try:
        entities = applier(snap.entities, p["target"], p["value"])
    except Exception as e:
        # A result the applier cannot map is a failed operation, not a crash.
        logger.warning("reducer: applier for %s failed: %s", key, e)
        registry = tracker.reject(snap.operations, key, request_id, tracker.normalize_error(e))
        return _ok(snap, operations=registry)

    registry = tracker.fulfill(snap.operations, key, request_id, p["value"])
    return _ok(snap, entities=entities, operations=registry)


def _handle_operation_reject(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    key, request_id = p["key"], p["request_id"]
    if not tracker.is_current(snap.operations, key, request_id):
        return _reject(snap, "STALE_RESOLUTION", f"{key} request {request_id}")
    registry = tracker.reject(snap.operations, key, request_id, p["error"])
    return _ok(snap, operations=registry)


def _handle_operation_reset(snap: Snapshot, p: dict, appliers: Mapping[str, Applier]) -> ReduceResult:
    return _ok(snap, operations=tracker.reset(snap.operations, p["key"]))


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

_HANDLERS: dict[str, Any] = {
    "entity.upsert": _handle_entity_upsert,
    "entity.patch": _handle_entity_patch,
    "entity.remove": _handle_entity_remove,
    "entity.upsert_many": _handle_entity_upsert_many,
    "entity.remove_many": _handle_entity_remove_many,
    "operation.begin": _handle_operation_begin,
    "operation.fulfill": _handle_operation_fulfill,
    "operation.reject": _handle_operation_reject,
    "operation.reset": _handle_operation_reset,
}
