"""
slicestore Kernel — the state store.

Components:
  entities       — pure transforms over the key → entity mapping
  operations     — idle / pending / fulfilled / rejected per operation key
  reducer        — (snapshot, intent) → snapshot  (pure)
  selectors      — memoized derivations over a snapshot
  subscriptions  — observer notification after each publication
  dispatcher     — the Store: serializes intents, runs performers, publishes
"""

from slicestore.kernel.dispatcher import OperationHandle, OperationKind, Store
from slicestore.kernel.errors import (
    DispatchLoopError,
    InvalidIntent,
    InvalidTransition,
    OperationFailed,
    StoreClosed,
    StoreError,
    UnknownIntent,
    UnknownOperation,
)
from slicestore.kernel.intents import (
    fetch_entity,
    patch_entity,
    remove_entities,
    remove_entity,
    request,
    reset_operation,
    update_entity,
    upsert_entities,
    upsert_entity,
    validate_intent,
)
from slicestore.kernel.reducer import (
    discard_result,
    empty_snapshot,
    merge_result,
    reduce,
    remove_target,
    replay,
    upsert_result,
)
from slicestore.kernel.selectors import (
    Selector,
    create_selector,
    select_entities,
    select_entity,
    select_operation,
    select_operations,
    select_pending_keys,
    selector,
    selector_family,
)
from slicestore.kernel.types import (
    DispatchResult,
    Intent,
    OperationDescriptor,
    OperationOutcome,
    OperationStatus,
    Snapshot,
    freeze,
    operation_key,
    thaw,
)

__all__ = [
    "Store",
    "OperationKind",
    "OperationHandle",
    "StoreError",
    "UnknownIntent",
    "UnknownOperation",
    "InvalidIntent",
    "InvalidTransition",
    "StoreClosed",
    "DispatchLoopError",
    "OperationFailed",
    "upsert_entity",
    "patch_entity",
    "remove_entity",
    "upsert_entities",
    "remove_entities",
    "request",
    "fetch_entity",
    "update_entity",
    "reset_operation",
    "validate_intent",
    "reduce",
    "replay",
    "empty_snapshot",
    "upsert_result",
    "merge_result",
    "remove_target",
    "discard_result",
    "Selector",
    "create_selector",
    "selector",
    "selector_family",
    "select_entities",
    "select_operations",
    "select_entity",
    "select_operation",
    "select_pending_keys",
    "Snapshot",
    "Intent",
    "DispatchResult",
    "OperationDescriptor",
    "OperationOutcome",
    "OperationStatus",
    "operation_key",
    "freeze",
    "thaw",
]
