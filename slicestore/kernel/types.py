"""
slicestore Kernel — Shared Types

Data classes used across entities, operations, reducer, selectors and the
dispatcher. These are the contracts that bind the kernel together.

Snapshot layout:
- entities:   read-only mapping key → entity payload
- operations: read-only mapping operation key → OperationDescriptor
- version:    publication counter, +1 per applied intent
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Set
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict

from slicestore.kernel.errors import OperationFailed

EntityKey = str | int

EMPTY_MAPPING: Mapping[Any, Any] = MappingProxyType({})


# ---------------------------------------------------------------------------
# Intent type registry
# ---------------------------------------------------------------------------

SYNC_INTENT_TYPES: set[str] = {
    "entity.upsert",
    "entity.patch",
    "entity.remove",
    "entity.upsert_many",
    "entity.remove_many",
    "operation.reset",
}

ASYNC_INTENT_TYPES: set[str] = {
    "operation.request",
}

# Emitted by the dispatcher itself when a performer settles.
SETTLEMENT_INTENT_TYPES: set[str] = {
    "operation.begin",
    "operation.fulfill",
    "operation.reject",
}

INTENT_TYPES: set[str] = SYNC_INTENT_TYPES | ASYNC_INTENT_TYPES | SETTLEMENT_INTENT_TYPES

REQUEST_POLICIES: set[str] = {"coalesce", "supersede"}


# ---------------------------------------------------------------------------
# Operation descriptors
# ---------------------------------------------------------------------------


class OperationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


TERMINAL_STATUSES: frozenset[OperationStatus] = frozenset(
    {OperationStatus.FULFILLED, OperationStatus.REJECTED}
)


class OperationDescriptor(BaseModel):
    """
    Lifecycle record for one logical async unit of work.

    Never mutated: every transition produces a new descriptor via model_copy.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    kind: str
    target: EntityKey
    status: OperationStatus = OperationStatus.IDLE
    error: str | None = None
    started_at: str | None = None
    settled_at: str | None = None
    request_id: str | None = None
    value: Any = None

    @property
    def is_pending(self) -> bool:
        return self.status is OperationStatus.PENDING

    @property
    def is_settled(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable point-in-time view of the store.

    Sub-mappings that an intent does not touch are carried over by identity,
    which is what lets memoized selectors skip recomputation.
    Entity payloads are stored frozen (see freeze), so nothing reachable from
    a published snapshot can be changed in place.
    """

    version: int = 0
    entities: Mapping[EntityKey, Any] = field(default_factory=lambda: EMPTY_MAPPING)
    operations: Mapping[str, OperationDescriptor] = field(default_factory=lambda: EMPTY_MAPPING)

    def entity(self, key: EntityKey) -> Any:
        return self.entities.get(key)

    def operation(self, kind: str, target: EntityKey) -> OperationDescriptor:
        """Descriptor for kind:target; keys never referenced read as idle."""
        key = operation_key(kind, target)
        descriptor = self.operations.get(key)
        if descriptor is None:
            return OperationDescriptor(key=key, kind=kind, target=target)
        return descriptor

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "entities": {key: thaw(entity) for key, entity in self.entities.items()},
            "operations": {
                key: descriptor.model_dump(mode="json")
                for key, descriptor in self.operations.items()
            },
        }


@dataclass(frozen=True)
class Intent:
    """
    A request to change state. The reducer reads only `type` and `payload`.
    """

    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: now_iso())

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload, "timestamp": self.timestamp}


@dataclass
class ReduceResult:
    """
    Result of applying one intent to a snapshot.
    The reducer never throws for bad input; it always returns one of these.
    """

    snapshot: Snapshot
    applied: bool
    error: str | None = None


@dataclass(frozen=True)
class DispatchResult:
    """
    What a synchronous dispatch returns. A re-entrant dispatch is queued
    behind the running one, so it has no snapshot yet.
    """

    intent: Intent
    snapshot: Snapshot | None
    queued: bool = False


@dataclass(frozen=True)
class OperationOutcome:
    """How an async request ended, as seen by the caller that awaited it."""

    key: str
    status: OperationStatus
    value: Any = None
    error: str | None = None
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.status is OperationStatus.FULFILLED and not self.stale

    def unwrap(self) -> Any:
        """Return the value or raise OperationFailed."""
        if self.stale:
            raise OperationFailed(self.key, "superseded by a newer request")
        if self.status is not OperationStatus.FULFILLED:
            raise OperationFailed(self.key, self.error or self.status.value)
        return self.value


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def operation_key(kind: str, target: EntityKey) -> str:
    """Composite key for an operation: "fetchEntity:u1"."""
    return f"{kind}:{target}"


def is_valid_key(value: Any) -> bool:
    """Entity keys are non-empty strings or ints (bools excluded)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        return bool(value)
    return isinstance(value, int)


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def freeze(value: Any) -> Any:
    """
    Read-only copy of an entity payload: mappings become MappingProxyType,
    lists and tuples become tuples, sets become frozensets, and any other
    value is deep-copied.
    """
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, Set):
        return frozenset(freeze(item) for item in value)
    return copy.deepcopy(value)


def thaw(value: Any) -> Any:
    """Plain, mutable copy of a frozen payload (dicts and lists)."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    if isinstance(value, Set):
        return set(value)
    return copy.deepcopy(value)
