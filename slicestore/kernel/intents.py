"""
slicestore Kernel — Intent Construction and Validation

Factory functions for well-formed intents, plus structural validation run by
the dispatcher before an intent reaches the reducer.

Validation is structural (well-formed?) not semantic (will it apply?).
The reducer and the dispatcher handle the semantic checks.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from slicestore.kernel.types import (
    INTENT_TYPES,
    REQUEST_POLICIES,
    EntityKey,
    Intent,
    is_valid_key,
    operation_key,
)

# ---------------------------------------------------------------------------
# Entity intents
# ---------------------------------------------------------------------------


def upsert_entity(key: EntityKey, entity: Any) -> Intent:
    return Intent(type="entity.upsert", payload={"key": key, "entity": entity})


def patch_entity(key: EntityKey, fields: Mapping[str, Any]) -> Intent:
    return Intent(type="entity.patch", payload={"key": key, "fields": dict(fields)})


def remove_entity(key: EntityKey) -> Intent:
    return Intent(type="entity.remove", payload={"key": key})


def upsert_entities(items: Mapping[EntityKey, Any]) -> Intent:
    return Intent(type="entity.upsert_many", payload={"items": dict(items)})


def remove_entities(keys: Iterable[EntityKey]) -> Intent:
    return Intent(type="entity.remove_many", payload={"keys": list(keys)})


# ---------------------------------------------------------------------------
# Operation intents
# ---------------------------------------------------------------------------


def request(
    kind: str,
    target: EntityKey,
    payload: Any = None,
    *,
    policy: str | None = None,
) -> Intent:
    """
    Ask the store to run the performer registered for `kind` against `target`.
    policy=None defers to the store's default ("coalesce" unless configured).
    """
    return Intent(
        type="operation.request",
        payload={"kind": kind, "target": target, "payload": payload, "policy": policy},
    )


def fetch_entity(key: EntityKey, *, policy: str | None = None) -> Intent:
    return request("fetchEntity", key, policy=policy)


def update_entity(key: EntityKey, fields: Mapping[str, Any], *, policy: str | None = None) -> Intent:
    return request("updateEntity", key, dict(fields), policy=policy)


def reset_operation(kind: str, target: EntityKey) -> Intent:
    """Return kind:target to idle, e.g. to clear a displayed error."""
    return Intent(
        type="operation.reset",
        payload={"key": operation_key(kind, target), "kind": kind, "target": target},
    )


# Settlement intents. Built by the dispatcher, not by callers.


def begin_operation(kind: str, target: EntityKey, request_id: str, *, supersede: bool = False) -> Intent:
    return Intent(
        type="operation.begin",
        payload={
            "key": operation_key(kind, target),
            "kind": kind,
            "target": target,
            "request_id": request_id,
            "supersede": supersede,
        },
    )


def fulfill_operation(kind: str, target: EntityKey, request_id: str, value: Any) -> Intent:
    return Intent(
        type="operation.fulfill",
        payload={
            "key": operation_key(kind, target),
            "kind": kind,
            "target": target,
            "request_id": request_id,
            "value": value,
        },
    )


def reject_operation(kind: str, target: EntityKey, request_id: str, error: str) -> Intent:
    return Intent(
        type="operation.reject",
        payload={
            "key": operation_key(kind, target),
            "kind": kind,
            "target": target,
            "request_id": request_id,
            "error": error,
        },
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_intent(intent: Intent) -> list[str]:
    """
    Validate an intent's type and payload structure.
    Returns a list of error strings. Empty list = valid.

    Checks that the type is recognized, the payload is a dict, required
    fields are present and keys are well-formed. Does NOT check whether an
    operation kind is registered; that is the dispatcher's job.
    """
    errors: list[str] = []

    if intent.type not in INTENT_TYPES:
        errors.append(f"Unknown intent type: {intent.type}")
        return errors

    if not isinstance(intent.payload, dict):
        errors.append("Payload must be a non-null object")
        return errors

    validator = _VALIDATORS.get(intent.type)
    if validator:
        errors.extend(validator(intent.payload))

    return errors


def _validate_key(p: dict, name: str, intent_type: str) -> list[str]:
    if name not in p:
        return [f"{intent_type} requires '{name}'"]
    if not is_valid_key(p[name]):
        return [f"Invalid {name}: {p[name]!r}"]
    return []


def _validate_upsert(p: dict) -> list[str]:
    errors = _validate_key(p, "key", "entity.upsert")
    if "entity" not in p:
        errors.append("entity.upsert requires 'entity'")
    return errors


def _validate_patch(p: dict) -> list[str]:
    errors = _validate_key(p, "key", "entity.patch")
    if not isinstance(p.get("fields"), Mapping):
        errors.append("entity.patch requires 'fields' to be an object")
    return errors


def _validate_remove(p: dict) -> list[str]:
    return _validate_key(p, "key", "entity.remove")


def _validate_upsert_many(p: dict) -> list[str]:
    items = p.get("items")
    if not isinstance(items, Mapping):
        return ["entity.upsert_many requires 'items' to be an object"]
    return [f"Invalid key: {key!r}" for key in items if not is_valid_key(key)]


def _validate_remove_many(p: dict) -> list[str]:
    keys = p.get("keys")
    if not isinstance(keys, list):
        return ["entity.remove_many requires 'keys' to be a list"]
    return [f"Invalid key: {key!r}" for key in keys if not is_valid_key(key)]


def _validate_operation_ref(p: dict, intent_type: str) -> list[str]:
    errors: list[str] = []
    kind = p.get("kind")
    if not isinstance(kind, str) or not kind:
        errors.append(f"{intent_type} requires 'kind'")
    errors.extend(_validate_key(p, "target", intent_type))
    return errors


def _validate_request(p: dict) -> list[str]:
    errors = _validate_operation_ref(p, "operation.request")
    policy = p.get("policy")
    if policy is not None and policy not in REQUEST_POLICIES:
        errors.append(f"Unknown policy: {policy}")
    return errors


def _validate_reset(p: dict) -> list[str]:
    return _validate_operation_ref(p, "operation.reset")


def _validate_settlement(p: dict) -> list[str]:
    errors = _validate_operation_ref(p, "operation settlement")
    if not isinstance(p.get("request_id"), str):
        errors.append("operation settlement requires 'request_id'")
    return errors


_VALIDATORS: dict[str, Any] = {
    "entity.upsert": _validate_upsert,
    "entity.patch": _validate_patch,
    "entity.remove": _validate_remove,
    "entity.upsert_many": _validate_upsert_many,
    "entity.remove_many": _validate_remove_many,
    "operation.request": _validate_request,
    "operation.reset": _validate_reset,
    "operation.begin": _validate_settlement,
    "operation.fulfill": _validate_settlement,
    "operation.reject": _validate_settlement,
}
