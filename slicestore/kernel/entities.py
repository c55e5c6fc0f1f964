"""
slicestore Kernel — Entity Store

Pure value transformers over the key → entity mapping.
No side effects. No IO. Never mutates the input mapping.

Payloads are stored frozen (see types.freeze), so a published entity cannot
be changed in place by whoever reads it.

Every function returns a fresh read-only mapping when something changed and
the *same* mapping object when nothing did, so identity-based selectors can
tell the difference cheaply.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from slicestore.kernel.types import EntityKey, freeze, thaw

Entities = Mapping[EntityKey, Any]


def get(entities: Entities, key: EntityKey) -> Any:
    """Return the entity stored under key, or None."""
    return entities.get(key)


def upsert(entities: Entities, key: EntityKey, entity: Any) -> Entities:
    """
    Store entity under key, replacing any prior value entirely.
    The payload is stored as a frozen copy, so later caller mutation cannot
    leak in and readers cannot write back.
    """
    updated = dict(entities)
    updated[key] = freeze(entity)
    return MappingProxyType(updated)


def upsert_many(entities: Entities, items: Mapping[EntityKey, Any]) -> Entities:
    if not items:
        return entities
    updated = dict(entities)
    for key, entity in items.items():
        updated[key] = freeze(entity)
    return MappingProxyType(updated)


def patch(entities: Entities, key: EntityKey, fields: Mapping[str, Any]) -> Entities:
    """
    Partial update. See merge_fields for overwrite rules.
    Patching an absent key creates the entity from fields.
    """
    existing = entities.get(key)
    if existing is None:
        return upsert(entities, key, dict(fields))
    updated = dict(entities)
    updated[key] = freeze(merge_fields(existing, fields))
    return MappingProxyType(updated)


def remove(entities: Entities, key: EntityKey) -> Entities:
    """Drop key. Absent key is a no-op and returns the input unchanged."""
    if key not in entities:
        return entities
    updated = dict(entities)
    del updated[key]
    return MappingProxyType(updated)


def remove_many(entities: Entities, keys: Iterable[EntityKey]) -> Entities:
    doomed = [key for key in keys if key in entities]
    if not doomed:
        return entities
    updated = dict(entities)
    for key in doomed:
        del updated[key]
    return MappingProxyType(updated)


def merge_fields(existing: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge `fields` into a plain (thawed) copy of `existing`.

    - A key present in `fields` overwrites the same key in `existing`.
    - When both sides hold a mapping for a key, the two are merged
      recursively with these same rules, so nested keys the patch does not
      name are kept.
    - Keys absent from `fields` are preserved.
    - A non-mapping `existing` is replaced by a copy of `fields`.

    Lists and other values are replaced wholesale, never concatenated.
    """
    if not isinstance(existing, Mapping):
        return thaw(dict(fields))

    merged = thaw(existing)
    for name, value in fields.items():
        current = merged.get(name)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[name] = merge_fields(current, value)
        else:
            merged[name] = thaw(value)
    return merged
