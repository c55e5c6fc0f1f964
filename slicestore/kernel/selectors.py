"""
slicestore Kernel — Selectors

Memoized pure derivations over a Snapshot.

A Selector evaluates its input selectors against the snapshot, compares each
result to the one recorded at the last computation, and reuses the cached
value only if every input matches. Matching is identity (`is`) by default;
pass `equals=operator.eq` for inputs that are rebuilt but compare equal.

Selectors compose: an input selector may itself be a Selector, so a change
only invalidates the derivations that actually read the changed part.

Selectors never touch the store. A combiner that raises leaves the cache as it
was and the exception reaches the caller.
"""

from __future__ import annotations

import operator
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any

from slicestore.kernel.types import EntityKey, OperationDescriptor, OperationStatus, Snapshot, operation_key

InputSelector = Callable[[Snapshot], Any]


class _CacheEntry:
    __slots__ = ("args", "result")

    def __init__(self, args: tuple[Any, ...], result: Any) -> None:
        self.args = args
        self.result = result


class Selector:
    """
    A memoized derivation: combiner(*[inp(snapshot) for inp in inputs]).
    Holds a single cache entry (the last inputs and result).
    """

    def __init__(
        self,
        inputs: tuple[InputSelector, ...],
        combiner: Callable[..., Any],
        *,
        equals: Callable[[Any, Any], bool] = operator.is_,
        name: str | None = None,
    ) -> None:
        if not inputs:
            raise ValueError("a selector needs at least one input selector")
        self._inputs = inputs
        self._combiner = combiner
        self._equals = equals
        self._cache: _CacheEntry | None = None
        self.recomputations = 0
        self.name = name or getattr(combiner, "__name__", "selector")

    def __call__(self, snapshot: Snapshot) -> Any:
        args = tuple(select(snapshot) for select in self._inputs)
        cached = self._cache
        if cached is not None and self._same_args(cached.args, args):
            return cached.result

        # Raises straight through; the old entry stays in place.
        result = self._combiner(*args)
        self._cache = _CacheEntry(args, result)
        self.recomputations += 1
        return result

    def reset_cache(self) -> None:
        self._cache = None
        self.recomputations = 0

    def _same_args(self, previous: tuple[Any, ...], current: tuple[Any, ...]) -> bool:
        return all(self._equals(a, b) for a, b in zip(previous, current))

    def __repr__(self) -> str:  # pragma: no cover
        return f"Selector({self.name}, recomputations={self.recomputations})"


def create_selector(
    *inputs: InputSelector,
    combiner: Callable[..., Any],
    equals: Callable[[Any, Any], bool] = operator.is_,
    name: str | None = None,
) -> Selector:
    """
    Build a memoized selector.

        select_names = create_selector(
            select_entities,
            combiner=lambda entities: sorted(e["name"] for e in entities.values()),
        )
    """
    return Selector(inputs, combiner, equals=equals, name=name)


def selector(*inputs: InputSelector, equals: Callable[[Any, Any], bool] = operator.is_):
    """Decorator form of create_selector; the decorated function is the combiner."""

    def wrap(combiner: Callable[..., Any]) -> Selector:
        return Selector(inputs, combiner, equals=equals)

    return wrap


class SelectorFamily:
    """
    One Selector per argument tuple, built on first use by `factory` and
    reused afterwards so each instance keeps its own cache.

    With `maxsize`, the least recently used instances are evicted once the
    family holds more than that many. A caller still holding an evicted
    Selector can keep using it; the next lookup for those arguments builds a
    fresh one. `forget(*args)` drops an instance explicitly.
    """

    def __init__(self, factory: Callable[..., Selector], *, maxsize: int | None = None) -> None:
        if maxsize is not None and maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._factory = factory
        self._maxsize = maxsize
        self._instances: OrderedDict[tuple[Hashable, ...], Selector] = OrderedDict()

    def __call__(self, *args: Hashable) -> Selector:
        instance = self._instances.get(args)
        if instance is not None:
            self._instances.move_to_end(args)
            return instance
        instance = self._factory(*args)
        self._instances[args] = instance
        if self._maxsize is not None and len(self._instances) > self._maxsize:
            self._instances.popitem(last=False)
        return instance

    def forget(self, *args: Hashable) -> None:
        self._instances.pop(args, None)

    def __len__(self) -> int:
        return len(self._instances)


def selector_family(factory: Callable[..., Selector], *, maxsize: int | None = None) -> SelectorFamily:
    return SelectorFamily(factory, maxsize=maxsize)


# ---------------------------------------------------------------------------
# Built-in selectors
# ---------------------------------------------------------------------------


def select_entities(snapshot: Snapshot) -> Any:
    return snapshot.entities


def select_operations(snapshot: Snapshot) -> Any:
    return snapshot.operations


def _entity_selector(key: EntityKey) -> Selector:
    return create_selector(
        select_entities,
        combiner=lambda entities: entities.get(key),
        name=f"entity:{key}",
    )


def _operation_selector(kind: str, target: EntityKey) -> Selector:
    key = operation_key(kind, target)
    # One idle descriptor per instance so an untouched key keeps its identity.
    idle = OperationDescriptor(key=key, kind=kind, target=target)

    def descriptor(operations: Any) -> OperationDescriptor:
        return operations.get(key, idle)

    return create_selector(select_operations, combiner=descriptor, name=f"operation:{key}")


# Shared by every store in the process, hence bounded.
BUILTIN_FAMILY_SIZE = 1024

select_entity = selector_family(_entity_selector, maxsize=BUILTIN_FAMILY_SIZE)
select_operation = selector_family(_operation_selector, maxsize=BUILTIN_FAMILY_SIZE)

select_entity_list = create_selector(
    select_entities,
    combiner=lambda entities: tuple(entities.values()),
    name="entity_list",
)

select_pending_keys = create_selector(
    select_operations,
    combiner=lambda operations: tuple(
        key for key, d in operations.items() if d.status is OperationStatus.PENDING
    ),
    name="pending_keys",
)

select_errors = create_selector(
    select_operations,
    combiner=lambda operations: {
        key: d.error for key, d in operations.items() if d.status is OperationStatus.REJECTED
    },
    name="errors",
)
