"""
slicestore Kernel — Dispatcher

The Store: single entry point for every state change.

Sits between the pure functions (reducer, operations, entities) and the
outside world (performers that talk to remote services, observers that
render). This is where asyncio tasks are started and where snapshots are
published; everything below it is pure.

Ordering rules:
- dispatch() is serialized. An intent dispatched while another is being
  applied (e.g. from an observer) is queued and applied after the current
  one, notification round included, in arrival order.
- operation.request records `pending` and publishes before returning; the
  performer runs as a task and its settlement comes back through the same
  queue.
- A settlement whose request is no longer current for its key is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from slicestore.config import settings
from slicestore.kernel import intents as intent_factory
from slicestore.kernel.errors import (
    DispatchLoopError,
    InvalidIntent,
    InvalidTransition,
    StoreClosed,
    UnknownIntent,
    UnknownOperation,
)
from slicestore.kernel.operations import normalize_error
from slicestore.kernel.reducer import Applier, empty_snapshot, reduce, upsert_result
from slicestore.kernel.subscriptions import Observer, Subscription, SubscriptionHub
from slicestore.kernel.types import (
    ASYNC_INTENT_TYPES,
    REQUEST_POLICIES,
    SYNC_INTENT_TYPES,
    DispatchResult,
    EntityKey,
    Intent,
    OperationDescriptor,
    OperationOutcome,
    OperationStatus,
    Snapshot,
    operation_key,
)

logger = logging.getLogger(__name__)

# async perform(target, payload) → result. Raises on failure.
Performer = Callable[[EntityKey, Any], Awaitable[Any]]


@dataclass(frozen=True)
class OperationKind:
    """A registered async operation: how to run it and where its result goes."""

    name: str
    perform: Performer
    apply: Applier = upsert_result


class OperationHandle:
    """
    Awaitable returned by dispatch() for operation.request.
    Resolves to an OperationOutcome; never raises for remote failures.
    """

    def __init__(self, key: str, future: asyncio.Future[OperationOutcome]) -> None:
        self.key = key
        self._future = future
        self.request_id: str | None = None
        self.coalesced = False

    def __await__(self):
        return self._future.__await__()

    def done(self) -> bool:
        return self._future.done()

    def outcome(self) -> OperationOutcome:
        """The outcome, once done(). Raises InvalidStateError before that."""
        return self._future.result()

    def __repr__(self) -> str:  # pragma: no cover
        state = "done" if self.done() else "pending"
        return f"OperationHandle({self.key}, {state}, coalesced={self.coalesced})"


@dataclass
class _InFlight:
    kind: str
    target: EntityKey
    request_id: str
    waiters: list[asyncio.Future[OperationOutcome]] = field(default_factory=list)

    @property
    def key(self) -> str:
        return operation_key(self.kind, self.target)


@dataclass
class _Queued:
    intent: Intent
    handle: OperationHandle | None = None


class Store:
    """
    Owns the current Snapshot, the performer registry, the subscription hub
    and the in-flight tasks.

    Construct one per application (or per test); close it with aclose() or
    use it as an async context manager.
    """

    def __init__(
        self,
        *,
        operations: Mapping[str, Performer | OperationKind] | None = None,
        snapshot: Snapshot | None = None,
        policy: str | None = None,
        observer_errors: str | None = None,
        max_queue_depth: int | None = None,
        history_limit: int | None = None,
    ) -> None:
        self._policy = policy or settings.DEFAULT_POLICY
        if self._policy not in REQUEST_POLICIES:
            raise ValueError(f"Unknown policy: {self._policy}")

        errors_mode = observer_errors or settings.OBSERVER_ERRORS
        if errors_mode not in ("log", "raise"):
            raise ValueError(f"observer_errors must be 'log' or 'raise', got {errors_mode!r}")

        self._snapshot = snapshot or empty_snapshot()
        self._hub = SubscriptionHub(raise_errors=errors_mode == "raise")
        self._kinds: dict[str, OperationKind] = {}
        self._inflight: dict[str, _InFlight] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._queue: deque[_Queued] = deque()
        self._dispatching = False
        self._closed = False
        self._max_queue_depth = max_queue_depth if max_queue_depth is not None else settings.MAX_QUEUE_DEPTH

        limit = history_limit if history_limit is not None else settings.HISTORY_LIMIT
        self._history: deque[Intent] | None = deque(maxlen=limit) if limit else None

        for name, definition in (operations or {}).items():
            if isinstance(definition, OperationKind):
                self.register_operation(name, definition.perform, apply=definition.apply)
            else:
                self.register_operation(name, definition)

    # -- read side --

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def history(self) -> tuple[Intent, ...]:
        """Applied intents, oldest first, bounded by history_limit."""
        return tuple(self._history) if self._history is not None else ()

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, key: EntityKey) -> Any:
        return self._snapshot.entities.get(key)

    def status(self, kind: str, target: EntityKey) -> OperationDescriptor:
        return self._snapshot.operation(kind, target)

    def select(self, selector: Callable[[Snapshot], Any]) -> Any:
        return selector(self._snapshot)

    def subscribe(self, observer: Observer, selector: Callable[[Snapshot], Any] | None = None) -> Subscription:
        """
        Observer gets every published Snapshot, or with a selector, the
        selected value whenever it changes.
        """
        return self._hub.subscribe(observer, selector, current=self._snapshot)

    # -- operations --

    def register_operation(self, kind: str, perform: Performer, *, apply: Applier = upsert_result) -> None:
        if kind in self._kinds:
            raise ValueError(f"Operation kind already registered: {kind}")
        self._kinds[kind] = OperationKind(name=kind, perform=perform, apply=apply)
        logger.debug("dispatcher: registered operation %s", kind)

    @property
    def operation_kinds(self) -> tuple[str, ...]:
        return tuple(self._kinds)

    # -- dispatch --

    def dispatch(self, intent: Intent) -> DispatchResult | OperationHandle:
        """
        Apply a synchronous intent, or start an async request.

        Sync intents return a DispatchResult carrying the published snapshot
        (snapshot=None and queued=True when dispatched re-entrantly).
        operation.request returns an OperationHandle.
        """
        if self._closed:
            raise StoreClosed("dispatch after aclose()")
        self._validate(intent)

        item = _Queued(intent)
        if intent.type in ASYNC_INTENT_TYPES:
            p = intent.payload
            future = asyncio.get_running_loop().create_future()
            item.handle = OperationHandle(operation_key(p["kind"], p["target"]), future)

        result = self._submit(item)
        if item.handle is not None:
            return item.handle
        if result is None:
            return DispatchResult(intent=intent, snapshot=None, queued=True)
        return DispatchResult(intent=intent, snapshot=result)

    async def wait_idle(self) -> None:
        """Wait until no performer is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight performers and detach observers. Idempotent."""
        if self._closed:
            return
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
        self._hub.clear()
        logger.debug("dispatcher: closed (%d tasks cancelled)", len(tasks))

    async def __aenter__(self) -> Store:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _validate(self, intent: Intent) -> None:
        if intent.type not in SYNC_INTENT_TYPES and intent.type not in ASYNC_INTENT_TYPES:
            raise UnknownIntent(intent.type)
        errors = intent_factory.validate_intent(intent)
        if errors:
            raise InvalidIntent(intent.type, errors)
        if intent.type == "operation.request" and intent.payload["kind"] not in self._kinds:
            raise UnknownOperation(intent.payload["kind"])

    def _submit(self, item: _Queued) -> Snapshot | None:
        """
        Queue item and, unless a dispatch is already running, drain the queue.
        Returns the snapshot published for item, or None if it was queued.
        """
        if self._dispatching:
            if len(self._queue) >= self._max_queue_depth:
                raise DispatchLoopError(
                    f"{len(self._queue)} intents queued while dispatching; observers are dispatching in a loop"
                )
            self._queue.append(item)
            logger.debug("dispatcher: queued %s behind running dispatch", item.intent.type)
            return None

        self._queue.append(item)
        self._dispatching = True
        published: Snapshot | None = None
        try:
            while self._queue:
                current = self._queue.popleft()
                snapshot = self._apply(current)
                if current is item:
                    published = snapshot
        except Exception:
            # Whatever was queued behind the failure never runs.
            self._drop_queue()
            raise
        finally:
            self._dispatching = False
        return published

    def _drop_queue(self) -> None:
        """Discard queued intents; their handles are cancelled."""
        if not self._queue:
            return
        logger.warning("dispatcher: dropping %d queued intents", len(self._queue))
        while self._queue:
            dropped = self._queue.popleft()
            if dropped.handle is not None:
                dropped.handle._future.cancel()

    def _apply(self, item: _Queued) -> Snapshot:
        intent = item.intent
        if intent.type == "operation.request":
            return self._apply_request(item)

        result = reduce(self._snapshot, intent, self._appliers())
        if not result.applied:
            if result.error and result.error.startswith("STALE_RESOLUTION"):
                logger.warning("dispatcher: discarded stale resolution %s", result.error)
                return self._snapshot
            raise InvalidTransition(result.error)

        if intent.type == "operation.reset":
            # Anything still running for this key is stale now.
            self._inflight.pop(intent.payload["key"], None)

        self._publish(result.snapshot, intent)
        return result.snapshot

    def _apply_request(self, item: _Queued) -> Snapshot:
        p = item.intent.payload
        kind, target = p["kind"], p["target"]
        key = operation_key(kind, target)
        policy = p.get("policy") or self._policy
        handle = item.handle
        assert handle is not None

        descriptor = self._snapshot.operations.get(key)
        already_pending = descriptor is not None and descriptor.status is OperationStatus.PENDING
        flight = self._inflight.get(key)

        if already_pending and policy == "coalesce" and flight is not None:
            flight.waiters.append(handle._future)
            handle.request_id = flight.request_id
            handle.coalesced = True
            logger.debug("dispatcher: coalesced %s onto request %s", key, flight.request_id)
            return self._snapshot

        request_id = uuid.uuid4().hex
        begin = intent_factory.begin_operation(kind, target, request_id, supersede=already_pending)
        result = reduce(self._snapshot, begin, self._appliers())
        if not result.applied:
            raise InvalidTransition(result.error)

        if already_pending:
            logger.debug("dispatcher: %s superseded by request %s", key, request_id)

        flight = _InFlight(kind=kind, target=target, request_id=request_id, waiters=[handle._future])
        self._inflight[key] = flight
        handle.request_id = request_id

        # The task exists before observers run; it first runs at the next await.
        task = asyncio.get_running_loop().create_task(self._run(self._kinds[kind], flight, p.get("payload")))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self._publish(result.snapshot, begin)
        return result.snapshot

    async def _run(self, definition: OperationKind, flight: _InFlight, payload: Any) -> None:
        try:
            value = await definition.perform(flight.target, payload)
        except asyncio.CancelledError:
            for waiter in flight.waiters:
                waiter.cancel()
            raise
        except Exception as e:
            error = normalize_error(e)
            logger.info("dispatcher: %s rejected: %s", flight.key, error)
            settle = intent_factory.reject_operation(flight.kind, flight.target, flight.request_id, error)
            performed = OperationOutcome(key=flight.key, status=OperationStatus.REJECTED, error=error)
        else:
            logger.info("dispatcher: %s fulfilled", flight.key)
            settle = intent_factory.fulfill_operation(flight.kind, flight.target, flight.request_id, value)
            performed = OperationOutcome(key=flight.key, status=OperationStatus.FULFILLED, value=value)

        try:
            if self._closed:
                outcome = _stale(performed)
            else:
                outcome = self._settle(flight, settle, performed)
        except Exception:
            # No caller awaits this task; the waiters still need an answer.
            logger.exception("dispatcher: settling %s raised", flight.key)
            outcome = self._outcome_from_registry(flight.key, performed)
        finally:
            if self._inflight.get(flight.key) is flight:
                del self._inflight[flight.key]

        for waiter in flight.waiters:
            if not waiter.done():
                waiter.set_result(outcome)

    def _settle(self, flight: _InFlight, settle: Intent, performed: OperationOutcome) -> OperationOutcome:
        current = self._snapshot.operations.get(flight.key)
        is_current = (
            current is not None
            and current.status is OperationStatus.PENDING
            and current.request_id == flight.request_id
        )
        if not is_current:
            logger.warning("dispatcher: %s request %s resolved after being superseded", flight.key, flight.request_id)
            return _stale(performed)
        self._submit(_Queued(settle))
        return self._outcome_from_registry(flight.key, performed)

    def _outcome_from_registry(self, key: str, performed: OperationOutcome) -> OperationOutcome:
        descriptor = self._snapshot.operations.get(key)
        if descriptor is None or not descriptor.is_settled:
            return performed
        return OperationOutcome(
            key=key,
            status=descriptor.status,
            value=descriptor.value if descriptor.status is OperationStatus.FULFILLED else None,
            error=descriptor.error,
        )

    def _publish(self, snapshot: Snapshot, intent: Intent) -> None:
        self._snapshot = snapshot
        if self._history is not None:
            self._history.append(intent)
        logger.debug("dispatcher: published version %d after %s", snapshot.version, intent.type)
        self._hub.notify(snapshot)

    def _appliers(self) -> dict[str, Applier]:
        return {name: kind.apply for name, kind in self._kinds.items()}


def _stale(performed: OperationOutcome) -> OperationOutcome:
    return OperationOutcome(
        key=performed.key,
        status=performed.status,
        value=performed.value,
        error=performed.error,
        stale=True,
    )
