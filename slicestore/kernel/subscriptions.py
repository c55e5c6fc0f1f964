"""
slicestore Kernel — Subscriptions

Delivers each published Snapshot to observers, in subscription order, once
per publication. Scoped subscriptions receive a selected value instead and
are only called when that value changes identity.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from slicestore.kernel.errors import StoreError
from slicestore.kernel.types import Snapshot

logger = logging.getLogger(__name__)

Observer = Callable[[Any], None]

_UNSET = object()


class Subscription:
    """Handle returned by subscribe(). Call it (or .unsubscribe()) to detach."""

    __slots__ = ("_hub", "observer", "selector", "last_value", "active")

    def __init__(self, hub: SubscriptionHub, observer: Observer, selector: Callable[[Snapshot], Any] | None):
        self._hub = hub
        self.observer = observer
        self.selector = selector
        self.last_value: Any = _UNSET
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._hub._detach(self)

    __call__ = unsubscribe


class SubscriptionHub:
    """
    Observer registry and notifier.

    `raise_errors=False` logs observer exceptions and keeps delivering;
    `True` finishes the round, then re-raises the first one. A StoreError
    raised by an observer always propagates at once.
    """

    def __init__(self, *, raise_errors: bool = False) -> None:
        self._subscriptions: list[Subscription] = []
        self._raise_errors = raise_errors

    def subscribe(
        self,
        observer: Observer,
        selector: Callable[[Snapshot], Any] | None = None,
        *,
        current: Snapshot | None = None,
    ) -> Subscription:
        """
        Register observer. With a selector, `current` seeds the baseline so the
        first notification only fires once the selected value actually changes.
        """
        subscription = Subscription(self, observer, selector)
        if selector is not None and current is not None:
            subscription.last_value = selector(current)
        self._subscriptions.append(subscription)
        logger.debug("subscriptions: added %r (%d total)", observer, len(self._subscriptions))
        return subscription

    def notify(self, snapshot: Snapshot) -> None:
        # Iterate a copy so (un)subscribing mid-round neither skips nor repeats.
        round_ = list(self._subscriptions)
        first_error: BaseException | None = None

        for subscription in round_:
            try:
                self._deliver(subscription, snapshot)
            except StoreError:
                # Contract violations from an observer (e.g. a dispatch loop) abort the round.
                raise
            except Exception as e:
                if self._raise_errors:
                    first_error = first_error or e
                    continue
                logger.exception("subscriptions: observer %r failed on version %d", subscription.observer, snapshot.version)

        if first_error is not None:
            raise first_error

    def clear(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def _deliver(self, subscription: Subscription, snapshot: Snapshot) -> None:
        if subscription.selector is None:
            subscription.observer(snapshot)
            return
        value = subscription.selector(snapshot)
        if value is subscription.last_value:
            return
        subscription.last_value = value
        subscription.observer(value)

    def _detach(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            logger.debug("subscriptions: %r already detached", subscription.observer)
