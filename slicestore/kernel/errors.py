"""
slicestore Kernel — Exceptions

Raised by the dispatcher when a caller breaks the contract. Remote failures
are not exceptions here: they land in the registry as `rejected`.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for every error the store raises."""


class UnknownIntent(StoreError):
    """Intent type is not one the reducer handles."""


class UnknownOperation(StoreError):
    """Request names an operation kind that was never registered."""


class InvalidIntent(StoreError):
    """Intent payload is structurally malformed."""

    def __init__(self, intent_type: str, errors: list[str]) -> None:
        self.intent_type = intent_type
        self.errors = errors
        super().__init__(f"{intent_type}: {'; '.join(errors)}")


class InvalidTransition(StoreError):
    """Operation lifecycle transition not allowed from the current status."""


class StoreClosed(StoreError):
    """Dispatch after aclose()."""


class DispatchLoopError(StoreError):
    """Re-entrant dispatch queue grew past its bound."""


class OperationFailed(StoreError):
    """Raised by OperationOutcome.unwrap() for rejected or stale outcomes."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        self.message = message
        super().__init__(f"{key}: {message}")
