"""
slicestore configuration — all environment variables in one place.

Read from environment at import time. Store(...) keyword arguments override
these per instance.
"""

from __future__ import annotations

import os


class Settings:
    """Store defaults from environment variables."""

    # What a request does when the same operation key is already pending:
    # "coalesce" attaches to the in-flight request, "supersede" starts a new one.
    DEFAULT_POLICY: str = os.environ.get("SLICESTORE_DEFAULT_POLICY", "coalesce")

    # "log" keeps notifying after an observer raises, "raise" re-raises after the round.
    OBSERVER_ERRORS: str = os.environ.get("SLICESTORE_OBSERVER_ERRORS", "log")

    # Re-entrant dispatches (from observers) allowed to queue before we call it a loop.
    MAX_QUEUE_DEPTH: int = int(os.environ.get("SLICESTORE_MAX_QUEUE_DEPTH", "1000"))

    # Applied intents kept in Store.history. 0 disables the log.
    HISTORY_LIMIT: int = int(os.environ.get("SLICESTORE_HISTORY_LIMIT", "100"))


# Singleton instance
settings = Settings()

if settings.DEFAULT_POLICY not in ("coalesce", "supersede"):
    raise RuntimeError(f"SLICESTORE_DEFAULT_POLICY must be coalesce or supersede, got {settings.DEFAULT_POLICY!r}")
if settings.OBSERVER_ERRORS not in ("log", "raise"):
    raise RuntimeError(f"SLICESTORE_OBSERVER_ERRORS must be log or raise, got {settings.OBSERVER_ERRORS!r}")
if settings.MAX_QUEUE_DEPTH < 1:
    raise RuntimeError("SLICESTORE_MAX_QUEUE_DEPTH must be at least 1")
if settings.HISTORY_LIMIT < 0:
    raise RuntimeError("SLICESTORE_HISTORY_LIMIT must not be negative")
