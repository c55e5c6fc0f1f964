"""
Dispatcher Test Suite

1. test_dispatcher_sync.py - synchronous intents publish and notify
2. test_dispatcher_async.py - fetch scenarios, coalescing, staleness
3. test_dispatcher_misuse.py - fail-fast contract violations
4. test_dispatcher_lifecycle.py - re-entrancy, history, shutdown
"""
