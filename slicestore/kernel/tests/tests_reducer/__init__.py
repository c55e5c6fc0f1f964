"""
Reducer Test Suite

1. test_reducer_happy_path.py - one test per intent type
2. test_reducer_rejections.py - unknown, stale and async intents
3. test_reducer_replay.py - rebuilding snapshots from intents
"""
