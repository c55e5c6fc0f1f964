"""
Reducer — Replay Tests

replay(intents) == reduce(reduce(reduce(empty(), i1), i2), i3)...
"""

from slicestore.kernel import intents
from slicestore.kernel.reducer import empty_snapshot, reduce, replay
from slicestore.kernel.types import OperationStatus


class TestReplay:
    def test_replay_matches_stepwise_reduce(self):
        log = [
            intents.upsert_entity("u1", {"id": "u1", "name": "Ann"}),
            intents.upsert_entity("u2", {"id": "u2", "name": "Bob"}),
            intents.patch_entity("u1", {"name": "Anne"}),
            intents.remove_entity("u2"),
        ]
        stepwise = empty_snapshot()
        for intent in log:
            stepwise = reduce(stepwise, intent).snapshot

        replayed = replay(log)
        assert dict(replayed.entities) == dict(stepwise.entities)
        assert replayed.version == stepwise.version == 4

    def test_rejected_intents_skipped(self):
        log = [
            intents.begin_operation("fetchEntity", "u1", "req_a"),
            intents.fulfill_operation("fetchEntity", "u1", "req_stale", {"id": "stale"}),
            intents.fulfill_operation("fetchEntity", "u1", "req_a", {"id": "u1"}),
        ]
        snap = replay(log)
        assert snap.entity("u1") == {"id": "u1"}
        assert snap.operation("fetchEntity", "u1").status is OperationStatus.FULFILLED
        assert snap.version == 2

    def test_replay_onto_existing_snapshot(self):
        base = replay([intents.upsert_entity("u1", {"id": "u1"})])
        snap = replay([intents.upsert_entity("u2", {"id": "u2"})], snapshot=base)
        assert set(snap.entities) == {"u1", "u2"}
