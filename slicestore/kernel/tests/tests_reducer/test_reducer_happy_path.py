"""
Reducer — Happy Path Tests

One test per intent type. Apply intent to appropriate state, verify snapshot.
"""

import pytest

from slicestore.kernel import intents
from slicestore.kernel.reducer import empty_snapshot, reduce, remove_target
from slicestore.kernel.types import OperationStatus

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def empty():
    return empty_snapshot()


@pytest.fixture
def with_ann(empty):
    result = reduce(empty, intents.upsert_entity("u1", {"id": "u1", "name": "Ann"}))
    assert result.applied
    return result.snapshot


@pytest.fixture
def fetching(with_ann):
    result = reduce(with_ann, intents.begin_operation("fetchEntity", "u1", "req_a"))
    assert result.applied
    return result.snapshot


# ============================================================================
# Entity intents
# ============================================================================


class TestEntityIntents:
    def test_upsert(self, with_ann):
        assert with_ann.entity("u1") == {"id": "u1", "name": "Ann"}
        assert with_ann.version == 1

    def test_patch(self, with_ann):
        result = reduce(with_ann, intents.patch_entity("u1", {"name": "Anne"}))
        assert result.snapshot.entity("u1") == {"id": "u1", "name": "Anne"}

    def test_remove(self, with_ann):
        result = reduce(with_ann, intents.remove_entity("u1"))
        assert result.snapshot.entity("u1") is None

    def test_remove_absent_still_publishes_same_entities(self, with_ann):
        result = reduce(with_ann, intents.remove_entity("ghost"))
        assert result.applied
        assert result.snapshot.version == with_ann.version + 1
        assert result.snapshot.entities is with_ann.entities

    def test_upsert_many(self, empty):
        result = reduce(empty, intents.upsert_entities({"a": 1, "b": 2}))
        assert dict(result.snapshot.entities) == {"a": 1, "b": 2}

    def test_remove_many(self, empty):
        snap = reduce(empty, intents.upsert_entities({"a": 1, "b": 2})).snapshot
        result = reduce(snap, intents.remove_entities(["a"]))
        assert dict(result.snapshot.entities) == {"b": 2}

    def test_entity_intent_keeps_operations_identity(self, fetching):
        result = reduce(fetching, intents.upsert_entity("u2", {}))
        assert result.snapshot.operations is fetching.operations

    def test_input_snapshot_untouched(self, with_ann):
        reduce(with_ann, intents.upsert_entity("u1", {"id": "u1", "name": "Zed"}))
        assert with_ann.entity("u1")["name"] == "Ann"


# ============================================================================
# Operation intents
# ============================================================================


class TestOperationIntents:
    def test_begin(self, fetching):
        assert fetching.operation("fetchEntity", "u1").status is OperationStatus.PENDING

    def test_begin_keeps_entities_identity(self, with_ann, fetching):
        assert fetching.entities is with_ann.entities

    def test_fulfill_upserts_result(self, fetching):
        result = reduce(
            fetching,
            intents.fulfill_operation("fetchEntity", "u1", "req_a", {"id": "u1", "name": "Ann B."}),
        )
        assert result.applied
        assert result.snapshot.entity("u1") == {"id": "u1", "name": "Ann B."}
        assert result.snapshot.operation("fetchEntity", "u1").status is OperationStatus.FULFILLED

    def test_fulfill_with_custom_applier(self, fetching):
        result = reduce(
            fetching,
            intents.fulfill_operation("fetchEntity", "u1", "req_a", None),
            appliers={"fetchEntity": remove_target},
        )
        assert result.snapshot.entity("u1") is None

    def test_reject_leaves_entities(self, fetching):
        result = reduce(fetching, intents.reject_operation("fetchEntity", "u1", "req_a", "network down"))
        descriptor = result.snapshot.operation("fetchEntity", "u1")
        assert descriptor.status is OperationStatus.REJECTED
        assert descriptor.error == "network down"
        assert result.snapshot.entities is fetching.entities

    def test_reset(self, fetching):
        result = reduce(fetching, intents.reset_operation("fetchEntity", "u1"))
        assert result.snapshot.operation("fetchEntity", "u1").status is OperationStatus.IDLE

    def test_failing_applier_rejects_operation(self, fetching):
        def explode(entities, target, value):
            raise ValueError("bad payload")

        result = reduce(
            fetching,
            intents.fulfill_operation("fetchEntity", "u1", "req_a", {}),
            appliers={"fetchEntity": explode},
        )
        assert result.applied
        descriptor = result.snapshot.operation("fetchEntity", "u1")
        assert descriptor.status is OperationStatus.REJECTED
        assert descriptor.error == "bad payload"
        assert result.snapshot.entities is fetching.entities


# ============================================================================
# Serialization
# ============================================================================


class TestToDict:
    def test_snapshot_to_dict(self, fetching):
        data = fetching.to_dict()
        assert data["version"] == 2
        assert data["entities"] == {"u1": {"id": "u1", "name": "Ann"}}
        operation = data["operations"]["fetchEntity:u1"]
        assert operation["status"] == "pending"
        assert operation["request_id"] == "req_a"
