"""
slicestore Intents — Validation Tests

Structural checks run before an intent reaches the reducer.

  - entity.upsert: requires key, entity
  - entity.patch: requires key, fields (object)
  - entity.remove: requires key
  - entity.upsert_many / remove_many: items object / keys list, valid keys
  - operation.request: requires kind, target; policy must be known
  - operation.reset: requires kind, target
"""

import pytest

from slicestore.kernel import intents
from slicestore.kernel.intents import validate_intent
from slicestore.kernel.types import Intent

# ============================================================================
# Factories produce valid intents
# ============================================================================


class TestFactories:
    @pytest.mark.parametrize(
        "intent",
        [
            intents.upsert_entity("u1", {"id": "u1"}),
            intents.upsert_entity(7, None),
            intents.patch_entity("u1", {"name": "Ann"}),
            intents.remove_entity("u1"),
            intents.upsert_entities({"a": 1, 2: "b"}),
            intents.remove_entities(["a", 2]),
            intents.fetch_entity("u1"),
            intents.update_entity("u1", {"name": "Ann"}, policy="supersede"),
            intents.reset_operation("fetchEntity", "u1"),
            intents.begin_operation("fetchEntity", "u1", "req_a"),
            intents.fulfill_operation("fetchEntity", "u1", "req_a", {}),
            intents.reject_operation("fetchEntity", "u1", "req_a", "boom"),
        ],
    )
    def test_valid(self, intent):
        assert validate_intent(intent) == []

    def test_fetch_entity_shape(self):
        intent = intents.fetch_entity("u1")
        assert intent.type == "operation.request"
        assert intent.payload["kind"] == "fetchEntity"
        assert intent.payload["target"] == "u1"
        assert intent.payload["policy"] is None

    def test_reset_carries_operation_key(self):
        assert intents.reset_operation("fetchEntity", "u1").payload["key"] == "fetchEntity:u1"


# ============================================================================
# Structural errors
# ============================================================================


class TestErrors:
    def test_unknown_type(self):
        errors = validate_intent(Intent(type="entity.explode", payload={}))
        assert errors == ["Unknown intent type: entity.explode"]

    def test_payload_must_be_dict(self):
        errors = validate_intent(Intent(type="entity.remove", payload=["u1"]))
        assert errors == ["Payload must be a non-null object"]

    def test_upsert_missing_key_and_entity(self):
        errors = validate_intent(Intent(type="entity.upsert", payload={}))
        assert len(errors) == 2

    @pytest.mark.parametrize("key", ["", True, 1.5, None, ("a",)])
    def test_invalid_keys(self, key):
        errors = validate_intent(Intent(type="entity.remove", payload={"key": key}))
        assert len(errors) == 1
        assert "key" in errors[0].lower()

    def test_patch_fields_must_be_object(self):
        errors = validate_intent(Intent(type="entity.patch", payload={"key": "u1", "fields": ["name"]}))
        assert "fields" in errors[0]

    def test_upsert_many_bad_key(self):
        errors = validate_intent(Intent(type="entity.upsert_many", payload={"items": {"": 1}}))
        assert len(errors) == 1

    def test_request_missing_kind(self):
        errors = validate_intent(Intent(type="operation.request", payload={"target": "u1"}))
        assert "kind" in errors[0]

    def test_request_unknown_policy(self):
        errors = validate_intent(intents.request("fetchEntity", "u1", policy="fastest"))
        assert errors == ["Unknown policy: fastest"]

    def test_settlement_requires_request_id(self):
        errors = validate_intent(
            Intent(type="operation.fulfill", payload={"kind": "fetchEntity", "target": "u1", "value": 1})
        )
        assert any("request_id" in e for e in errors)
