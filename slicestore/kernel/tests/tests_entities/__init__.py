"""
Entity Store Test Suite

1. test_entities_round_trip.py - upsert/get/remove and identity preservation
2. test_entities_merge.py - partial update merge rules
"""
