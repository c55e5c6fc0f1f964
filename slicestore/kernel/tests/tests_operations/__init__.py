"""
Operation Tracker Test Suite

1. test_operations_lifecycle.py - legal and illegal status transitions
2. test_operations_errors.py - error normalization
"""
