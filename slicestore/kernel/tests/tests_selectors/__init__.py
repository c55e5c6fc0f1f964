"""
Selector Test Suite

1. test_selectors_memoization.py - cache hits, misses and composition
2. test_selectors_failures.py - combiner exceptions leave the cache intact
"""
