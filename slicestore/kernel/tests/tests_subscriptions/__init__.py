"""
Subscription Test Suite

1. test_subscriptions_delivery.py - order, once-per-round, unsubscribe mid-round
"""
