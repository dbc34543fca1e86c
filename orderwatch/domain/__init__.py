"""
Domain layer for Order Watch.

This layer contains the order entities, value objects, and the snapshot
state persisted between reconciliation cycles.
"""
