"""Adapters layer - concrete implementations of ports.

Exports:
    Outbound:
        - InMemoryRecordStore: Dictionary-backed RecordStore
        - RelationshipDef: Parent-to-child relationship declaration
        - StoreError: Whole-call store rejection
"""

from record_gateway.adapters.outbound import InMemoryRecordStore, RelationshipDef, StoreError

__all__ = [
    "InMemoryRecordStore",
    "RelationshipDef",
    "StoreError",
]
