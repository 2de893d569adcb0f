"""Outbound adapters - implementations of outbound ports."""

from record_gateway.adapters.outbound.memory_record_store import (
    InMemoryRecordStore,
    RelationshipDef,
    StoreError,
)

__all__ = [
    "InMemoryRecordStore",
    "RelationshipDef",
    "StoreError",
]
