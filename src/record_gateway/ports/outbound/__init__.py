"""Outbound ports - interfaces for external dependencies.

Outbound ports define contracts for external systems that the gateway
depends on: the record store.
"""

from record_gateway.ports.outbound.record_store import (
    AggregateRow,
    PerRecordResult,
    RecordStore,
)

__all__ = [
    "AggregateRow",
    "PerRecordResult",
    "RecordStore",
]
