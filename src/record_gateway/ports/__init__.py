"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Outbound ports: Dependencies on external systems (the record store)

Adapters implement these ports with concrete functionality.
"""

from record_gateway.ports.outbound import AggregateRow, PerRecordResult, RecordStore

__all__ = [
    "AggregateRow",
    "PerRecordResult",
    "RecordStore",
]
