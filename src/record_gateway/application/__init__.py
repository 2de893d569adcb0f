"""Application layer for the record gateway.

The application layer orchestrates domain logic to fulfill use cases:
governed reads, batched writes and entity repositories.

Exports:
    Session:
        - DataSession: Wires one governor, executor, writer and repositories
    Reads:
        - QueryExecutor: Governed query dispatch
    Writes:
        - BatchWriter: Pending write set flushed in bulk
        - FlushReport, RecordResult: Flush outcomes
    Repositories:
        - Repository, FieldMapping, WriteState: Entity mapping seam
        - AccountRepository, ContactRepository: Concrete repositories
"""

from record_gateway.application.batch_writer import (
    BatchWriter,
    FlushReport,
    PendingWrite,
    PendingWriteSet,
    RecordResult,
)
from record_gateway.application.executor import QueryExecutor
from record_gateway.application.repositories import AccountRepository, ContactRepository
from record_gateway.application.repository import FieldMapping, Repository, WriteState
from record_gateway.application.session import DataSession

__all__ = [
    "DataSession",
    "QueryExecutor",
    "BatchWriter",
    "FlushReport",
    "PendingWrite",
    "PendingWriteSet",
    "RecordResult",
    "Repository",
    "FieldMapping",
    "WriteState",
    "AccountRepository",
    "ContactRepository",
]
