"""Core identifiers and write-operation kinds.

Record identities are opaque strings assigned by the record store. The
NewType keeps them from being mixed up with ordinary field values.
"""

from __future__ import annotations

from enum import Enum
from typing import NewType


RecordId = NewType("RecordId", str)
"""Opaque identity of a persisted record, assigned by the store on insert."""

ID_FIELD = "Id"
"""Name of the identity field on every record."""


class OperationKind(Enum):
    """Kinds of write a batch writer can queue.

    Declaration order is flush order: inserts go first so that later
    operations in the same unit of work can reference freshly assigned ids.
    """

    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    DELETE = "delete"

    def requires_id(self) -> bool:
        """Whether the record must already carry an identity."""
        return self in (OperationKind.UPDATE, OperationKind.DELETE)

    def forbids_id(self) -> bool:
        """Whether the record must not carry an identity yet."""
        return self == OperationKind.INSERT
