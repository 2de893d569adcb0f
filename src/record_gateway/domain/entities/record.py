"""Store record: a loosely typed field map with an opaque identity.

Records are the persistence-side shape the gateway moves to and from the
record store. Field values are tagged (see FieldValue); relationship
sub-query results hang off ``related`` keyed by relationship name.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable, Mapping

from record_gateway.domain.value_objects import (
    ID_FIELD,
    NULL,
    FieldType,
    FieldValue,
    RecordId,
)


@dataclass(eq=False)
class Record:
    """A row of a store collection.

    Equality is identity-based: two Record objects describing the same
    persisted row are still distinct pending writes. Use ``same_values``
    to compare content.

    Example:
        >>> rec = Record.from_values("Account", {"Name": "Acme"})
        >>> rec.value("Name")
        'Acme'
        >>> rec.id is None
        True
    """

    collection: str
    id: RecordId | None = None
    fields: dict[str, FieldValue] = field(default_factory=dict)
    related: dict[str, list[Record]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.collection:
            raise ValueError("Record collection must not be empty")
        self.fields.pop(ID_FIELD, None)

    @classmethod
    def from_values(
        cls,
        collection: str,
        values: Mapping[str, Any],
        id: RecordId | None = None,
    ) -> Record:
        """Build a record from plain Python values.

        An ``Id`` entry in ``values`` is taken as the record identity.
        """
        values = dict(values)
        raw_id = values.pop(ID_FIELD, None)
        record_id = id if id is not None else raw_id
        return cls(
            collection=collection,
            id=RecordId(record_id) if record_id is not None else None,
            fields={name: FieldValue.of(v) for name, v in values.items()},
        )

    def get(self, name: str) -> FieldValue:
        """Return the tagged value of a field (NULL when absent)."""
        if name == ID_FIELD:
            return FieldValue.reference(self.id)
        return self.fields.get(name, NULL)

    def value(self, name: str) -> Any:
        """Return the raw value of a field (None when absent)."""
        return self.get(name).value

    def set(self, name: str, value: Any) -> None:
        """Set a field from a plain or tagged value."""
        if name == ID_FIELD:
            self.id = RecordId(value) if value is not None else None
            return
        self.fields[name] = FieldValue.of(value)

    def narrow(self, name: str, expected: FieldType) -> Any:
        """Return a field narrowed to ``expected``; see FieldValue.narrow."""
        return self.get(name).narrow(expected, name)

    def as_dict(self) -> dict[str, Any]:
        """Plain view of the record including its id."""
        data: dict[str, Any] = {ID_FIELD: self.id}
        data.update({name: fv.value for name, fv in self.fields.items()})
        return data

    def project(self, names: list[str]) -> Record:
        """Copy of this record restricted to ``names`` (id always kept)."""
        return Record(
            collection=self.collection,
            id=self.id,
            fields={n: self.fields[n] for n in names if n in self.fields},
        )

    def same_values(self, other: Record) -> bool:
        """Field-for-field comparison, ignoring relationship results."""
        return (
            self.collection == other.collection
            and self.id == other.id
            and self.fields == other.fields
        )

    def identity_key(self) -> Hashable:
        """Key identifying this record among pending writes.

        Persisted records are keyed by (collection, id); new records by the
        object itself, since they have no identity yet.
        """
        if self.id is not None:
            return (self.collection, self.id)
        return ("new", self.collection, id(self))

    def __repr__(self) -> str:
        return f"Record({self.collection}:{self.id}, {len(self.fields)} fields)"
