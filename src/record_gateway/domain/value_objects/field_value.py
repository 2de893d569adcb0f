"""Tagged field values for loosely typed store records.

Records coming back from the store are field maps whose values may be any of
a closed set of variants. Each value carries its tag so repositories can
narrow it to the strongly typed attribute they expect and report a
FieldTypeMismatchError instead of silently coercing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from record_gateway.domain.errors import FieldTypeMismatchError


class FieldType(Enum):
    """Closed set of field variants a record can hold."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    REFERENCE = "reference"
    NULL = "null"


def _check_payload(field_type: FieldType, value: Any) -> bool:
    """Check the raw value agrees with its tag."""
    if field_type == FieldType.NULL:
        return value is None
    if field_type in (FieldType.STRING, FieldType.REFERENCE):
        return isinstance(value, str)
    if field_type == FieldType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if field_type == FieldType.DECIMAL:
        return isinstance(value, Decimal)
    if field_type == FieldType.BOOLEAN:
        return isinstance(value, bool)
    if field_type == FieldType.DATETIME:
        return isinstance(value, datetime)
    if field_type == FieldType.DATE:
        # datetime is a date subclass; keep the two variants apart
        return isinstance(value, date) and not isinstance(value, datetime)
    return False


@dataclass(frozen=True, slots=True)
class FieldValue:
    """A single tagged field value.

    Example:
        >>> FieldValue.of(42)
        FieldValue(INTEGER: 42)
        >>> FieldValue.of(42).narrow(FieldType.DECIMAL, "Amount")
        Decimal('42')
    """

    type: FieldType
    value: Any = None

    def __post_init__(self) -> None:
        if not _check_payload(self.type, self.value):
            raise FieldTypeMismatchError(
                "<value>", self.type.value, type(self.value).__name__
            )

    @classmethod
    def of(cls, value: Any) -> FieldValue:
        """Infer the variant from a plain Python value."""
        if isinstance(value, FieldValue):
            return value
        if value is None:
            return NULL
        # bool before int, datetime before date: both are subclasses
        if isinstance(value, bool):
            return cls(FieldType.BOOLEAN, value)
        if isinstance(value, int):
            return cls(FieldType.INTEGER, value)
        if isinstance(value, Decimal):
            return cls(FieldType.DECIMAL, value)
        if isinstance(value, float):
            return cls(FieldType.DECIMAL, Decimal(str(value)))
        if isinstance(value, str):
            return cls(FieldType.STRING, value)
        if isinstance(value, datetime):
            return cls(FieldType.DATETIME, value)
        if isinstance(value, date):
            return cls(FieldType.DATE, value)
        raise FieldTypeMismatchError("<value>", "supported field variant", type(value).__name__)

    @classmethod
    def reference(cls, record_id: str | None) -> FieldValue:
        """Build a reference to another record (NULL when no id)."""
        if record_id is None:
            return NULL
        return cls(FieldType.REFERENCE, record_id)

    @property
    def is_null(self) -> bool:
        return self.type == FieldType.NULL

    def narrow(self, expected: FieldType, field: str = "<value>") -> Any:
        """Return the raw value if it fits ``expected``.

        NULL narrows to None for every variant and INTEGER widens to
        DECIMAL; every other mismatch raises.

        Raises:
            FieldTypeMismatchError: If the variant does not fit.
        """
        if self.type == expected or self.is_null:
            return self.value
        if expected == FieldType.DECIMAL and self.type == FieldType.INTEGER:
            return Decimal(self.value)
        raise FieldTypeMismatchError(field, expected.value, self.type.value)

    def __repr__(self) -> str:
        return f"FieldValue({self.type.name}: {self.value!r})"


NULL = FieldValue(FieldType.NULL, None)
"""The single NULL field value."""
