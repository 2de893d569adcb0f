"""Value objects for the record gateway domain.

Value objects are immutable types that represent domain concepts.
They have no identity - two value objects with the same attributes are equal.

Exports:
    Identifiers:
        - RecordId: Opaque store-assigned record identity
        - ID_FIELD: Name of the identity field
        - OperationKind: Write kinds (INSERT, UPDATE, UPSERT, DELETE)

    Field values:
        - FieldType: Closed set of field variants
        - FieldValue: Tagged field value with narrowing
        - NULL: The NULL field value

    Results:
        - Result: Explicit success/failure carrier
"""

from record_gateway.domain.value_objects.field_value import NULL, FieldType, FieldValue
from record_gateway.domain.value_objects.identifiers import ID_FIELD, OperationKind, RecordId
from record_gateway.domain.value_objects.result import Result

__all__ = [
    # Identifiers
    "RecordId",
    "ID_FIELD",
    "OperationKind",
    # Field values
    "FieldType",
    "FieldValue",
    "NULL",
    # Results
    "Result",
]
