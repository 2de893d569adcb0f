"""Domain entities for the record gateway.

Entities are objects with identity that have a lifecycle. Unlike value objects,
two entities with the same attributes may not be equal if they have different
identities.

Exports:
    Store side:
        - Record: Loosely typed store row with tagged field values

    Business side:
        - DomainEntity: Base class with construction-time validation
        - EntityValidationError: Invariant violation
        - Account, Address: Customer account and its billing address
        - Contact: Person attached to an account
"""

from record_gateway.domain.entities.account import Account, Address
from record_gateway.domain.entities.base import DomainEntity, EntityValidationError
from record_gateway.domain.entities.contact import Contact
from record_gateway.domain.entities.record import Record

__all__ = [
    # Store side
    "Record",
    # Business side
    "DomainEntity",
    "EntityValidationError",
    "Account",
    "Address",
    "Contact",
]
