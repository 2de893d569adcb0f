"""Account entity and its billing address."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from record_gateway.domain.entities.base import (
    DomainEntity,
    EntityValidationError,
    require_text,
)


@dataclass(frozen=True)
class Address:
    """Postal address. All four components are required together."""

    street: str
    city: str
    state: str
    postal_code: str

    def __post_init__(self) -> None:
        for name in ("street", "city", "state", "postal_code"):
            require_text("Address", name, getattr(self, name))

    @classmethod
    def from_parts(
        cls,
        street: str | None,
        city: str | None,
        state: str | None,
        postal_code: str | None,
    ) -> Address | None:
        """Build an address from possibly empty parts.

        Returns None when every part is empty; a partially filled address
        is an invariant violation.
        """
        parts = (street, city, state, postal_code)
        if all(p is None or not p.strip() for p in parts):
            return None
        return cls(street or "", city or "", state or "", postal_code or "")

    def __str__(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.postal_code}"


@dataclass(kw_only=True)
class Account(DomainEntity):
    """A customer account."""

    name: str
    industry: str | None = None
    annual_revenue: Decimal | None = None
    employee_count: int | None = None
    billing_address: Address | None = None
    active: bool = True

    def validate(self) -> None:
        require_text("Account", "name", self.name)
        if self.annual_revenue is not None and self.annual_revenue < 0:
            raise EntityValidationError("Account", "annual_revenue must be non-negative")
        if self.employee_count is not None and self.employee_count < 0:
            raise EntityValidationError("Account", "employee_count must be non-negative")

    def rename(self, name: str) -> None:
        """Change the account name, keeping the old one if the new is invalid."""
        previous = self.name
        self.name = name
        try:
            self.validate()
        except EntityValidationError:
            self.name = previous
            raise

    def relocate(self, address: Address) -> None:
        """Move the account to a new billing address."""
        self.billing_address = address

    def record_headcount(self, employee_count: int) -> None:
        if employee_count < 0:
            raise EntityValidationError("Account", "employee_count must be non-negative")
        self.employee_count = employee_count

    def deactivate(self) -> None:
        self.active = False
