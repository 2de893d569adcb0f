"""Contact entity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from record_gateway.domain.entities.base import (
    DomainEntity,
    EntityValidationError,
    require_text,
)


@dataclass(kw_only=True)
class Contact(DomainEntity):
    """A person attached to an account."""

    last_name: str
    first_name: str | None = None
    email: str | None = None
    account_id: str | None = None
    birthdate: date | None = None

    def validate(self) -> None:
        require_text("Contact", "last_name", self.last_name)
        if self.email is not None and "@" not in self.email:
            raise EntityValidationError("Contact", f"invalid email {self.email!r}")

    @property
    def full_name(self) -> str:
        if self.first_name:
            return f"{self.first_name} {self.last_name}"
        return self.last_name

    def change_email(self, email: str | None) -> None:
        if email is not None and "@" not in email:
            raise EntityValidationError("Contact", f"invalid email {email!r}")
        self.email = email

    def assign_to(self, account_id: str) -> None:
        """Attach the contact to a persisted account."""
        require_text("Contact", "account_id", account_id)
        self.account_id = account_id
