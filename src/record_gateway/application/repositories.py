"""Repositories for the business entities."""

from __future__ import annotations

from typing import Any, Iterable

from record_gateway.application.repository import FieldMapping, Repository
from record_gateway.domain.entities import Account, Address, Contact
from record_gateway.domain.query import in_
from record_gateway.domain.value_objects import ID_FIELD, FieldType, Result

_ADDRESS_PARTS = ("street", "city", "state", "postal_code")


class ContactRepository(Repository[Contact]):
    collection = "Contact"
    entity_type = Contact
    mappings = (
        FieldMapping("last_name", "LastName", FieldType.STRING),
        FieldMapping("first_name", "FirstName", FieldType.STRING),
        FieldMapping("email", "Email", FieldType.STRING),
        FieldMapping("account_id", "AccountId", FieldType.REFERENCE),
        FieldMapping("birthdate", "Birthdate", FieldType.DATE),
    )

    def find_by_account_ids(self, account_ids: Iterable[str]) -> Result[list[Contact]]:
        """Contacts of every given account, with a single query."""
        ids = list(dict.fromkeys(account_ids))
        if not ids:
            return Result.success([])
        return self.find(in_("AccountId", ids), order_by=("LastName",))


class AccountRepository(Repository[Account]):
    """Accounts; the billing address spreads over four Billing* fields."""

    collection = "Account"
    entity_type = Account
    contacts_relation = "Contacts"
    mappings = (
        FieldMapping("name", "Name", FieldType.STRING),
        FieldMapping("industry", "Industry", FieldType.STRING),
        FieldMapping("annual_revenue", "AnnualRevenue", FieldType.DECIMAL),
        FieldMapping("employee_count", "NumberOfEmployees", FieldType.INTEGER),
        FieldMapping("active", "Active", FieldType.BOOLEAN),
        FieldMapping("street", "BillingStreet", FieldType.STRING),
        FieldMapping("city", "BillingCity", FieldType.STRING),
        FieldMapping("state", "BillingState", FieldType.STRING),
        FieldMapping("postal_code", "BillingPostalCode", FieldType.STRING),
    )

    def get_with_contacts(
        self, account_ids: Iterable[str]
    ) -> Result[list[tuple[Account, list[Contact]]]]:
        """Accounts and their contacts, fetched with one relationship query.

        Costs one query reservation no matter how many accounts are asked
        for, instead of one contact lookup per account.
        """
        ids = list(dict.fromkeys(account_ids))
        if not ids:
            return Result.success([])

        contacts = ContactRepository(self._executor, self._writer, self._limits)
        query = (
            self.base_query()
            .where(in_(ID_FIELD, ids))
            .with_relation(
                self.contacts_relation,
                contacts.base_query().order_by("LastName"),
            )
        )
        fetched = self._executor.fetch_many(query)
        if not fetched.ok:
            return Result.failure(fetched.error)  # type: ignore[arg-type]

        pairs = []
        for record in fetched.value or []:
            account = self._map_one(record)
            if not account.ok:
                return Result.failure(account.error)  # type: ignore[arg-type]
            children = contacts._map_many(record.related.get(self.contacts_relation, []))
            if not children.ok:
                return Result.failure(children.error)  # type: ignore[arg-type]
            pairs.append((account.unwrap(), children.unwrap()))

        position = {account_id: i for i, account_id in enumerate(ids)}
        pairs.sort(key=lambda pair: position.get(pair[0].id, len(ids)))
        return Result.success(pairs)

    def _extract(self, entity: Account) -> dict[str, Any]:
        values = {
            "name": entity.name,
            "industry": entity.industry,
            "annual_revenue": entity.annual_revenue,
            "employee_count": entity.employee_count,
            "active": entity.active,
        }
        address = entity.billing_address
        for part in _ADDRESS_PARTS:
            values[part] = getattr(address, part) if address is not None else None
        return values

    def _construct(self, values: dict[str, Any]) -> Account:
        parts = [values.pop(part) for part in _ADDRESS_PARTS]
        active = values.pop("active")
        return Account(
            **values,
            billing_address=Address.from_parts(*parts),
            active=True if active is None else active,
        )
