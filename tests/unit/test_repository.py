"""Unit tests for repositories."""

from __future__ import annotations

import gc
from datetime import date
from decimal import Decimal

import pytest

from record_gateway.adapters.outbound import InMemoryRecordStore
from record_gateway.application import (
    AccountRepository,
    BatchWriter,
    ContactRepository,
    QueryExecutor,
    WriteState,
)
from record_gateway.domain.entities import Account, Address, Contact, EntityValidationError
from record_gateway.domain.errors import (
    ConflictingOperationError,
    FieldTypeMismatchError,
    MultipleResultsError,
    NotFound,
    QuotaExceeded,
    RecordMappingError,
)
from record_gateway.domain.query import eq, gt
from record_gateway.domain.services import ResourceGovernor
from record_gateway.domain.value_objects import FieldValue, OperationKind


@pytest.fixture
def accounts(executor: QueryExecutor, writer: BatchWriter) -> AccountRepository:
    return AccountRepository(executor, writer)


@pytest.fixture
def contacts(executor: QueryExecutor, writer: BatchWriter) -> ContactRepository:
    return ContactRepository(executor, writer)


@pytest.fixture
def acme(store: InMemoryRecordStore) -> str:
    record = store.add(
        "Account",
        {
            "Name": "Acme",
            "Industry": "Tech",
            "AnnualRevenue": Decimal("1000.50"),
            "NumberOfEmployees": 12,
            "Active": True,
            "BillingStreet": "1 Main St",
            "BillingCity": "Springfield",
            "BillingState": "IL",
            "BillingPostalCode": "62701",
        },
    )
    return record.id


@pytest.mark.unit
class TestRepositoryReads:
    """Reads through the shared executor."""

    def test_get_by_id(self, accounts: AccountRepository, acme: str) -> None:
        account = accounts.get_by_id(acme).unwrap()

        assert account.id == acme
        assert account.name == "Acme"
        assert account.annual_revenue == Decimal("1000.50")
        assert account.billing_address == Address("1 Main St", "Springfield", "IL", "62701")

    def test_get_by_id_missing(self, accounts: AccountRepository) -> None:
        assert isinstance(accounts.get_by_id("nope").error, NotFound)

    def test_get_by_ids_single_query(
        self,
        accounts: AccountRepository,
        store: InMemoryRecordStore,
        governor: ResourceGovernor,
    ) -> None:
        ids = [r.id for r in store.add_many("Account", [{"Name": f"A{i}"} for i in range(30)])]

        loaded = accounts.get_by_ids(list(reversed(ids)) + ids[:5]).unwrap()

        assert governor.queries_issued == 1
        assert [a.id for a in loaded] == list(reversed(ids))

    def test_get_by_ids_empty_reserves_nothing(
        self, accounts: AccountRepository, governor: ResourceGovernor
    ) -> None:
        assert accounts.get_by_ids([]).unwrap() == []
        assert governor.queries_issued == 0

    def test_find_with_order_and_limit(
        self, accounts: AccountRepository, store: InMemoryRecordStore
    ) -> None:
        store.add_many(
            "Account",
            [
                {"Name": "Small", "NumberOfEmployees": 5},
                {"Name": "Large", "NumberOfEmployees": 500},
                {"Name": "Medium", "NumberOfEmployees": 50},
            ],
        )

        found = accounts.find(
            gt("NumberOfEmployees", 10), order_by=["-NumberOfEmployees"], limit=5
        ).unwrap()

        assert [a.name for a in found] == ["Large", "Medium"]

    def test_find_first_requires_explicit_limit(
        self, accounts: AccountRepository, store: InMemoryRecordStore
    ) -> None:
        store.add_many("Account", [{"Name": "B"}, {"Name": "A"}])

        first = accounts.find_first(order_by=["Name"]).unwrap()
        assert first.name == "A"

        assert isinstance(accounts.find(eq("Name", "Z")).unwrap(), list)
        assert isinstance(accounts.find_first(eq("Name", "Z")).error, NotFound)

    def test_get_by_id_duplicates_in_store(
        self, accounts: AccountRepository, store: InMemoryRecordStore, executor: QueryExecutor
    ) -> None:
        store.add_many("Account", [{"Name": "Twin"}, {"Name": "Twin"}])
        result = executor.fetch_one(accounts.base_query().where(eq("Name", "Twin")))
        assert isinstance(result.error, MultipleResultsError)

    def test_count(
        self, accounts: AccountRepository, store: InMemoryRecordStore, governor: ResourceGovernor
    ) -> None:
        store.add_many("Account", [{"Name": "A", "Industry": "Tech"}, {"Name": "B"}])

        assert accounts.count().unwrap() == 2
        assert accounts.count(eq("Industry", "Tech")).unwrap() == 1
        assert governor.queries_issued == 2

    def test_narrowing_failure_is_result(
        self, accounts: AccountRepository, store: InMemoryRecordStore
    ) -> None:
        record = store.add("Account", {"Name": "Acme", "NumberOfEmployees": "many"})

        result = accounts.get_by_id(record.id)

        assert isinstance(result.error, FieldTypeMismatchError)
        assert result.error.field == "NumberOfEmployees"

    def test_invariant_violation_is_result(
        self, accounts: AccountRepository, store: InMemoryRecordStore
    ) -> None:
        """A stored record that breaks an entity invariant fails the read."""
        record = store.add("Account", {"Name": "Acme", "BillingStreet": "1 Main"})

        result = accounts.get_by_id(record.id)

        assert isinstance(result.error, RecordMappingError)
        assert isinstance(result.error.cause, EntityValidationError)
        assert result.error.record_id == record.id

    def test_invariant_violation_in_batch_read(
        self, accounts: AccountRepository, store: InMemoryRecordStore
    ) -> None:
        good = store.add("Account", {"Name": "Good"})
        blank = store.add("Account", {"Name": "  "})

        result = accounts.get_by_ids([good.id, blank.id])

        assert isinstance(result.error, RecordMappingError)
        assert result.error.collection == "Account"

    def test_invariant_violation_in_related_contact(
        self, accounts: AccountRepository, store: InMemoryRecordStore
    ) -> None:
        acme = store.add("Account", {"Name": "Acme"})
        store.add("Contact", {"LastName": "", "AccountId": FieldValue.reference(acme.id)})

        result = accounts.get_with_contacts([acme.id])

        assert isinstance(result.error, RecordMappingError)
        assert result.error.collection == "Contact"

    def test_quota_surfaced(
        self, accounts: AccountRepository, acme: str, governor: ResourceGovernor
    ) -> None:
        for _ in range(governor.query_ceiling):
            accounts.get_by_id(acme).unwrap()
        assert isinstance(accounts.get_by_id(acme).error, QuotaExceeded)

    def test_repositories_must_share_governor(
        self, store: InMemoryRecordStore, executor: QueryExecutor
    ) -> None:
        other = BatchWriter(store, ResourceGovernor())
        with pytest.raises(ValueError):
            AccountRepository(executor, other)


@pytest.mark.unit
class TestRepositoryWrites:
    """save/delete lifecycle."""

    def test_save_new_queues_insert(
        self, accounts: AccountRepository, writer: BatchWriter, store: InMemoryRecordStore
    ) -> None:
        account = Account(name="Acme")

        assert accounts.save(account).ok

        assert accounts.state_of(account) == WriteState.PENDING
        assert writer.pending.kinds() == [OperationKind.INSERT]
        assert store.calls["bulk_write"] == 0

    def test_flush_assigns_id_and_persists(
        self, accounts: AccountRepository, writer: BatchWriter, store: InMemoryRecordStore
    ) -> None:
        account = Account(name="Acme", industry="Tech")
        accounts.save(account)

        writer.flush().unwrap()

        assert account.id is not None
        assert accounts.state_of(account) == WriteState.PERSISTED
        assert store.get("Account", account.id).value("Industry") == "Tech"

    def test_resave_before_flush_is_one_insert(
        self, accounts: AccountRepository, writer: BatchWriter, store: InMemoryRecordStore
    ) -> None:
        account = Account(name="Acme")
        accounts.save(account)
        account.rename("Acme Corp")
        accounts.save(account)

        assert writer.pending_count == 1
        writer.flush().unwrap()
        assert store.count("Account") == 1
        assert store.get("Account", account.id).value("Name") == "Acme Corp"

    def test_save_many_one_batch(
        self, accounts: AccountRepository, writer: BatchWriter, governor: ResourceGovernor
    ) -> None:
        batch = [Account(name=f"A{i}") for i in range(40)]

        assert accounts.save_all(batch).ok
        writer.flush().unwrap()

        assert governor.write_batches_issued == 1
        assert all(accounts.state_of(a) == WriteState.PERSISTED for a in batch)

    def test_save_existing_queues_update(
        self, accounts: AccountRepository, writer: BatchWriter, acme: str
    ) -> None:
        account = accounts.get_by_id(acme).unwrap()
        assert accounts.state_of(account) == WriteState.PERSISTED

        account.record_headcount(99)
        accounts.save(account)

        assert writer.pending.kinds() == [OperationKind.UPDATE]

    def test_failed_write_marks_failed(
        self, accounts: AccountRepository, writer: BatchWriter, store: InMemoryRecordStore
    ) -> None:
        store.add_validation_rule("Account", lambda v: v.get("Industry") != "Banned", "banned")
        account = Account(name="Acme", industry="Banned")
        accounts.save(account)

        report = writer.flush().unwrap()

        assert not report.all_succeeded
        assert accounts.state_of(account) == WriteState.FAILED
        assert accounts.last_error(account) == "banned"
        assert account.id is None

    def test_delete(
        self, accounts: AccountRepository, writer: BatchWriter, store: InMemoryRecordStore, acme: str
    ) -> None:
        account = accounts.get_by_id(acme).unwrap()
        accounts.delete(account)

        writer.flush().unwrap()

        assert accounts.state_of(account) == WriteState.DELETED
        assert store.get("Account", acme) is None

    def test_update_then_delete_conflicts(
        self, accounts: AccountRepository, acme: str
    ) -> None:
        account = accounts.get_by_id(acme).unwrap()
        accounts.save(account)

        result = accounts.delete(account)

        assert isinstance(result.error, ConflictingOperationError)
        assert accounts.state_of(account) == WriteState.PENDING

    def test_invalid_entity_not_queued(
        self, accounts: AccountRepository, writer: BatchWriter
    ) -> None:
        account = Account(name="Acme")
        account.name = ""
        with pytest.raises(EntityValidationError):
            accounts.save(account)
        assert writer.is_empty

    def test_type_mismatch_on_save_is_result(
        self, accounts: AccountRepository, writer: BatchWriter
    ) -> None:
        account = Account(name="Acme", employee_count=3.5)  # type: ignore[arg-type]

        result = accounts.save(account)

        assert isinstance(result.error, FieldTypeMismatchError)
        assert result.error.field == "NumberOfEmployees"
        assert writer.is_empty
        assert accounts.state_of(account) == WriteState.UNSAVED

    def test_tracking_released_with_entity(
        self, accounts: AccountRepository, writer: BatchWriter
    ) -> None:
        account = Account(name="Acme")
        accounts.save(account)
        writer.flush().unwrap()
        assert accounts.tracked_count == 1

        del account
        gc.collect()

        assert accounts.tracked_count == 0

    def test_pending_entity_stays_tracked(
        self, accounts: AccountRepository, writer: BatchWriter
    ) -> None:
        accounts.save(Account(name="Acme"))
        gc.collect()

        assert accounts.tracked_count == 1
        writer.flush().unwrap()
        gc.collect()
        assert accounts.tracked_count == 0


@pytest.mark.unit
class TestRoundTrip:
    """Entity -> record -> entity preserves every mapped attribute."""

    def test_account_round_trip(
        self, accounts: AccountRepository, writer: BatchWriter
    ) -> None:
        original = Account(
            name="Acme",
            industry="Tech",
            annual_revenue=Decimal("2500000.00"),
            employee_count=250,
            billing_address=Address("1 Main St", "Springfield", "IL", "62701"),
            active=False,
        )
        accounts.save(original)
        writer.flush().unwrap()

        loaded = accounts.get_by_id(original.id).unwrap()

        assert loaded == original

    def test_contact_round_trip(
        self,
        accounts: AccountRepository,
        contacts: ContactRepository,
        writer: BatchWriter,
        acme: str,
    ) -> None:
        original = Contact(
            last_name="Doe",
            first_name="Jane",
            email="jane@example.com",
            account_id=acme,
            birthdate=date(1990, 5, 17),
        )
        contacts.save(original)
        writer.flush().unwrap()

        loaded = contacts.get_by_id(original.id).unwrap()

        assert loaded == original

    def test_to_record_mapping(self, accounts: AccountRepository) -> None:
        record = accounts.to_record(Account(name="Acme", employee_count=3))

        assert record.collection == "Account"
        assert record.id is None
        assert record.value("Name") == "Acme"
        assert record.value("NumberOfEmployees") == 3
        assert record.value("BillingCity") is None


@pytest.mark.unit
class TestRelationshipReads:
    def test_get_with_contacts_one_query(
        self,
        accounts: AccountRepository,
        store: InMemoryRecordStore,
        governor: ResourceGovernor,
    ) -> None:
        a = store.add("Account", {"Name": "A"})
        b = store.add("Account", {"Name": "B"})
        store.add_many(
            "Contact",
            [
                {"LastName": "Zed", "AccountId": FieldValue.reference(a.id)},
                {"LastName": "Able", "AccountId": FieldValue.reference(a.id)},
                {"LastName": "Solo", "AccountId": FieldValue.reference(b.id)},
            ],
        )

        pairs = accounts.get_with_contacts([b.id, a.id]).unwrap()

        assert governor.queries_issued == 1
        assert [account.name for account, _ in pairs] == ["B", "A"]
        assert [c.last_name for c in pairs[1][1]] == ["Able", "Zed"]
        assert [c.last_name for c in pairs[0][1]] == ["Solo"]

    def test_find_by_account_ids(
        self,
        contacts: ContactRepository,
        store: InMemoryRecordStore,
        governor: ResourceGovernor,
    ) -> None:
        a = store.add("Account", {"Name": "A"})
        store.add_many(
            "Contact",
            [
                {"LastName": "Doe", "AccountId": FieldValue.reference(a.id)},
                {"LastName": "Roe", "AccountId": FieldValue.reference("other")},
            ],
        )

        found = contacts.find_by_account_ids([a.id]).unwrap()

        assert [c.last_name for c in found] == ["Doe"]
        assert governor.queries_issued == 1
