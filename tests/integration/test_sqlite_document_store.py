import pytest
from decimal import Decimal

from scrap_ledger.repositories.sqlite_document_store import SQLiteDocumentStore
from scrap_ledger.repositories.base import DuplicateKeyError, RecordNotFoundError

COLLECTION = "transactions"

@pytest.mark.integration
class TestSQLiteDocumentStore:
    """Test suite for the SQLite document store. Uses a real temp db."""

    def test_insert_assigns_id_and_timestamps(self, store: SQLiteDocumentStore):
        # Act
        record_id = store.insert(COLLECTION, {"partyName": "Ali", "totalAmount": Decimal("99.99")})
        record = store.get(COLLECTION, record_id)

        # Assert
        assert isinstance(record_id, str)
        assert record["id"] == record_id
        assert record["partyName"] == "Ali"
        assert record["createdAt"]
        assert record["updatedAt"] == record["createdAt"]

    def test_decimal_precision_preserved(self, store: SQLiteDocumentStore):
        # Arrange
        test_amounts = ["99.99", "0.01", "1234567.89", "19.95", "0.33"]

        # Multi-Act
        for amount in test_amounts:
            record_id = store.insert(COLLECTION, {"totalAmount": Decimal(amount)})
            retrieved = store.get(COLLECTION, record_id)

            # Multi-Assert
            assert Decimal(retrieved["totalAmount"]) == Decimal(amount), f"Lost precision for {amount}"

    def test_managed_fields_not_taken_from_record(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {"id": "999", "createdAt": "1999-01-01", "note": "x"})
        record = store.get(COLLECTION, record_id)

        assert record["id"] == record_id
        assert record["createdAt"] != "1999-01-01"

    def test_duplicate_unique_key_rejected(self, store: SQLiteDocumentStore):
        # Arrange
        store.insert(COLLECTION, {"invoiceNumber": "PSK-0001"}, unique_key="purchase:PSK-0001")

        # Act & Assert
        with pytest.raises(DuplicateKeyError):
            store.insert(COLLECTION, {"invoiceNumber": "PSK-0001"}, unique_key="purchase:PSK-0001")

        # The losing insert left nothing behind
        assert len(store.list_all(COLLECTION)) == 1

    def test_same_key_in_other_collection_allowed(self, store: SQLiteDocumentStore):
        store.insert(COLLECTION, {}, unique_key="purchase:PSK-0001")
        store.insert("archive", {}, unique_key="purchase:PSK-0001")

    def test_get_missing_returns_none(self, store: SQLiteDocumentStore):
        assert store.get(COLLECTION, "999") is None
        assert store.get(COLLECTION, "not-a-number") is None

    def test_list_all_is_per_collection_newest_first(self, store: SQLiteDocumentStore):
        first = store.insert(COLLECTION, {"n": 1})
        second = store.insert(COLLECTION, {"n": 2})
        store.insert("other", {"n": 3})

        records = store.list_all(COLLECTION)

        assert [r["id"] for r in records] == [second, first]

    def test_list_all_by_json_field(self, store: SQLiteDocumentStore):
        store.insert(COLLECTION, {"invoiceNumber": "PSK-0002"})
        store.insert(COLLECTION, {"invoiceNumber": "PSK-0010"})
        store.insert(COLLECTION, {"invoiceNumber": "PSK-0001"})

        records = store.list_all(COLLECTION, order_by="invoiceNumber", descending=False)

        assert [r["invoiceNumber"] for r in records] == ["PSK-0001", "PSK-0002", "PSK-0010"]

    def test_update_fields_merges(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {"partyName": "Ali", "paidAmount": "0"})

        updated = store.update_fields(COLLECTION, record_id, {"paidAmount": "100", "id": "42"})

        assert updated["id"] == record_id
        assert updated["partyName"] == "Ali"
        assert store.get(COLLECTION, record_id)["paidAmount"] == "100"

    def test_update_missing_raises(self, store: SQLiteDocumentStore):
        with pytest.raises(RecordNotFoundError):
            store.update_fields(COLLECTION, "999", {"a": 1})

    def test_atomic_increment(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {"paidAmount": "100.50"})

        record = store.atomic_increment(COLLECTION, record_id, "paidAmount", Decimal("0.25"))

        assert Decimal(record["paidAmount"]) == Decimal("100.75")
        assert Decimal(store.get(COLLECTION, record_id)["paidAmount"]) == Decimal("100.75")

    def test_atomic_increment_missing_field_starts_at_zero(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {})

        record = store.atomic_increment(COLLECTION, record_id, "paidAmount", Decimal("5"))

        assert Decimal(record["paidAmount"]) == Decimal("5")

    def test_atomic_increment_writes_callback_fields(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {"paidAmount": "0", "totalAmount": "100"})

        store.atomic_increment(
            COLLECTION, record_id, "paidAmount", Decimal("40"),
            on_update=lambda r: {"remainingAmount": str(Decimal(r["totalAmount"]) - Decimal(r["paidAmount"]))},
        )

        assert store.get(COLLECTION, record_id)["remainingAmount"] == "60"

    def test_atomic_increment_rolled_back_when_callback_raises(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {"paidAmount": "10"})

        def reject(record):
            raise RuntimeError("over the limit")

        with pytest.raises(RuntimeError):
            store.atomic_increment(COLLECTION, record_id, "paidAmount", Decimal("5"), on_update=reject)

        assert store.get(COLLECTION, record_id)["paidAmount"] == "10"

    def test_atomic_increment_starts_from_fallback_field(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {"receivedAmount": "200"})

        record = store.atomic_increment(
            COLLECTION, record_id, "paidAmount", Decimal("100"), fallback_field="receivedAmount",
        )

        assert Decimal(record["paidAmount"]) == Decimal("300")
        assert store.get(COLLECTION, record_id)["receivedAmount"] == "200"

    def test_atomic_increment_ignores_fallback_when_field_present(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {"paidAmount": "50", "receivedAmount": "200"})

        record = store.atomic_increment(
            COLLECTION, record_id, "paidAmount", Decimal("100"), fallback_field="receivedAmount",
        )

        assert Decimal(record["paidAmount"]) == Decimal("150")

    def test_query_where_greater_than(self, store: SQLiteDocumentStore):
        store.insert(COLLECTION, {"remainingAmount": "0"})
        store.insert(COLLECTION, {"remainingAmount": "250"})
        store.insert(COLLECTION, {"remainingAmount": "1000"})
        store.insert(COLLECTION, {"remainingAmount": "75.5"})
        store.insert(COLLECTION, {})

        records = store.query_where_greater_than(
            COLLECTION, "remainingAmount", 0, order_by="remainingAmount",
        )

        # Ordered numerically, not as text
        assert [r["remainingAmount"] for r in records] == ["1000", "250", "75.5"]

    def test_query_where_greater_than_including_missing(self, store: SQLiteDocumentStore):
        store.insert(COLLECTION, {"remainingAmount": "0"})
        due_id = store.insert(COLLECTION, {"remainingAmount": "250"})
        missing_id = store.insert(COLLECTION, {"receivedAmount": "200"})

        records = store.query_where_greater_than(
            COLLECTION, "remainingAmount", 0, order_by="remainingAmount", include_missing=True,
        )

        # Records without the field sort after every value
        assert [r["id"] for r in records] == [due_id, missing_id]

    def test_invalid_field_name_rejected(self, store: SQLiteDocumentStore):
        with pytest.raises(ValueError):
            store.query_where_greater_than(COLLECTION, "a') OR 1=1 --", 0, order_by="createdAt")

    def test_delete_releases_unique_key(self, store: SQLiteDocumentStore):
        record_id = store.insert(COLLECTION, {}, unique_key="sell:SSK-0001")

        assert store.delete(COLLECTION, record_id) is True
        assert store.delete(COLLECTION, record_id) is False
        store.insert(COLLECTION, {}, unique_key="sell:SSK-0001")
