import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Mapping, Optional

from scrap_ledger.config.settings import LedgerSettings
from scrap_ledger.domain.enums import TransactionKind
from scrap_ledger.domain.models import Transaction
from scrap_ledger.ledger import aggregator
from scrap_ledger.ledger.invoice_numbers import next_invoice_number
from scrap_ledger.ledger.models import LedgerSummary, MonthlyReport, PeriodMetrics, StockSummary
from scrap_ledger.ledger.normalizer import PAID_FIELDS, is_meaningful_item, normalize, to_amount
from scrap_ledger.ledger.payments import (
    PaymentError,
    PaymentResult,
    apply_full_edit,
    apply_payment,
    parse_payment_amount,
)
from scrap_ledger.repositories.base import DocumentStore, DuplicateKeyError, Record, RecordNotFoundError
from scrap_ledger.services.models import CreateError, CreateResult

logger = logging.getLogger(__name__)

# Legacy sells kept the running total under receivedAmount only
PAID_FIELD, LEGACY_PAID_FIELD = PAID_FIELDS


class InvalidTransactionError(ValueError):
    """Raised when a draft or edit cannot be saved as a ledger entry."""
    pass

class TransactionNotFoundError(Exception):
    """Raised when a transaction cannot be found."""
    pass

class _BalanceExceeded(Exception):
    """Aborts a payment increment that a concurrent payment made too large."""
    pass


class LedgerService:
    """
    Application layer for the ledger.

    Reads records from the document store, runs them through the pure ledger
    functions and writes results back. Holds no transaction state of its own.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[LedgerSettings] = None,
    ):
        self.store = store
        self.settings = settings or LedgerSettings()

    @property
    def collection(self) -> str:
        return self.settings.collection

    def create_purchase(
        self,
        party_name: str,
        items: Iterable[Mapping[str, Any]],
        party_contact: str = "",
        paid_amount: Any = 0,
    ) -> CreateResult:
        """
        Record scrap bought from a supplier.

        Items use `description`, `quantityKg` and `unitRate` (legacy names
        such as `quantity` and `ratePerKg` work too).
        """
        return self.create_transaction({
            "kind": TransactionKind.PURCHASE.value,
            "partyName": party_name,
            "partyContact": party_contact,
            "items": list(items),
            "paidAmount": paid_amount,
        })

    def create_sell(
        self,
        party_name: str,
        items: Iterable[Mapping[str, Any]],
        party_contact: str = "",
        received_amount: Any = 0,
    ) -> CreateResult:
        """
        Record scrap sold to a buyer.

        Each item carries the selling `unitRate` and the trader's own
        `costRate`, from which line profit is derived.
        """
        return self.create_transaction({
            "kind": TransactionKind.SELL.value,
            "partyName": party_name,
            "partyContact": party_contact,
            "items": list(items),
            "paidAmount": received_amount,
        })

    def create_transaction(self, draft: Mapping[str, Any]) -> CreateResult:
        """
        Validate a draft, allocate its invoice number and save it.

        The invoice number is derived from the numbers already stored and
        claimed through the store's unique key check. If another writer
        claimed the same number first, the number is re-derived and the
        save retried.

        Args:
            draft: Raw transaction fields (kind/type, party, items, paid)

        Returns:
            CreateResult with the stored transaction, or with
            ALLOCATION_EXHAUSTED when every attempt hit a conflict

        Raises:
            InvalidTransactionError: If the draft isn't a valid purchase or sell
        """
        txn = self._validated(normalize(draft))
        retries = self.settings.allocation_retries

        for attempt in range(1, retries + 1):
            number = self.next_invoice_number(txn.kind)
            candidate = replace(txn, id=None, invoice_number=number, created_at=None, updated_at=None)

            try:
                record_id = self.store.insert(
                    self.collection,
                    candidate.to_record(),
                    unique_key=self._invoice_key(candidate),
                )
            except DuplicateKeyError:
                logger.warning(
                    "Invoice number %s was taken (attempt %d of %d), retrying",
                    number, attempt, retries,
                )
                continue

            stored = self.store.get(self.collection, record_id)
            saved = normalize(stored, trust_stored=True) if stored else replace(candidate, id=record_id)
            logger.info("Saved %s invoice %s as %s", saved.kind_name, number, record_id)
            return CreateResult(transaction=saved, attempts=attempt)

        logger.error(
            "Could not allocate a %s invoice number after %d attempts",
            txn.kind_name, retries,
        )
        return CreateResult(attempts=retries, error=CreateError.ALLOCATION_EXHAUSTED)

    def next_invoice_number(self, kind: TransactionKind) -> str:
        """Next invoice number for a kind based on what is currently stored"""
        records = self.store.list_all(self.collection, order_by="invoiceNumber")
        numbers = [normalize(r, trust_stored=True).invoice_number for r in records]
        return next_invoice_number(
            kind,
            numbers,
            prefixes=self.settings.invoice_prefixes,
            width=self.settings.invoice_number_width,
        )

    def record_payment(self, transaction_id: str, amount: Any) -> PaymentResult:
        """
        Apply a payment to a stored transaction.

        The amount is checked against the stored balance, then added with
        the store's atomic increment. The increment re-checks the balance,
        so two payments racing for the same balance cannot both succeed.

        Args:
            transaction_id: ID of the transaction being paid
            amount: Amount paid or received

        Returns:
            PaymentResult with the updated transaction or the rejection reason

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist
        """
        raw = self._get_record(transaction_id)
        txn = normalize(raw, trust_stored=True)

        result = apply_payment(txn, amount)
        if not result.ok:
            logger.info("Payment of %r on %s rejected: %s", amount, txn.invoice_number, result.error.name)
            return result

        delta = parse_payment_amount(amount)
        try:
            record = self.store.atomic_increment(
                self.collection,
                transaction_id,
                PAID_FIELD,
                delta,
                on_update=self._rebalance(delta),
                fallback_field=LEGACY_PAID_FIELD,
            )
        except _BalanceExceeded:
            logger.info("Payment of %r on %s lost a race and was rejected", amount, txn.invoice_number)
            return PaymentResult.failure(PaymentError.EXCEEDS_BALANCE)
        except RecordNotFoundError as e:
            raise TransactionNotFoundError(str(e)) from e

        return PaymentResult.success(normalize(record, trust_stored=True))

    @staticmethod
    def _rebalance(delta: Decimal) -> Callable[[Record], Record]:
        """
        Build the balance check that runs inside the increment.

        The balance before the payment is read the same way as for the
        pre-check in `record_payment`: the stored remainingAmount when the
        record has one, otherwise derived from the total and paid amount.
        """
        def check(record: Record) -> Record:
            paid_before = to_amount(record.get(PAID_FIELD)) - delta
            before = normalize({**record, PAID_FIELD: str(paid_before)}, trust_stored=True)

            remaining = before.remaining_amount - delta
            if remaining < 0:
                raise _BalanceExceeded(before.invoice_number)
            return {"remainingAmount": str(remaining)}

        return check

    def edit_transaction(self, transaction_id: str, fields: Mapping[str, Any]) -> Transaction:
        """
        Correct a stored transaction.

        Party details, items and paid amount are replaced wholesale and all
        totals re-derived. The result must still be a valid entry.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist
            InvalidTransactionError: If the edited entry is invalid
        """
        txn = self.get_transaction(transaction_id)
        edited = self._validated(apply_full_edit(txn, fields))

        try:
            record = self.store.update_fields(self.collection, transaction_id, edited.to_record())
        except RecordNotFoundError as e:
            raise TransactionNotFoundError(str(e)) from e

        logger.info("Edited %s", edited.invoice_number)
        return normalize(record, trust_stored=True)

    def delete_transaction(self, transaction_id: str) -> bool:
        """Administrative removal of a record"""
        deleted = self.store.delete(self.collection, transaction_id)
        if deleted:
            logger.warning("Deleted transaction %s", transaction_id)
        return deleted

    def get_transaction(self, transaction_id: str) -> Transaction:
        """
        Fetch one transaction.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist
        """
        return normalize(self._get_record(transaction_id), trust_stored=True)

    def get_transactions(self) -> List[Transaction]:
        """All transactions, newest first"""
        records = self.store.list_all(self.collection, order_by="createdAt")
        return [normalize(r, trust_stored=True) for r in records]

    def get_pending(self) -> List[Transaction]:
        """
        Transactions with a balance due, newest first.

        Records saved without a remainingAmount (legacy rows) are fetched too
        and kept when their derived balance is positive.
        """
        records = self.store.query_where_greater_than(
            self.collection,
            "remainingAmount",
            0,
            order_by="remainingAmount",
            include_missing=True,
        )
        pending = aggregator.filter_pending(normalize(r, trust_stored=True) for r in records)
        return pending[:self.settings.pending_limit]

    def get_summary(self) -> LedgerSummary:
        return aggregator.summarize(self.get_transactions())

    def get_period_metrics(self, reference: Optional[datetime] = None) -> PeriodMetrics:
        """Daily, monthly and yearly sell profit, for now unless a reference is given"""
        reference = reference or datetime.now().astimezone()
        return aggregator.metrics_for_period(self.get_transactions(), reference)

    def get_stock_summary(self) -> StockSummary:
        return aggregator.stock_summary(self.get_transactions())

    def get_monthly_report(self, year: int, month: int) -> MonthlyReport:
        """
        Records and totals for one calendar month.

        Example:
            ### Profit report for January 2026
            report = service.get_monthly_report(2026, 1)
            print(report.summary.total_profit)
        """
        return aggregator.monthly_report(self.get_transactions(), year, month)

    def search(self, term: str, kind: Optional[TransactionKind] = None) -> List[Transaction]:
        """Find transactions by party name, invoice number or kind"""
        return aggregator.search(self.get_transactions(), term, kind)

    def _get_record(self, transaction_id: str) -> Record:
        record = self.store.get(self.collection, transaction_id)
        if record is None:
            raise TransactionNotFoundError(f"Transaction with ID {transaction_id} not found")
        return record

    @staticmethod
    def _invoice_key(txn: Transaction) -> str:
        return f"{txn.kind_name}:{txn.invoice_number}"

    @staticmethod
    def _validated(txn: Transaction) -> Transaction:
        """
        Check that a transaction can be persisted.

        Drops items that carry nothing (no description, quantity or rate).

        Raises:
            InvalidTransactionError: If the kind is unknown, the party name
                is blank, no item is left or more was paid than is owed
        """
        if not isinstance(txn.kind, TransactionKind):
            raise InvalidTransactionError(
                f"Unknown transaction type '{txn.kind_name}', expected purchase or sell"
            )

        if not txn.party_name.strip():
            raise InvalidTransactionError("Party name is required")

        items = [item for item in txn.items if is_meaningful_item(item)]
        if not items:
            raise InvalidTransactionError("At least one item with a description, quantity or rate is required")

        if txn.paid_amount > txn.total_amount:
            raise InvalidTransactionError(
                f"Paid amount {txn.paid_amount} exceeds the invoice total {txn.total_amount}"
            )

        return replace(txn, items=items)
