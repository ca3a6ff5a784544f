"""
Payment reconciliation and full record edits.

Payment failures are returned as values (`PaymentResult.failure`) instead of
being raised, so callers can show the reason and leave the record untouched.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional

from scrap_ledger.domain.models import Transaction
from scrap_ledger.ledger.normalizer import (
    PAID_FIELDS,
    PARTY_CONTACT_FIELDS,
    PARTY_NAME_FIELDS,
    normalize,
)

ZERO = Decimal(0)


class PaymentError(Enum):
    """Why a payment was rejected"""
    INVALID_AMOUNT = "Payment amount must be a positive number"
    EXCEEDS_BALANCE = "Payment is larger than the remaining balance"


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of applying a payment: a transaction or an error, never both"""
    transaction: Optional[Transaction] = None
    error: Optional[PaymentError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, transaction: Transaction) -> "PaymentResult":
        return cls(transaction=transaction)

    @classmethod
    def failure(cls, error: PaymentError) -> "PaymentResult":
        return cls(error=error)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_payment_amount(amount: Any) -> Optional[Decimal]:
    """
    Strictly parse a payment amount.

    Unlike the forgiving record normalizer, anything that is not a finite
    positive number is refused (returns None).
    """
    if amount is None or isinstance(amount, bool):
        return None
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def apply_payment(
    transaction: Transaction,
    amount: Any,
    now: Optional[datetime] = None,
) -> PaymentResult:
    """
    Apply a partial or full payment to a transaction.

    The input transaction is not modified; on success a new one is returned
    with the paid amount increased and the balance re-derived.

    Args:
        transaction: Normalized transaction receiving the payment
        amount: Amount paid (received, for sells)
        now: Update timestamp, defaults to the current UTC time

    Returns:
        PaymentResult holding the updated transaction, or
        INVALID_AMOUNT / EXCEEDS_BALANCE

    Example:
        >>> result = apply_payment(txn, 800)
        >>> result.ok, result.transaction.remaining_amount
        (True, Decimal('200'))
    """
    value = parse_payment_amount(amount)
    if value is None:
        return PaymentResult.failure(PaymentError.INVALID_AMOUNT)

    if value > transaction.remaining_amount:
        return PaymentResult.failure(PaymentError.EXCEEDS_BALANCE)

    paid = transaction.paid_amount + value
    updated = replace(
        transaction,
        paid_amount=paid,
        remaining_amount=max(transaction.total_amount - paid, ZERO),
        updated_at=now or _utcnow(),
    )
    return PaymentResult.success(updated)


def apply_full_edit(
    transaction: Transaction,
    edited_fields: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Replace party details, items and paid amount, then re-derive totals.

    Used by the edit-record flow, which can correct anything a user typed,
    including lowering the paid amount. Identity fields (id, kind, invoice
    number, creation time) are never changed.

    Args:
        transaction: The stored transaction
        edited_fields: Any of partyName, partyContact, items, paidAmount
            (legacy aliases such as sellerName or receivedAmount work too).
            Fields that are absent keep their current value.
        now: Update timestamp, defaults to the current UTC time

    Returns:
        A new, fully normalized Transaction
    """
    record = transaction.to_record()

    for aliases, canonical in (
        (PARTY_NAME_FIELDS, "partyName"),
        (PARTY_CONTACT_FIELDS, "partyContact"),
        (PAID_FIELDS, "paidAmount"),
    ):
        for name in aliases:
            if name in edited_fields:
                record[canonical] = edited_fields[name]
                break

    if "items" in edited_fields:
        record["items"] = list(edited_fields["items"] or [])

    record["id"] = transaction.id
    # Amounts are recomputed, never taken from the stored remainder
    record.pop("remainingAmount", None)

    edited = normalize(record)
    return replace(edited, updated_at=now or _utcnow())
