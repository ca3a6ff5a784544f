import pytest
from datetime import datetime, timezone
from decimal import Decimal

from scrap_ledger.domain.enums import TransactionKind
from scrap_ledger.domain.models import Transaction
from scrap_ledger.ledger.aggregator import filter_pending
from scrap_ledger.ledger.normalizer import normalize
from scrap_ledger.ledger.payments import (
    PaymentError,
    apply_full_edit,
    apply_payment,
    parse_payment_amount,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

@pytest.fixture
def unpaid_purchase() -> Transaction:
    """PSK-0001: 1000 owed, nothing paid"""
    return normalize({
        "id": "1",
        "kind": "purchase",
        "invoiceNumber": "PSK-0001",
        "partyName": "Ali Traders",
        "items": [{"description": "Copper", "quantityKg": "10", "unitRate": "100"}],
        "createdAt": "2026-02-01T08:00:00+00:00",
    })

@pytest.mark.unit
class TestApplyPayment:
    """Test partial and full payments"""

    def test_partial_payment(self, unpaid_purchase: Transaction):
        result = apply_payment(unpaid_purchase, 800, now=NOW)

        assert result.ok
        assert result.transaction.paid_amount == Decimal("800")
        assert result.transaction.remaining_amount == Decimal("200")
        assert result.transaction.updated_at == NOW
        assert result.transaction.is_pending

    def test_input_not_mutated(self, unpaid_purchase: Transaction):
        apply_payment(unpaid_purchase, 800)

        assert unpaid_purchase.paid_amount == Decimal(0)
        assert unpaid_purchase.remaining_amount == Decimal("1000")

    def test_full_payment_settles(self, unpaid_purchase: Transaction):
        result = apply_payment(unpaid_purchase, "1000")

        assert result.ok
        assert result.transaction.remaining_amount == Decimal(0)
        assert not result.transaction.is_pending

    def test_successive_payments(self, unpaid_purchase: Transaction):
        first = apply_payment(unpaid_purchase, 300).transaction
        second = apply_payment(first, 700).transaction

        assert second.paid_amount == Decimal("1000")
        assert second.remaining_amount == Decimal(0)

    def test_overpayment_rejected(self, unpaid_purchase: Transaction):
        result = apply_payment(unpaid_purchase, 1200)

        assert not result.ok
        assert result.error is PaymentError.EXCEEDS_BALANCE
        assert result.transaction is None

    @pytest.mark.parametrize("amount", [0, -5, "abc", "", None, "NaN", "Infinity", float("nan"), True])
    def test_invalid_amount_rejected(self, unpaid_purchase: Transaction, amount):
        result = apply_payment(unpaid_purchase, amount)

        assert result.error is PaymentError.INVALID_AMOUNT

    def test_payment_on_settled_rejected(self, unpaid_purchase: Transaction):
        settled = apply_payment(unpaid_purchase, 1000).transaction

        assert apply_payment(settled, "0.01").error is PaymentError.EXCEEDS_BALANCE

    def test_parse_payment_amount(self):
        assert parse_payment_amount(" 250.75 ") == Decimal("250.75")
        assert parse_payment_amount(Decimal("5")) == Decimal("5")
        assert parse_payment_amount("1,000") is None


@pytest.mark.unit
class TestApplyFullEdit:
    """Test the edit-record flow"""

    def test_items_replaced_and_totals_recomputed(self, unpaid_purchase: Transaction):
        edited = apply_full_edit(
            unpaid_purchase,
            {"items": [{"description": "Brass", "quantityKg": "4", "unitRate": "250"}], "paidAmount": "400"},
            now=NOW,
        )

        assert [item.description for item in edited.items] == ["Brass"]
        assert edited.total_amount == Decimal("1000")
        assert edited.paid_amount == Decimal("400")
        assert edited.remaining_amount == Decimal("600")
        assert edited.updated_at == NOW

    def test_identity_preserved(self, unpaid_purchase: Transaction):
        edited = apply_full_edit(unpaid_purchase, {"partyName": "New Name", "kind": "sell", "invoiceNumber": "X"})

        assert edited.party_name == "New Name"
        assert edited.id == "1"
        assert edited.kind is TransactionKind.PURCHASE
        assert edited.invoice_number == "PSK-0001"
        assert edited.created_at == unpaid_purchase.created_at

    def test_paid_can_be_lowered(self, unpaid_purchase: Transaction):
        paid = apply_payment(unpaid_purchase, 900).transaction

        edited = apply_full_edit(paid, {"paidAmount": "100"})

        assert edited.paid_amount == Decimal("100")
        assert edited.remaining_amount == Decimal("900")

    def test_legacy_aliases_accepted(self, unpaid_purchase: Transaction):
        edited = apply_full_edit(unpaid_purchase, {"sellerName": "Old Form", "receivedAmount": "250"})

        assert edited.party_name == "Old Form"
        assert edited.paid_amount == Decimal("250")

    def test_absent_fields_kept(self, unpaid_purchase: Transaction):
        edited = apply_full_edit(unpaid_purchase, {"partyContact": "0300-0000000"})

        assert edited.party_name == "Ali Traders"
        assert edited.items == unpaid_purchase.items
        assert edited.party_contact == "0300-0000000"

    def test_sell_profit_recomputed(self):
        sell = normalize({
            "kind": "sell",
            "partyName": "Steel Mills",
            "items": [{"quantityKg": "10", "unitRate": "120", "costRate": "100"}],
        })

        edited = apply_full_edit(sell, {"items": [{"quantityKg": "10", "unitRate": "130", "costRate": "100"}]})

        assert edited.profit == Decimal("300")
        assert edited.total_amount == Decimal("1300")


@pytest.mark.unit
class TestBalanceRules:

    @pytest.mark.parametrize("raw", [
        {"kind": "purchase", "items": [{"quantityKg": "10", "unitRate": "100"}], "paidAmount": "250"},
        {"kind": "sell", "items": [{"quantityKg": "3", "unitRate": "7.5", "costRate": "9"}], "paidAmount": "50"},
        {"kind": "sell", "totalAmount": "abc", "paidAmount": "10"},
        {"kind": "refund", "totalAmount": "100", "paidAmount": "-40"},
        {},
    ])
    def test_remaining_is_clamped_difference(self, raw):
        txn = normalize(raw)
        assert txn.remaining_amount == max(txn.total_amount - txn.paid_amount, Decimal(0))

    def test_purchase_never_carries_profit(self):
        txn = normalize({
            "kind": "buy",
            "profit": "99",
            "items": [{"quantityKg": "5", "unitRate": "10", "costRate": "2", "lineProfit": "40"}],
        }, trust_stored=True)

        assert txn.profit == Decimal(0)
        assert all(item.line_profit == Decimal(0) for item in txn.items)

    def test_purchase_paid_off_in_two_payments(self):
        txn = normalize({"kind": "purchase", "partyName": "Ali", "items": [{"quantityKg": 10, "unitRate": 100}]})
        assert (txn.total_amount, txn.paid_amount, txn.remaining_amount) == (Decimal("1000"), Decimal(0), Decimal("1000"))

        after_first = apply_payment(txn, 800).transaction
        assert after_first.paid_amount == Decimal("800")
        assert after_first.remaining_amount == Decimal("200")

        assert apply_payment(after_first, 250).error is PaymentError.EXCEEDS_BALANCE

        settled = apply_payment(after_first, 200).transaction
        assert settled.remaining_amount == Decimal(0)
        assert filter_pending([settled]) == []
