from dataclasses import dataclass, field
from decimal import Decimal
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from scrap_ledger.domain.enums import TransactionKind

PARTY_PLACEHOLDER = "—"

@dataclass
class LineItem:
    """A single weighed line on an invoice"""
    description: str
    quantity_kg: Decimal
    unit_rate: Decimal
    cost_rate: Decimal = Decimal(0)
    line_total: Decimal = Decimal(0)
    line_profit: Decimal = Decimal(0)

    def to_record(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "quantityKg": str(self.quantity_kg),
            "unitRate": str(self.unit_rate),
            "costRate": str(self.cost_rate),
            "lineTotal": str(self.line_total),
            "lineProfit": str(self.line_profit),
        }


@dataclass
class Transaction:
    """
    Core domain model representing one purchase or sell invoice.

    Derived amounts (line totals, total, remaining, profit) are filled in by
    the normalizer; construct transactions through `normalize` rather than
    by hand when the amounts are not already consistent.
    """
    kind: Union[TransactionKind, str]
    invoice_number: str
    party_name: str
    party_contact: str
    items: List[LineItem] = field(default_factory=list)
    total_amount: Decimal = Decimal(0)
    paid_amount: Decimal = Decimal(0)
    remaining_amount: Decimal = Decimal(0)
    profit: Decimal = Decimal(0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        """A transaction is pending while any balance remains"""
        return self.remaining_amount > 0

    @property
    def is_sell(self) -> bool:
        return self.kind == TransactionKind.SELL

    @property
    def is_purchase(self) -> bool:
        return self.kind == TransactionKind.PURCHASE

    @property
    def kind_name(self) -> str:
        """Kind as a plain string, whether canonical or unrecognized"""
        return self.kind.value if isinstance(self.kind, TransactionKind) else str(self.kind)

    @property
    def display_party_name(self) -> str:
        return self.party_name or PARTY_PLACEHOLDER

    @property
    def total_quantity_kg(self) -> Decimal:
        return sum((item.quantity_kg for item in self.items), Decimal(0))

    def to_record(self) -> Dict[str, Any]:
        """
        Convert to the canonical storage document.

        Decimals are written as strings to keep their precision and
        timestamps as ISO-8601 strings. The id is left out; the store owns it.
        """
        return {
            "kind": self.kind_name,
            "invoiceNumber": self.invoice_number,
            "partyName": self.party_name,
            "partyContact": self.party_contact,
            "items": [item.to_record() for item in self.items],
            "totalAmount": str(self.total_amount),
            "paidAmount": str(self.paid_amount),
            "remainingAmount": str(self.remaining_amount),
            "profit": str(self.profit),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return (
            f"Transaction({self.invoice_number}, {self.kind_name}, "
            f"{self.display_party_name[:30]}, total={self.total_amount}, due={self.remaining_amount})"
        )
