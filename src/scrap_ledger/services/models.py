"""
Service layer models - DTOs for service operations.

These models represent the results of service operations, not domain entities.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from scrap_ledger.domain.models import Transaction

class CreateError(Enum):
    """Why a new entry could not be saved"""
    ALLOCATION_EXHAUSTED = "No unused invoice number could be claimed; other entries kept taking them"

@dataclass
class CreateResult:
    """
    Result of recording a new purchase or sell.

    Holds the saved transaction, or an error when every attempt to claim an
    invoice number lost to another writer. `attempts` counts commits tried;
    anything above 1 means another writer took a number first.
    """
    transaction: Optional[Transaction] = None
    attempts: int = 1
    error: Optional[CreateError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def had_conflict(self) -> bool:
        """True if at least one invoice number was lost to a concurrent writer"""
        return self.attempts > 1

    def __str__(self) -> str:
        "Human-readable summary"
        if not self.ok:
            return f"❌ {self.error.value} (gave up after {self.attempts} attempts)"

        txn = self.transaction
        lines = [
            f"{txn.kind_name.capitalize()} invoice {txn.invoice_number} saved:",
            f" 👤 Party: {txn.display_party_name}",
            f" 💰 Total: Rs. {txn.total_amount:,.2f}",
            f" ✅ Paid: Rs. {txn.paid_amount:,.2f}",
            f" ⏳ Balance: Rs. {txn.remaining_amount:,.2f}",
        ]

        if self.had_conflict:
            lines.append(f"  ⚠️ Allocated after {self.attempts} attempts")

        return "\n".join(lines)
