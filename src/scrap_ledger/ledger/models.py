"""
Ledger result models - values produced by the aggregator.

These summarize a collection of transactions; they are never persisted.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List

from scrap_ledger.domain.models import Transaction


@dataclass(frozen=True)
class LedgerSummary:
    """Dashboard totals over a set of transactions"""
    total_sells: Decimal = Decimal(0)
    total_purchases: Decimal = Decimal(0)
    total_profit: Decimal = Decimal(0)
    total_due: Decimal = Decimal(0)

    @property
    def net_profit(self) -> Decimal:
        """Sales value minus purchase cost"""
        return self.total_sells - self.total_purchases

    def as_dict(self) -> dict:
        return {
            "totalSells": self.total_sells,
            "totalPurchases": self.total_purchases,
            "totalProfit": self.total_profit,
            "totalDue": self.total_due,
            "netProfit": self.net_profit,
        }


@dataclass(frozen=True)
class PeriodMetrics:
    """Sell profit for the day, month and year of a reference instant"""
    daily_profit: Decimal = Decimal(0)
    monthly_profit: Decimal = Decimal(0)
    yearly_profit: Decimal = Decimal(0)


@dataclass(frozen=True)
class StockSummary:
    """
    Scrap moved and money outstanding, split by direction.

    Payable is what the trader still owes suppliers (purchases),
    receivable is what buyers still owe the trader (sells).
    """
    total_kg_in: Decimal = Decimal(0)
    total_kg_out: Decimal = Decimal(0)
    total_payable: Decimal = Decimal(0)
    total_receivable: Decimal = Decimal(0)

    @property
    def net_kg(self) -> Decimal:
        """Kilograms bought but not yet sold"""
        return self.total_kg_in - self.total_kg_out


@dataclass
class MonthlyReport:
    """
    Records and totals for one calendar month.

    Backs the monthly profit report.
    """
    year: int
    month: int
    records: List[Transaction] = field(default_factory=list)
    summary: LedgerSummary = field(default_factory=LedgerSummary)

    @property
    def start_date(self) -> date:
        """First day of the month"""
        return date(self.year, self.month, 1)

    @property
    def label(self) -> str:
        return self.start_date.strftime("%B %Y")

    @property
    def total_records(self) -> int:
        return len(self.records)

    def __str__(self) -> str:
        """Human-readable summary"""
        lines = [
            f"📊 Profit Report - {self.label}",
            f"",
            f"Records: {self.total_records}",
            f"  Sales:     Rs. {self.summary.total_sells:,.2f}",
            f"  Purchases: Rs. {self.summary.total_purchases:,.2f}",
            f"  Profit:    Rs. {self.summary.total_profit:,.2f}",
            f"  Due:       Rs. {self.summary.total_due:,.2f}",
        ]
        return "\n".join(lines)
