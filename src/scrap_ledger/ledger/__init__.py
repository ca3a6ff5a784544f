"""
Invoice ledger and reconciliation logic.

Pure functions over transactions: normalize raw records, number invoices,
aggregate totals and apply payments. Nothing here touches storage.

Quick Start:
    >>> from scrap_ledger.ledger import normalize, apply_payment, summarize
    >>>
    >>> txn = normalize({"type": "purchase", "items": [{"quantity": 10, "ratePerKg": 100}]})
    >>> result = apply_payment(txn, 800)
    >>> summarize([result.transaction]).total_due
    Decimal('200')
"""
from scrap_ledger.ledger.normalizer import normalize, normalize_kind, to_amount, is_meaningful_item
from scrap_ledger.ledger.invoice_numbers import next_invoice_number, invoice_prefix
from scrap_ledger.ledger.aggregator import (
    summarize,
    metrics_for_period,
    filter_pending,
    stock_summary,
    monthly_report,
    search,
)
from scrap_ledger.ledger.payments import (
    PaymentError,
    PaymentResult,
    apply_payment,
    apply_full_edit,
)
from scrap_ledger.ledger.models import LedgerSummary, PeriodMetrics, StockSummary, MonthlyReport

__all__ = [
    "normalize",
    "normalize_kind",
    "to_amount",
    "is_meaningful_item",
    "next_invoice_number",
    "invoice_prefix",
    "summarize",
    "metrics_for_period",
    "filter_pending",
    "stock_summary",
    "monthly_report",
    "search",
    "PaymentError",
    "PaymentResult",
    "apply_payment",
    "apply_full_edit",
    "LedgerSummary",
    "PeriodMetrics",
    "StockSummary",
    "MonthlyReport",
]
