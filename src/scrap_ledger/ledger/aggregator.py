"""
Fold normalized transactions into dashboard and report figures.

Every function here is pure and takes the transactions explicitly; callers
fetch them from the store and pass them in.
"""
from calendar import monthrange
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from scrap_ledger.domain.enums import TransactionKind
from scrap_ledger.domain.models import Transaction
from scrap_ledger.ledger.models import LedgerSummary, MonthlyReport, PeriodMetrics, StockSummary

ZERO = Decimal(0)


def _local(moment: datetime) -> datetime:
    """Express a timestamp in the caller's local calendar"""
    return moment.astimezone() if moment.tzinfo is not None else moment


def _epoch(moment: Optional[datetime]) -> Optional[float]:
    # Naive datetimes are taken as local time, aware ones keep their zone
    if moment is None:
        return None
    try:
        return moment.timestamp()
    except (OverflowError, OSError, ValueError):
        return None


def _newest_first(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Stable sort by created_at descending, unknown timestamps last"""
    def sort_key(txn: Transaction) -> Tuple[int, float]:
        epoch = _epoch(txn.created_at)
        return (1, 0.0) if epoch is None else (0, -epoch)

    return sorted(transactions, key=sort_key)


def summarize(transactions: Iterable[Transaction]) -> LedgerSummary:
    """
    Compute sales, purchases, profit and outstanding totals.

    Records of an unrecognized kind only contribute to the due total.

    Example:
        >>> summary = summarize(transactions)
        >>> summary.net_profit
        Decimal('700')
    """
    total_sells = ZERO
    total_purchases = ZERO
    total_profit = ZERO
    total_due = ZERO

    for txn in transactions:
        if txn.kind == TransactionKind.SELL:
            total_sells += txn.total_amount
            total_profit += txn.profit
        elif txn.kind == TransactionKind.PURCHASE:
            total_purchases += txn.total_amount

        if txn.remaining_amount > 0:
            total_due += txn.remaining_amount

    return LedgerSummary(
        total_sells=total_sells,
        total_purchases=total_purchases,
        total_profit=total_profit,
        total_due=total_due,
    )


def metrics_for_period(
    transactions: Iterable[Transaction],
    reference: datetime,
) -> PeriodMetrics:
    """
    Sum sell profit for the day, month and year containing `reference`.

    Dates are compared in the local calendar. Transactions without a
    creation timestamp are skipped.

    Args:
        transactions: Normalized transactions
        reference: The instant whose day/month/year are reported

    Returns:
        PeriodMetrics with daily, monthly and yearly profit
    """
    ref = _local(reference)

    daily = ZERO
    monthly = ZERO
    yearly = ZERO

    for txn in transactions:
        if txn.kind != TransactionKind.SELL or txn.created_at is None:
            continue

        created = _local(txn.created_at)
        if created.year != ref.year:
            continue

        yearly += txn.profit
        if created.month == ref.month:
            monthly += txn.profit
            if created.day == ref.day:
                daily += txn.profit

    return PeriodMetrics(
        daily_profit=daily,
        monthly_profit=monthly,
        yearly_profit=yearly,
    )


def filter_pending(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Transactions with a balance still due, newest first"""
    return _newest_first(txn for txn in transactions if txn.remaining_amount > 0)


def stock_summary(transactions: Iterable[Transaction]) -> StockSummary:
    """Kilograms in/out and payable/receivable balances"""
    kg_in = ZERO
    kg_out = ZERO
    payable = ZERO
    receivable = ZERO

    for txn in transactions:
        if txn.kind == TransactionKind.PURCHASE:
            kg_in += txn.total_quantity_kg
            payable += txn.remaining_amount
        elif txn.kind == TransactionKind.SELL:
            kg_out += txn.total_quantity_kg
            receivable += txn.remaining_amount

    return StockSummary(
        total_kg_in=kg_in,
        total_kg_out=kg_out,
        total_payable=payable,
        total_receivable=receivable,
    )


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    """First and last local instant of a calendar month"""
    _, last_day = monthrange(year, month)
    start = datetime(year, month, 1)
    end = datetime(year, month, last_day, 23, 59, 59, 999999)
    return start, end


def records_between(
    transactions: Iterable[Transaction],
    start: datetime,
    end: datetime,
) -> List[Transaction]:
    """Transactions created within [start, end], newest first"""
    start_epoch = _epoch(start)
    end_epoch = _epoch(end)
    if start_epoch is None or end_epoch is None:
        return []

    selected = []
    for txn in transactions:
        created = _epoch(txn.created_at)
        if created is not None and start_epoch <= created <= end_epoch:
            selected.append(txn)

    return _newest_first(selected)


def monthly_report(
    transactions: Iterable[Transaction],
    year: int,
    month: int,
) -> MonthlyReport:
    """Records of one month with their totals"""
    start, end = month_bounds(year, month)
    records = records_between(transactions, start, end)
    return MonthlyReport(
        year=year,
        month=month,
        records=records,
        summary=summarize(records),
    )


def search(
    transactions: Sequence[Transaction],
    term: str = "",
    kind: Optional[TransactionKind] = None,
) -> List[Transaction]:
    """
    Find transactions by party name, invoice number or kind.

    Matching is a case-insensitive substring test. An empty term returns
    every transaction (of `kind`, when given), newest first.
    """
    needle = (term or "").strip().lower()

    matches = []
    for txn in transactions:
        if kind is not None and txn.kind != kind:
            continue
        if needle and not (
            needle in txn.party_name.lower()
            or needle in txn.invoice_number.lower()
            or needle in txn.kind_name.lower()
        ):
            continue
        matches.append(txn)

    return _newest_first(matches)
