from pathlib import Path
from typing import Iterable

import pandas as pd

from scrap_ledger.domain.models import Transaction

REPORT_COLUMNS = ["Date", "Invoice", "Type", "Party", "Total", "Paid", "Due", "Profit"]


def records_to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """
    Tabulate transactions the way the profit report lists them.

    Profit is only filled in for sells; other rows leave it empty.
    """
    rows = []
    for txn in transactions:
        rows.append({
            "Date": txn.created_at.date() if txn.created_at else None,
            "Invoice": txn.invoice_number,
            "Type": txn.kind_name.upper() or "—",
            "Party": txn.display_party_name,
            "Total": float(txn.total_amount),
            "Paid": float(txn.paid_amount),
            "Due": float(txn.remaining_amount),
            "Profit": float(txn.profit) if txn.is_sell else None,
        })

    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def export_records(transactions: Iterable[Transaction], filepath: Path | str) -> Path:
    """
    Write transactions to a .csv or .xlsx file.

    Args:
        transactions: Transactions to export, in the order they should appear
        filepath: Destination; the suffix picks the format

    Returns:
        The path written

    Raises:
        ValueError: If the suffix is neither .csv nor .xlsx
    """
    path = Path(filepath)
    suffix = path.suffix.lower()

    if suffix not in (".csv", ".xlsx"):
        raise ValueError(f"Export file must be .csv or .xlsx, got {path.suffix or 'no suffix'}")

    df = records_to_frame(transactions)
    path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == ".csv":
        df.to_csv(path, index=False)
    else:
        df.to_excel(path, index=False, sheet_name="Records")

    return path
