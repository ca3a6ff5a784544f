import logging
import typer
from pathlib import Path
from typing import List, Optional
from datetime import date
from decimal import Decimal, InvalidOperation

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.panel import Panel

from scrap_ledger.config.settings import LedgerSettings
from scrap_ledger.database.connection import DatabaseConfig, DatabaseManager
from scrap_ledger.repositories.sqlite_document_store import SQLiteDocumentStore
from scrap_ledger.services.ledger_service import LedgerService
from scrap_ledger.services.models import CreateResult
from scrap_ledger.domain.enums import TransactionKind
from scrap_ledger.domain.models import Transaction
from scrap_ledger.reports.export import export_records

app = typer.Typer(
    name="scrap-ledger",
    help="Record scrap purchases and sales, track dues and profit",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)

class State:
    verbose: bool = False
    service: Optional[LedgerService] = None


state = State()


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def build_service(db_path: Optional[Path] = None) -> LedgerService:
    """Wire settings, database and store into a LedgerService"""
    settings = LedgerSettings.load()
    db_manager = DatabaseManager(DatabaseConfig(db_path or settings.database_path))
    db_manager.ensure_schema()
    return LedgerService(SQLiteDocumentStore(db_manager), settings)


def parse_item(raw: str, with_cost: bool = False) -> dict:
    """
    Parse an --item value.

    Purchases use "description:qty:rate", sells "description:qty:rate:cost".
    The description may itself contain colons.
    """
    numeric_parts = 3 if with_cost else 2
    parts = raw.rsplit(":", numeric_parts)
    expected = "description:qty:rate:cost" if with_cost else "description:qty:rate"

    if len(parts) != numeric_parts + 1:
        raise typer.BadParameter(f"Item '{raw}' must look like {expected}")

    description, *numbers = parts
    values = []
    for number in numbers:
        try:
            values.append(Decimal(number.strip()))
        except InvalidOperation:
            raise typer.BadParameter(f"'{number}' in item '{raw}' is not a number")

    item = {
        "description": description.strip(),
        "quantityKg": values[0],
        "unitRate": values[1],
    }
    if with_cost:
        item["costRate"] = values[2]
    return item


def money(amount: Decimal) -> str:
    return f"Rs. {amount:,.2f}"


def format_date(txn: Transaction) -> str:
    if txn.created_at is None:
        return "—"
    return txn.created_at.astimezone().strftime("%d %b %Y")


def transactions_table(title: str, transactions: List[Transaction]) -> Table:
    """Standard listing used by pending, report and search"""
    table = Table(title=title, show_header=True, padding=(0, 1))
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Date", style="cyan", width=12)
    table.add_column("Invoice", style="bold")
    table.add_column("Type", justify="center")
    table.add_column("Party", style="white", max_width=30)
    table.add_column("Total", justify="right")
    table.add_column("Paid", justify="right", style="green")
    table.add_column("Due", justify="right")
    table.add_column("Profit", justify="right", style="magenta")

    for txn in transactions:
        kind_color = "green" if txn.is_sell else "blue" if txn.is_purchase else "white"
        due_style = "red" if txn.is_pending else "green"
        table.add_row(
            txn.id or "",
            format_date(txn),
            txn.invoice_number or "—",
            f"[{kind_color}]{txn.kind_name.upper() or 'RECORD'}[/{kind_color}]",
            txn.display_party_name,
            money(txn.total_amount),
            money(txn.paid_amount),
            f"[{due_style}]{money(txn.remaining_amount)}[/{due_style}]",
            money(txn.profit) if txn.is_sell else "—",
        )

    return table


def fail(error: Exception) -> None:
    """Print an error and exit with status 1"""
    console.print(f"[bold red]Error:[/bold red] {error}")
    if state.verbose:
        console.print_exception()
    raise typer.Exit(code=1)


def show_created(result: CreateResult, border_style: str) -> None:
    """Print a saved entry, or exit with status 1 if nothing was saved"""
    if not result.ok:
        console.print(f"[bold red]Could not save:[/bold red] {result.error.value}")
        raise typer.Exit(code=1)
    console.print(Panel.fit(str(result), border_style=border_style))


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to the ledger database (defaults to the configured path)",
        dir_okay=False,
    ),
):
    """
    Scrap Ledger - purchases, sales, pending payments and profit.
    """
    configure_logging(verbose)
    state.verbose = verbose
    state.service = build_service(db)


@app.command(name="purchase")
def purchase(
    party: str = typer.Option(..., "--party", "-p", help="Supplier name"),
    items: List[str] = typer.Option(..., "--item", "-i", help="Item as description:qty:rate (repeatable)"),
    contact: str = typer.Option("", "--contact", "-c", help="Supplier phone"),
    paid: str = typer.Option("0", "--paid", help="Amount paid now"),
):
    """
    Record scrap bought from a supplier.

    Examples:
        scrap-ledger purchase -p "Ali Traders" -i "Copper wire:10:100" --paid 500
    """
    parsed = [parse_item(raw) for raw in items]
    try:
        result = state.service.create_purchase(party, parsed, party_contact=contact, paid_amount=paid)
    except Exception as e:
        fail(e)

    show_created(result, "blue")


@app.command(name="sell")
def sell(
    party: str = typer.Option(..., "--party", "-p", help="Buyer name"),
    items: List[str] = typer.Option(..., "--item", "-i", help="Item as description:qty:rate:cost (repeatable)"),
    contact: str = typer.Option("", "--contact", "-c", help="Buyer phone"),
    received: str = typer.Option("0", "--received", help="Amount received now"),
):
    """
    Record scrap sold to a buyer.

    Examples:
        scrap-ledger sell -p "Steel Mills" -i "Iron:50:120:100" --received 3000
    """
    parsed = [parse_item(raw, with_cost=True) for raw in items]
    try:
        result = state.service.create_sell(party, parsed, party_contact=contact, received_amount=received)
    except Exception as e:
        fail(e)

    show_created(result, "green")


@app.command(name="pay")
def pay(
    transaction_id: str = typer.Argument(..., help="Transaction ID"),
    amount: str = typer.Argument(..., help="Amount paid or received"),
):
    """
    Record a payment against an invoice's remaining balance.
    """
    try:
        result = state.service.record_payment(transaction_id, amount)
    except Exception as e:
        fail(e)

    if not result.ok:
        console.print(f"[bold red]Payment rejected:[/bold red] {result.error.value}")
        raise typer.Exit(code=1)

    txn = result.transaction
    console.print(
        f"[bold green]✓ Payment recorded on {txn.invoice_number}[/bold green]\n"
        f"  Paid: {money(txn.paid_amount)}  Balance: {money(txn.remaining_amount)}"
    )


@app.command(name="edit")
def edit(
    transaction_id: str = typer.Argument(..., help="Transaction ID"),
    party: Optional[str] = typer.Option(None, "--party", "-p", help="New party name"),
    contact: Optional[str] = typer.Option(None, "--contact", "-c", help="New party phone"),
    items: Optional[List[str]] = typer.Option(None, "--item", "-i", help="Replacement items (repeatable)"),
    paid: Optional[str] = typer.Option(None, "--paid", help="Corrected total paid/received"),
):
    """
    Correct a record. Given items replace all existing items.
    """
    try:
        current = state.service.get_transaction(transaction_id)

        fields = {}
        if party is not None:
            fields["partyName"] = party
        if contact is not None:
            fields["partyContact"] = contact
        if paid is not None:
            fields["paidAmount"] = paid
        if items:
            fields["items"] = [parse_item(raw, with_cost=current.is_sell) for raw in items]

        updated = state.service.edit_transaction(transaction_id, fields)
    except Exception as e:
        fail(e)

    console.print(f"[bold green]✓ Updated {updated.invoice_number}[/bold green]")
    console.print(transactions_table("Record", [updated]))


@app.command(name="show")
def show(transaction_id: str = typer.Argument(..., help="Transaction ID")):
    """
    Show one record with its items.
    """
    try:
        txn = state.service.get_transaction(transaction_id)
    except Exception as e:
        fail(e)

    console.print(Panel.fit(
        f"[bold]{txn.kind_name.capitalize()} invoice {txn.invoice_number}[/bold]\n"
        f"Party: {txn.display_party_name} {txn.party_contact}\n"
        f"Date: {format_date(txn)}",
        border_style="cyan",
    ))

    item_table = Table(show_header=True, box=None, padding=(0, 2))
    item_table.add_column("#", style="dim")
    item_table.add_column("Description", style="cyan")
    item_table.add_column("Kg", justify="right")
    item_table.add_column("Rate", justify="right")
    if txn.is_sell:
        item_table.add_column("Cost", justify="right", style="dim")
    item_table.add_column("Total", justify="right")
    if txn.is_sell:
        item_table.add_column("Profit", justify="right", style="magenta")

    for idx, item in enumerate(txn.items, start=1):
        row = [str(idx), item.description or "-", f"{item.quantity_kg:,}", money(item.unit_rate)]
        if txn.is_sell:
            row.append(money(item.cost_rate))
        row.append(money(item.line_total))
        if txn.is_sell:
            row.append(money(item.line_profit))
        item_table.add_row(*row)

    console.print(item_table)
    console.print(
        f"\nTotal: {money(txn.total_amount)}   Paid: {money(txn.paid_amount)}   "
        f"{'[red]Balance Due' if txn.is_pending else '[green]Paid'}: {money(txn.remaining_amount)}"
        f"{'[/red]' if txn.is_pending else '[/green]'}"
    )


@app.command(name="pending")
def pending():
    """
    List unpaid purchases and sells, newest first.
    """
    try:
        rows = state.service.get_pending()
    except Exception as e:
        fail(e)

    if not rows:
        console.print(Panel("[green]No pending payments[/green]", border_style="green"))
        return

    console.print(transactions_table(f"Pending Payments ({len(rows)})", rows))
    total_due = sum((txn.remaining_amount for txn in rows), Decimal(0))
    console.print(f"\n[bold red]Total due: {money(total_due)}[/bold red]")


@app.command(name="summary")
def summary():
    """
    Dashboard totals, profit for today/this month/this year and stock movement.
    """
    try:
        totals = state.service.get_summary()
        metrics = state.service.get_period_metrics()
        stock = state.service.get_stock_summary()
    except Exception as e:
        fail(e)

    summary_text = (
        f"[green]💰 Sales:[/green]      {money(totals.total_sells):>18}\n"
        f"[blue]🛒 Purchases:[/blue]  {money(totals.total_purchases):>18}\n"
        f"[magenta]📈 Profit:[/magenta]     {money(totals.total_profit):>18}\n"
        f"[red]⏳ Due:[/red]        {money(totals.total_due):>18}\n"
        f"{'─' * 34}\n"
    )

    # Net with color based on positive/negative
    if totals.net_profit >= 0:
        summary_text += f"[bold green]Net:[/bold green]          {money(totals.net_profit):>18}"
    else:
        summary_text += f"[bold red]Net:[/bold red]          {money(totals.net_profit):>18}"

    console.print(Panel(summary_text, title="[bold]Ledger Summary[/bold]", border_style="cyan", padding=(1, 2)))

    metrics_table = Table(show_header=True, box=None, padding=(0, 2))
    metrics_table.add_column("Period", style="cyan")
    metrics_table.add_column("Profit", justify="right", style="magenta")
    metrics_table.add_row("Today", money(metrics.daily_profit))
    metrics_table.add_row("This month", money(metrics.monthly_profit))
    metrics_table.add_row("This year", money(metrics.yearly_profit))
    console.print(metrics_table)

    console.print(
        f"\n[bold]Stock[/bold]  in: {stock.total_kg_in:,} kg  out: {stock.total_kg_out:,} kg\n"
        f"Payable to suppliers: {money(stock.total_payable)}  "
        f"Receivable from buyers: {money(stock.total_receivable)}"
    )


@app.command(name="report")
def report(
    month: Optional[int] = typer.Option(
        None,
        "--month", "-m",
        help="Month (1-12)",
        min=1,
        max=12
    ),
    year: Optional[int] = typer.Option(
        None,
        "--year", "-y",
        help="Year",
    ),
):
    """
    Monthly profit report.

    Examples:
        scrap-ledger report
        scrap-ledger report --month 1 --year 2026
    """
    month = month or date.today().month
    year = year or date.today().year

    try:
        monthly = state.service.get_monthly_report(year, month)
    except Exception as e:
        fail(e)

    console.print(f"\n[bold cyan]Profit Report: {monthly.label}[/bold cyan]")

    if monthly.total_records == 0:
        console.print(Panel(
            "[yellow]No records found for this month[/yellow]",
            title="Empty Report",
            border_style="yellow"
        ))
        return

    totals = monthly.summary
    console.print(Panel(
        f"Sales: {money(totals.total_sells)}   Purchases: {money(totals.total_purchases)}   "
        f"Profit: {money(totals.total_profit)}   Due: {money(totals.total_due)}",
        border_style="cyan",
    ))
    console.print(transactions_table(f"Records: {monthly.label}", monthly.records))


@app.command(name="search")
def search(
    term: str = typer.Argument("", help="Party name or invoice number"),
    kind: Optional[TransactionKind] = typer.Option(None, "--kind", "-k", help="Only purchase or sell records"),
):
    """
    Search records by party name or invoice number.
    """
    try:
        rows = state.service.search(term, kind)
    except Exception as e:
        fail(e)

    if not rows:
        console.print("[yellow]No matching records[/yellow]")
        return

    console.print(transactions_table(f"Records matching '{term}'", rows))


@app.command(name="export")
def export(
    output: Path = typer.Argument(..., help="Destination .csv or .xlsx file", dir_okay=False),
    month: Optional[int] = typer.Option(None, "--month", "-m", help="Month (1-12)", min=1, max=12),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Year"),
):
    """
    Export records to a spreadsheet. With --month, only that month is exported.
    """
    try:
        if month is not None:
            records = state.service.get_monthly_report(year or date.today().year, month).records
        else:
            records = state.service.get_transactions()

        path = export_records(records, output)
    except Exception as e:
        fail(e)

    console.print(f"[bold green]✓ Exported {len(records)} records to {path}[/bold green]")


def cli_main():
    """Entry point for the CLI"""
    app()


if __name__ == "__main__":
    cli_main()
