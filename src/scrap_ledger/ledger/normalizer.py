"""
Canonicalize raw ledger records.

Records reach the ledger from several form variants that drifted apart over
time: purchases say `sellerName` and `paidAmount`, sells say `buyerName` and
`receivedAmount`, and the type field shows up as "sale", "sales", "buy"...
Everything downstream works on the strict `Transaction` produced here.

Nothing in this module raises. Missing or malformed values degrade to empty
strings, zero amounts or `None` timestamps.
"""
import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Union

from scrap_ledger.domain.enums import TransactionKind
from scrap_ledger.domain.models import LineItem, Transaction

ZERO = Decimal(0)

KIND_SYNONYMS = {
    "sell": TransactionKind.SELL,
    "sale": TransactionKind.SELL,
    "sales": TransactionKind.SELL,
    "selling": TransactionKind.SELL,
    "purchase": TransactionKind.PURCHASE,
    "purchases": TransactionKind.PURCHASE,
    "buy": TransactionKind.PURCHASE,
}

# First present alias wins
KIND_FIELDS = ("kind", "type")
INVOICE_FIELDS = ("invoiceNumber", "invoiceNo")
PARTY_NAME_FIELDS = ("partyName", "customerName", "buyerName", "sellerName", "name")
PARTY_CONTACT_FIELDS = ("partyContact", "customerContact", "buyerContact", "contact", "sellerContact", "phone")
PAID_FIELDS = ("paidAmount", "receivedAmount")
CREATED_AT_FIELDS = ("createdAt", "timestamp", "date")

ITEM_DESCRIPTION_FIELDS = ("description", "itemDescription", "name")
ITEM_QUANTITY_FIELDS = ("quantityKg", "quantity", "qty", "weight")
ITEM_RATE_FIELDS = ("unitRate", "ratePerKg", "rate", "sellRate")
ITEM_COST_FIELDS = ("costRate", "purchaseRate")
ITEM_TOTAL_FIELDS = ("lineTotal", "total")
ITEM_PROFIT_FIELDS = ("lineProfit", "itemProfit")

_CURRENCY_MARKERS = re.compile(r"(?i)\b(pkr|rs)\b\.?|\$")


def _first_present(raw: Mapping[str, Any], fields: Iterable[str]) -> Any:
    """Value of the first alias that is present and not None"""
    for name in fields:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def _first_text(raw: Mapping[str, Any], fields: Iterable[str]) -> str:
    """Value of the first alias holding non-blank text, trimmed"""
    for name in fields:
        value = raw.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def to_amount(value: Any) -> Decimal:
    """
    Coerce anything numeric-ish to a finite Decimal.

    Accepts numbers and strings such as " 1,250.50 ", "Rs. 300" or "PKR 40".
    Missing, non-numeric, NaN and infinite inputs all give 0.

    Args:
        value: Raw value from a record

    Returns:
        A finite Decimal
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return ZERO
    elif isinstance(value, str):
        cleaned = _CURRENCY_MARKERS.sub("", value).replace(",", "").strip()
        if not cleaned:
            return ZERO
        try:
            number = Decimal(cleaned)
        except (InvalidOperation, ValueError):
            return ZERO
    else:
        return ZERO

    if not number.is_finite():
        return ZERO
    return number


def _non_negative(value: Any) -> Decimal:
    amount = to_amount(value)
    return amount if amount > 0 else ZERO


def normalize_kind(value: Any) -> Union[TransactionKind, str]:
    """
    Map a type/kind spelling onto TransactionKind.

    Unrecognized spellings are returned lowercased so they can still be
    displayed; the aggregator treats them as neither purchase nor sell.
    """
    if isinstance(value, TransactionKind):
        return value
    text = str(value or "").strip().lower()
    return KIND_SYNONYMS.get(text, text)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Best-effort conversion of a stored timestamp.

    Handles datetimes, dates, epoch milliseconds and ISO-8601 strings.
    Returns None for anything unusable, including epoch 0.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, (int, float)):
        if value != value or value in (float("inf"), float("-inf")) or value <= 0:
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None

    return None


def normalize_item(
    raw: Mapping[str, Any],
    kind: Union[TransactionKind, str],
    trust_stored: bool = False,
) -> LineItem:
    """
    Build a LineItem from a raw item mapping.

    Line total and profit are recomputed from quantity and rates unless
    `trust_stored` is set and the stored value is present.
    """
    if isinstance(raw, LineItem):
        raw = raw.to_record()
    elif not isinstance(raw, Mapping):
        raw = {}

    is_sell = kind == TransactionKind.SELL

    quantity = _non_negative(_first_present(raw, ITEM_QUANTITY_FIELDS))
    unit_rate = _non_negative(_first_present(raw, ITEM_RATE_FIELDS))
    cost_rate = _non_negative(_first_present(raw, ITEM_COST_FIELDS)) if is_sell else ZERO

    stored_total = _first_present(raw, ITEM_TOTAL_FIELDS)
    if trust_stored and stored_total is not None:
        line_total = _non_negative(stored_total)
    else:
        line_total = quantity * unit_rate

    if not is_sell:
        line_profit = ZERO
    else:
        stored_profit = _first_present(raw, ITEM_PROFIT_FIELDS)
        if trust_stored and stored_profit is not None:
            line_profit = to_amount(stored_profit)
        else:
            line_profit = (unit_rate - cost_rate) * quantity

    return LineItem(
        description=_first_text(raw, ITEM_DESCRIPTION_FIELDS),
        quantity_kg=quantity,
        unit_rate=unit_rate,
        cost_rate=cost_rate,
        line_total=line_total,
        line_profit=line_profit,
    )


def is_meaningful_item(item: LineItem) -> bool:
    """An item counts when it names something or carries a quantity or rate"""
    return bool(item.description) or item.quantity_kg > 0 or item.unit_rate > 0


def normalize(
    raw: Union[Mapping[str, Any], Transaction, None],
    trust_stored: bool = False,
) -> Transaction:
    """
    Canonicalize a raw record into a Transaction.

    Args:
        raw: Any mapping using current or legacy field names, or an already
            normalized Transaction (normalizing is idempotent).
        trust_stored: Set when reading back from storage. Stored line totals,
            line profits and remaining amount are kept (clamped) instead of
            being recomputed.

    Returns:
        A Transaction whose derived amounts are consistent with its items and paid amount.
    """
    if isinstance(raw, Transaction):
        record = raw.to_record()
        record["id"] = raw.id
        raw = record
    elif not isinstance(raw, Mapping):
        raw = {}

    kind = normalize_kind(_first_present(raw, KIND_FIELDS))
    is_sell = kind == TransactionKind.SELL

    raw_items = raw.get("items")
    if isinstance(raw_items, (list, tuple)):
        items = [normalize_item(it, kind, trust_stored) for it in raw_items]
    else:
        items = []

    if items:
        total_amount = sum((it.line_total for it in items), ZERO)
        profit = sum((it.line_profit for it in items), ZERO) if is_sell else ZERO
    else:
        # Summary-only legacy records carry their amounts without items
        total_amount = _non_negative(raw.get("totalAmount"))
        profit = to_amount(raw.get("profit")) if is_sell else ZERO

    paid_amount = _non_negative(_first_present(raw, PAID_FIELDS))

    stored_remaining = raw.get("remainingAmount")
    if trust_stored and stored_remaining is not None:
        remaining_amount = _non_negative(stored_remaining)
    else:
        remaining_amount = max(total_amount - paid_amount, ZERO)

    record_id = raw.get("id")

    return Transaction(
        id=str(record_id) if record_id is not None else None,
        kind=kind,
        invoice_number=_first_text(raw, INVOICE_FIELDS),
        party_name=_first_text(raw, PARTY_NAME_FIELDS),
        party_contact=_first_text(raw, PARTY_CONTACT_FIELDS),
        items=items,
        total_amount=total_amount,
        paid_amount=paid_amount,
        remaining_amount=remaining_amount,
        profit=profit,
        created_at=parse_timestamp(_first_present(raw, CREATED_AT_FIELDS)),
        updated_at=parse_timestamp(raw.get("updatedAt")),
    )
