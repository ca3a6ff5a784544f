from typing import Dict, Iterable, Optional, Union

from scrap_ledger.domain.enums import TransactionKind

DEFAULT_PREFIXES: Dict[TransactionKind, str] = {
    TransactionKind.PURCHASE: "PSK-",
    TransactionKind.SELL: "SSK-",
}
DEFAULT_WIDTH = 4


def invoice_prefix(
    kind: Union[TransactionKind, str],
    prefixes: Optional[Dict[TransactionKind, str]] = None,
) -> str:
    """
    Prefix used for invoice numbers of the given kind.

    Raises:
        ValueError: If kind is not a purchase or sell
    """
    prefixes = prefixes or DEFAULT_PREFIXES
    if not isinstance(kind, TransactionKind) or kind not in prefixes:
        raise ValueError(f"No invoice prefix configured for kind '{kind}'")
    return prefixes[kind]


def parse_sequence(number: str, prefix: str) -> Optional[int]:
    """
    Extract the sequence from an invoice number.

    Returns None when the number does not belong to the prefix namespace or
    its suffix is not purely numeric ("PSK0003", "PSK-12a", "SSK-").
    """
    if not isinstance(number, str) or not number.startswith(prefix):
        return None

    suffix = number[len(prefix):]
    if not suffix or not (suffix.isascii() and suffix.isdigit()):
        return None

    return int(suffix)


def next_invoice_number(
    kind: TransactionKind,
    existing_numbers: Iterable[str],
    prefixes: Optional[Dict[TransactionKind, str]] = None,
    width: int = DEFAULT_WIDTH,
) -> str:
    """
    Derive the next sequential invoice number for a kind.

    Takes the highest sequence among `existing_numbers` that carry this
    kind's prefix and adds one. Malformed numbers are ignored.

    This is a pure function. Two callers working from the same snapshot get
    the same answer, so the commit must go through the store's uniqueness
    check and be retried on conflict.

    Args:
        kind: Purchase or sell
        existing_numbers: Invoice numbers already in use (any kind)
        prefixes: Optional kind -> prefix mapping, defaults to PSK-/SSK-
        width: Zero padding width of the sequence

    Returns:
        The next invoice number, e.g. "PSK-0004"

    Example:
        >>> next_invoice_number(TransactionKind.PURCHASE, ["PSK-0001", "PSK-0003"])
        'PSK-0004'
    """
    prefix = invoice_prefix(kind, prefixes)

    highest = 0
    for number in existing_numbers:
        sequence = parse_sequence(number, prefix)
        if sequence is not None and sequence > highest:
            highest = sequence

    return f"{prefix}{str(highest + 1).zfill(width)}"
