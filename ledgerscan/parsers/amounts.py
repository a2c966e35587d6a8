"""Classify monetary amount strings into a transaction type and magnitude."""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from ledgerscan.models import TransactionType

NON_NUMERIC = re.compile(r"[^0-9.\-]")
PARENTHESIZED = re.compile(r"\(.*\)")


class UnrecognizedAmountError(ValueError):
    """Raised when an amount string contains no parseable number."""

    pass


@dataclass(frozen=True)
class AmountClassification:
    """Signed meaning of an amount, split into a type and a non-negative magnitude."""

    kind: TransactionType
    magnitude: Decimal


def clean_amount_string(raw: str) -> str:
    """
    Reduce an amount string to digits, '.' and a leading '-'.

    Args:
        raw: Raw amount string, e.g. "RM 1,200.50 CR" or "500.00-"

    Returns:
        Cleaned amount string ready for Decimal conversion
    """
    cleaned = NON_NUMERIC.sub("", raw)

    # Handle trailing minus sign
    if cleaned.endswith("-") and not cleaned.startswith("-"):
        cleaned = "-" + cleaned[:-1]

    return cleaned


def parse_magnitude(raw: str) -> Decimal:
    """
    Parse the absolute value of an amount string.

    Raises:
        UnrecognizedAmountError: If no number can be read
    """
    cleaned = clean_amount_string(raw)
    if not cleaned or cleaned in ("-", "."):
        raise UnrecognizedAmountError(f"No numeric value in amount: {raw!r}")

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise UnrecognizedAmountError(f"Invalid amount: {raw!r}")

    if not value.is_finite():
        raise UnrecognizedAmountError(f"Invalid amount: {raw!r}")

    return abs(value)


def classify_amount(
    raw: str, unmarked: TransactionType = TransactionType.UNKNOWN
) -> AmountClassification:
    """
    Derive the transaction type and magnitude of an amount string.

    Rules, first match wins:
        1. "cr" / "credit" anywhere (case-insensitive) -> credit
        2. "dr" / "debit" anywhere -> debit
        3. leading or trailing "-" -> debit
        4. leading or trailing "+" -> credit
        5. parenthesized accounting notation -> debit
        6. otherwise the ``unmarked`` policy

    Args:
        raw: Amount as returned by the model
        unmarked: Type to assign when the string carries no indicator

    Returns:
        AmountClassification with a non-negative magnitude

    Raises:
        UnrecognizedAmountError: If no number can be read
    """
    magnitude = parse_magnitude(raw)

    lowered = raw.lower()
    stripped = raw.strip()
    cleaned = clean_amount_string(raw)

    if "cr" in lowered or "credit" in lowered:
        kind = TransactionType.CREDIT
    elif "dr" in lowered or "debit" in lowered:
        kind = TransactionType.DEBIT
    elif cleaned.startswith("-"):
        kind = TransactionType.DEBIT
    elif stripped.startswith("+") or stripped.endswith("+"):
        kind = TransactionType.CREDIT
    elif PARENTHESIZED.search(raw):
        kind = TransactionType.DEBIT
    else:
        kind = unmarked

    return AmountClassification(kind=kind, magnitude=magnitude)
