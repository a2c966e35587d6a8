"""Date normalization for model-extracted date strings.

Matching is structural (regex on the shape of the string), not locale-aware
parsing. ``NN/NN/YYYY`` cannot be told apart from its month-first twin by
shape alone, so day-first is the default reading and ``day_first=False`` is
the hint for month-first sources.
"""

import re

MONTH_YEAR = re.compile(r"^(\d{2})/(\d{2})$")
DAY_MONTH_SHORT_YEAR = re.compile(r"^(\d{2})/(\d{2})/(\d{2})$")
FULL_YEAR = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")


class UnrecognizedDateError(ValueError):
    """Raised in strict mode when a date string matches no known shape."""

    pass


def normalize_date(raw: str, day_first: bool = True, strict: bool = False) -> str:
    """
    Convert a date string to YYYY-MM-DD.

    Recognized shapes, first match wins:
        MM/YY       -> 20YY-MM-01
        DD/MM/YY    -> 20YY-MM-DD
        DD/MM/YYYY  -> YYYY-MM-DD (MM/DD/YYYY when day_first is False)

    Args:
        raw: Date string as returned by the model
        day_first: Read NN/NN/YYYY as day/month/year
        strict: Raise instead of passing unrecognized input through

    Returns:
        The normalized date, or ``raw`` unchanged when no shape matches.
        The pass-through value is not guaranteed to be a valid date.

    Raises:
        UnrecognizedDateError: If strict and no shape matches
    """
    value = raw.strip()

    match = MONTH_YEAR.match(value)
    if match:
        month, year = match.groups()
        return f"20{year}-{month}-01"

    match = DAY_MONTH_SHORT_YEAR.match(value)
    if match:
        day, month, year = match.groups()
        return f"20{year}-{month}-{day}"

    match = FULL_YEAR.match(value)
    if match:
        first, second, year = match.groups()
        if day_first:
            return f"{year}-{second}-{first}"
        return f"{year}-{first}-{second}"

    if strict:
        raise UnrecognizedDateError(f"Unrecognized date format: {raw!r}")
    return raw
