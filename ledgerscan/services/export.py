"""Convert extracted transactions to CSV."""

from typing import Any

import pandas as pd

# Column order of the exported file
CSV_FIELDS = ["date", "type", "description", "amount"]


def transactions_to_csv(transactions: list[dict[str, Any]]) -> str:
    """
    Render transaction objects as CSV text.

    Only the export columns are kept, in a fixed order; keys missing from an
    object become empty cells and extra keys are dropped.

    Args:
        transactions: Transaction objects as sent by the client

    Returns:
        CSV text with a header row
    """
    df = pd.DataFrame(transactions, columns=CSV_FIELDS)
    return df.to_csv(index=False)
