"""Decode raw vision model output into JSON records."""

import json
import logging
import re
from decimal import Decimal
from typing import Any

from ledgerscan.errors import MalformedResponseError
from ledgerscan.models import DocumentKind

logger = logging.getLogger(__name__)

# Opening fence with optional language tag, and closing fence
OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?")
CLOSING_FENCE = re.compile(r"\n?[ \t]*```$")


def strip_code_fences(content: str) -> str:
    """Remove surrounding ``` markers (with optional language tag) and whitespace."""
    cleaned = content.strip()
    cleaned = OPENING_FENCE.sub("", cleaned, count=1)
    cleaned = CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _stringify_amount(record: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``record`` whose amount fields are strings."""
    result = dict(record)
    for key in ("amount", "total_amount"):
        value = result.get(key)
        if isinstance(value, Decimal):
            result[key] = format(value, "f")
        elif value is not None and not isinstance(value, str):
            result[key] = str(value)
    return result


def parse_model_response(content: str, kind: DocumentKind) -> dict[str, Any] | list[dict[str, Any]]:
    """
    Parse model output for a document kind.

    Receipts yield a single object; bank statements always yield a list,
    with a lone object wrapped into a one-element list.

    Args:
        content: Raw text content from the model
        kind: Document kind the request was made for

    Returns:
        One record dict (receipt) or a list of record dicts (statement)

    Raises:
        MalformedResponseError: If the content is not JSON of the expected shape
    """
    cleaned = strip_code_fences(content)

    try:
        # Decimal keeps numeric amounts exact and free of exponent notation
        data = json.loads(cleaned, parse_float=Decimal)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON from model: {e}")
        logger.error(f"Content preview: {cleaned[:200]}...")
        raise MalformedResponseError(f"Model returned invalid JSON: {e}")

    if kind == DocumentKind.BANK_STATEMENT:
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise MalformedResponseError(f"Expected a JSON array of transactions, got {type(data).__name__}")
        for i, entry in enumerate(data):
            if not isinstance(entry, dict):
                raise MalformedResponseError(f"Transaction {i}: expected an object, got {type(entry).__name__}")
        return [_stringify_amount(entry) for entry in data]

    # Receipt: tolerate a one-element array
    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object for receipt, got {type(data).__name__}")
    return _stringify_amount(data)
