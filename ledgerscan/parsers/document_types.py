"""Pydantic decoders for the JSON objects returned by the vision model."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

NULL_MARKERS = ("null", "none", "unknown", "n/a")


def clean_field(value: Any) -> str | None:
    """Coerce a model-supplied value to a stripped string, treating blanks and textual nulls as absent."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise ValueError("expected a scalar value")
    text = str(value).strip()
    if not text or text.lower() in NULL_MARKERS:
        return None
    return text


class RawReceipt(BaseModel):
    """Receipt object as returned by the model."""

    model_config = ConfigDict(extra="ignore")

    date: str | None = None
    merchant: str | None = Field(default=None, validation_alias=AliasChoices("merchant", "merchant_name"))
    amount: str | None = Field(default=None, validation_alias=AliasChoices("amount", "total_amount"))
    description: str | None = None
    category: str | None = None

    @field_validator("date", "merchant", "amount", "description", "category", mode="before")
    @classmethod
    def _clean(cls, value: Any) -> str | None:
        return clean_field(value)


class RawTransaction(BaseModel):
    """Bank statement line as returned by the model."""

    model_config = ConfigDict(extra="ignore")

    date: str | None = None
    type: str | None = None  # Informational only; direction is derived from the amount string
    description: str | None = None
    amount: str | None = None

    @field_validator("date", "type", "description", "amount", mode="before")
    @classmethod
    def _clean(cls, value: Any) -> str | None:
        return clean_field(value)


# Fields the pipeline reports in ``missing_fields`` when absent
RECEIPT_REQUIRED_FIELDS = ("date", "merchant_name", "total_amount")
TRANSACTION_REQUIRED_FIELDS = ("date", "description", "amount")

# JSON keys the prompts must mention
RECEIPT_PROMPT_KEYS = ("date", "merchant", "amount", "description", "category")
TRANSACTION_PROMPT_KEYS = ("date", "type", "description", "amount")
