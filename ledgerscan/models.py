"""Data models for LedgerScan."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DocumentKind(str, Enum):
    """Kinds of document the vision model is asked to read."""

    RECEIPT = "receipt"
    BANK_STATEMENT = "bank_statement"


class TransactionType(str, Enum):
    """Direction of a bank statement line."""

    CREDIT = "credit"
    DEBIT = "debit"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RawDocument:
    """An uploaded file, alive for the duration of one request."""

    content: bytes
    media_type: str
    filename: str | None = None

    @property
    def is_pdf(self) -> bool:
        return self.media_type == "application/pdf"


class ExtractionRequest(BaseModel):
    """Input to a single vision model call."""

    model_config = ConfigDict(frozen=True)

    kind: DocumentKind
    image_bytes: bytes | None = None
    media_type: str = "image/jpeg"
    image_url: str | None = None  # Public URL or data: URL instead of raw bytes

    @model_validator(mode="after")
    def check_image_source(self) -> "ExtractionRequest":
        if (self.image_bytes is None) == (self.image_url is None):
            raise ValueError("Exactly one of image_bytes or image_url must be provided")
        return self


class ReceiptRecord(BaseModel):
    """A receipt extracted from one image."""

    model_config = ConfigDict(frozen=True)

    date: str | None
    merchant_name: str | None
    total_amount: Decimal | None = Field(default=None, ge=0)
    description: str | None = None
    category: str | None = None
    missing_fields: list[str] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields


class TransactionRecord(BaseModel):
    """One line of a bank statement. Direction lives in ``type``, never in the sign of ``amount``."""

    model_config = ConfigDict(frozen=True)

    date: str | None
    type: TransactionType = TransactionType.UNKNOWN
    description: str | None
    amount: Decimal | None = Field(default=None, ge=0)
    missing_fields: list[str] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields


class StoredReceipt(BaseModel):
    """A receipt row read back from storage."""

    id: int
    date: str
    merchant_name: str
    total_amount: Decimal
    description: str | None = None
    category: str | None = None
    created_at: str | None = None


class StoredTransaction(BaseModel):
    """A transaction row read back from storage."""

    id: int
    batch_id: str
    date: str
    type: TransactionType
    description: str
    amount: Decimal
    created_at: str | None = None


class ReceiptUpdate(BaseModel):
    """Receipt fields that may be edited after extraction."""

    date: str | None = None
    merchant_name: str | None = None
    total_amount: Decimal | None = Field(default=None, ge=0)
    description: str | None = None
    category: str | None = None


class ImageUrlRequest(BaseModel):
    """JSON body carrying an image URL or base64 data URL."""

    image_url: str = Field(min_length=1)


class ReceiptProcessResponse(BaseModel):
    """Response after processing a receipt upload."""

    receipt: ReceiptRecord
    saved: bool
    receipt_id: int | None = None
    storage_error: str | None = None


class StatementProcessResponse(BaseModel):
    """Response after processing a bank statement upload."""

    transactions: list[TransactionRecord]
    saved: bool
    saved_count: int = 0
    skipped_incomplete: int = 0
    storage_error: str | None = None


class TaxReliefRequest(BaseModel):
    """Expense to classify against the tax relief categories."""

    merchant: str
    items: str = ""
    amount: Decimal


class TaxReliefResponse(BaseModel):
    """Tax relief category number, or the model's text when it is not claimable."""

    category: int | str
    claimable: bool
