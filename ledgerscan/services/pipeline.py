"""Extraction pipeline: vision model output -> validated, normalized records."""

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ledgerscan.db.sqlite import Database
from ledgerscan.errors import MalformedResponseError, PersistenceError
from ledgerscan.models import (
    DocumentKind,
    ExtractionRequest,
    RawDocument,
    ReceiptRecord,
    TransactionRecord,
    TransactionType,
)
from ledgerscan.parsers.amounts import UnrecognizedAmountError, classify_amount
from ledgerscan.parsers.dates import normalize_date
from ledgerscan.parsers.document_types import (
    RECEIPT_REQUIRED_FIELDS,
    TRANSACTION_REQUIRED_FIELDS,
    RawReceipt,
    RawTransaction,
)
from ledgerscan.parsers.pdf_pages import render_pdf_pages
from ledgerscan.parsers.response import parse_model_response
from ledgerscan.parsers.validation import normalize_description
from ledgerscan.parsers.vision_client import VisionClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveOutcome:
    """Result of a best-effort persistence step."""

    saved: bool = False
    saved_count: int = 0
    skipped_incomplete: int = 0
    receipt_id: int | None = None
    error: str | None = None


class ExtractionPipeline:
    """
    Turns one uploaded image into typed records.

    prompt -> vision client -> response parser -> per-kind decoder ->
    date normalization and amount classification.

    The pipeline keeps no state between calls: for a fixed model response the
    output is always the same. Incomplete records are never dropped here;
    the gaps are listed in ``missing_fields`` and filtering is left to the
    persistence step.
    """

    def __init__(
        self,
        client: VisionClient,
        storage: Database | None = None,
        day_first: bool = True,
        unmarked: TransactionType = TransactionType.UNKNOWN,
        pdf_resolution: int = 150,
    ):
        self.client = client
        self.storage = storage
        self.day_first = day_first
        self.unmarked = unmarked
        self.pdf_resolution = pdf_resolution

    @property
    def storage_enabled(self) -> bool:
        return self.storage is not None

    def save_receipt(self, receipt: ReceiptRecord) -> SaveOutcome:
        """
        Persist a receipt after extraction, best effort.

        Storage being disabled or the receipt being incomplete is not an error.
        A write failure is reported in the outcome instead of raised, so the
        caller still gets the extracted data.
        """
        if self.storage is None:
            logger.info("Database connection not configured, skipping save")
            return SaveOutcome()
        if not receipt.is_complete:
            logger.warning(f"Not saving incomplete receipt (missing {', '.join(receipt.missing_fields)})")
            return SaveOutcome(skipped_incomplete=1)

        try:
            receipt_id = self.storage.add_receipt(receipt)
        except PersistenceError as e:
            logger.error(f"Receipt extracted but not saved: {e}")
            return SaveOutcome(error=str(e))

        logger.info(f"Receipt saved with id {receipt_id}")
        return SaveOutcome(saved=True, saved_count=1, receipt_id=receipt_id)

    async def save_transactions(self, transactions: list[TransactionRecord]) -> SaveOutcome:
        """
        Persist the complete transactions of one statement, all or nothing.

        Incomplete records are filtered out first. Any single insert failure
        fails the whole batch and is reported in the outcome.
        """
        if self.storage is None:
            logger.info("Database connection not configured, skipping save")
            return SaveOutcome()

        complete = [txn for txn in transactions if txn.is_complete]
        skipped = len(transactions) - len(complete)
        if skipped:
            logger.warning(f"Skipping {skipped} incomplete transactions")
        if not complete:
            return SaveOutcome(skipped_incomplete=skipped)

        try:
            await self.storage.add_transactions_batch(complete)
        except PersistenceError as e:
            logger.error(f"Transactions extracted but not saved: {e}")
            return SaveOutcome(skipped_incomplete=skipped, error=str(e))

        return SaveOutcome(saved=True, saved_count=len(complete), skipped_incomplete=skipped)

    async def extract(
        self, document: RawDocument, kind: DocumentKind
    ) -> ReceiptRecord | list[TransactionRecord]:
        """
        Extract records from an uploaded document.

        Args:
            document: Uploaded file bytes and media type
            kind: Receipt or bank statement

        Returns:
            One ReceiptRecord for receipts, a list of TransactionRecord for statements

        Raises:
            ApiConfigurationError, UpstreamError, EmptyResponseError, MalformedResponseError
        """
        if kind == DocumentKind.BANK_STATEMENT and document.is_pdf:
            return await self._extract_pdf_statement(document)

        request = ExtractionRequest(kind=kind, image_bytes=document.content, media_type=document.media_type)
        return await self._run(request)

    async def extract_url(self, image_url: str, kind: DocumentKind) -> ReceiptRecord | list[TransactionRecord]:
        """Extract records from a public image URL or a base64 data URL."""
        request = ExtractionRequest(kind=kind, image_url=image_url)
        return await self._run(request)

    async def _run(self, request: ExtractionRequest) -> ReceiptRecord | list[TransactionRecord]:
        content = await self.client.call(request)
        return self.transform(content, request.kind)

    async def _extract_pdf_statement(self, document: RawDocument) -> list[TransactionRecord]:
        """Extract each rendered page in turn and concatenate the results in page order."""
        pages = render_pdf_pages(document.content, resolution=self.pdf_resolution)

        transactions: list[TransactionRecord] = []
        for page_number, image in enumerate(pages, start=1):
            request = ExtractionRequest(
                kind=DocumentKind.BANK_STATEMENT, image_bytes=image, media_type="image/png"
            )
            page_transactions = await self._run(request)
            logger.info(f"Page {page_number}/{len(pages)}: {len(page_transactions)} transactions")
            transactions.extend(page_transactions)

        return transactions

    def transform(self, content: str, kind: DocumentKind) -> ReceiptRecord | list[TransactionRecord]:
        """
        Parse and normalize raw model content.

        Raises:
            MalformedResponseError: If the content is not JSON of the expected shape
        """
        parsed = parse_model_response(content, kind)

        if kind == DocumentKind.RECEIPT:
            receipt = self._build_receipt(parsed)
            logger.info(f"Extracted receipt from {receipt.merchant_name or 'unknown merchant'}")
            return receipt

        transactions = [self._build_transaction(i, entry) for i, entry in enumerate(parsed)]
        if not transactions:
            logger.warning("No transactions found in bank statement response")
        else:
            logger.info(f"Extracted {len(transactions)} transactions")
        return transactions

    def _normalize_date(self, raw: str | None) -> str | None:
        if raw is None:
            return None
        return normalize_date(raw, day_first=self.day_first)

    def _build_receipt(self, data: dict[str, Any]) -> ReceiptRecord:
        try:
            raw = RawReceipt.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(f"Receipt: invalid field(s) {_failed_fields(e)}")

        total_amount = None
        if raw.amount is not None:
            try:
                total_amount = classify_amount(raw.amount, unmarked=self.unmarked).magnitude
            except UnrecognizedAmountError as e:
                logger.warning(f"Receipt: {e}")

        merchant_name = normalize_description(raw.merchant)
        date = self._normalize_date(raw.date)

        values = {"date": date, "merchant_name": merchant_name, "total_amount": total_amount}
        missing = [field for field in RECEIPT_REQUIRED_FIELDS if values[field] is None]
        if missing:
            logger.warning(f"Receipt is missing required fields: {', '.join(missing)}")

        return ReceiptRecord(
            date=date,
            merchant_name=merchant_name,
            total_amount=total_amount,
            description=normalize_description(raw.description),
            category=raw.category,
            missing_fields=missing,
        )

    def _build_transaction(self, index: int, data: dict[str, Any]) -> TransactionRecord:
        try:
            raw = RawTransaction.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(f"Transaction {index}: invalid field(s) {_failed_fields(e)}")

        txn_type = TransactionType.UNKNOWN
        amount = None
        if raw.amount is not None:
            try:
                classification = classify_amount(raw.amount, unmarked=self.unmarked)
                txn_type = classification.kind
                amount = classification.magnitude
            except UnrecognizedAmountError as e:
                logger.warning(f"Transaction {index}: {e}")

        date = self._normalize_date(raw.date)
        description = normalize_description(raw.description)

        values = {"date": date, "description": description, "amount": amount}
        missing = [field for field in TRANSACTION_REQUIRED_FIELDS if values[field] is None]
        if missing:
            logger.warning(f"Transaction {index} is missing required fields: {', '.join(missing)}")

        return TransactionRecord(
            date=date,
            type=txn_type,
            description=description,
            amount=amount,
            missing_fields=missing,
        )



def _failed_fields(error: ValidationError) -> str:
    return ", ".join(".".join(str(part) for part in err["loc"]) for err in error.errors())
