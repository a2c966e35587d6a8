"""File upload processing service."""

import logging

from ledgerscan.config import Settings
from ledgerscan.models import (
    DocumentKind,
    RawDocument,
    ReceiptProcessResponse,
    StatementProcessResponse,
)
from ledgerscan.parsers.validation import validate_upload
from ledgerscan.services.pipeline import ExtractionPipeline

logger = logging.getLogger(__name__)


async def process_receipt_upload(
    pipeline: ExtractionPipeline,
    settings: Settings,
    filename: str | None,
    contents: bytes,
    media_type: str | None,
) -> ReceiptProcessResponse:
    """
    Validate, extract and (best effort) persist one receipt image.

    Raises:
        UploadValidationError: If the file is rejected before extraction
        LedgerScanError: If extraction fails
    """
    media_type = validate_upload(contents, media_type, DocumentKind.RECEIPT, settings.max_receipt_bytes)
    document = RawDocument(content=contents, media_type=media_type, filename=filename)

    logger.info(f"Processing receipt {filename or '<unnamed>'} ({len(contents)} bytes)")
    receipt = await pipeline.extract(document, DocumentKind.RECEIPT)

    outcome = pipeline.save_receipt(receipt)
    return ReceiptProcessResponse(
        receipt=receipt,
        saved=outcome.saved,
        receipt_id=outcome.receipt_id,
        storage_error=outcome.error,
    )


async def process_statement_upload(
    pipeline: ExtractionPipeline,
    settings: Settings,
    filename: str | None,
    contents: bytes,
    media_type: str | None,
) -> StatementProcessResponse:
    """
    Validate, extract and (best effort) persist one bank statement image or PDF.

    Raises:
        UploadValidationError: If the file is rejected before extraction
        LedgerScanError: If extraction fails
    """
    media_type = validate_upload(contents, media_type, DocumentKind.BANK_STATEMENT, settings.max_statement_bytes)
    document = RawDocument(content=contents, media_type=media_type, filename=filename)

    logger.info(f"Processing bank statement {filename or '<unnamed>'} ({len(contents)} bytes)")
    transactions = await pipeline.extract(document, DocumentKind.BANK_STATEMENT)

    outcome = await pipeline.save_transactions(transactions)
    message = f"Extracted {len(transactions)} transactions"
    if outcome.saved:
        message += f", saved {outcome.saved_count}"
    logger.info(message)

    return StatementProcessResponse(
        transactions=transactions,
        saved=outcome.saved,
        saved_count=outcome.saved_count,
        skipped_incomplete=outcome.skipped_incomplete,
        storage_error=outcome.error,
    )
