"""Tests for the extraction pipeline."""

import json
import sqlite3
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ledgerscan.db.sqlite import Database
from ledgerscan.errors import MalformedResponseError, PersistenceError, UpstreamError
from ledgerscan.models import DocumentKind, RawDocument, ReceiptRecord, TransactionRecord, TransactionType
from ledgerscan.parsers.vision_client import VisionClient
from ledgerscan.services.pipeline import ExtractionPipeline


def make_pipeline(*responses, storage=None, **kwargs) -> ExtractionPipeline:
    """Pipeline whose vision client returns the given contents in order."""
    client = AsyncMock(spec=VisionClient)
    client.call.side_effect = list(responses)
    return ExtractionPipeline(client, storage=storage, **kwargs)


RECEIPT_JSON = json.dumps(
    {
        "date": "15/03/24",
        "merchant": "  Kedai ABC ",
        "amount": "RM 12.50",
        "description": "Nasi lemak   and teh tarik",
        "category": "Dining",
    }
)

STATEMENT_JSON = json.dumps(
    [
        {"date": "01/03/2024", "type": "debit", "description": "GRAB RIDE", "amount": "-500.00"},
        {"date": "02/03/2024", "type": "credit", "description": "SALARY", "amount": "1,200.50 CR"},
        {"date": "03/03/2024", "type": "debit", "description": "BILL PAYMENT", "amount": "(75.00)"},
    ]
)

JPEG = RawDocument(content=b"\xff\xd8fake", media_type="image/jpeg", filename="receipt.jpg")


def complete_transaction(description: str = "COFFEE", amount: str = "5.50") -> TransactionRecord:
    return TransactionRecord(
        date="2024-03-01", type=TransactionType.DEBIT, description=description, amount=Decimal(amount)
    )


@pytest.mark.asyncio
class TestExtractReceipt:
    """Test receipt extraction end to end with a mocked client."""

    async def test_extracts_receipt(self):
        """Should normalize date, merchant, amount and description."""
        pipeline = make_pipeline(RECEIPT_JSON)

        receipt = await pipeline.extract(JPEG, DocumentKind.RECEIPT)

        assert isinstance(receipt, ReceiptRecord)
        assert receipt.date == "2024-03-15"
        assert receipt.merchant_name == "Kedai ABC"
        assert receipt.total_amount == Decimal("12.50")
        assert receipt.description == "Nasi lemak and teh tarik"
        assert receipt.category == "Dining"
        assert receipt.is_complete

    async def test_sends_document_bytes(self):
        """The request should carry the uploaded bytes and media type."""
        pipeline = make_pipeline(RECEIPT_JSON)

        await pipeline.extract(JPEG, DocumentKind.RECEIPT)

        request = pipeline.client.call.call_args.args[0]
        assert request.kind == DocumentKind.RECEIPT
        assert request.image_bytes == JPEG.content
        assert request.media_type == "image/jpeg"

    async def test_accepts_alternate_keys(self):
        """merchant_name and numeric total_amount should be accepted."""
        pipeline = make_pipeline('{"date": "2024-03-15", "merchant_name": "7-Eleven", "total_amount": 8.9}')

        receipt = await pipeline.extract(JPEG, DocumentKind.RECEIPT)

        assert receipt.merchant_name == "7-Eleven"
        assert receipt.total_amount == Decimal("8.9")

    async def test_reports_missing_fields(self):
        """Absent or null fields should be listed, not fabricated."""
        pipeline = make_pipeline('{"date": "15/03/24", "merchant": "null", "amount": "abc"}')

        receipt = await pipeline.extract(JPEG, DocumentKind.RECEIPT)

        assert receipt.merchant_name is None
        assert receipt.total_amount is None
        assert receipt.missing_fields == ["merchant_name", "total_amount"]
        assert not receipt.is_complete

    async def test_upstream_error_propagates(self):
        """Client errors should not be swallowed."""
        pipeline = make_pipeline(UpstreamError("boom", status_code=500))

        with pytest.raises(UpstreamError):
            await pipeline.extract(JPEG, DocumentKind.RECEIPT)

    async def test_extract_url(self):
        """URL extraction should send the URL instead of bytes."""
        pipeline = make_pipeline(RECEIPT_JSON)

        receipt = await pipeline.extract_url("https://example.com/r.jpg", DocumentKind.RECEIPT)

        request = pipeline.client.call.call_args.args[0]
        assert request.image_url == "https://example.com/r.jpg"
        assert request.image_bytes is None
        assert receipt.merchant_name == "Kedai ABC"


@pytest.mark.asyncio
class TestExtractStatement:
    """Test bank statement extraction."""

    async def test_classifies_transactions(self):
        """Amount notation should decide type; magnitudes are positive."""
        pipeline = make_pipeline(STATEMENT_JSON)

        transactions = await pipeline.extract(JPEG, DocumentKind.BANK_STATEMENT)

        assert [t.type for t in transactions] == [
            TransactionType.DEBIT,
            TransactionType.CREDIT,
            TransactionType.DEBIT,
        ]
        assert [t.amount for t in transactions] == [Decimal("500.00"), Decimal("1200.50"), Decimal("75.00")]
        assert [t.date for t in transactions] == ["2024-03-01", "2024-03-02", "2024-03-03"]
        assert all(t.is_complete for t in transactions)

    async def test_month_first_hint(self):
        """The pipeline's day_first setting should reach date normalization."""
        pipeline = make_pipeline(
            '[{"date": "03/15/2024", "description": "X", "amount": "1.00"}]', day_first=False
        )

        transactions = await pipeline.extract(JPEG, DocumentKind.BANK_STATEMENT)

        assert transactions[0].date == "2024-03-15"

    async def test_pdf_pages_extracted_in_order(self):
        """Each PDF page should be sent as a PNG and results concatenated."""
        pdf = RawDocument(content=b"%PDF-1.4 fake", media_type="application/pdf", filename="statement.pdf")
        pipeline = make_pipeline(
            '[{"date": "01/03/24", "description": "PAGE ONE", "amount": "-1.00"}]',
            '[{"date": "02/03/24", "description": "PAGE TWO", "amount": "2.00 CR"}]',
        )

        with patch(
            "ledgerscan.services.pipeline.render_pdf_pages", return_value=[b"png-1", b"png-2"]
        ) as mock_render:
            transactions = await pipeline.extract(pdf, DocumentKind.BANK_STATEMENT)

        mock_render.assert_called_once_with(pdf.content, resolution=150)
        assert [t.description for t in transactions] == ["PAGE ONE", "PAGE TWO"]
        requests = [call.args[0] for call in pipeline.client.call.call_args_list]
        assert [r.image_bytes for r in requests] == [b"png-1", b"png-2"]
        assert all(r.media_type == "image/png" for r in requests)


class TestTransform:
    """Test the pure parse-and-normalize step."""

    def test_deterministic(self):
        """The same content should always give the same records."""
        pipeline = make_pipeline()
        first = pipeline.transform(STATEMENT_JSON, DocumentKind.BANK_STATEMENT)
        second = pipeline.transform(STATEMENT_JSON, DocumentKind.BANK_STATEMENT)
        assert first == second

    def test_model_type_label_ignored(self):
        """Type should come from the amount string alone, whatever label the model gives."""
        pipeline = make_pipeline()
        content = json.dumps(
            [
                {"date": "01/03/24", "type": "credit", "description": "REFUND", "amount": "100.00"},
                {"date": "01/03/24", "type": "credit", "description": "FEE", "amount": "-100.00"},
                {"date": "01/03/24", "type": "debit", "description": "SALARY", "amount": "100.00 CR"},
            ]
        )

        transactions = pipeline.transform(content, DocumentKind.BANK_STATEMENT)

        assert transactions[0].type == TransactionType.UNKNOWN
        assert transactions[1].type == TransactionType.DEBIT
        assert transactions[2].type == TransactionType.CREDIT

    def test_model_type_label_does_not_override_policy(self):
        """With a credit policy, an unmarked amount is credit even if labelled debit."""
        pipeline = make_pipeline(unmarked=TransactionType.CREDIT)
        content = '[{"date": "01/03/24", "type": "debit", "description": "DEPOSIT", "amount": "250.00"}]'

        transactions = pipeline.transform(content, DocumentKind.BANK_STATEMENT)

        assert transactions[0].type == TransactionType.CREDIT

    def test_unmarked_policy(self):
        """Unmarked amounts should follow the configured policy."""
        pipeline = make_pipeline(unmarked=TransactionType.CREDIT)
        content = '[{"date": "01/03/24", "description": "DEPOSIT", "amount": "250.00"}]'

        transactions = pipeline.transform(content, DocumentKind.BANK_STATEMENT)

        assert transactions[0].type == TransactionType.CREDIT

    def test_incomplete_transactions_kept(self):
        """Records with gaps should be returned with missing_fields, not dropped."""
        pipeline = make_pipeline()
        content = '[{"date": "01/03/24", "description": "", "amount": "N/A"}]'

        transactions = pipeline.transform(content, DocumentKind.BANK_STATEMENT)

        assert len(transactions) == 1
        assert transactions[0].missing_fields == ["description", "amount"]
        assert transactions[0].type == TransactionType.UNKNOWN

    def test_numeric_amount_in_exponent_form(self):
        """A numeric amount written with an exponent should keep its value."""
        content = '[{"date": "01/03/24", "description": "TINY", "amount": 1e-5}]'

        transactions = make_pipeline().transform(content, DocumentKind.BANK_STATEMENT)

        assert transactions[0].amount == Decimal("0.00001")
        assert transactions[0].is_complete

    def test_empty_statement(self):
        """An empty array should give no transactions."""
        assert make_pipeline().transform("[]", DocumentKind.BANK_STATEMENT) == []

    def test_nested_field_rejected(self):
        """Objects in place of scalars should fail the whole response."""
        content = '[{"date": "01/03/24", "description": {"text": "X"}, "amount": "1.00"}]'
        with pytest.raises(MalformedResponseError, match="Transaction 0"):
            make_pipeline().transform(content, DocumentKind.BANK_STATEMENT)


@pytest.mark.asyncio
class TestSaveTransactions:
    """Test best-effort persistence of statement transactions."""

    async def test_without_storage(self):
        """No storage means nothing saved and no error."""
        outcome = await make_pipeline().save_transactions([complete_transaction()])
        assert outcome.saved is False
        assert outcome.error is None

    async def test_skips_incomplete(self, tmp_path):
        """Only complete records should be written."""
        storage = Database(tmp_path / "ledgerscan.db")
        incomplete = TransactionRecord(date="2024-03-01", description=None, amount=None, missing_fields=["description", "amount"])

        outcome = await make_pipeline(storage=storage).save_transactions(
            [complete_transaction("A"), incomplete, complete_transaction("B")]
        )

        assert outcome.saved is True
        assert outcome.saved_count == 2
        assert outcome.skipped_incomplete == 1
        assert {t.description for t in storage.get_transactions()} == {"A", "B"}

    async def test_failure_reported_not_raised(self):
        """A storage failure should be returned in the outcome."""
        storage = MagicMock(spec=Database)
        storage.add_transactions_batch = AsyncMock(side_effect=PersistenceError("disk full"))

        outcome = await make_pipeline(storage=storage).save_transactions([complete_transaction()])

        assert outcome.saved is False
        assert outcome.error == "disk full"


    async def test_failed_rollback_reported_not_raised(self, tmp_path):
        """Extracted data should survive even when the batch rollback fails."""
        storage = Database(tmp_path / "ledgerscan.db")

        with patch.object(storage, "add_transaction", side_effect=sqlite3.OperationalError("disk I/O error")):
            with patch.object(storage, "delete_batch", side_effect=sqlite3.OperationalError("database is locked")):
                outcome = await make_pipeline(storage=storage).save_transactions(
                    [complete_transaction("A"), complete_transaction("B")]
                )

        assert outcome.saved is False
        assert "rollback failed" in outcome.error
        assert "database is locked" in outcome.error


class TestSaveReceipt:
    """Test best-effort persistence of receipts."""

    def test_saves_complete_receipt(self, tmp_path):
        storage = Database(tmp_path / "ledgerscan.db")
        receipt = ReceiptRecord(date="2024-03-15", merchant_name="Kedai ABC", total_amount=Decimal("12.50"))

        outcome = make_pipeline(storage=storage).save_receipt(receipt)

        assert outcome.saved is True
        assert outcome.receipt_id == 1
        assert storage.get_receipt(1).total_amount == Decimal("12.50")

    def test_skips_incomplete_receipt(self, tmp_path):
        storage = Database(tmp_path / "ledgerscan.db")
        receipt = ReceiptRecord(date=None, merchant_name="Kedai ABC", total_amount=None, missing_fields=["date", "total_amount"])

        outcome = make_pipeline(storage=storage).save_receipt(receipt)

        assert outcome.saved is False
        assert outcome.skipped_incomplete == 1
        assert storage.get_receipts() == []

    def test_failure_reported_not_raised(self):
        storage = MagicMock(spec=Database)
        storage.add_receipt.side_effect = PersistenceError("Error saving receipt: locked")
        receipt = ReceiptRecord(date="2024-03-15", merchant_name="Kedai ABC", total_amount=Decimal("1.00"))

        outcome = make_pipeline(storage=storage).save_receipt(receipt)

        assert outcome.saved is False
        assert "locked" in outcome.error
