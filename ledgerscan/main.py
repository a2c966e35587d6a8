"""FastAPI application for LedgerScan."""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Any

import httpx
from fastapi import Body, Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ledgerscan.config import Settings, settings
from ledgerscan.db.sqlite import Database, get_database
from ledgerscan.errors import (
    ApiConfigurationError,
    EmptyResponseError,
    LedgerScanError,
    MalformedResponseError,
    UpstreamError,
)
from ledgerscan.models import (
    DocumentKind,
    ImageUrlRequest,
    ReceiptProcessResponse,
    ReceiptRecord,
    ReceiptUpdate,
    StatementProcessResponse,
    StoredReceipt,
    StoredTransaction,
    TaxReliefRequest,
    TaxReliefResponse,
    TransactionType,
)
from ledgerscan.parsers.validation import UploadValidationError
from ledgerscan.parsers.vision_client import VisionClient
from ledgerscan.services.export import transactions_to_csv
from ledgerscan.services.pipeline import ExtractionPipeline
from ledgerscan.services.tax_relief import classify_expense
from ledgerscan.services.upload import process_receipt_upload, process_statement_upload

logger = logging.getLogger(__name__)

app = FastAPI(
    title="LedgerScan",
    description="Receipt and bank statement extraction with a vision language model",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_pipeline(config: Settings) -> ExtractionPipeline:
    """Wire the pipeline with its client and (optional) storage."""
    return ExtractionPipeline(
        client=VisionClient(config),
        storage=get_database(config),
        day_first=config.date_day_first,
        unmarked=TransactionType(config.unmarked_amount_type),
        pdf_resolution=config.pdf_render_resolution,
    )


@lru_cache
def get_pipeline() -> ExtractionPipeline:
    return build_pipeline(settings)


def get_settings() -> Settings:
    return settings


def get_http_transport() -> httpx.AsyncBaseTransport | None:
    """Transport for outbound connectivity checks; None uses the default network transport."""
    return None


def require_storage(pipeline: ExtractionPipeline = Depends(get_pipeline)) -> Database:
    """Storage handle for CRUD routes; 503 when storage is disabled."""
    if pipeline.storage is None:
        raise HTTPException(status_code=503, detail="Database is not configured")
    return pipeline.storage


def _to_http_error(error: Exception) -> HTTPException:
    """Map extraction errors to HTTP responses."""
    if isinstance(error, UploadValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, ApiConfigurationError):
        return HTTPException(status_code=503, detail=str(error))
    if isinstance(error, UpstreamError):
        return HTTPException(
            status_code=502,
            detail={"message": str(error), "upstream_status": error.status_code},
        )
    if isinstance(error, (EmptyResponseError, MalformedResponseError)):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=f"Error processing document: {error}")


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.dev_mode:
        settings.log_config()
    if not settings.api_configured:
        logger.warning("Vision API is not configured; extraction requests will fail")


@app.get("/health")
async def health_check(pipeline: ExtractionPipeline = Depends(get_pipeline)):
    """Health check endpoint."""
    result: dict[str, Any] = {"status": "healthy", "storage_enabled": pipeline.storage_enabled}
    if pipeline.storage is not None:
        result["counts"] = pipeline.storage.get_counts()
    return result


@app.get("/api/check-api-config")
async def check_api_config(config: Settings = Depends(get_settings)):
    """Report whether the vision API is configured, without calling it."""
    if not config.api_configured:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": "API configuration is incomplete",
                "config": {
                    "apiUrl": "Configured" if config.vision_api_url else "Missing",
                    "apiKey": "Configured (masked)" if config.vision_api_key else "Missing",
                },
            },
        )

    origin = config.api_origin
    if origin is None:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid API URL format"},
        )

    return {
        "success": True,
        "message": "API configuration looks valid",
        "config": {
            "apiUrl": origin,
            "apiKeyPrefix": config.masked_api_key,
            "isSecure": origin.startswith("https://"),
            "model": config.vision_model,
        },
    }


@app.get("/api/test-api-connectivity")
async def check_api_connectivity(
    config: Settings = Depends(get_settings),
    transport: httpx.AsyncBaseTransport | None = Depends(get_http_transport),
):
    """Send a HEAD request to the API origin and report what answered."""
    if not config.api_configured:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "API configuration is incomplete"},
        )

    origin = config.api_origin
    if origin is None:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid API URL format"},
        )

    try:
        async with httpx.AsyncClient(transport=transport, timeout=config.vision_timeout or 10.0) as client:
            response = await client.head(origin)
    except httpx.HTTPError as e:
        logger.warning(f"API endpoint {origin} unreachable: {e}")
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Failed to connect to API endpoint", "error": str(e)},
        )

    return {
        "success": True,
        "message": "Successfully connected to API endpoint",
        "details": {
            "status": response.status_code,
            "server": response.headers.get("server", "Unknown"),
            "endpoint": origin,
        },
    }


# ==================== RECEIPTS ====================


@app.post("/api/receipts/process", response_model=ReceiptProcessResponse)
async def process_receipt(
    receipt: UploadFile = File(...),
    pipeline: ExtractionPipeline = Depends(get_pipeline),
    config: Settings = Depends(get_settings),
):
    """Extract a receipt image and save it when storage is enabled."""
    contents = await receipt.read()
    try:
        return await process_receipt_upload(pipeline, config, receipt.filename, contents, receipt.content_type)
    except (UploadValidationError, LedgerScanError) as e:
        raise _to_http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error processing receipt {receipt.filename}")
        raise _to_http_error(e)


@app.post("/api/receipts/extract-url", response_model=ReceiptRecord)
async def extract_receipt_url(
    request: ImageUrlRequest,
    pipeline: ExtractionPipeline = Depends(get_pipeline),
):
    """Extract a receipt from a public image URL or base64 data URL. Not persisted."""
    try:
        return await pipeline.extract_url(request.image_url, DocumentKind.RECEIPT)
    except LedgerScanError as e:
        raise _to_http_error(e)


@app.get("/api/receipts", response_model=list[StoredReceipt])
async def list_receipts(limit: int = 100, storage: Database = Depends(require_storage)):
    """Get all processed receipts."""
    return storage.get_receipts(limit=limit)


@app.get("/api/receipts/{receipt_id}", response_model=StoredReceipt)
async def get_receipt(receipt_id: int, storage: Database = Depends(require_storage)):
    """Get a specific receipt by ID."""
    receipt = storage.get_receipt(receipt_id)
    if receipt is None:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return receipt


@app.put("/api/receipts/{receipt_id}", response_model=StoredReceipt)
async def update_receipt(
    receipt_id: int,
    update: ReceiptUpdate,
    storage: Database = Depends(require_storage),
):
    """Edit the fields of a stored receipt."""
    try:
        receipt = storage.update_receipt(receipt_id, update)
    except LedgerScanError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if receipt is None:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return receipt


@app.delete("/api/receipts/{receipt_id}")
async def delete_receipt(receipt_id: int, storage: Database = Depends(require_storage)):
    """Delete a receipt."""
    if not storage.delete_receipt(receipt_id):
        raise HTTPException(status_code=404, detail="Receipt not found")
    return {"message": "Receipt deleted successfully"}


# ==================== BANK STATEMENTS ====================


@app.post("/api/bank-statements/process", response_model=StatementProcessResponse)
async def process_bank_statement(
    statement: UploadFile = File(...),
    pipeline: ExtractionPipeline = Depends(get_pipeline),
    config: Settings = Depends(get_settings),
):
    """Extract the transactions of a bank statement image or PDF."""
    contents = await statement.read()
    try:
        return await process_statement_upload(pipeline, config, statement.filename, contents, statement.content_type)
    except (UploadValidationError, LedgerScanError) as e:
        raise _to_http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error processing bank statement {statement.filename}")
        raise _to_http_error(e)


@app.get("/api/transactions", response_model=list[StoredTransaction])
async def list_transactions(
    type: TransactionType | None = None,
    limit: int = 1000,
    storage: Database = Depends(require_storage),
):
    """Get stored transactions with an optional type filter."""
    return storage.get_transactions(txn_type=type, limit=limit)


@app.post("/api/convert-json")
async def convert_json(payload: Any = Body(...)):
    """Convert an array of transaction objects to a CSV download."""
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        raise HTTPException(status_code=400, detail="Expected an array of JSON objects.")

    csv_text = transactions_to_csv(payload)
    filename = f"output-{int(datetime.now().timestamp() * 1000)}.csv"
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ==================== TAX RELIEF ====================


@app.post("/api/tax-relief/classify", response_model=TaxReliefResponse)
async def classify_tax_relief(request: TaxReliefRequest, config: Settings = Depends(get_settings)):
    """Classify an expense against the Malaysian tax relief categories."""
    try:
        category = await classify_expense(request.merchant, request.items, request.amount, settings=config)
    except LedgerScanError as e:
        raise _to_http_error(e)
    return TaxReliefResponse(category=category, claimable=isinstance(category, int))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ledgerscan.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.dev_mode,
    )
