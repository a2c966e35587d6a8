"""Shared validation utilities for uploaded documents."""

import logging

from ledgerscan.models import DocumentKind

logger = logging.getLogger("ledgerscan.parsers")

RECEIPT_MEDIA_TYPES = ("image/jpeg", "image/jpg", "image/png")
PDF_MEDIA_TYPE = "application/pdf"


class UploadValidationError(Exception):
    """Raised when an uploaded file is rejected."""

    pass


def validate_file_contents(contents: bytes, max_size: int, min_size: int = 1) -> None:
    """
    Validate file size before extraction.

    Args:
        contents: Raw file bytes
        max_size: Maximum allowed size in bytes
        min_size: Minimum expected file size in bytes

    Raises:
        UploadValidationError: If validation fails
    """
    if not contents:
        raise UploadValidationError("File is empty")

    if len(contents) < min_size:
        raise UploadValidationError(f"File too small ({len(contents)} bytes), minimum {min_size} bytes expected")

    if len(contents) > max_size:
        limit_mb = max_size / (1024 * 1024)
        raise UploadValidationError(f"File size exceeds {limit_mb:g}MB limit")


def validate_media_type(media_type: str | None, kind: DocumentKind) -> str:
    """
    Check the declared media type against what each document kind accepts.

    Receipts accept JPEG and PNG images; bank statements accept any image or a PDF.

    Returns:
        The normalized (lowercased, parameter-free) media type

    Raises:
        UploadValidationError: If the type is not accepted
    """
    normalized = (media_type or "").split(";")[0].strip().lower()

    if kind == DocumentKind.RECEIPT:
        if normalized not in RECEIPT_MEDIA_TYPES:
            raise UploadValidationError("Invalid file type. Only JPEG, JPG, and PNG files are allowed")
    elif not (normalized.startswith("image/") or normalized == PDF_MEDIA_TYPE):
        raise UploadValidationError("Only image and PDF files are allowed")

    return normalized


def validate_upload(contents: bytes, media_type: str | None, kind: DocumentKind, max_size: int) -> str:
    """Validate an upload's size and type. Returns the normalized media type."""
    normalized = validate_media_type(media_type, kind)
    validate_file_contents(contents, max_size=max_size)
    logger.debug(f"Accepted {kind.value} upload: {normalized}, {len(contents)} bytes")
    return normalized


def normalize_description(description: str | None) -> str | None:
    """Collapse runs of whitespace in a description."""
    if description is None:
        return None
    description = " ".join(description.split())
    return description or None
