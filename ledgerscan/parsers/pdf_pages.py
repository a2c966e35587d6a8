"""Render PDF statement pages into images for the vision model."""

import logging
from io import BytesIO

import pdfplumber

from ledgerscan.parsers.validation import UploadValidationError

logger = logging.getLogger(__name__)


def render_pdf_pages(contents: bytes, resolution: int = 150) -> list[bytes]:
    """
    Render every page of a PDF as a PNG image.

    Args:
        contents: PDF file bytes
        resolution: Render resolution in DPI

    Returns:
        PNG bytes for each page, in page order

    Raises:
        UploadValidationError: If the PDF cannot be opened or has no pages
    """
    images: list[bytes] = []

    try:
        with pdfplumber.open(BytesIO(contents)) as pdf:
            for page in pdf.pages:
                page_image = page.to_image(resolution=resolution)
                buffer = BytesIO()
                page_image.original.save(buffer, format="PNG")
                images.append(buffer.getvalue())
    except Exception as e:
        logger.error(f"PDF rendering failed: {e}")
        raise UploadValidationError(f"Failed to read PDF: {e}")

    if not images:
        raise UploadValidationError("PDF has no pages")

    logger.info(f"Rendered {len(images)} PDF pages at {resolution} DPI")
    return images
