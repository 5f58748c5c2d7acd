"""
PDF text extraction for receipt attachments.

Feeds the amount/date extractors when an email body has no amount.
Extraction is best-effort: a PDF that cannot be decoded yields "" instead of
an exception.
"""

import io
import logging

import pdfplumber

logger = logging.getLogger(__name__)


def extract_text_from_pdf_bytes(data: bytes) -> str:
    """
    Extract the text of every page of a PDF, joined by single spaces.

    Uses pdfplumber. Does NOT support scanned PDFs (no OCR) — image-only
    pages simply contribute nothing.

    Args:
        data: Raw PDF bytes (already base64-decoded).

    Returns:
        Page texts in page order joined by " ", or "" when the payload is
        empty, not a PDF, or otherwise unreadable.
    """
    if not data:
        return ""

    text_parts = []

    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text()
                if page_text:
                    text_parts.append(page_text)
    except Exception as e:
        logger.warning(f"Could not extract text from PDF ({len(data)} bytes): {e}")
        return ""

    return " ".join(text_parts)
