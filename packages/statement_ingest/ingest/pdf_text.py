"""Text extraction for PDF statements, built on ``pdfplumber``.

Produces page-ordered, layout-flattened text: one string per page joined with
newlines. Any failure to open or read the document, including a missing or
wrong password, surfaces as :class:`StructuralParseError`.
"""

from __future__ import annotations

import io

import pdfplumber

from ..errors import StructuralParseError
from ..logging_setup import get_logger

_logger = get_logger("statement_ingest.ingest.pdf_text")


def extract_statement_text(data: bytes, *, password: str | None = None) -> str:
    if not data:
        raise StructuralParseError("PDF data is empty")
    chunks: list[str] = []
    try:
        with pdfplumber.open(io.BytesIO(data), password=password) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text() or ""
                if page_text.strip():
                    chunks.append(page_text)
            n_pages = len(pdf.pages)
    except Exception as exc:  # pdfplumber/pdfminer raise a wide range of types
        raise StructuralParseError(f"unreadable PDF: {exc}") from exc

    text = "\n".join(chunks)
    if not text.strip():
        raise StructuralParseError("PDF contains no extractable text")
    _logger.debug("pdf_text:extracted pages=%d chars=%d", n_pages, len(text))
    return text


__all__ = ["extract_statement_text"]
