"""
PDF text extraction using pymupdf (preferred) or PyPDF2 (fallback).
"""
from io import BytesIO
import logging

import fitz  # pymupdf
from PyPDF2 import PdfReader

logger = logging.getLogger(__name__)


class PDFParseError(Exception):
    """Raised when neither parser can read the document."""


def _extract_with_pymupdf(pdf_bytes: bytes) -> str:
    with fitz.open(stream=pdf_bytes, filetype="pdf") as pdf_doc:
        if pdf_doc.needs_pass:
            raise PDFParseError("document is password-protected")
        text_parts = [page.get_text() for page in pdf_doc]
        page_count = len(pdf_doc)
    full_text = "\n\n".join(part for part in text_parts if part)
    logger.info(f"Extracted {len(full_text)} chars using pymupdf ({page_count} pages)")
    return full_text


def _extract_with_pypdf2(pdf_bytes: bytes) -> str:
    reader = PdfReader(BytesIO(pdf_bytes))
    if reader.is_encrypted:
        raise PDFParseError("document is password-protected")
    text_parts = [page.extract_text() for page in reader.pages]
    full_text = "\n\n".join(part for part in text_parts if part)
    logger.info(
        f"Extracted {len(full_text)} characters from PDF using PyPDF2 "
        f"({len(reader.pages)} pages)"
    )
    return full_text


def extract_text_from_pdf(pdf_bytes: bytes) -> str:
    """
    Extract text from PDF bytes using pymupdf, falling back to PyPDF2.

    Args:
        pdf_bytes: PDF file content as bytes

    Returns:
        Extracted text content (pages joined by blank lines)

    Raises:
        PDFParseError: If both parsers fail. The message is the last parser's error.
    """
    try:
        return _extract_with_pymupdf(pdf_bytes)
    except Exception as e:
        logger.warning(f"pymupdf extraction failed: {e}. Trying PyPDF2 fallback...")

    try:
        return _extract_with_pypdf2(pdf_bytes)
    except Exception as e:
        logger.error(f"Error extracting text from PDF with PyPDF2: {e}")
        raise PDFParseError(str(e)) from e
