"""Plain-text extraction for uploaded course documents.

Provides:
- extract_text: Convert raw document bytes into trimmed plain text by MIME type.
- extract_file: Read already-persisted bytes from disk and extract them.
- mime_type_for_filename: Map an upload's file extension to a supported MIME type.

Exactly three formats are supported: PDF (pdfplumber), DOCX (python-docx) and
plain text. Anything else raises UnsupportedFormat; a document that yields no
text raises EmptyDocument.
"""
import io
import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional

import docx
import pdfplumber

from study_assistant.errors import EmptyDocument, ExtractionError, UnsupportedFormat

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME = "text/plain"

EXTENSION_MIME_TYPES = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".txt": TEXT_MIME,
}

# MIME type -> extractor(bytes) -> raw text
EXTRACTOR_REGISTRY: Dict[str, Callable[[bytes], str]] = {}


def register_extractor(mime_types: List[str]):
    """Decorator to register an extractor function for specific MIME types."""
    def decorator(func):
        for mime_type in mime_types:
            EXTRACTOR_REGISTRY[mime_type] = func
        return func
    return decorator


@register_extractor([PDF_MIME])
def _extract_pdf(data: bytes) -> str:
    pages: List[str] = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            pages.append(page.extract_text() or "")
    return "\n".join(pages)


@register_extractor([DOCX_MIME])
def _extract_docx(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    return "\n".join(p.text for p in document.paragraphs)


@register_extractor([TEXT_MIME])
def _extract_plain(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


SUPPORTED_MIME_TYPES = frozenset(EXTRACTOR_REGISTRY)


def _normalize_mime(mime_type: str) -> str:
    # "text/plain; charset=utf-8" -> "text/plain"
    return (mime_type or "").split(";", 1)[0].strip().lower()


def mime_type_for_filename(filename: str, declared: Optional[str] = None) -> Optional[str]:
    """Resolve the MIME type of an upload.

    The declared content type wins when it is supported; otherwise the file
    extension decides. Returns None when neither is recognised.
    """
    normalized = _normalize_mime(declared or "")
    if normalized in SUPPORTED_MIME_TYPES:
        return normalized
    ext = os.path.splitext(filename or "")[1].lower()
    return EXTENSION_MIME_TYPES.get(ext)


def extract_text(data: bytes, mime_type: str) -> str:
    """Extract trimmed plain text from document bytes.

    Args:
        data: Raw file bytes.
        mime_type: Declared MIME type of the file.

    Returns:
        str: Extracted text without leading/trailing whitespace.

    Raises:
        UnsupportedFormat: The MIME type is not PDF, DOCX or plain text.
        EmptyDocument: Nothing but whitespace was extracted.
        ExtractionError: The file could not be parsed as its declared type.
    """
    normalized = _normalize_mime(mime_type)
    extractor = EXTRACTOR_REGISTRY.get(normalized)
    if extractor is None:
        raise UnsupportedFormat(mime_type)

    try:
        text = extractor(data)
    except Exception as exc:
        logger.error("Failed to parse %s payload (%d bytes): %s", normalized, len(data), exc)
        raise ExtractionError(f"Could not read {normalized} document") from exc

    text = (text or "").strip()
    if not text:
        raise EmptyDocument()
    return text


def extract_file(file_path: str, mime_type: str) -> str:
    """Read a stored file and extract its text. See extract_text."""
    data = Path(file_path).read_bytes()
    logger.debug("Extracting %s (%d bytes, %s)", file_path, len(data), mime_type)
    return extract_text(data, mime_type)
