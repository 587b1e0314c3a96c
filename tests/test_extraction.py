"""
Tests for document text extraction
"""
import io

import docx
import pytest

from study_assistant.errors import EmptyDocument, ExtractionError, UnsupportedFormat
from study_assistant.extraction import (
    DOCX_MIME,
    PDF_MIME,
    TEXT_MIME,
    extract_file,
    extract_text,
    mime_type_for_filename,
)


def _docx_bytes(*paragraphs):
    document = docx.Document()
    for p in paragraphs:
        document.add_paragraph(p)
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


class TestExtractText:

    def test_plain_text_is_trimmed(self):
        assert extract_text(b"  \n Photosynthesis converts light. \n\n", TEXT_MIME) == "Photosynthesis converts light."

    def test_plain_text_with_charset_parameter(self):
        assert extract_text("Café notes".encode("utf-8"), "text/plain; charset=utf-8") == "Café notes"

    def test_invalid_utf8_does_not_fail(self):
        text = extract_text(b"valid \xff bytes", TEXT_MIME)
        assert text.startswith("valid")

    def test_docx_paragraphs_are_joined_by_newlines(self):
        data = _docx_bytes("Cell biology", "Mitochondria produce ATP.")
        assert extract_text(data, DOCX_MIME) == "Cell biology\nMitochondria produce ATP."

    def test_unsupported_type(self):
        with pytest.raises(UnsupportedFormat) as exc_info:
            extract_text(b"\x89PNG", "image/png")
        assert exc_info.value.mime_type == "image/png"

    def test_unsupported_format_is_an_extraction_error(self):
        with pytest.raises(ExtractionError):
            extract_text(b"x", "application/zip")

    def test_whitespace_only_document_is_empty(self):
        with pytest.raises(EmptyDocument):
            extract_text(b"   \n\t  ", TEXT_MIME)

    def test_empty_docx_is_empty(self):
        with pytest.raises(EmptyDocument):
            extract_text(_docx_bytes("   ", ""), DOCX_MIME)

    def test_corrupt_pdf_raises_extraction_error(self):
        with pytest.raises(ExtractionError):
            extract_text(b"this is not a pdf", PDF_MIME)

    def test_extract_file_reads_from_disk(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"Stored notes.\n")
        assert extract_file(str(path), TEXT_MIME) == "Stored notes."


class TestMimeResolution:

    def test_declared_supported_type_wins(self):
        assert mime_type_for_filename("notes.bin", "application/pdf") == PDF_MIME

    def test_extension_used_for_generic_type(self):
        assert mime_type_for_filename("Lecture.DOCX", "application/octet-stream") == DOCX_MIME
        assert mime_type_for_filename("notes.txt", None) == TEXT_MIME

    def test_unknown_type_and_extension(self):
        assert mime_type_for_filename("diagram.png", "image/png") is None
