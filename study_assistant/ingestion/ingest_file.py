"""Local file ingestor.

Registers a PDF, DOCX or plain-text file as a document of the given user and
runs the full ingestion pipeline on it synchronously (extract, chunk, embed,
store). Useful for seeding a database or re-checking a problematic upload
without going through the HTTP API.

Usage:
  python -m study_assistant.ingestion.ingest_file --user-id 1 --path notes/lecture1.pdf

Configuration:
- Database: study_assistant.config.settings.DATABASE_URL
- Embeddings: study_assistant.config.settings.EMBEDDING_MODEL
- Chunk params: study_assistant.config.settings.CHUNK_SIZE, CHUNK_OVERLAP
- Upload storage: study_assistant.config.settings.UPLOAD_DIR
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from study_assistant.db import init_db, session_scope
from study_assistant.documents import create_document
from study_assistant.ingestion.pipeline import IngestionReport, process_document

logger = logging.getLogger(__name__)


def ingest_file(user_id: int, path: str, mime_type: Optional[str] = None) -> IngestionReport:
    """Register a local file for user_id and ingest it.

    Args:
        user_id: Owner of the new document.
        path: Local file to ingest.
        mime_type: Content type; inferred from the extension when omitted.

    Returns:
        IngestionReport: Chunk and embedding counts for the new document.
    """
    source = Path(path)
    data = source.read_bytes()
    logger.info("Read %s (%d bytes)", source, len(data))

    with session_scope() as db:
        document = create_document(db, user_id, source.name, data, mime_type or "")
        document_id, stored_path, resolved = document.id, document.file_path, document.mime_type

    return process_document(document_id, stored_path, resolved)


def main():
    parser = argparse.ArgumentParser(description="Ingest a local PDF/DOCX/TXT file for a user.")
    parser.add_argument("--user-id", type=int, required=True, help="Owner of the ingested document")
    parser.add_argument("--path", required=True, help="File to ingest")
    parser.add_argument("--mime-type", default=None, help="Override the content type (default: from extension)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger.info("Starting file ingestion for %s (user %s)", args.path, args.user_id)

    init_db()
    try:
        report = ingest_file(args.user_id, args.path, args.mime_type)
        logger.info(
            "Completed ingestion: document=%s, chunks=%d, embedded=%d",
            report.document_id, report.chunk_count, report.embedded_count,
        )
        print(f"[INGEST-FILE] {args.path} -> document {report.document_id}, {report.chunk_count} chunks")
    except Exception:
        logger.exception("Ingestion failed for %s", args.path)
        raise


if __name__ == "__main__":
    main()
