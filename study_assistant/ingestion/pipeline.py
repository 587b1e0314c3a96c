"""Document ingestion pipeline: extract -> chunk -> embed -> store.

Main functions:
- process_document: ingest one stored upload and drive its processing_status
- ingest_in_background: fire-and-forget wrapper used by the upload endpoint
- transition / mark_failed: the document status state machine

Status lifecycle:
    pending -> processing -> completed
    pending | processing -> failed
'completed' and 'failed' are terminal; only deleting the document ends them.

Extraction and chunking errors fail the document before any chunk is written.
Embedding errors are per chunk: they are logged and skipped, and the document
still completes with partial embedding coverage (reported on IngestionReport).
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from study_assistant import db as database
from study_assistant.embedding import embed_text
from study_assistant.errors import DocumentNotFound, EmptyDocument, InvalidStatusTransition
from study_assistant.extraction import extract_file
from study_assistant.ingestion.scheduler import EmbedFn, EmbeddingJob, EmbeddingScheduler, default_scheduler
from study_assistant.models import Chunk, Document, Embedding, ProcessingStatus
from study_assistant.obs import span
from study_assistant.utils import chunk_text

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[ProcessingStatus, FrozenSet[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset({ProcessingStatus.PROCESSING, ProcessingStatus.FAILED}),
    ProcessingStatus.PROCESSING: frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.FAILED: frozenset(),
}


@dataclass
class IngestionReport:
    """Outcome of ingesting one document.

    Attributes:
        document_id: The ingested document.
        chunk_count: Number of chunks written.
        embedded_count: Chunks whose embedding was stored.
        failed_chunk_ids: Chunks left without an embedding.
    """
    document_id: int
    chunk_count: int
    embedded_count: int = 0
    failed_chunk_ids: List[int] = field(default_factory=list)

    @property
    def coverage(self) -> float:
        """Fraction of chunks that carry an embedding (0.0 when there are no chunks)."""
        if not self.chunk_count:
            return 0.0
        return self.embedded_count / self.chunk_count


def transition(document: Document, target: ProcessingStatus) -> None:
    """Move a document to target status, enforcing ALLOWED_TRANSITIONS.

    Raises:
        InvalidStatusTransition: The move is not allowed from the current status.
    """
    current = ProcessingStatus(document.processing_status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current.value, target.value)
    document.processing_status = target.value


def _load_document(db: Session, document_id: int) -> Document:
    document = db.get(Document, document_id)
    if document is None:
        raise DocumentNotFound(document_id)
    return document


def mark_failed(document_id: int) -> None:
    """Set a document to 'failed' unless it already reached a terminal status."""
    with database.session_scope() as db:
        document = db.get(Document, document_id)
        if document is None:
            logger.warning("Cannot mark missing document %s as failed", document_id)
            return
        if not ALLOWED_TRANSITIONS[ProcessingStatus(document.processing_status)]:
            return
        transition(document, ProcessingStatus.FAILED)


def _persist_chunks(document_id: int, chunks: List[str]) -> List[EmbeddingJob]:
    """Write all chunks in one transaction; ordinals are fixed here, before any embedding."""
    with database.session_scope() as db:
        rows = [Chunk(document_id=document_id, chunk_index=i, content=content) for i, content in enumerate(chunks)]
        db.add_all(rows)
        db.flush()
        return [EmbeddingJob(chunk_id=row.id, chunk_index=row.chunk_index, text=row.content) for row in rows]


def _embed_chunks(
    document_id: int, jobs: List[EmbeddingJob], scheduler: EmbeddingScheduler, embed: EmbedFn
) -> IngestionReport:
    report = IngestionReport(document_id=document_id, chunk_count=len(jobs))
    with database.session_scope() as db:
        for result in scheduler.run(jobs, embed):
            if not result.ok:
                logger.error(
                    "Failed to generate embedding for chunk %s (document %s, index %d): %s",
                    result.job.chunk_id, document_id, result.job.chunk_index, result.error,
                )
                report.failed_chunk_ids.append(result.job.chunk_id)
                continue
            db.add(Embedding(chunk_id=result.job.chunk_id, vector=result.vector))
            # each chunk's embedding is committed on its own
            db.commit()
            report.embedded_count += 1
            logger.debug("Generated embedding for chunk %s", result.job.chunk_id)
    return report


def process_document(
    document_id: int,
    file_path: str,
    mime_type: str,
    scheduler: Optional[EmbeddingScheduler] = None,
    embed: Optional[EmbedFn] = None,
) -> IngestionReport:
    """Ingest one uploaded document.

    Args:
        document_id: Id of a 'pending' Document row.
        file_path: Location of the already-stored upload.
        mime_type: Declared MIME type of the upload.
        scheduler: Embedding scheduler (default chosen by settings.EMBEDDING_CONCURRENCY).
        embed: Embedding function, one call per chunk (default embed_text).

    Returns:
        IngestionReport: Chunk and embedding counts, including coverage.

    Raises:
        DocumentNotFound: No such document.
        InvalidStatusTransition: The document was already ingested.
        ExtractionError: Extraction failed; the document is 'failed' with no chunks.
        Exception: Any other error after the document is marked 'failed'.
    """
    scheduler = scheduler or default_scheduler()
    embed = embed or embed_text
    logger.info("Processing document %s", document_id)

    with database.session_scope() as db:
        transition(_load_document(db, document_id), ProcessingStatus.PROCESSING)

    try:
        with span("ingest.extract", {"document_id": document_id, "mime_type": mime_type}):
            text = extract_file(file_path, mime_type)
        with span("ingest.chunk", {"document_id": document_id}):
            chunks = chunk_text(text)
        if not chunks:
            raise EmptyDocument("Document produced no chunks")
        logger.info("Created %d chunks for document %s", len(chunks), document_id)

        jobs = _persist_chunks(document_id, chunks)
        with span("ingest.embed", {"document_id": document_id, "chunks": len(jobs)}):
            report = _embed_chunks(document_id, jobs, scheduler, embed)

        with database.session_scope() as db:
            transition(_load_document(db, document_id), ProcessingStatus.COMPLETED)
    except Exception:
        logger.exception("Document processing failed for %s", document_id)
        mark_failed(document_id)
        raise

    if report.failed_chunk_ids:
        logger.warning(
            "Document %s completed with partial embedding coverage: %d/%d chunks embedded",
            document_id, report.embedded_count, report.chunk_count,
        )
    else:
        logger.info("Document %s processed successfully (%d chunks)", document_id, report.chunk_count)
    return report


def ingest_in_background(document_id: int, file_path: str, mime_type: str) -> None:
    """Entry point for detached ingestion started by the upload handler.

    Never raises: every error is logged and the document is left 'failed',
    which is what clients observe when polling its status.
    """
    try:
        process_document(document_id, file_path, mime_type)
    except Exception:
        logger.error("Background ingestion of document %s did not complete", document_id)
        try:
            mark_failed(document_id)
        except Exception:
            logger.exception("Could not record failure for document %s", document_id)
