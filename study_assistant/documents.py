"""Document records: upload registration, ownership-checked reads, deletion.

Provides:
- create_document: store upload bytes under UPLOAD_DIR and insert a 'pending' row
- get_document / list_documents: reads scoped to the owning user
- delete_document: remove the stored file and the row (cascades to chunks/embeddings)
- embedding_coverage: how many of a document's chunks carry an embedding
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from study_assistant.config import settings
from study_assistant.errors import DocumentNotFound, UnsupportedFormat
from study_assistant.extraction import mime_type_for_filename
from study_assistant.models import Chunk, Document, Embedding, ProcessingStatus
from study_assistant.utils import stored_upload_name

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingCoverage:
    total_chunks: int
    embedded_chunks: int

    @property
    def ratio(self) -> float:
        if not self.total_chunks:
            return 0.0
        return self.embedded_chunks / self.total_chunks


def create_document(db: Session, user_id: int, original_name: str, data: bytes, mime_type: str) -> Document:
    """Persist an uploaded file and register it for ingestion.

    Every upload creates a new row with a fresh id; documents are never re-ingested in place.

    Args:
        db: SQLAlchemy session.
        user_id: Owner of the document.
        original_name: Client-supplied file name.
        data: File contents.
        mime_type: Declared content type (the extension decides when it is generic).

    Returns:
        Document: The committed 'pending' document.

    Raises:
        UnsupportedFormat: Neither the content type nor the extension is PDF/DOCX/TXT.
    """
    resolved = mime_type_for_filename(original_name, mime_type)
    if resolved is None:
        raise UnsupportedFormat(mime_type or original_name)

    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    filename = stored_upload_name(original_name)
    path = upload_dir / filename
    path.write_bytes(data)

    document = Document(
        user_id=user_id,
        filename=filename,
        original_name=original_name,
        file_path=str(path),
        mime_type=resolved,
        file_size=len(data),
        processing_status=ProcessingStatus.PENDING.value,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    logger.info("Registered document %s (%s, %d bytes) for user %s", document.id, resolved, len(data), user_id)
    return document


def get_document(db: Session, user_id: int, document_id: int) -> Document:
    """Return the user's document or raise DocumentNotFound."""
    document = db.get(Document, document_id)
    if document is None or document.user_id != user_id:
        raise DocumentNotFound(document_id)
    return document


def list_documents(db: Session, user_id: int) -> List[Document]:
    stmt = (
        select(Document)
        .where(Document.user_id == user_id)
        .order_by(Document.upload_date.desc(), Document.id.desc())
    )
    return list(db.scalars(stmt))


def delete_document(db: Session, user_id: int, document_id: int) -> None:
    """Delete a document, its stored file, and (by cascade) its chunks and embeddings."""
    document = get_document(db, user_id, document_id)
    try:
        Path(document.file_path).unlink()
    except OSError as exc:
        logger.warning("Failed to delete file %s: %s", document.file_path, exc)
    db.delete(document)
    db.commit()


def embedding_coverage(db: Session, document_id: int) -> EmbeddingCoverage:
    """Count a document's chunks and how many of them have an embedding."""
    total = db.scalar(select(func.count(Chunk.id)).where(Chunk.document_id == document_id)) or 0
    embedded = db.scalar(
        select(func.count(Embedding.id))
        .join(Chunk, Embedding.chunk_id == Chunk.id)
        .where(Chunk.document_id == document_id)
    ) or 0
    return EmbeddingCoverage(total_chunks=total, embedded_chunks=embedded)
