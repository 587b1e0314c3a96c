"""Retrieval over a user's ingested chunks.

This module implements:
- RetrievedChunk: the unit handed to answer synthesis and quiz generation
- find_similar_chunks: top-K cosine similarity search (similarity = 1 - distance)
- sample_chunks_for_quiz: random sample of substantial chunks for quiz material

Both entry points only consider chunks of documents owned by the user whose
processing_status is 'completed', and both fail soft: storage errors are logged
and an empty list is returned, since "no relevant content" is an expected outcome.

On PostgreSQL, ranking is done in SQL with the pgvector cosine distance operator.
Other dialects (SQLite test databases) score the same candidate set with numpy.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from study_assistant.config import settings
from study_assistant.db import is_postgres
from study_assistant.models import Chunk, Document, Embedding, ProcessingStatus

logger = logging.getLogger(__name__)


@dataclass
class RetrievedChunk:
    """A chunk returned by retrieval, with its source document name.

    Attributes:
        chunk_id: Chunk primary key.
        document_id: Parent document id.
        document_name: Original file name of the parent document.
        content: Chunk text.
        similarity: Cosine similarity to the query (None in sampling mode).
    """
    chunk_id: int
    document_id: int
    document_name: str
    content: str
    similarity: Optional[float] = None


def _owned_completed(stmt, user_id: int):
    return stmt.join(Document, Chunk.document_id == Document.id).where(
        Document.user_id == user_id,
        Document.processing_status == ProcessingStatus.COMPLETED.value,
    )


def _cosine_similarity(query: np.ndarray, vector: Sequence[float]) -> float:
    v = np.asarray(vector, dtype=float)
    denom = float(np.linalg.norm(query) * np.linalg.norm(v))
    if denom == 0.0:
        return 0.0
    return float(np.dot(query, v) / denom)


def _rank_in_database(db: Session, user_id: int, query_vector: List[float], top_k: int) -> List[RetrievedChunk]:
    distance = Embedding.vector.cosine_distance(query_vector).label("distance")
    stmt = select(Chunk.id, Chunk.document_id, Document.original_name, Chunk.content, distance).join(
        Embedding, Embedding.chunk_id == Chunk.id
    )
    stmt = _owned_completed(stmt, user_id).order_by(distance, Chunk.id).limit(top_k)
    return [
        RetrievedChunk(
            chunk_id=r.id,
            document_id=r.document_id,
            document_name=r.original_name,
            content=r.content,
            similarity=1.0 - float(r.distance),
        )
        for r in db.execute(stmt)
    ]


def _rank_in_memory(db: Session, user_id: int, query_vector: List[float], top_k: int) -> List[RetrievedChunk]:
    stmt = select(Chunk.id, Chunk.document_id, Document.original_name, Chunk.content, Embedding.vector).join(
        Embedding, Embedding.chunk_id == Chunk.id
    )
    query = np.asarray(query_vector, dtype=float)
    scored = [
        RetrievedChunk(
            chunk_id=r.id,
            document_id=r.document_id,
            document_name=r.original_name,
            content=r.content,
            similarity=_cosine_similarity(query, r.vector),
        )
        for r in db.execute(_owned_completed(stmt, user_id))
    ]
    scored.sort(key=lambda c: (-c.similarity, c.chunk_id))
    return scored[:top_k]


def find_similar_chunks(
    db: Session, user_id: int, query_vector: List[float], top_k: Optional[int] = None
) -> List[RetrievedChunk]:
    """Return the user's chunks most similar to the query vector.

    Args:
        db: SQLAlchemy session.
        user_id: Owner whose completed documents are searched.
        query_vector: Embedding of the question.
        top_k: Maximum number of results (default settings.TOP_K).

    Returns:
        List[RetrievedChunk]: At most top_k chunks ordered by similarity
        descending, ties broken by chunk id ascending. Chunks without an
        embedding are never candidates. Empty on storage errors.
    """
    top_k = settings.TOP_K if top_k is None else top_k
    try:
        if is_postgres(db):
            return _rank_in_database(db, user_id, query_vector, top_k)
        return _rank_in_memory(db, user_id, query_vector, top_k)
    except SQLAlchemyError:
        logger.exception("Error finding similar chunks for user %s", user_id)
        db.rollback()
        return []


def sample_chunks_for_quiz(db: Session, user_id: int, count: int) -> List[RetrievedChunk]:
    """Randomly sample source chunks for quiz generation.

    Args:
        db: SQLAlchemy session.
        user_id: Owner whose completed documents are sampled.
        count: Number of questions wanted; 2 * count chunks are sampled.

    Returns:
        List[RetrievedChunk]: Chunks longer than settings.QUIZ_MIN_CHUNK_CHARS,
        in random order. Empty on storage errors.
    """
    stmt = select(Chunk.id, Chunk.document_id, Document.original_name, Chunk.content)
    stmt = (
        _owned_completed(stmt, user_id)
        .where(func.length(Chunk.content) > settings.QUIZ_MIN_CHUNK_CHARS)
        .order_by(func.random())
        .limit(max(1, count) * 2)
    )
    try:
        rows = db.execute(stmt).all()
    except SQLAlchemyError:
        logger.exception("Error sampling quiz content for user %s", user_id)
        db.rollback()
        return []
    return [
        RetrievedChunk(chunk_id=r.id, document_id=r.document_id, document_name=r.original_name, content=r.content)
        for r in rows
    ]
