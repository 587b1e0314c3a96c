"""Retrieval-augmented answering over a user's study materials.

chat_with_rag embeds the question, retrieves the most similar chunks from the
user's completed documents, and asks the chat model for an answer grounded in
them. Each question is answered on its own; session history is never sent to
the model. Having no relevant material is a normal answer, not an error.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from study_assistant.embedding import embed_query
from study_assistant.errors import EmbeddingUnavailable, GenerationUnavailable, RAGFailure
from study_assistant.generation import generate_answer
from study_assistant.obs import span
from study_assistant.retrieval import RetrievedChunk, find_similar_chunks

logger = logging.getLogger(__name__)

NO_MATERIALS_MESSAGE = (
    "I don't have any relevant study materials uploaded to answer this question. "
    "Please upload some documents first and try again."
)


@dataclass
class Citation:
    """Back-reference rendered as 'Source N: document name'."""
    source_number: int
    document_name: str
    chunk_id: int
    similarity: Optional[float]


@dataclass
class RAGAnswer:
    content: str
    cited_chunk_ids: List[int] = field(default_factory=list)
    citations: List[Citation] = field(default_factory=list)


def build_citations(chunks: List[RetrievedChunk]) -> List[Citation]:
    """Citations in retrieval order; source numbers match the prompt's source labels."""
    return [
        Citation(
            source_number=i,
            document_name=c.document_name,
            chunk_id=c.chunk_id,
            similarity=c.similarity,
        )
        for i, c in enumerate(chunks, start=1)
    ]


def chat_with_rag(db: Session, user_id: int, question: str, top_k: Optional[int] = None) -> RAGAnswer:
    """Answer a question from the user's own documents.

    Args:
        db: SQLAlchemy session.
        user_id: The asking user; only their completed documents are searched.
        question: The question text.
        top_k: Number of chunks to ground on (default settings.TOP_K).

    Returns:
        RAGAnswer: Answer text, cited chunk ids and structured citations. When
        nothing is retrieved, NO_MATERIALS_MESSAGE with no citations.

    Raises:
        RAGFailure: Embedding the question or generating the answer failed.
    """
    with span("rag.answer", {"user_id": user_id}):
        try:
            with span("rag.embed"):
                query_vector = embed_query(question)
            with span("rag.retrieve"):
                chunks = find_similar_chunks(db, user_id, query_vector, top_k)
            if not chunks:
                logger.info("No relevant chunks for user %s; answering without sources", user_id)
                return RAGAnswer(content=NO_MATERIALS_MESSAGE)
            with span("rag.generate", {"sources": len(chunks)}):
                content = generate_answer(question, chunks)
        except (EmbeddingUnavailable, GenerationUnavailable) as exc:
            logger.error("RAG chat error for user %s: %s", user_id, exc)
            raise RAGFailure() from exc

    return RAGAnswer(
        content=content,
        cited_chunk_ids=[c.chunk_id for c in chunks],
        citations=build_citations(chunks),
    )
