"""Database ORM models.

Defines the persistent entities of the study assistant:
- Document: an uploaded course file and its processing status.
- Chunk: an ordered passage of a document's extracted text.
- Embedding: the pgvector embedding of one chunk (may be missing if generation failed).
- ChatSession / ChatMessage: persisted conversations with cited chunk ids.
- QuizBlueprint / QuizItem: generated quizzes and their questions.
- QuizAttempt: a graded submission.
- TopicMastery: per-user, per-topic mastery estimate.

Every row belongs transitively to exactly one user through user_id columns.
"""
import enum
from datetime import datetime, timezone

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from study_assistant.config import settings
from study_assistant.db import Base


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ProcessingStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Document(Base):
    """An uploaded course document.

    processing_status is only mutated by the ingestion pipeline; see
    study_assistant.ingestion.pipeline for the allowed transitions.
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    filename = Column(String(255), nullable=False)  # stored name on disk
    original_name = Column(String(512), nullable=False)
    file_path = Column(String(1024), nullable=False)
    mime_type = Column(String(128), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    processing_status = Column(String(16), nullable=False, default=ProcessingStatus.PENDING.value)
    upload_date = Column(DateTime, default=utcnow, nullable=False)

    chunks = relationship(
        "Chunk",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Chunk.chunk_index",
    )

    __table_args__ = (Index("idx_documents_user", "user_id"),)


class Chunk(Base):
    """A passage of a document's text.

    chunk_index is 0-based and contiguous per document; it defines the
    reconstruction order of the source text.
    """
    __tablename__ = "chunks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    page_number = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    document = relationship("Document", back_populates="chunks")
    embedding = relationship(
        "Embedding",
        back_populates="chunk",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_index"),
        Index("idx_chunks_document", "document_id"),
    )


class Embedding(Base):
    """Vector embedding of a single chunk.

    Notes:
        The vector dimension is derived from settings.EMBEDDING_DIM and must
        match the embedding model configured in study_assistant.config.Settings.
    """
    __tablename__ = "embeddings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chunk_id = Column(Integer, ForeignKey("chunks.id", ondelete="CASCADE"), nullable=False, unique=True)
    vector = Column(Vector(dim=settings.EMBEDDING_DIM), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    chunk = relationship("Chunk", back_populates="embedding")


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False, default="New Chat")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)  # bumped on every message

    messages = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )

    __table_args__ = (Index("idx_chat_sessions_user", "user_id"),)


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    cited_chunk_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    session = relationship("ChatSession", back_populates="messages")


class QuizBlueprint(Base):
    """A generated quiz; immutable after creation."""
    __tablename__ = "quiz_blueprints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    source_chunk_ids = Column(JSON, nullable=False, default=list)
    difficulty = Column(String(32), nullable=False, default="medium")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    items = relationship(
        "QuizItem",
        back_populates="blueprint",
        cascade="all, delete-orphan",
        order_by="QuizItem.id",
    )

    __table_args__ = (Index("idx_quiz_blueprints_user", "user_id"),)


class QuizItem(Base):
    __tablename__ = "quiz_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    blueprint_id = Column(Integer, ForeignKey("quiz_blueprints.id", ondelete="CASCADE"), nullable=False)
    question = Column(Text, nullable=False)
    question_type = Column(String(32), nullable=False)
    options = Column(JSON, nullable=False, default=list)
    correct_answer = Column(Text, nullable=False)
    explanation = Column(Text, nullable=True)
    source_chunk_id = Column(Integer, ForeignKey("chunks.id", ondelete="SET NULL"), nullable=True)

    blueprint = relationship("QuizBlueprint", back_populates="items")


class QuizAttempt(Base):
    """A graded quiz submission; created once and never updated."""
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    blueprint_id = Column(Integer, ForeignKey("quiz_blueprints.id", ondelete="CASCADE"), nullable=False)
    score = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    time_taken = Column(Integer, nullable=True)  # seconds
    answers = Column(JSON, nullable=False, default=dict)
    started_at = Column(DateTime, default=utcnow, nullable=False)

    blueprint = relationship("QuizBlueprint")

    __table_args__ = (Index("idx_quiz_attempts_user", "user_id"),)


class TopicMastery(Base):
    __tablename__ = "topic_mastery"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    topic = Column(String(255), nullable=False)
    mastery_level = Column(Float, nullable=False, default=0.0)  # 0..1
    confidence_score = Column(Float, nullable=False, default=0.0)  # 0..1
    last_tested = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "topic", name="uq_topic_mastery_user_topic"),)
