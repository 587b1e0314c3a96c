"""Pydantic request/response schemas for the API.

Defines the public contracts used by the FastAPI endpoints:
- Documents: DocumentOut, DocumentDetail, UploadResponse
- Question answering: AskRequest, Citation, AskResponse
- Chat sessions: ChatSessionCreate, ChatSessionOut, ChatMessageCreate, ChatMessageOut
- Quizzes: QuizGenerateRequest, QuizQuestionOut, QuizOut, QuizBlueprintSummary,
  QuizAttemptRequest, GradingResponse, QuizAttemptOut
- Mastery: TopicMasteryOut
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class DocumentOut(ORMModel):
    id: int
    original_name: str
    file_size: int
    mime_type: str
    processing_status: str
    upload_date: datetime


class DocumentDetail(DocumentOut):
    """Document with its chunk count and the fraction of chunks that carry an embedding."""
    chunk_count: int
    embedded_chunk_count: int
    embedding_coverage: float


class UploadResponse(BaseModel):
    id: int
    filename: str
    processing_status: str
    message: str = "File uploaded successfully"


class AskRequest(BaseModel):
    """Request body for asking a question to the RAG pipeline.

    Attributes:
        question: The user question to answer.
    """
    question: str = Field(..., min_length=1, description="User question")


class Citation(BaseModel):
    """A reference to a source chunk used for an answer.

    Attributes:
        source_number: 1-based position matching 'Source N' in the answer.
        document_name: Original file name of the source document.
        chunk_id: Id of the cited chunk.
        similarity: Cosine similarity of the chunk to the question.
    """
    source_number: int
    document_name: str
    chunk_id: int
    similarity: Optional[float] = None


class AskResponse(BaseModel):
    """Response body returned by the RAG pipeline.

    Attributes:
        content: The generated answer text.
        cited_chunk_ids: Ids of the chunks the answer was grounded on.
        citations: Structured back-references in retrieval order.
    """
    content: str
    cited_chunk_ids: List[int]
    citations: List[Citation]


class ChatSessionCreate(BaseModel):
    title: Optional[str] = None


class ChatSessionOut(ORMModel):
    id: int
    title: str
    created_at: datetime
    updated_at: datetime


class ChatMessageCreate(BaseModel):
    message: str = Field(..., min_length=1)


class ChatMessageOut(ORMModel):
    id: int
    role: str
    content: str
    cited_chunk_ids: List[int] = Field(default_factory=list)
    created_at: datetime


class QuizGenerateRequest(BaseModel):
    title: str = "Generated Quiz"
    description: Optional[str] = None
    difficulty: str = "medium"
    question_count: int = Field(default=10, ge=1, le=50)


class QuizQuestionOut(ORMModel):
    """A question as shown to the quiz taker (no correct answer)."""
    id: int
    question: str
    question_type: str
    options: List[str] = Field(default_factory=list)
    explanation: Optional[str] = None
    source_chunk_id: Optional[int] = None


class QuizOut(ORMModel):
    id: int
    title: str
    description: Optional[str] = None
    difficulty: str
    source_chunk_ids: List[int]
    created_at: datetime
    questions: List[QuizQuestionOut]


class QuizBlueprintSummary(ORMModel):
    id: int
    title: str
    description: Optional[str] = None
    difficulty: str
    created_at: datetime
    question_count: int


class QuizAttemptRequest(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)
    time_taken: Optional[int] = Field(default=None, ge=0)


class GradingResponse(BaseModel):
    attempt_id: int
    score: int
    correct_count: int
    total_questions: int
    graded_answers: Dict[str, Dict[str, Any]]


class QuizAttemptOut(ORMModel):
    id: int
    blueprint_id: int
    quiz_title: str
    score: int
    total_questions: int
    time_taken: Optional[int] = None
    answers: Dict[str, Dict[str, Any]]
    started_at: datetime


class TopicMasteryOut(ORMModel):
    topic: str
    mastery_level: float
    confidence_score: float
    last_tested: Optional[datetime] = None
    updated_at: datetime
