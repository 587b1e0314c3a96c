"""FastAPI application entrypoint and routes.

Exposes health, document, question-answering, chat session, quiz and mastery
endpoints, configures CORS, logging and tracing, and initializes the database
schema at startup. Uploads are ingested by a detached background task; clients
poll GET /documents/{id} for the processing status.

The caller's identity comes from the X-User-Id header, set by the
authentication layer in front of this service. Every read and write is scoped
to that user.
"""
import logging
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import uvicorn

from study_assistant import chat, documents, quiz
from study_assistant.config import settings
from study_assistant.db import get_db, init_db
from study_assistant.errors import (
    GenerationUnavailable,
    NoSourceMaterial,
    NotFoundError,
    RAGFailure,
    UnsupportedFormat,
)
from study_assistant.generation import is_model_service_healthy
from study_assistant.ingestion.pipeline import ingest_in_background
from study_assistant.obs import init_tracing
from study_assistant.rag import RAGAnswer, chat_with_rag
from study_assistant.schemas import (
    AskRequest,
    AskResponse,
    ChatMessageCreate,
    ChatMessageOut,
    ChatSessionCreate,
    ChatSessionOut,
    Citation,
    DocumentDetail,
    DocumentOut,
    GradingResponse,
    QuizAttemptOut,
    QuizAttemptRequest,
    QuizBlueprintSummary,
    QuizGenerateRequest,
    QuizOut,
    QuizQuestionOut,
    TopicMasteryOut,
    UploadResponse,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Study Assistant API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_credentials=True,
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    """Configure logging/tracing and ensure DB schema and indexes exist."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    init_tracing()
    init_db()


# --- error mapping ----------------------------------------------------------------

@app.exception_handler(NotFoundError)
def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(UnsupportedFormat)
def _unsupported(request: Request, exc: UnsupportedFormat) -> JSONResponse:
    return JSONResponse(
        status_code=415,
        content={"detail": "Invalid file type. Only PDF, DOCX, and TXT files are allowed."},
    )


@app.exception_handler(NoSourceMaterial)
def _no_source(request: Request, exc: NoSourceMaterial) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": "Upload some documents before generating a quiz."})


@app.exception_handler(RAGFailure)
def _rag_failure(request: Request, exc: RAGFailure) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": "Failed to process message"})


@app.exception_handler(GenerationUnavailable)
def _generation_failure(request: Request, exc: GenerationUnavailable) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": "Failed to generate quiz"})


def get_current_user_id(x_user_id: Optional[int] = Header(default=None)) -> int:
    """Identity of the caller as asserted by the authentication layer."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def _ask_response(answer: RAGAnswer) -> AskResponse:
    return AskResponse(
        content=answer.content,
        cited_chunk_ids=answer.cited_chunk_ids,
        citations=[Citation(**vars(c)) for c in answer.citations],
    )


# --- health ------------------------------------------------------------------------

@app.get("/health")
def health():
    """Liveness probe endpoint.

    Returns:
        dict: {"status": "ok"} when the service is running.
    """
    return {"status": "ok"}


@app.get("/health/model")
def model_health():
    """Reachability of the model service (short timeout)."""
    healthy = is_model_service_healthy()
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "unavailable"},
    )


# --- documents -----------------------------------------------------------------------

@app.post("/documents", response_model=UploadResponse)
def upload_document(
    background_tasks: BackgroundTasks,
    document: UploadFile = File(...),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> UploadResponse:
    """Store an upload and start ingesting it in the background.

    The response returns before ingestion finishes; poll GET /documents/{id}.
    """
    data = document.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")

    doc = documents.create_document(
        db, user_id, document.filename or "upload", data, document.content_type or ""
    )
    background_tasks.add_task(ingest_in_background, doc.id, doc.file_path, doc.mime_type)
    logger.info("Queued ingestion of document %s for user %s", doc.id, user_id)
    return UploadResponse(id=doc.id, filename=doc.original_name, processing_status=doc.processing_status)


@app.get("/documents", response_model=List[DocumentOut])
def list_documents(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return documents.list_documents(db, user_id)


@app.get("/documents/{document_id}", response_model=DocumentDetail)
def get_document(document_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    doc = documents.get_document(db, user_id, document_id)
    coverage = documents.embedding_coverage(db, doc.id)
    return DocumentDetail(
        **DocumentOut.model_validate(doc).model_dump(),
        chunk_count=coverage.total_chunks,
        embedded_chunk_count=coverage.embedded_chunks,
        embedding_coverage=coverage.ratio,
    )


@app.delete("/documents/{document_id}")
def delete_document(document_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    documents.delete_document(db, user_id, document_id)
    return {"message": "Document deleted successfully"}


# --- question answering -------------------------------------------------------------

@app.post("/ask", response_model=AskResponse)
def ask(req: AskRequest, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)) -> AskResponse:
    """Answer a question from the user's documents without storing it in a session."""
    return _ask_response(chat_with_rag(db, user_id, req.question.strip()))


@app.get("/chat/sessions", response_model=List[ChatSessionOut])
def list_chat_sessions(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return chat.list_sessions(db, user_id)


@app.post("/chat/sessions", response_model=ChatSessionOut)
def create_chat_session(
    body: ChatSessionCreate, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    return chat.create_session(db, user_id, body.title)


@app.get("/chat/sessions/{session_id}/messages", response_model=List[ChatMessageOut])
def list_chat_messages(session_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return chat.get_messages(db, user_id, session_id)


@app.post("/chat/sessions/{session_id}/messages", response_model=AskResponse)
def send_chat_message(
    session_id: int,
    body: ChatMessageCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> AskResponse:
    try:
        _, answer = chat.send_message(db, user_id, session_id, body.message)
    except ValueError:
        raise HTTPException(status_code=400, detail="Message is required")
    return _ask_response(answer)


@app.delete("/chat/sessions/{session_id}")
def delete_chat_session(session_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    chat.delete_session(db, user_id, session_id)
    return {"message": "Chat session deleted successfully"}


# --- quizzes ------------------------------------------------------------------------

@app.post("/quiz/generate", response_model=QuizOut)
def generate_quiz(
    body: QuizGenerateRequest, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    blueprint = quiz.generate_quiz(
        db,
        user_id,
        quiz.QuizOptions(
            title=body.title,
            description=body.description,
            difficulty=body.difficulty,
            question_count=body.question_count,
        ),
    )
    return QuizOut(
        id=blueprint.id,
        title=blueprint.title,
        description=blueprint.description,
        difficulty=blueprint.difficulty,
        source_chunk_ids=blueprint.source_chunk_ids,
        created_at=blueprint.created_at,
        questions=[QuizQuestionOut.model_validate(item) for item in blueprint.items],
    )


@app.get("/quiz/blueprints", response_model=List[QuizBlueprintSummary])
def list_quiz_blueprints(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return [
        QuizBlueprintSummary(
            id=bp.id,
            title=bp.title,
            description=bp.description,
            difficulty=bp.difficulty,
            created_at=bp.created_at,
            question_count=n,
        )
        for bp, n in quiz.list_blueprints(db, user_id)
    ]


@app.get("/quiz/blueprints/{blueprint_id}/questions", response_model=List[QuizQuestionOut])
def list_quiz_questions(blueprint_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return quiz.get_quiz_questions(db, user_id, blueprint_id)


@app.post("/quiz/blueprints/{blueprint_id}/attempt", response_model=GradingResponse)
def submit_quiz_attempt(
    blueprint_id: int,
    body: QuizAttemptRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = quiz.grade_quiz_attempt(db, user_id, blueprint_id, body.answers, body.time_taken)
    return GradingResponse(**vars(result))


@app.get("/quiz/attempts", response_model=List[QuizAttemptOut])
def list_quiz_attempts(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return [
        QuizAttemptOut(
            id=attempt.id,
            blueprint_id=attempt.blueprint_id,
            quiz_title=title,
            score=attempt.score,
            total_questions=attempt.total_questions,
            time_taken=attempt.time_taken,
            answers=attempt.answers,
            started_at=attempt.started_at,
        )
        for attempt, title in quiz.list_attempts(db, user_id)
    ]


@app.get("/topics/mastery", response_model=List[TopicMasteryOut])
def list_topic_mastery(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return quiz.list_mastery(db, user_id)


def serve() -> None:
    """Run the API with uvicorn on settings.API_HOST:settings.API_PORT."""
    uvicorn.run("study_assistant.main:app", host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    serve()
