"""Persisted chat sessions on top of the RAG answerer.

Sessions group ordered user/assistant messages. Assistant messages keep the ids
of the chunks they cited. A session's updated_at is refreshed on every message
and drives the recency order of the session list.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from study_assistant.errors import ChatSessionNotFound
from study_assistant.models import ChatMessage, ChatSession, MessageRole, utcnow
from study_assistant.rag import RAGAnswer, chat_with_rag

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TITLE = "New Chat"


def create_session(db: Session, user_id: int, title: Optional[str] = None) -> ChatSession:
    session = ChatSession(user_id=user_id, title=(title or "").strip() or DEFAULT_SESSION_TITLE)
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def list_sessions(db: Session, user_id: int) -> List[ChatSession]:
    stmt = (
        select(ChatSession)
        .where(ChatSession.user_id == user_id)
        .order_by(ChatSession.updated_at.desc(), ChatSession.id.desc())
    )
    return list(db.scalars(stmt))


def get_session(db: Session, user_id: int, session_id: int) -> ChatSession:
    """Return the user's session or raise ChatSessionNotFound."""
    session = db.get(ChatSession, session_id)
    if session is None or session.user_id != user_id:
        raise ChatSessionNotFound(session_id)
    return session


def get_messages(db: Session, user_id: int, session_id: int) -> List[ChatMessage]:
    get_session(db, user_id, session_id)
    stmt = select(ChatMessage).where(ChatMessage.session_id == session_id).order_by(ChatMessage.id)
    return list(db.scalars(stmt))


def delete_session(db: Session, user_id: int, session_id: int) -> None:
    db.delete(get_session(db, user_id, session_id))
    db.commit()


def send_message(db: Session, user_id: int, session_id: int, message: str) -> Tuple[ChatMessage, RAGAnswer]:
    """Store a user message, answer it with RAG, and store the reply.

    The user's message is committed before the model is called, so it survives
    a RAGFailure.

    Returns:
        Tuple[ChatMessage, RAGAnswer]: The stored assistant message and the full answer.

    Raises:
        ChatSessionNotFound: The session does not belong to the user.
        ValueError: The message is blank.
        RAGFailure: Answer synthesis failed.
    """
    text = (message or "").strip()
    if not text:
        raise ValueError("Message is required")
    session = get_session(db, user_id, session_id)

    db.add(ChatMessage(session_id=session.id, role=MessageRole.USER.value, content=text, cited_chunk_ids=[]))
    session.updated_at = utcnow()
    db.commit()

    answer = chat_with_rag(db, user_id, text)

    reply = ChatMessage(
        session_id=session.id,
        role=MessageRole.ASSISTANT.value,
        content=answer.content,
        cited_chunk_ids=list(answer.cited_chunk_ids),
    )
    db.add(reply)
    session.updated_at = utcnow()
    db.commit()
    db.refresh(reply)
    logger.debug("Session %s: answered with %d citations", session.id, len(answer.citations))
    return reply, answer
