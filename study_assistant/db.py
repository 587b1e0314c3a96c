"""Database setup and session utilities for SQLAlchemy.

This module centralizes engine/session initialization, metadata base, and helpers:
- init_db: Ensures the pgvector extension exists and creates required tables and the
  HNSW index over the embeddings.vector column for cosine similarity search.
- session_scope: Context-managed transactional scope for imperative workflows
  (background ingestion, CLI scripts).
- get_db: FastAPI dependency to yield a per-request SQLAlchemy Session.

Configuration is read from study_assistant.config.settings.DATABASE_URL.
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from study_assistant.config import settings

# SQLAlchemy setup
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def is_postgres(db: Session) -> bool:
    """Return True when the session is bound to a PostgreSQL database."""
    return db.get_bind().dialect.name == "postgresql"


def init_db() -> None:
    """Initialize database extensions, tables, and vector indexes.

    On PostgreSQL, ensures the pgvector extension is available before creating
    tables and creates the HNSW cosine index over embeddings.vector if missing.
    Other dialects (used by tests) only get the tables.

    This function is idempotent and safe to run multiple times.
    """
    postgres = engine.dialect.name == "postgresql"
    if postgres:
        with engine.connect() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            conn.commit()

    # Import models after Base is defined
    from study_assistant import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    if postgres:
        # HNSW needs no training data, so it is usable while the table is still empty
        with engine.connect() as conn:
            conn.execute(
                text(
                    """
                    CREATE INDEX IF NOT EXISTS idx_embeddings_vector_hnsw
                    ON embeddings USING hnsw (vector vector_cosine_ops)
                    """
                )
            )
            conn.commit()



@contextmanager
def session_scope() -> Iterator[Session]:
    """Transactional scope for work that runs outside a request.

    Used by the ingestion pipeline, whose stages each get their own short
    transaction, and by the CLI. The session is looked up on the module at
    call time, so a rebound SessionLocal is honored.

    Yields:
        Session: Committed on normal exit, rolled back (and the error
        re-raised) on exception, closed in every case.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request, closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
