"""Shared fixtures: an in-memory SQLite database standing in for PostgreSQL.

Settings are read at import time, so the environment is prepared before the
study_assistant package is imported.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EMBEDDING_CACHE_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from study_assistant import db as database
from study_assistant import models  # noqa: F401
from study_assistant.config import settings
from study_assistant.models import Chunk, Document, Embedding, ProcessingStatus


def make_vector(*head):
    """A full-dimension vector whose leading components are head, rest zero."""
    vector = [0.0] * settings.EMBEDDING_DIM
    vector[: len(head)] = [float(x) for x in head]
    return vector


@pytest.fixture
def session_factory(monkeypatch, tmp_path):
    """Fresh database per test; background/pipeline code sees it via db.SessionLocal."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    database.Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autoflush=False, bind=engine)

    monkeypatch.setattr(database, "SessionLocal", factory)
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "EMBEDDING_CACHE_ENABLED", False)

    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed_document(db_session):
    """Insert a document with chunks directly, bypassing ingestion.

    chunks is a list of (content, vector) pairs; a None vector leaves the
    chunk without an embedding.
    """
    def _seed(user_id, chunks, name="notes.txt", status=ProcessingStatus.COMPLETED.value):
        document = Document(
            user_id=user_id,
            filename=name,
            original_name=name,
            file_path=f"/tmp/{name}",
            mime_type="text/plain",
            file_size=0,
            processing_status=status,
        )
        db_session.add(document)
        db_session.flush()
        ids = []
        for i, (content, vector) in enumerate(chunks):
            chunk = Chunk(document_id=document.id, chunk_index=i, content=content)
            db_session.add(chunk)
            db_session.flush()
            if vector is not None:
                db_session.add(Embedding(chunk_id=chunk.id, vector=vector))
            ids.append(chunk.id)
        db_session.commit()
        return document, ids

    return _seed
