"""
Tests for the ingestion pipeline and embedding schedulers
"""
import time

import pytest
from sqlalchemy import func, select

from conftest import make_vector
from study_assistant import documents
from study_assistant.config import settings
from study_assistant.errors import EmbeddingUnavailable, ExtractionError, InvalidStatusTransition
from study_assistant.ingestion.pipeline import (
    ingest_in_background,
    mark_failed,
    process_document,
    transition,
)
from study_assistant.ingestion.scheduler import (
    EmbeddingJob,
    SequentialScheduler,
    ThreadPoolScheduler,
    default_scheduler,
)
from study_assistant.models import Chunk, Document, Embedding, ProcessingStatus

THREE_SENTENCES = b"Alpha beta gamma delta. Epsilon zeta eta theta. Iota kappa lambda mu."


def _embed_ok(text):
    return make_vector(1.0, float(len(text)))


def _status(session_factory, document_id):
    with session_factory() as s:
        return s.get(Document, document_id).processing_status


def _count(session_factory, model, document_id):
    with session_factory() as s:
        stmt = select(func.count(model.id))
        if model is Chunk:
            stmt = stmt.where(Chunk.document_id == document_id)
        else:
            stmt = stmt.join(Chunk, Embedding.chunk_id == Chunk.id).where(Chunk.document_id == document_id)
        return s.scalar(stmt)


@pytest.fixture
def small_chunks(monkeypatch):
    # one sentence per chunk for THREE_SENTENCES
    monkeypatch.setattr(settings, "CHUNK_SIZE", 30)
    monkeypatch.setattr(settings, "CHUNK_OVERLAP", 0)


class TestProcessDocument:

    def test_successful_ingestion(self, db_session, session_factory, small_chunks):
        doc = documents.create_document(db_session, 1, "greek.txt", THREE_SENTENCES, "text/plain")

        report = process_document(doc.id, doc.file_path, doc.mime_type, embed=_embed_ok)

        assert report.chunk_count == 3
        assert report.embedded_count == 3
        assert report.coverage == 1.0
        assert _status(session_factory, doc.id) == ProcessingStatus.COMPLETED.value
        with session_factory() as s:
            rows = s.scalars(select(Chunk).where(Chunk.document_id == doc.id).order_by(Chunk.chunk_index)).all()
            assert [c.chunk_index for c in rows] == [0, 1, 2]
            assert rows[0].content == "Alpha beta gamma delta."
            assert all(c.embedding is not None for c in rows)

    def test_failed_embedding_is_skipped(self, db_session, session_factory, small_chunks):
        doc = documents.create_document(db_session, 1, "greek.txt", THREE_SENTENCES, "text/plain")

        def flaky_embed(text):
            if text.startswith("Epsilon"):
                raise EmbeddingUnavailable("timeout")
            return _embed_ok(text)

        report = process_document(doc.id, doc.file_path, doc.mime_type, embed=flaky_embed)

        assert report.chunk_count == 3
        assert report.embedded_count == 2
        assert len(report.failed_chunk_ids) == 1
        assert _status(session_factory, doc.id) == ProcessingStatus.COMPLETED.value
        assert _count(session_factory, Chunk, doc.id) == 3
        assert _count(session_factory, Embedding, doc.id) == 2

        with session_factory() as s:
            rows = s.scalars(select(Chunk).where(Chunk.document_id == doc.id).order_by(Chunk.chunk_index)).all()
            assert [c.embedding is not None for c in rows] == [True, False, True]
            assert report.failed_chunk_ids == [rows[1].id]

        with session_factory() as s:
            coverage = documents.embedding_coverage(s, doc.id)
        assert (coverage.embedded_chunks, coverage.total_chunks) == (2, 3)
        assert coverage.ratio == pytest.approx(2 / 3)

    def test_extraction_failure_marks_failed_without_chunks(self, db_session, session_factory):
        doc = documents.create_document(db_session, 1, "broken.pdf", b"not really a pdf", "application/pdf")

        with pytest.raises(ExtractionError):
            process_document(doc.id, doc.file_path, doc.mime_type, embed=_embed_ok)

        assert _status(session_factory, doc.id) == ProcessingStatus.FAILED.value
        assert _count(session_factory, Chunk, doc.id) == 0

    def test_empty_document_marks_failed(self, db_session, session_factory):
        doc = documents.create_document(db_session, 1, "blank.txt", b"   \n\n  ", "text/plain")

        with pytest.raises(ExtractionError):
            process_document(doc.id, doc.file_path, doc.mime_type, embed=_embed_ok)

        assert _status(session_factory, doc.id) == ProcessingStatus.FAILED.value

    def test_completed_document_cannot_be_reprocessed(self, db_session, session_factory, small_chunks):
        doc = documents.create_document(db_session, 1, "greek.txt", THREE_SENTENCES, "text/plain")
        process_document(doc.id, doc.file_path, doc.mime_type, embed=_embed_ok)

        with pytest.raises(InvalidStatusTransition):
            process_document(doc.id, doc.file_path, doc.mime_type, embed=_embed_ok)

        assert _status(session_factory, doc.id) == ProcessingStatus.COMPLETED.value
        assert _count(session_factory, Chunk, doc.id) == 3

    def test_concurrent_scheduler_gives_same_result(self, db_session, session_factory, small_chunks):
        doc = documents.create_document(db_session, 1, "greek.txt", THREE_SENTENCES, "text/plain")

        report = process_document(
            doc.id, doc.file_path, doc.mime_type, scheduler=ThreadPoolScheduler(3), embed=_embed_ok
        )

        assert report.embedded_count == 3
        assert _status(session_factory, doc.id) == ProcessingStatus.COMPLETED.value


class TestBackgroundIngestion:

    def test_never_raises_and_leaves_failed(self, db_session, session_factory):
        doc = documents.create_document(db_session, 1, "broken.pdf", b"garbage", "application/pdf")

        ingest_in_background(doc.id, doc.file_path, doc.mime_type)

        assert _status(session_factory, doc.id) == ProcessingStatus.FAILED.value

    def test_missing_document(self, session_factory):
        ingest_in_background(12345, "/nonexistent", "text/plain")


class TestStatusTransitions:

    def _doc(self, status):
        return Document(processing_status=status.value)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING),
            (ProcessingStatus.PENDING, ProcessingStatus.FAILED),
            (ProcessingStatus.PROCESSING, ProcessingStatus.COMPLETED),
            (ProcessingStatus.PROCESSING, ProcessingStatus.FAILED),
        ],
    )
    def test_allowed(self, current, target):
        doc = self._doc(current)
        transition(doc, target)
        assert doc.processing_status == target.value

    @pytest.mark.parametrize(
        "current,target",
        [
            (ProcessingStatus.PENDING, ProcessingStatus.COMPLETED),
            (ProcessingStatus.COMPLETED, ProcessingStatus.PROCESSING),
            (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED),
            (ProcessingStatus.FAILED, ProcessingStatus.PROCESSING),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(InvalidStatusTransition):
            transition(self._doc(current), target)

    def test_mark_failed_keeps_terminal_status(self, db_session, session_factory, seed_document):
        doc, _ = seed_document(1, [("content", None)])
        mark_failed(doc.id)
        assert _status(session_factory, doc.id) == ProcessingStatus.COMPLETED.value


class TestSchedulers:

    def _jobs(self, n):
        return [EmbeddingJob(chunk_id=100 + i, chunk_index=i, text=f"chunk {i}") for i in range(n)]

    def test_sequential_isolates_failures(self):
        def embed(text):
            if text == "chunk 1":
                raise RuntimeError("boom")
            return [1.0]

        results = list(SequentialScheduler().run(self._jobs(3), embed))

        assert [r.ok for r in results] == [True, False, True]
        assert isinstance(results[1].error, RuntimeError)

    def test_thread_pool_preserves_order(self):
        def slow_first(text):
            index = int(text.split()[1])
            time.sleep(0.05 * (4 - index))
            return [float(index)]

        results = list(ThreadPoolScheduler(4).run(self._jobs(4), slow_first))

        assert [r.job.chunk_index for r in results] == [0, 1, 2, 3]
        assert [r.vector for r in results] == [[0.0], [1.0], [2.0], [3.0]]

    def test_thread_pool_requires_a_worker(self):
        with pytest.raises(ValueError):
            ThreadPoolScheduler(0)

    def test_default_scheduler_follows_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "EMBEDDING_CONCURRENCY", 1)
        assert isinstance(default_scheduler(), SequentialScheduler)
        monkeypatch.setattr(settings, "EMBEDDING_CONCURRENCY", 4)
        assert isinstance(default_scheduler(), ThreadPoolScheduler)
