"""
Tests for retrieval-augmented answering and chat sessions
"""
from unittest.mock import patch

import pytest
from sqlalchemy import select

from conftest import make_vector
from study_assistant import chat
from study_assistant.errors import (
    ChatSessionNotFound,
    EmbeddingUnavailable,
    GenerationUnavailable,
    RAGFailure,
)
from study_assistant.models import ChatMessage, MessageRole
from study_assistant.rag import NO_MATERIALS_MESSAGE, RAGAnswer, chat_with_rag

QUERY = make_vector(1.0, 0.0)


class TestChatWithRag:

    def test_answer_cites_retrieved_chunks_in_order(self, db_session, seed_document):
        _, (weak, strong) = seed_document(
            1,
            [("Osmosis moves water.", make_vector(0.5, 0.5)), ("Diffusion moves solutes.", make_vector(1.0, 0.0))],
            name="bio.pdf",
        )

        with patch("study_assistant.rag.embed_query", return_value=QUERY), \
             patch("study_assistant.rag.generate_answer", return_value="Diffusion (Source 1).") as mock_gen:
            answer = chat_with_rag(db_session, 1, "How do solutes move?")

        assert answer.content == "Diffusion (Source 1)."
        assert answer.cited_chunk_ids == [strong, weak]
        assert [c.source_number for c in answer.citations] == [1, 2]
        assert answer.citations[0].document_name == "bio.pdf"
        assert answer.citations[0].similarity == pytest.approx(1.0)

        question, chunks = mock_gen.call_args.args
        assert question == "How do solutes move?"
        assert [c.chunk_id for c in chunks] == [strong, weak]

    def test_top_k_is_respected(self, db_session, seed_document):
        seed_document(1, [(f"chunk {i}", make_vector(1.0, 0.1 * i)) for i in range(6)])

        with patch("study_assistant.rag.embed_query", return_value=QUERY), \
             patch("study_assistant.rag.generate_answer", return_value="ok"):
            answer = chat_with_rag(db_session, 1, "q", top_k=2)

        assert len(answer.cited_chunk_ids) == 2

    def test_zero_top_k_grounds_on_nothing(self, db_session, seed_document):
        seed_document(1, [("chunk", make_vector(1.0, 0.0))])

        with patch("study_assistant.rag.embed_query", return_value=QUERY), \
             patch("study_assistant.rag.generate_answer") as mock_gen:
            answer = chat_with_rag(db_session, 1, "q", top_k=0)

        assert answer.content == NO_MATERIALS_MESSAGE
        mock_gen.assert_not_called()

    def test_no_materials_is_not_an_error(self, db_session):
        with patch("study_assistant.rag.embed_query", return_value=QUERY), \
             patch("study_assistant.rag.generate_answer") as mock_gen:
            answer = chat_with_rag(db_session, 1, "Anything?")

        assert answer.content == NO_MATERIALS_MESSAGE
        assert answer.cited_chunk_ids == []
        assert answer.citations == []
        mock_gen.assert_not_called()

    def test_embedding_failure(self, db_session):
        with patch("study_assistant.rag.embed_query", side_effect=EmbeddingUnavailable("down")):
            with pytest.raises(RAGFailure):
                chat_with_rag(db_session, 1, "q")

    def test_generation_failure(self, db_session, seed_document):
        seed_document(1, [("content", make_vector(1.0))])
        with patch("study_assistant.rag.embed_query", return_value=QUERY), \
             patch("study_assistant.rag.generate_answer", side_effect=GenerationUnavailable("timeout")):
            with pytest.raises(RAGFailure):
                chat_with_rag(db_session, 1, "q")


class TestChatSessions:

    def test_send_message_stores_both_turns(self, db_session):
        session = chat.create_session(db_session, 1, "  ")
        assert session.title == chat.DEFAULT_SESSION_TITLE

        answer = RAGAnswer(content="Because of gravity.", cited_chunk_ids=[4, 2])
        with patch("study_assistant.chat.chat_with_rag", return_value=answer) as mock_rag:
            reply, returned = chat.send_message(db_session, 1, session.id, "  Why do apples fall?  ")

        mock_rag.assert_called_once_with(db_session, 1, "Why do apples fall?")
        assert returned is answer
        assert reply.role == MessageRole.ASSISTANT.value
        assert reply.cited_chunk_ids == [4, 2]

        messages = chat.get_messages(db_session, 1, session.id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Why do apples fall?"),
            ("assistant", "Because of gravity."),
        ]

    def test_user_message_survives_rag_failure(self, db_session):
        session = chat.create_session(db_session, 1, "Physics")

        with patch("study_assistant.chat.chat_with_rag", side_effect=RAGFailure()):
            with pytest.raises(RAGFailure):
                chat.send_message(db_session, 1, session.id, "Why?")

        stored = db_session.scalars(select(ChatMessage).where(ChatMessage.session_id == session.id)).all()
        assert [m.role for m in stored] == ["user"]

    def test_blank_message_rejected(self, db_session):
        session = chat.create_session(db_session, 1)
        with pytest.raises(ValueError):
            chat.send_message(db_session, 1, session.id, "   ")

    def test_sessions_are_private(self, db_session):
        session = chat.create_session(db_session, 1, "Mine")

        with pytest.raises(ChatSessionNotFound):
            chat.get_messages(db_session, 2, session.id)
        with pytest.raises(ChatSessionNotFound):
            chat.delete_session(db_session, 2, session.id)
        assert chat.list_sessions(db_session, 2) == []

    def test_delete_session_removes_messages(self, db_session):
        session = chat.create_session(db_session, 1)
        with patch("study_assistant.chat.chat_with_rag", return_value=RAGAnswer(content="hi")):
            chat.send_message(db_session, 1, session.id, "hello")

        chat.delete_session(db_session, 1, session.id)

        assert db_session.scalars(select(ChatMessage)).all() == []
        assert chat.list_sessions(db_session, 1) == []
