"""
Tests for sentence-bounded chunking
"""
from study_assistant.utils import chunk_text, split_sentences, stored_upload_name


def _sentences(n):
    return " ".join(f"Sentence number {i} covers topic alpha." for i in range(n))


class TestSplitSentences:

    def test_splits_on_terminal_punctuation_runs(self):
        assert split_sentences("One. Two!! Three?! Four") == ["One", "Two", "Three", "Four"]

    def test_drops_empty_fragments(self):
        assert split_sentences("...  !! ?") == []


class TestChunkText:

    def test_short_text_is_single_chunk(self):
        chunks = chunk_text("First sentence. Second sentence! Third?", chunk_size=1000, overlap=200)
        assert chunks == ["First sentence. Second sentence. Third."]

    def test_text_without_punctuation_is_single_chunk(self):
        text = "no terminal punctuation anywhere in this text"
        chunks = chunk_text(text, chunk_size=10, overlap=0)
        assert len(chunks) == 1
        assert chunks[0].startswith(text)

    def test_empty_text_has_no_chunks(self):
        assert chunk_text("", chunk_size=100, overlap=10) == []
        assert chunk_text("   \n ", chunk_size=100, overlap=10) == []

    def test_chunks_respect_size_limit(self):
        chunks = chunk_text(_sentences(40), chunk_size=200, overlap=50)
        assert len(chunks) > 1
        assert all(len(c) <= 200 for c in chunks)

    def test_oversized_sentence_is_kept_whole(self):
        long_sentence = "word " * 60
        text = f"Short one. {long_sentence.strip()}. Tail sentence."
        chunks = chunk_text(text, chunk_size=100, overlap=30)

        whole = long_sentence.strip() + "."
        assert any(whole in c for c in chunks)
        assert max(len(c) for c in chunks) > 100

    def test_next_chunk_starts_with_tail_of_previous(self):
        chunks = chunk_text(_sentences(20), chunk_size=200, overlap=60)
        assert len(chunks) > 1
        for prev, nxt in zip(chunks, chunks[1:]):
            tail_words = prev.split()
            assert any(
                nxt.startswith(" ".join(tail_words[-k:])) for k in range(1, 11)
            )

    def test_zero_overlap_reconstructs_sentences(self):
        text = _sentences(15)
        chunks = chunk_text(text, chunk_size=120, overlap=0)
        expected = " ".join(f"{s}." for s in split_sentences(text))
        assert " ".join(chunks) == expected

    def test_size_limit_wins_over_overlap(self):
        first = "a" * 40 + "."
        second = "b" * 98 + "."
        chunks = chunk_text(f"{first} {second}", chunk_size=100, overlap=60)
        assert chunks == [first, second]

    def test_overlap_seed_is_trimmed_to_fit(self):
        chunks = chunk_text("one two three four five six seven. " + "x" * 80 + ".", chunk_size=100, overlap=60)
        assert len(chunks) == 2
        assert len(chunks[1]) <= 100
        assert chunks[1].startswith("five six seven.")

    def test_uses_configured_defaults(self, monkeypatch):
        from study_assistant.config import settings

        monkeypatch.setattr(settings, "CHUNK_SIZE", 80)
        monkeypatch.setattr(settings, "CHUNK_OVERLAP", 0)
        chunks = chunk_text(_sentences(10))
        assert all(len(c) <= 80 for c in chunks)


class TestStoredUploadName:

    def test_keeps_extension_and_is_unique(self):
        a = stored_upload_name("Lecture 1.PDF")
        b = stored_upload_name("Lecture 1.PDF")
        assert a.startswith("document-") and a.endswith(".pdf")
        assert a != b

    def test_without_extension(self):
        assert "." not in stored_upload_name("README")
