"""Utility helpers for text chunking and upload naming.

This module provides:
- split_sentences: sentence segmentation on terminal punctuation
- chunk_text: sentence-bounded chunking with a word-based overlap seed
- stored_upload_name: collision-free on-disk name for an uploaded file
"""
import os
import re
import uuid
from typing import List, Optional

from study_assistant.config import settings

_SENTENCE_BREAK = re.compile(r"[.!?]+")

# Average characters per word; converts the character overlap budget to words
CHARS_PER_WORD = 6


def split_sentences(text: str) -> List[str]:
    """Split text on runs of '.', '!' and '?', dropping empty fragments.

    Args:
        text: Input string.

    Returns:
        List[str]: Stripped sentences without their terminal punctuation.
    """
    return [s.strip() for s in _SENTENCE_BREAK.split(text or "") if s.strip()]


def _overlap_seed(chunk: str, max_words: int, budget: int) -> str:
    """Trailing words of a closed chunk used to open the next one.

    Takes at most max_words words and drops leading ones until the seed fits
    in budget characters.
    """
    if max_words <= 0 or budget <= 0:
        return ""
    words = chunk.split()[-max_words:]
    while words and len(" ".join(words)) > budget:
        words.pop(0)
    return " ".join(words)


def chunk_text(text: str, chunk_size: Optional[int] = None, overlap: Optional[int] = None) -> List[str]:
    """Split text into overlapping, sentence-bounded chunks.

    Sentences are accumulated greedily. When the next sentence would push the
    current chunk past chunk_size, the chunk is closed and the next one is
    seeded with roughly overlap / 6 trailing words of the closed chunk.

    The size limit takes precedence over the overlap: leading seed words are
    dropped until seed + next sentence fits in chunk_size. When the next
    sentence alone nearly fills a chunk, the seed is empty and the two chunks
    share no words.

    Args:
        text: Input string to split.
        chunk_size: Target chunk size in characters (default settings.CHUNK_SIZE).
        overlap: Overlap budget in characters (default settings.CHUNK_OVERLAP).

    Returns:
        List[str]: Chunks in document order. Text without terminal punctuation
        yields a single chunk; a sentence longer than chunk_size is kept whole
        in its own chunk rather than truncated.
    """
    chunk_size = settings.CHUNK_SIZE if chunk_size is None else chunk_size
    overlap = settings.CHUNK_OVERLAP if overlap is None else overlap
    overlap_words = max(0, overlap) // CHARS_PER_WORD

    chunks: List[str] = []
    current = ""
    for sentence in split_sentences(text):
        piece = sentence + "."
        projected = len(current) + 1 + len(piece) if current else len(piece)
        if current and projected > chunk_size:
            chunks.append(current)
            # seed + " " + piece must still fit when the piece itself does
            seed = _overlap_seed(current, overlap_words, chunk_size - len(piece) - 1)
            current = f"{seed} {piece}" if seed else piece
        else:
            current = f"{current} {piece}" if current else piece

    if current.strip():
        chunks.append(current.strip())
    return chunks


def stored_upload_name(original_name: str) -> str:
    """Return a unique file name for an upload, preserving its extension.

    Args:
        original_name: The client-supplied file name.

    Returns:
        str: e.g. 'document-3f2a...e1.pdf'.
    """
    ext = os.path.splitext(original_name or "")[1].lower()
    return f"document-{uuid.uuid4().hex}{ext}"
