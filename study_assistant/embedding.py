"""Embedding utilities wrapping an OpenAI-compatible embeddings API.

Provides:
- get_client: Cached OpenAI client pointed at the configured model service.
- embed_text: Embed a single passage; any failure raises EmbeddingUnavailable.
- embed_query: embed_text fronted by the Redis query-embedding cache.

No retries happen here: skip/retry policy belongs to the callers (the ingestion
pipeline skips failed chunks, RAG surfaces the failure).
Models, dimensions and timeouts are configured via study_assistant.config.settings.
"""
import logging
from typing import List

from openai import OpenAI, OpenAIError

from study_assistant.cache import get_cached_embedding, set_cached_embedding
from study_assistant.config import settings
from study_assistant.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

_client: OpenAI | None = None


def get_client() -> OpenAI:
    """Return a cached OpenAI client for the configured model service.

    Returns:
        OpenAI: A singleton-like client with the model timeout and retries disabled.
    """
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.MODEL_TIMEOUT_SECONDS,
            max_retries=0,
        )
    return _client


def embed_text(text: str) -> List[float]:
    """Embed a single passage with the configured embedding model.

    Args:
        text: Passage to embed.

    Returns:
        List[float]: Vector of length settings.EMBEDDING_DIM.

    Raises:
        EmbeddingUnavailable: On transport/API errors, timeouts, an empty
            response, or a vector of the wrong dimension.
    """
    client = get_client()
    try:
        resp = client.embeddings.create(model=settings.EMBEDDING_MODEL, input=[text])
    except OpenAIError as exc:
        logger.error("Embedding request failed (%s): %s", settings.EMBEDDING_MODEL, exc)
        raise EmbeddingUnavailable("Failed to generate embedding") from exc

    if not resp.data:
        raise EmbeddingUnavailable("Embedding service returned no vectors")
    vector = [float(x) for x in resp.data[0].embedding]
    if len(vector) != settings.EMBEDDING_DIM:
        raise EmbeddingUnavailable(
            f"Expected a {settings.EMBEDDING_DIM}-dim embedding, got {len(vector)}"
        )
    return vector


def embed_query(text: str) -> List[float]:
    """Embed a user question, reusing a cached vector when available.

    Args:
        text: The question to embed.

    Returns:
        List[float]: The embedding vector for the question.
    """
    cached = get_cached_embedding(settings.EMBEDDING_MODEL, text)
    if cached is not None:
        return cached
    vector = embed_text(text)
    set_cached_embedding(settings.EMBEDDING_MODEL, text, vector)
    return vector
