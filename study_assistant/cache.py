"""Caching utilities for query embeddings using Redis.

Provides:
- get_redis: Cached Redis client from REDIS_URL with decode_responses.
- _key_for_text: Stable cache key derived from embedding model + text.
- get_cached_embedding: Fetch a cached vector for a question.
- set_cached_embedding: Store a vector with TTL from settings.CACHE_TTL_SECONDS.

The cache is best-effort: Redis errors are logged and behave like a miss.
"""
import hashlib
import json
import logging
from typing import List, Optional

import redis

from study_assistant.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Return a cached Redis client configured from settings.REDIS_URL.

    Returns:
        redis.Redis: Client with decode_responses=True.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


def _key_for_text(model: str, text: str) -> str:
    """Compute a stable cache key for a (model, text) pair.

    Args:
        model: Embedding model name; vectors from different models never mix.
        text: Text that was embedded.

    Returns:
        str: Namespaced cache key.
    """
    h = hashlib.sha256(f"{model}|{text}".encode("utf-8")).hexdigest()
    return f"study:emb:v1:{h}"


def get_cached_embedding(model: str, text: str) -> Optional[List[float]]:
    """Get a cached embedding for the given text if present.

    Args:
        model: Embedding model name.
        text: Text that was embedded.

    Returns:
        Optional[List[float]]: The vector if found and valid; otherwise None.
    """
    if not settings.EMBEDDING_CACHE_ENABLED:
        return None
    try:
        raw = get_redis().get(_key_for_text(model, text))
    except redis.RedisError as exc:
        logger.warning("Embedding cache read failed: %s", exc)
        return None
    if not raw:
        return None
    try:
        return [float(x) for x in json.loads(raw)]
    except (ValueError, TypeError):
        return None


def set_cached_embedding(model: str, text: str, vector: List[float]) -> None:
    """Store an embedding under the computed cache key with TTL.

    Args:
        model: Embedding model name.
        text: Text that was embedded.
        vector: The embedding to store.
    """
    if not settings.EMBEDDING_CACHE_ENABLED:
        return
    try:
        get_redis().setex(_key_for_text(model, text), settings.CACHE_TTL_SECONDS, json.dumps(vector))
    except redis.RedisError as exc:
        logger.warning("Embedding cache write failed: %s", exc)
