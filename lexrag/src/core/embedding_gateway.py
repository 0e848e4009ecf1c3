"""
LexRAG - Embedding Gateway
===========================
Thin wrapper around an external embedding model.

``embed_one`` serves query-time embeddings and consults the injected
``EmbeddingCache``; ``embed_batch`` serves bulk ingestion and always
bypasses it.  Model failures surface as ``EmbeddingError``; the cache is
only written after a successful call, so a failed or timed-out request
never leaves a partial entry behind.

The model is anything satisfying the ``Embedder`` protocol, which
``GoogleGenerativeAIEmbeddings`` (``langchain-google-genai``) does.

Usage:
    gateway = EmbeddingGateway(create_default_embedder(), EmbeddingCache())
    vector  = gateway.embed_one("O que diz o artigo 5?")
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable

from lexrag.config.settings import settings
from lexrag.src.core.embedding_cache import CacheStats, EmbeddingCache
from lexrag.src.core.exceptions import ConfigurationError, EmbeddingError
from lexrag.src.utils.logger import get_logger
from lexrag.src.utils.text_utils import prepare_embedding_input

logger = get_logger(__name__)


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


def create_default_embedder() -> Embedder:
    """
    Build the Gemini embedding model from settings.

    Raises
    ------
    ConfigurationError
        If ``GOOGLE_API_KEY`` is not configured.
    """
    if settings.GOOGLE_API_KEY is None:
        raise ConfigurationError("GOOGLE_API_KEY")

    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("[EMBED] Embedding model initialised: %s", settings.EMBEDDING_MODEL)
    return embedder


class EmbeddingGateway:
    """
    Single-text and batch embedding with an optional query cache.

    Parameters
    ----------
    embedder : Embedder
        The external embedding model (injected).
    cache
        Query cache.  ``None`` disables caching.
    batch_size
        Texts per ``embed_documents`` call.  Defaults to ``settings.EMBED_BATCH_SIZE``.
    """

    __slots__ = ("_embedder", "_cache", "_batch_size")

    def __init__(self, embedder: Embedder, cache: EmbeddingCache | None = None, batch_size: int | None = None) -> None:
        self._embedder = embedder
        self._cache = cache
        self._batch_size = batch_size or settings.EMBED_BATCH_SIZE


    @property
    def cache(self) -> EmbeddingCache | None:
        return self._cache


    def embed_one(self, text: str) -> list[float]:
        """
        Embed a single query text, consulting the cache first.

        Raises
        ------
        EmbeddingError
            If the model call fails or returns an empty vector.
        """
        if self._cache is not None:
            cached = self._cache.get(text)
            if cached is not None:
                logger.debug("[EMBED] Cache hit for '%.40s'.", text)
                return list(cached)

        prepared = prepare_embedding_input(text)
        t_embed = time.perf_counter()
        try:
            vector = self._embedder.embed_query(prepared)
        except Exception as exc:
            logger.error("[EMBED] Query embedding failed: %s", exc)
            raise EmbeddingError("Query embedding failed", {"error": str(exc)}) from exc

        if not vector:
            raise EmbeddingError("Embedding model returned an empty vector", {"text": text[:80]})

        embed_ms = (time.perf_counter() - t_embed) * 1000
        logger.debug("[EMBED] Query embedded in %.1fms (dim=%d).", embed_ms, len(vector))

        if self._cache is not None:
            self._cache.put(text, vector)
        return [float(v) for v in vector]


    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed many texts, in order, without touching the cache.

        All-or-nothing: the first failing sub-batch aborts the call and no
        vectors are returned.

        Raises
        ------
        EmbeddingError
            If any sub-batch fails or returns the wrong number of vectors.
        """
        if not texts:
            return []

        logger.info("[EMBED] Embedding %d text(s) in batches of %d …", len(texts), self._batch_size)
        vectors: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            batch = texts[i : i + self._batch_size]
            try:
                batch_vectors = self._embedder.embed_documents(batch)
            except Exception as exc:
                logger.error("[EMBED] Batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise EmbeddingError("Batch embedding failed", {"batch_start": i, "batch_size": len(batch), "error": str(exc)}) from exc

            if len(batch_vectors) != len(batch):
                raise EmbeddingError("Embedding model returned a malformed batch", {"batch_start": i, "expected": len(batch), "received": len(batch_vectors)})
            vectors.extend([float(v) for v in vec] for vec in batch_vectors)

        return vectors


    async def aembed_one(self, text: str) -> list[float]:
        """Awaitable ``embed_one``; runs the blocking model call in a worker thread."""
        return await asyncio.to_thread(self.embed_one, text)


    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()


    def cache_stats(self) -> CacheStats | None:
        return self._cache.stats() if self._cache is not None else None
