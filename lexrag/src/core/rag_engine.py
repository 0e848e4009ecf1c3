"""
LexRAG - RAG Engine Facade
===========================
Single entry point consumed by the conversation tool layer and the admin
layer.  Wires the components together:

``Chunker``
    Three-strategy splitter (structural → paragraph → sliding window).
``EmbeddingCache`` / ``EmbeddingGateway``
    FIFO query cache and the wrapper around the embedding model.
``LexVectorStore``
    LanceDB chunk table with filter pushdown and cascading delete.
``RetrievalEngine``
    Threshold + top-k similarity search with optional hybrid rescoring.
``IngestionPipeline``
    All-or-nothing per-document ingestion.
``QualityEvaluator``
    Aggregate metrics over query sets and chat-log samples.

Every collaborator is injected, so tests assemble the engine from fakes.
``build_engine()`` builds the production wiring from ``settings``.

Usage:
    from lexrag.src.core.rag_engine import build_engine
    engine = build_engine()
    engine.ingest(text, DocumentMetadata(title="Lei 8.666", document_type="law"))
    results = engine.retrieve("licitação pública", RetrievalOptions(document_type="law"))
"""

from __future__ import annotations

import time
from datetime import datetime

from lexrag.config.settings import settings
from lexrag.src.core.chunker import Chunker
from lexrag.src.core.embedding_cache import CacheStats, EmbeddingCache
from lexrag.src.core.embedding_gateway import Embedder, EmbeddingGateway, create_default_embedder
from lexrag.src.core.evaluator import QualityEvaluator, summarize_retrieval
from lexrag.src.core.ingestor import IngestionPipeline
from lexrag.src.core.models import BatchIngestResult, DocumentInput, DocumentMetadata, EvaluationOptions, IngestResult, LogAnalysis, RAGMetrics, RetrievalMetrics, RetrievalOptions, RetrievalResult
from lexrag.src.core.retrieval import RetrievalEngine
from lexrag.src.database.chat_logs import ChatLogRepository, ChatLogSource
from lexrag.src.database.vector_store import LexVectorStore, VectorSearchBackend
from lexrag.src.utils.logger import get_logger
from lexrag.src.utils.text_utils import extract_keywords

logger = get_logger(__name__)


class RAGEngine:
    """
    Facade over ingestion, retrieval and evaluation.

    Parameters
    ----------
    embedder
        External embedding model (``Embedder`` protocol).
    store
        Vector store backend.
    cache
        Query-embedding cache.  ``None`` disables caching.
    chunker
        Optional custom ``Chunker``.
    log_source
        Optional chat-log source for ``analyze_logs``.
    """

    __slots__ = ("gateway", "store", "chunker", "retriever", "pipeline", "evaluator")

    def __init__(self, embedder: Embedder, store: VectorSearchBackend, cache: EmbeddingCache | None = None, chunker: Chunker | None = None, log_source: ChatLogSource | None = None) -> None:
        self.gateway = EmbeddingGateway(embedder, cache)
        self.store = store
        self.chunker = chunker or Chunker()
        self.retriever = RetrievalEngine(self.gateway, store)
        self.pipeline = IngestionPipeline(self.chunker, self.gateway, store)
        self.evaluator = QualityEvaluator(self.retriever, log_source)

    # ── Ingestion ──────────────────────────────────────────────────────

    def ingest(self, text: str, metadata: DocumentMetadata | None = None, document_id: str | None = None) -> IngestResult:
        return self.pipeline.ingest(text, metadata, document_id)

    def ingest_many(self, documents: list[DocumentInput]) -> BatchIngestResult:
        return self.pipeline.ingest_many(documents)

    def delete_document(self, document_id: str) -> int:
        return self.pipeline.delete_document(document_id)

    # ── Retrieval ──────────────────────────────────────────────────────

    def retrieve(self, query: str, options: RetrievalOptions | None = None) -> list[RetrievalResult]:
        return self.retriever.retrieve(query, options)

    async def aretrieve(self, query: str, options: RetrievalOptions | None = None) -> list[RetrievalResult]:
        return await self.retriever.aretrieve(query, options)

    async def retrieve_many(self, queries: list[str], options: RetrievalOptions | None = None) -> list[RetrievalResult]:
        return await self.retriever.retrieve_many(queries, options)


    def retrieve_with_metrics(self, query: str, options: RetrievalOptions | None = None) -> tuple[list[RetrievalResult], RetrievalMetrics]:
        """
        ``retrieve`` plus the metrics record the conversation layer stores
        with its chat log.
        """
        opts = options or RetrievalOptions()
        t_start = time.perf_counter()
        results = self.retriever.retrieve(query, opts)
        elapsed_ms = (time.perf_counter() - t_start) * 1000
        keywords = opts.keywords or tuple(extract_keywords(query))
        return results, summarize_retrieval(results, elapsed_ms, keywords, opts.document_type)

    # ── Evaluation ─────────────────────────────────────────────────────

    def evaluate(self, queries: list[str], options: EvaluationOptions | None = None) -> RAGMetrics:
        return self.evaluator.evaluate(queries, options)

    async def analyze_logs(self, sample_size: int | None = None, since: datetime | None = None) -> LogAnalysis:
        return await self.evaluator.analyze_logs(sample_size, since)

    # ── Cache administration ───────────────────────────────────────────

    def cache_stats(self) -> CacheStats | None:
        return self.gateway.cache_stats()

    def clear_cache(self) -> None:
        self.gateway.clear_cache()
        logger.info("[RAG] Embedding cache cleared by administrative request.")


def build_engine(with_chat_logs: bool = False) -> RAGEngine:
    """
    Production wiring: Gemini embeddings, LanceDB store, configured cache.

    Parameters
    ----------
    with_chat_logs
        Attach the MongoDB ``ChatLogRepository`` (requires ``MONGO_URI``).
    """
    embedder = create_default_embedder()
    cache = EmbeddingCache(settings.CACHE_MAX_SIZE) if settings.CACHE_ENABLED else None
    log_source = ChatLogRepository() if with_chat_logs else None
    engine = RAGEngine(embedder, LexVectorStore(), cache=cache, log_source=log_source)
    logger.info("[RAG] Engine ready (cache=%s, chat_logs=%s).", "on" if cache else "off", with_chat_logs)
    return engine
