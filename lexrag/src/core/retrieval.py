"""
LexRAG - Retrieval Engine
==========================
Turns a natural-language query into a ranked list of chunks.

Flow of ``retrieve``:
    1. Embed the query through the ``EmbeddingGateway`` (cache-checked).
    2. Delegate cosine search to the vector store, pushing the metadata
       filters down and asking for ``top_k`` rows above the threshold.
    3. Keep candidates with similarity strictly above the threshold,
       ordered by descending similarity, at most ``top_k``.
    4. Optionally rescore with the hybrid formula::

           combined = similarity * VECTOR_WEIGHT
                      + min(0.1 * occurrences, BOOST_CAP) * KEYWORD_WEIGHT

       and re-sort by ``combined``.
    5. Truncate to ``final_results``.

The engine holds no per-call state, so independent calls may run
concurrently (``aretrieve`` / ``retrieve_many``).  Gateway and store
failures propagate unchanged; an empty list always means "nothing
cleared the threshold", never "something went wrong".
"""

from __future__ import annotations

import asyncio
import time

from lexrag.config.settings import settings
from lexrag.src.core.embedding_gateway import EmbeddingGateway
from lexrag.src.core.models import RetrievalOptions, RetrievalResult
from lexrag.src.database.vector_store import VectorSearchBackend
from lexrag.src.utils.logger import get_logger
from lexrag.src.utils.text_utils import count_occurrences, extract_keywords

logger = get_logger(__name__)


class RetrievalEngine:
    """
    Metadata-filtered similarity search with optional hybrid rescoring.

    Parameters
    ----------
    gateway
        ``EmbeddingGateway`` used for query embeddings.
    store
        Any ``VectorSearchBackend`` (``LexVectorStore`` in production).
    vector_weight / keyword_weight
        Hybrid weights.  Default to ``settings.VECTOR_WEIGHT`` / ``settings.KEYWORD_WEIGHT``.
    match_boost
        Boost per keyword occurrence.  Defaults to ``settings.KEYWORD_MATCH_BOOST``.
    boost_cap
        Ceiling of the keyword boost.  Defaults to ``settings.KEYWORD_BOOST_CAP``.
    """

    __slots__ = ("_gateway", "_store", "vector_weight", "keyword_weight", "match_boost", "boost_cap")

    def __init__(self, gateway: EmbeddingGateway, store: VectorSearchBackend, vector_weight: float | None = None, keyword_weight: float | None = None, match_boost: float | None = None, boost_cap: float | None = None) -> None:
        self._gateway = gateway
        self._store = store
        self.vector_weight = vector_weight if vector_weight is not None else settings.VECTOR_WEIGHT
        self.keyword_weight = keyword_weight if keyword_weight is not None else settings.KEYWORD_WEIGHT
        self.match_boost = match_boost if match_boost is not None else settings.KEYWORD_MATCH_BOOST
        self.boost_cap = boost_cap if boost_cap is not None else settings.KEYWORD_BOOST_CAP

    # ══════════════════════════════════════════════════════════════════
    #  SYNCHRONOUS RETRIEVAL
    # ══════════════════════════════════════════════════════════════════

    def retrieve(self, query: str, options: RetrievalOptions | None = None) -> list[RetrievalResult]:
        """
        Rank stored chunks against *query*.

        Returns
        -------
        list[RetrievalResult]
            At most ``options.final_results`` results, non-increasing in
            ``active_score``, each with ``similarity > options.similarity_threshold``.

        Raises
        ------
        EmbeddingError
            If the query could not be embedded.
        VectorStoreError
            If the similarity search failed.
        """
        opts = options or RetrievalOptions()
        t_start = time.perf_counter()

        query_vector = self._gateway.embed_one(query)

        t_search = time.perf_counter()
        raw = self._store.search(query_vector, opts.metadata_filter, opts.similarity_threshold, opts.top_k)
        search_ms = (time.perf_counter() - t_search) * 1000

        candidates = sorted((r for r in raw if r.similarity > opts.similarity_threshold), key=lambda r: r.similarity, reverse=True)[: opts.top_k]

        if opts.use_keyword_boost:
            keywords = opts.keywords or tuple(extract_keywords(query))
            if keywords:
                candidates = self.apply_keyword_boost(candidates, keywords)
            else:
                logger.debug("[RETRIEVE] Hybrid requested but no keywords available — vector order kept.")

        results = candidates[: opts.final_results]

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RETRIEVE] '%.50s' → %d candidate(s), %d returned (search=%.1fms, total=%.1fms).", query, len(candidates), len(results), search_ms, total_ms)
        return results


    def apply_keyword_boost(self, candidates: list[RetrievalResult], keywords: list[str] | tuple[str, ...]) -> list[RetrievalResult]:
        """
        Attach the hybrid score to every candidate and re-sort by it.

        Ties keep their vector order (stable sort).
        """
        rescored = [c.model_copy(update={"score": self.hybrid_score(c.similarity, count_occurrences(c.content, keywords))}) for c in candidates]
        rescored.sort(key=lambda r: r.active_score, reverse=True)
        logger.debug("[RETRIEVE] Hybrid rescoring with keywords=%s.", list(keywords))
        return rescored


    def hybrid_score(self, similarity: float, occurrences: int) -> float:
        boost = min(self.match_boost * occurrences, self.boost_cap)
        return similarity * self.vector_weight + boost * self.keyword_weight

    # ══════════════════════════════════════════════════════════════════
    #  CONCURRENT RETRIEVAL
    # ══════════════════════════════════════════════════════════════════

    async def aretrieve(self, query: str, options: RetrievalOptions | None = None) -> list[RetrievalResult]:
        """Awaitable ``retrieve``; the blocking I/O runs in a worker thread."""
        return await asyncio.to_thread(self.retrieve, query, options)


    async def retrieve_many(self, queries: list[str], options: RetrievalOptions | None = None) -> list[RetrievalResult]:
        """
        Run one retrieval per query concurrently and merge the results.

        Duplicates (same content) keep the copy with the highest active
        score.  The merged list is ordered by active score, descending.
        The first failing retrieval propagates its error.
        """
        if not queries:
            return []

        batches = await asyncio.gather(*(self.aretrieve(q, options) for q in queries))

        best: dict[str, RetrievalResult] = {}
        for result in (r for batch in batches for r in batch):
            current = best.get(result.content)
            if current is None or result.active_score > current.active_score:
                best[result.content] = result

        merged = sorted(best.values(), key=lambda r: r.active_score, reverse=True)
        logger.info("[RETRIEVE] %d sub-quer(ies) → %d unique result(s).", len(queries), len(merged))
        return merged
