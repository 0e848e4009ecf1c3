"""Shared fixtures: deterministic embedder, in-memory vector store, log source."""

import math
import os
import uuid
from datetime import datetime, timezone

os.environ.setdefault("ENV", "test")

import pytest  # noqa: E402

from lexrag.src.core.chunker import Chunker  # noqa: E402
from lexrag.src.core.embedding_cache import EmbeddingCache  # noqa: E402
from lexrag.src.core.embedding_gateway import EmbeddingGateway  # noqa: E402
from lexrag.src.core.models import Chunk, ChatLogRecord, MetadataFilter, ResultMetadata, RetrievalResult  # noqa: E402
from lexrag.src.core.retrieval import RetrievalEngine  # noqa: E402

VOCABULARY = ("licitação", "contrato", "constituição", "servidor", "orçamento", "direito")


class KeywordEmbedder:
    """
    Bag-of-vocabulary embedder.

    Each dimension counts one vocabulary term; a constant last dimension
    keeps every vector non-zero.  Texts sharing terms get high cosine
    similarity, unrelated texts stay near 0.1.
    """

    def __init__(self, fail_on: str | None = None):
        self.fail_on = fail_on
        self.query_calls: list[str] = []
        self.document_calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        lowered = text.lower()
        return [float(lowered.count(term)) for term in VOCABULARY] + [0.1]

    def embed_query(self, text: str) -> list[float]:
        self.query_calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise RuntimeError("embedding service unavailable")
        return self._vector(text)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_calls.append(list(texts))
        if self.fail_on is not None and any(self.fail_on in t for t in texts):
            raise TimeoutError("embedding request timed out")
        return [self._vector(t) for t in texts]


def cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorStore:
    """Pure-Python store honouring the filter / bound / limit / order contract."""

    def __init__(self):
        self.rows: list[dict] = []
        self.search_calls = 0

    def add_chunks(self, document_id: str, chunks: list[Chunk], vectors: list[list[float]], generation: str | None = None) -> int:
        if len(chunks) != len(vectors):
            raise ValueError("length mismatch")
        tag = generation or uuid.uuid4().hex
        for idx, (chunk, vector) in enumerate(zip(chunks, vectors)):
            self.rows.append({"document_id": document_id, "chunk_index": idx, "chunk": chunk, "vector": vector, "generation": tag})
        return len(chunks)

    def replace_document(self, document_id: str, chunks: list[Chunk], vectors: list[list[float]]) -> int:
        generation = uuid.uuid4().hex
        added = self.add_chunks(document_id, chunks, vectors, generation)
        self.rows = [r for r in self.rows if r["document_id"] != document_id or r["generation"] == generation]
        return added

    def delete_document(self, document_id: str) -> int:
        before = len(self.rows)
        self.rows = [r for r in self.rows if r["document_id"] != document_id]
        return before - len(self.rows)

    def count(self) -> int:
        return len(self.rows)

    @staticmethod
    def _matches(meta, filters: MetadataFilter) -> bool:
        if filters.document_type is not None and meta.document_type != filters.document_type:
            return False
        if filters.title_contains and (meta.title is None or filters.title_contains not in meta.title):
            return False
        if filters.date_from is not None and (meta.created_at is None or meta.created_at < filters.date_from):
            return False
        if filters.date_to is not None and (meta.created_at is None or meta.created_at > filters.date_to):
            return False
        return True

    def search(self, query_vector, filters, min_similarity, limit):
        self.search_calls += 1
        results = []
        for row in self.rows:
            meta = row["chunk"].metadata
            if not self._matches(meta, filters):
                continue
            similarity = cosine(query_vector, row["vector"])
            if similarity > min_similarity:
                results.append(RetrievalResult(content=row["chunk"].content, similarity=similarity, metadata=ResultMetadata(document_id=row["document_id"], title=meta.title, document_type=meta.document_type, source_url=meta.source_url, created_at=meta.created_at)))
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:limit]


class StaticStore:
    """Returns a fixed candidate list regardless of the query; never filters."""

    def __init__(self, results: list[RetrievalResult]):
        self.results = results
        self.calls: list[tuple] = []

    def search(self, query_vector, filters, min_similarity, limit):
        self.calls.append((filters, min_similarity, limit))
        return list(self.results)

    def add_chunks(self, document_id, chunks, vectors):
        return len(chunks)

    def replace_document(self, document_id, chunks, vectors):
        return len(chunks)

    def delete_document(self, document_id):
        return 0

    def count(self):
        return len(self.results)


class FailingStore(StaticStore):
    def __init__(self, error: Exception):
        super().__init__([])
        self.error = error

    def search(self, query_vector, filters, min_similarity, limit):
        raise self.error


class FakeLogSource:
    def __init__(self, records: list[ChatLogRecord]):
        self.records = records
        self.requests: list[tuple] = []

    async def fetch_recent(self, limit, since=None):
        self.requests.append((limit, since))
        selected = [r for r in self.records if since is None or (r.created_at is not None and r.created_at >= since)]
        return selected[:limit]


def make_result(content: str, similarity: float, document_id: str | None = "doc-1") -> RetrievalResult:
    return RetrievalResult(content=content, similarity=similarity, metadata=ResultMetadata(document_id=document_id))


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def cache():
    return EmbeddingCache(capacity=16)


@pytest.fixture
def gateway(embedder, cache):
    return EmbeddingGateway(embedder, cache, batch_size=4)


@pytest.fixture
def store():
    return InMemoryVectorStore()


@pytest.fixture
def chunker():
    return Chunker(chunk_size=200, min_chunk_size=10, max_chunk_size=1000, overlap_fraction=0.2)


@pytest.fixture
def engine(gateway, store):
    return RetrievalEngine(gateway, store)


@pytest.fixture
def utc():
    def _make(year, month, day):
        return datetime(year, month, day, tzinfo=timezone.utc)

    return _make
