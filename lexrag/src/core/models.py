"""
LexRAG - Data Models
=====================
Immutable pydantic records exchanged between the chunker, the retrieval
engine, the evaluator and the callers of the engine.

Option records (``RetrievalOptions``, ``EvaluationOptions``) take their
defaults from ``settings`` so a bare ``RetrievalOptions()`` reproduces
the configured behaviour.  All models are frozen; derive variants with
``model_copy(update=...)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lexrag.config.settings import settings

_FROZEN = ConfigDict(frozen=True, extra="forbid")


# ══════════════════════════════════════════════════════════════════════
#  DOCUMENTS & CHUNKS
# ══════════════════════════════════════════════════════════════════════


class DocumentMetadata(BaseModel):
    """Owning-document metadata copied onto every chunk for filter pushdown."""

    model_config = _FROZEN

    title: str | None = None
    document_type: str | None = None
    source_url: str | None = None
    created_at: datetime | None = None


class Chunk(BaseModel):
    """One bounded text segment produced by the chunker."""

    model_config = _FROZEN

    content: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)


class DocumentInput(BaseModel):
    """One document handed to ``ingest_many``."""

    model_config = _FROZEN

    content: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    document_id: str | None = None


class IngestResult(BaseModel):
    model_config = _FROZEN

    document_id: str
    chunk_count: int


class BatchIngestResult(BaseModel):
    """Outcome of ``ingest_many``: per-document success and failure counts."""

    model_config = _FROZEN

    created: int = 0
    failed: int = 0
    errors: tuple[str, ...] = ()
    results: tuple[IngestResult, ...] = ()


# ══════════════════════════════════════════════════════════════════════
#  RETRIEVAL
# ══════════════════════════════════════════════════════════════════════


class MetadataFilter(BaseModel):
    """
    Conjunction of metadata predicates pushed down to the vector store.

    ``document_type`` is an exact match, ``title_contains`` a substring
    match, ``date_from`` / ``date_to`` an inclusive range on the owning
    document's creation time.  Unset fields do not constrain.
    """

    model_config = _FROZEN

    document_type: str | None = None
    title_contains: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return self.document_type is None and not self.title_contains and self.date_from is None and self.date_to is None


class RetrievalOptions(BaseModel):
    """
    Options of a single ``retrieve`` call.

    ``final_results`` larger than ``top_k`` is allowed; the result is then
    simply limited by ``top_k``.
    """

    model_config = _FROZEN

    document_type: str | None = None
    title_contains: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    similarity_threshold: float = Field(default_factory=lambda: settings.SIMILARITY_THRESHOLD, ge=-1.0, le=1.0)
    top_k: int = Field(default_factory=lambda: settings.TOP_K_RESULTS, ge=1)
    final_results: int = Field(default_factory=lambda: settings.FINAL_RESULTS, ge=1)
    use_keyword_boost: bool = False
    keywords: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _date_range_ordered(self) -> "RetrievalOptions":
        if self.date_from is not None and self.date_to is not None and self.date_from > self.date_to:
            raise ValueError("date_from must not be later than date_to")
        return self

    @property
    def metadata_filter(self) -> MetadataFilter:
        return MetadataFilter(document_type=self.document_type, title_contains=self.title_contains, date_from=self.date_from, date_to=self.date_to)


class ResultMetadata(BaseModel):
    model_config = _FROZEN

    document_id: str | None = None
    title: str | None = None
    document_type: str | None = None
    source_url: str | None = None
    created_at: datetime | None = None


class RetrievalResult(BaseModel):
    """
    One ranked chunk.

    ``similarity`` is the raw cosine similarity from the vector store.
    ``score`` is set only when hybrid rescoring ran for this call.
    """

    model_config = _FROZEN

    content: str
    similarity: float
    metadata: ResultMetadata | None = None
    score: float | None = None

    @property
    def active_score(self) -> float:
        """The value results are ordered by: hybrid score if present, else similarity."""
        return self.score if self.score is not None else self.similarity

    @property
    def document_id(self) -> str | None:
        return self.metadata.document_id if self.metadata else None


class RetrievalMetrics(BaseModel):
    """Per-call retrieval summary stored in chat logs and read back by log analysis."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    retrieval_time_ms: float
    result_count: int
    avg_similarity: float
    diversity: float = 1.0
    keywords: tuple[str, ...] = ()
    document_type: str | None = None


# ══════════════════════════════════════════════════════════════════════
#  EVALUATION
# ══════════════════════════════════════════════════════════════════════


class EvaluationOptions(BaseModel):
    model_config = _FROZEN

    document_type: str | None = None
    similarity_threshold: float = Field(default_factory=lambda: settings.SIMILARITY_THRESHOLD, ge=-1.0, le=1.0)
    top_k: int = Field(default_factory=lambda: settings.TOP_K_RESULTS, ge=1)
    final_results: int = Field(default_factory=lambda: settings.FINAL_RESULTS, ge=1)
    low_confidence_threshold: float = Field(default_factory=lambda: settings.LOW_CONFIDENCE_THRESHOLD)

    def to_retrieval_options(self) -> RetrievalOptions:
        return RetrievalOptions(document_type=self.document_type, similarity_threshold=self.similarity_threshold, top_k=self.top_k, final_results=self.final_results)


class RAGMetrics(BaseModel):
    """
    Aggregate quality metrics over a query set.

    Similarity statistics cover only queries that returned at least one
    result and are ``0.0`` when none did.  ``success_rate`` is a fraction
    in ``[0, 1]``.
    """

    model_config = _FROZEN

    total_queries: int = 0
    average_retrieval_time_ms: float = 0.0
    average_similarity: float = 0.0
    median_similarity: float = 0.0
    min_similarity: float = 0.0
    max_similarity: float = 0.0
    success_rate: float = 0.0
    average_result_count: float = 0.0
    queries_with_no_results: int = 0
    queries_with_low_confidence: int = 0


class IssueBucket(BaseModel):
    model_config = _FROZEN

    issue: str
    count: int
    percentage: float


class LogAnalysis(BaseModel):
    model_config = _FROZEN

    total_analyzed: int = 0
    average_context_quality: float = 0.0
    common_issues: tuple[IssueBucket, ...] = ()

    def percentage_of(self, issue: str) -> float:
        for bucket in self.common_issues:
            if bucket.issue == issue:
                return bucket.percentage
        return 0.0


class RelevanceCheck(BaseModel):
    model_config = _FROZEN

    has_query_terms: bool
    term_coverage: float
    score: float


class ComprehensiveEvaluation(BaseModel):
    model_config = _FROZEN

    categories: dict[str, RAGMetrics]
    overall: RAGMetrics
    log_analysis: LogAnalysis | None = None
    generated_at: datetime


# ══════════════════════════════════════════════════════════════════════
#  CHAT LOGS
# ══════════════════════════════════════════════════════════════════════


class ChatLogRecord(BaseModel):
    """A stored question/answer exchange as read back from the log store."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    question: str
    answer: str
    context: dict[str, Any] = Field(default_factory=dict)
    model: str | None = None
    user_id: str | None = None
    created_at: datetime | None = None

    @property
    def retrieval_metrics(self) -> RetrievalMetrics | None:
        raw = self.context.get("retrieval_metrics")
        if not isinstance(raw, dict):
            return None
        return RetrievalMetrics.model_validate(raw)
