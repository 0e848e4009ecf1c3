"""
LexRAG - Quality Evaluator
===========================
Offline / monitoring component that measures retrieval quality.

``QualityEvaluator.evaluate``
    Runs a query set through the retrieval engine and aggregates latency,
    similarity statistics, success rate and low-confidence counts.

``QualityEvaluator.analyze_logs``
    Buckets a sample of historical chat logs into issue categories
    (generic "don't know" answer, zero results, low similarity, slow
    retrieval) and averages their context quality.

``run_comprehensive_evaluation`` / ``generate_report``
    Evaluate every canned query category plus their union and a log
    sample, then render a Markdown report with recommendations.

Module-level helpers (``calculate_diversity``, ``check_relevance``,
``summarize_retrieval``) are pure and shared with the conversation layer.
"""

from __future__ import annotations

import asyncio
import statistics
import time
from datetime import datetime, timezone
from typing import Protocol

from lexrag.config.lexicon import GENERIC_ANSWER_MARKERS, ISSUE_GENERIC_ANSWER, ISSUE_LOW_SIMILARITY, ISSUE_NO_RESULTS, ISSUE_SLOW_RETRIEVAL, TEST_QUERIES
from lexrag.config.settings import settings
from lexrag.src.core.exceptions import ConfigurationError
from lexrag.src.core.models import ChatLogRecord, ComprehensiveEvaluation, EvaluationOptions, IssueBucket, LogAnalysis, RAGMetrics, RelevanceCheck, RetrievalMetrics, RetrievalOptions, RetrievalResult
from lexrag.src.database.chat_logs import ChatLogSource
from lexrag.src.utils.logger import get_logger

logger = get_logger(__name__)


class Retriever(Protocol):
    def retrieve(self, query: str, options: RetrievalOptions | None = None) -> list[RetrievalResult]: ...


# ══════════════════════════════════════════════════════════════════════
#  PURE HELPERS
# ══════════════════════════════════════════════════════════════════════


def calculate_diversity(results: list[RetrievalResult]) -> float:
    """
    Fraction of results coming from distinct owning documents.

    Defined as ``1.0`` for fewer than two results.  Results without a
    document id count as one shared ``"unknown"`` document.
    """
    if len(results) < 2:
        return 1.0
    owners = {r.document_id or "unknown" for r in results}
    return len(owners) / len(results)


def check_relevance(query: str, result: RetrievalResult) -> RelevanceCheck:
    """
    Lexical relevance heuristic for one result.

    ``term_coverage`` is the share of query terms longer than three
    characters found in the result text; ``score`` blends it with the
    raw similarity (70 / 30).
    """
    terms = [t for t in query.lower().split() if len(t) > 3]
    text = result.content.lower()
    matched = sum(1 for t in terms if t in text)
    coverage = matched / len(terms) if terms else 0.0
    return RelevanceCheck(has_query_terms=matched > 0, term_coverage=coverage, score=result.similarity * 0.7 + coverage * 0.3)


def summarize_retrieval(results: list[RetrievalResult], elapsed_ms: float, keywords: list[str] | tuple[str, ...] = (), document_type: str | None = None) -> RetrievalMetrics:
    """Build the per-call metrics record stored alongside a chat log."""
    avg = sum(r.similarity for r in results) / len(results) if results else 0.0
    return RetrievalMetrics(retrieval_time_ms=elapsed_ms, result_count=len(results), avg_similarity=avg, diversity=calculate_diversity(results), keywords=tuple(keywords), document_type=document_type)


def is_generic_answer(answer: str) -> bool:
    lowered = answer.lower()
    return any(marker in lowered for marker in GENERIC_ANSWER_MARKERS)


def analyze_records(records: list[ChatLogRecord]) -> LogAnalysis:
    """
    Classify chat logs into issue buckets.

    Generic answers are counted only in their own bucket.  Any other log
    carrying retrieval metrics may land in several buckets and adds
    ``min(avg_similarity, 1)`` to the quality total, which is averaged
    over every analysed log.
    """
    total = len(records)
    if total == 0:
        return LogAnalysis(total_analyzed=0, average_context_quality=0.0, common_issues=())

    counts = {ISSUE_GENERIC_ANSWER: 0, ISSUE_NO_RESULTS: 0, ISSUE_LOW_SIMILARITY: 0, ISSUE_SLOW_RETRIEVAL: 0}
    quality_total = 0.0

    for record in records:
        if is_generic_answer(record.answer):
            counts[ISSUE_GENERIC_ANSWER] += 1
            continue

        metrics = record.retrieval_metrics
        if metrics is None:
            continue

        if metrics.result_count == 0:
            counts[ISSUE_NO_RESULTS] += 1
        if 0 < metrics.avg_similarity < settings.LOG_LOW_SIMILARITY_THRESHOLD:
            counts[ISSUE_LOW_SIMILARITY] += 1
        if metrics.retrieval_time_ms > settings.SLOW_RETRIEVAL_MS:
            counts[ISSUE_SLOW_RETRIEVAL] += 1
        quality_total += min(metrics.avg_similarity, 1.0)

    buckets = sorted((IssueBucket(issue=issue, count=count, percentage=count / total * 100) for issue, count in counts.items()), key=lambda b: b.count, reverse=True)
    return LogAnalysis(total_analyzed=total, average_context_quality=quality_total / total, common_issues=tuple(buckets))


def aggregate_metrics(timings_ms: list[float], per_query_similarity: list[float | None], result_counts: list[int], low_confidence_threshold: float) -> RAGMetrics:
    """
    Aggregate per-query measurements.

    ``per_query_similarity`` holds each query's mean result similarity,
    or ``None`` for a query that returned nothing.
    """
    total = len(timings_ms)
    if total == 0:
        return RAGMetrics()

    scores = [s for s in per_query_similarity if s is not None]
    no_results = total - len(scores)

    return RAGMetrics(
        total_queries=total,
        average_retrieval_time_ms=sum(timings_ms) / total,
        average_similarity=statistics.fmean(scores) if scores else 0.0,
        median_similarity=statistics.median(scores) if scores else 0.0,
        min_similarity=min(scores) if scores else 0.0,
        max_similarity=max(scores) if scores else 0.0,
        success_rate=(total - no_results) / total,
        average_result_count=sum(result_counts) / total,
        queries_with_no_results=no_results,
        queries_with_low_confidence=sum(1 for s in scores if s < low_confidence_threshold),
    )


# ══════════════════════════════════════════════════════════════════════
#  QUALITY EVALUATOR
# ══════════════════════════════════════════════════════════════════════


class QualityEvaluator:
    """
    Measures retrieval quality against canned queries and historical logs.

    Parameters
    ----------
    retriever
        Object exposing ``retrieve(query, options)`` (the ``RetrievalEngine``).
    log_source
        Optional ``ChatLogSource`` (the ``ChatLogRepository``) for log analysis.
    """

    __slots__ = ("_retriever", "_log_source")

    def __init__(self, retriever: Retriever, log_source: ChatLogSource | None = None) -> None:
        self._retriever = retriever
        self._log_source = log_source


    def evaluate(self, queries: list[str] | tuple[str, ...], options: EvaluationOptions | None = None) -> RAGMetrics:
        """
        Run every query once and aggregate the measurements.

        Retrieval errors propagate; a failed query is never counted as a
        query with zero results.
        """
        opts = options or EvaluationOptions()
        retrieval_options = opts.to_retrieval_options()

        timings: list[float] = []
        similarities: list[float | None] = []
        counts: list[int] = []

        for query in queries:
            t_query = time.perf_counter()
            results = self._retriever.retrieve(query, retrieval_options)
            timings.append((time.perf_counter() - t_query) * 1000)
            counts.append(len(results))
            similarities.append(sum(r.similarity for r in results) / len(results) if results else None)

        metrics = aggregate_metrics(timings, similarities, counts, opts.low_confidence_threshold)
        logger.info("[EVAL] %d quer(ies): success=%.0f%%, avg_sim=%.3f, avg_time=%.1fms.", metrics.total_queries, metrics.success_rate * 100, metrics.average_similarity, metrics.average_retrieval_time_ms)
        return metrics


    async def aevaluate(self, queries: list[str] | tuple[str, ...], options: EvaluationOptions | None = None) -> RAGMetrics:
        return await asyncio.to_thread(self.evaluate, queries, options)


    async def analyze_logs(self, sample_size: int | None = None, since: datetime | None = None) -> LogAnalysis:
        """
        Bucket the *sample_size* most recent chat logs (on or after *since*).

        Raises
        ------
        ConfigurationError
            If no log source was configured.
        """
        if self._log_source is None:
            raise ConfigurationError("log_source", "No chat log source configured for log analysis")

        limit = settings.LOG_SAMPLE_SIZE if sample_size is None else sample_size
        records = await self._log_source.fetch_recent(limit, since)
        analysis = analyze_records(records)
        logger.info("[EVAL] Analysed %d log(s): avg quality=%.3f.", analysis.total_analyzed, analysis.average_context_quality)
        return analysis


    async def run_comprehensive_evaluation(self, query_sets: dict[str, tuple[str, ...]] | None = None, options: EvaluationOptions | None = None, include_logs: bool = True) -> ComprehensiveEvaluation:
        """
        Evaluate each category concurrently, then the union of all
        categories, plus a log sample when a log source is available.
        """
        sets = query_sets or TEST_QUERIES
        names = list(sets)

        category_metrics = await asyncio.gather(*(self.aevaluate(sets[name], options) for name in names))
        overall = await self.aevaluate([q for name in names for q in sets[name]], options)

        log_analysis = None
        if include_logs and self._log_source is not None:
            log_analysis = await self.analyze_logs(settings.LOG_SAMPLE_SIZE)

        return ComprehensiveEvaluation(categories=dict(zip(names, category_metrics)), overall=overall, log_analysis=log_analysis, generated_at=datetime.now(timezone.utc))


# ══════════════════════════════════════════════════════════════════════
#  REPORTING
# ══════════════════════════════════════════════════════════════════════


def generate_recommendations(evaluation: ComprehensiveEvaluation) -> list[str]:
    overall = evaluation.overall
    recommendations: list[str] = []

    if overall.average_retrieval_time_ms > 500:
        recommendations.append("⚠️ **Retrieval time is high (>500ms).** Consider adding more indexes or using caching.")
    if overall.average_similarity < 0.4:
        recommendations.append("⚠️ **Low similarity scores.** Consider improving chunking strategy or using better embeddings.")
    if overall.success_rate < 0.8:
        recommendations.append("⚠️ **Low success rate (<80%).** Add more content to knowledge base or lower similarity threshold.")
    if evaluation.log_analysis is not None and evaluation.log_analysis.percentage_of(ISSUE_GENERIC_ANSWER) > 20:
        recommendations.append("⚠️ **High rate of generic answers (>20%).** Improve retrieval relevance or add fallback strategies.")

    if not recommendations:
        recommendations.append("✅ **All metrics look good!** Continue monitoring performance.")
    return recommendations


def generate_report(evaluation: ComprehensiveEvaluation) -> str:
    """Render a ``ComprehensiveEvaluation`` as a Markdown report."""
    overall = evaluation.overall
    lines = [
        "# RAG System Evaluation Report",
        f"Generated: {evaluation.generated_at.isoformat()}",
        "",
        "## Overall Performance",
        f"- **Total Queries Tested:** {overall.total_queries}",
        f"- **Avg Retrieval Time:** {overall.average_retrieval_time_ms:.2f}ms",
        f"- **Avg Similarity Score:** {overall.average_similarity:.3f}",
        f"- **Median Similarity:** {overall.median_similarity:.3f} (min {overall.min_similarity:.3f}, max {overall.max_similarity:.3f})",
        f"- **Success Rate:** {overall.success_rate * 100:.1f}%",
        f"- **Avg Results per Query:** {overall.average_result_count:.1f}",
        f"- **Low-Confidence Queries:** {overall.queries_with_low_confidence}",
        "",
        "## Performance by Category",
    ]

    for name, metrics in evaluation.categories.items():
        lines += [
            "",
            f"### {name.capitalize()} Queries",
            f"- Retrieval Time: {metrics.average_retrieval_time_ms:.2f}ms",
            f"- Similarity: {metrics.average_similarity:.3f}",
            f"- Success Rate: {metrics.success_rate * 100:.1f}%",
        ]

    if evaluation.log_analysis is not None:
        analysis = evaluation.log_analysis
        lines += [
            "",
            f"## Log Analysis (Last {analysis.total_analyzed} Queries)",
            f"- **Analyzed:** {analysis.total_analyzed} queries",
            f"- **Avg Context Quality:** {analysis.average_context_quality:.3f}",
            "",
            "### Common Issues:",
        ]
        lines += [f"- {b.issue}: {b.count} ({b.percentage:.1f}%)" for b in analysis.common_issues]

    lines += ["", "## Recommendations", *generate_recommendations(evaluation), ""]
    return "\n".join(lines)
