"""Tests for the quality evaluator: aggregate metrics, log buckets, report."""

from datetime import datetime, timezone

import pytest

from lexrag.config.lexicon import ISSUE_GENERIC_ANSWER, ISSUE_LOW_SIMILARITY, ISSUE_NO_RESULTS, ISSUE_SLOW_RETRIEVAL
from lexrag.src.core.exceptions import ConfigurationError, EmbeddingError
from lexrag.src.core.evaluator import QualityEvaluator, aggregate_metrics, analyze_records, calculate_diversity, check_relevance, generate_recommendations, generate_report, summarize_retrieval
from lexrag.src.core.models import ChatLogRecord, Chunk, ComprehensiveEvaluation, EvaluationOptions, LogAnalysis, RAGMetrics

from conftest import FakeLogSource, make_result


class CannedRetriever:
    """Returns a prepared result list per query; raises for unknown queries if asked."""

    def __init__(self, answers, fail_on=None):
        self.answers = answers
        self.fail_on = fail_on
        self.options = []

    def retrieve(self, query, options=None):
        self.options.append(options)
        if query == self.fail_on:
            raise EmbeddingError("model timeout")
        return list(self.answers.get(query, []))


def _log(answer="Resposta completa.", count=3, avg=0.8, ms=120.0, created_at=None):
    metrics = {"retrieval_time_ms": ms, "result_count": count, "avg_similarity": avg, "diversity": 1.0}
    return ChatLogRecord(question="q", answer=answer, context={"retrieval_metrics": metrics}, created_at=created_at)


class TestDiversity:
    def test_fewer_than_two_results(self):
        assert calculate_diversity([]) == 1.0
        assert calculate_diversity([make_result("a", 0.5)]) == 1.0

    def test_fraction_of_distinct_documents(self):
        results = [make_result("a", 0.9, "d1"), make_result("b", 0.8, "d1"), make_result("c", 0.7, "d2"), make_result("d", 0.6, "d3")]

        assert calculate_diversity(results) == pytest.approx(0.75)

    def test_missing_ids_share_one_bucket(self):
        results = [make_result("a", 0.9, None), make_result("b", 0.8, None)]

        assert calculate_diversity(results) == 0.5


class TestRelevanceAndSummary:
    def test_term_coverage(self):
        check = check_relevance("regras de licitação pública", make_result("A licitação segue regras.", 0.6))

        assert check.has_query_terms
        assert check.term_coverage == pytest.approx(2 / 3)
        assert check.score == pytest.approx(0.6 * 0.7 + (2 / 3) * 0.3)

    def test_query_without_long_terms(self):
        check = check_relevance("o que é", make_result("texto", 0.5))

        assert not check.has_query_terms
        assert check.term_coverage == 0.0

    def test_summarize_retrieval(self):
        results = [make_result("a", 0.9, "d1"), make_result("b", 0.5, "d2")]

        metrics = summarize_retrieval(results, 42.0, ["licitação"], "law")

        assert metrics.result_count == 2
        assert metrics.avg_similarity == pytest.approx(0.7)
        assert metrics.diversity == 1.0
        assert metrics.keywords == ("licitação",)
        assert metrics.document_type == "law"

    def test_summarize_empty_retrieval(self):
        metrics = summarize_retrieval([], 5.0)

        assert (metrics.result_count, metrics.avg_similarity) == (0, 0.0)


class TestAggregateMetrics:
    def test_statistics_over_non_empty_queries(self):
        metrics = aggregate_metrics([10.0, 20.0, 30.0, 40.0], [0.9, None, 0.3, 0.6], [3, 0, 1, 2], 0.5)

        assert metrics.total_queries == 4
        assert metrics.average_retrieval_time_ms == pytest.approx(25.0)
        assert metrics.average_similarity == pytest.approx(0.6)
        assert metrics.median_similarity == pytest.approx(0.6)
        assert (metrics.min_similarity, metrics.max_similarity) == (0.3, 0.9)
        assert metrics.success_rate == pytest.approx(0.75)
        assert metrics.average_result_count == pytest.approx(1.5)
        assert metrics.queries_with_no_results == 1
        assert metrics.queries_with_low_confidence == 1

    def test_even_count_median(self):
        metrics = aggregate_metrics([1.0, 1.0], [0.4, 0.8], [1, 1], 0.5)

        assert metrics.median_similarity == pytest.approx(0.6)

    def test_all_queries_empty(self):
        metrics = aggregate_metrics([1.0, 2.0], [None, None], [0, 0], 0.5)

        assert metrics.success_rate == 0.0
        assert metrics.average_similarity == 0.0
        assert metrics.min_similarity == 0.0
        assert metrics.queries_with_no_results == 2

    def test_no_queries(self):
        assert aggregate_metrics([], [], [], 0.5) == RAGMetrics()


class TestEvaluate:
    def test_metrics_from_retriever(self):
        retriever = CannedRetriever({"q1": [make_result("a", 0.9), make_result("b", 0.7)], "q2": [make_result("c", 0.4)]})

        metrics = QualityEvaluator(retriever).evaluate(["q1", "q2", "q3"])

        assert metrics.total_queries == 3
        assert metrics.success_rate == pytest.approx(2 / 3)
        assert metrics.average_similarity == pytest.approx(0.6)
        assert metrics.queries_with_no_results == 1
        assert metrics.queries_with_low_confidence == 1
        assert 0.0 <= metrics.success_rate <= 1.0

    def test_options_are_forwarded(self):
        retriever = CannedRetriever({})

        QualityEvaluator(retriever).evaluate(["q"], EvaluationOptions(document_type="law", similarity_threshold=0.5, top_k=3))

        (options,) = retriever.options
        assert (options.document_type, options.similarity_threshold, options.top_k) == ("law", 0.5, 3)

    def test_retrieval_errors_propagate(self):
        retriever = CannedRetriever({"ok": [make_result("a", 0.9)]}, fail_on="bad")

        with pytest.raises(EmbeddingError):
            QualityEvaluator(retriever).evaluate(["ok", "bad"])

    def test_empty_query_set(self):
        assert QualityEvaluator(CannedRetriever({})).evaluate([]).total_queries == 0

    def test_with_real_engine(self, engine, store, embedder):
        store.add_chunks("d1", [Chunk(content="Regras de licitação.")], [embedder._vector("Regras de licitação.")])

        metrics = QualityEvaluator(engine).evaluate(["licitação", "orçamento"])

        assert metrics.success_rate == pytest.approx(0.5)
        assert metrics.max_similarity > 0.9


class TestLogAnalysis:
    def test_issue_buckets(self):
        records = [
            _log(answer="Sorry, I don't know."),
            _log(count=0, avg=0.0),
            _log(avg=0.2),
            _log(ms=1500.0, avg=0.9),
            _log(avg=0.8),
        ]

        analysis = analyze_records(records)

        assert analysis.total_analyzed == 5
        counts = {b.issue: b.count for b in analysis.common_issues}
        assert counts == {ISSUE_GENERIC_ANSWER: 1, ISSUE_NO_RESULTS: 1, ISSUE_LOW_SIMILARITY: 1, ISSUE_SLOW_RETRIEVAL: 1}
        assert analysis.percentage_of(ISSUE_SLOW_RETRIEVAL) == pytest.approx(20.0)
        assert analysis.average_context_quality == pytest.approx((0.0 + 0.2 + 0.9 + 0.8) / 5)

    def test_generic_answer_counts_only_in_its_bucket(self):
        analysis = analyze_records([_log(answer="Não sei responder.", count=0, avg=0.1, ms=5000.0)])

        assert analysis.percentage_of(ISSUE_GENERIC_ANSWER) == 100.0
        assert analysis.percentage_of(ISSUE_NO_RESULTS) == 0.0
        assert analysis.percentage_of(ISSUE_SLOW_RETRIEVAL) == 0.0
        assert analysis.average_context_quality == 0.0

    def test_buckets_sorted_by_count(self):
        analysis = analyze_records([_log(ms=2000.0), _log(ms=3000.0), _log(count=0, avg=0.0)])

        assert analysis.common_issues[0].issue == ISSUE_SLOW_RETRIEVAL
        assert [b.count for b in analysis.common_issues] == sorted((b.count for b in analysis.common_issues), reverse=True)

    def test_logs_without_metrics_are_counted_but_not_scored(self):
        analysis = analyze_records([ChatLogRecord(question="q", answer="ok"), _log(avg=0.6)])

        assert analysis.total_analyzed == 2
        assert analysis.average_context_quality == pytest.approx(0.3)

    def test_no_logs(self):
        assert analyze_records([]) == LogAnalysis()

    @pytest.mark.asyncio
    async def test_analyze_logs_reads_from_source(self):
        old = _log(created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        recent = _log(count=0, avg=0.0, created_at=datetime(2024, 6, 1, tzinfo=timezone.utc))
        source = FakeLogSource([recent, old])

        analysis = await QualityEvaluator(CannedRetriever({}), source).analyze_logs(sample_size=10, since=datetime(2024, 3, 1, tzinfo=timezone.utc))

        assert analysis.total_analyzed == 1
        assert analysis.percentage_of(ISSUE_NO_RESULTS) == 100.0
        assert source.requests == [(10, datetime(2024, 3, 1, tzinfo=timezone.utc))]

    @pytest.mark.asyncio
    async def test_zero_sample_size_reads_nothing(self):
        source = FakeLogSource([_log()])

        analysis = await QualityEvaluator(CannedRetriever({}), source).analyze_logs(sample_size=0)

        assert source.requests == [(0, None)]
        assert analysis.total_analyzed == 0

    @pytest.mark.asyncio
    async def test_analyze_logs_without_source(self):
        with pytest.raises(ConfigurationError):
            await QualityEvaluator(CannedRetriever({})).analyze_logs()


class TestComprehensiveEvaluation:
    QUERY_SETS = {"legal": ("q1", "q2"), "general": ("q3",)}

    @pytest.mark.asyncio
    async def test_categories_and_overall(self):
        retriever = CannedRetriever({"q1": [make_result("a", 0.9)], "q3": [make_result("b", 0.5)]})
        evaluator = QualityEvaluator(retriever, FakeLogSource([_log(answer="sorry")]))

        evaluation = await evaluator.run_comprehensive_evaluation(self.QUERY_SETS)

        assert set(evaluation.categories) == {"legal", "general"}
        assert evaluation.categories["legal"].success_rate == pytest.approx(0.5)
        assert evaluation.overall.total_queries == 3
        assert evaluation.log_analysis.total_analyzed == 1

    @pytest.mark.asyncio
    async def test_logs_skipped_when_requested(self):
        evaluator = QualityEvaluator(CannedRetriever({}), FakeLogSource([]))

        evaluation = await evaluator.run_comprehensive_evaluation(self.QUERY_SETS, include_logs=False)

        assert evaluation.log_analysis is None

    @pytest.mark.asyncio
    async def test_report_sections(self):
        retriever = CannedRetriever({"q1": [make_result("a", 0.9)]})
        evaluation = await QualityEvaluator(retriever, FakeLogSource([_log()])).run_comprehensive_evaluation(self.QUERY_SETS)

        report = generate_report(evaluation)

        for heading in ("# RAG System Evaluation Report", "## Overall Performance", "## Performance by Category", "### Legal Queries", "### General Queries", "## Log Analysis", "### Common Issues:", "## Recommendations"):
            assert heading in report
        assert "- **Success Rate:** 33.3%" in report


class TestRecommendations:
    def _evaluation(self, log_analysis=None, **overall):
        return ComprehensiveEvaluation(categories={}, overall=RAGMetrics(**overall), log_analysis=log_analysis, generated_at=datetime(2024, 1, 1, tzinfo=timezone.utc))

    def test_healthy_metrics(self):
        recommendations = generate_recommendations(self._evaluation(average_retrieval_time_ms=100.0, average_similarity=0.8, success_rate=0.95))

        assert len(recommendations) == 1
        assert "All metrics look good" in recommendations[0]

    def test_every_problem_is_reported(self):
        logs = analyze_records([_log(answer="sorry"), _log()])
        recommendations = generate_recommendations(self._evaluation(logs, average_retrieval_time_ms=900.0, average_similarity=0.2, success_rate=0.5))

        assert len(recommendations) == 4
