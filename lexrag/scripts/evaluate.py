"""
LexRAG - Retrieval Evaluation Script
=====================================
Runs the canned query categories (and optionally a chat-log sample)
through the engine and prints the Markdown evaluation report.

Usage:
    python -m lexrag.scripts.evaluate
    python -m lexrag.scripts.evaluate --category legal --skip-logs
    python -m lexrag.scripts.evaluate --document-type law --output report.md
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from lexrag.config.lexicon import TEST_QUERIES  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="evaluate", description="LexRAG — Evaluate retrieval quality and print a Markdown report.")
    parser.add_argument("--category", action="append", choices=sorted(TEST_QUERIES), help="Restrict to a query category (repeatable).")
    parser.add_argument("--document-type", default=None, help="Only retrieve chunks of this document type.")
    parser.add_argument("--threshold", type=float, default=None, help="Override the similarity threshold.")
    parser.add_argument("--skip-logs", action="store_true", default=False, help="Do not analyse chat logs (no MongoDB needed).")
    parser.add_argument("--output", type=Path, default=None, help="Also write the report to this file.")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> str:
    from lexrag.src.core.evaluator import generate_report
    from lexrag.src.core.models import EvaluationOptions
    from lexrag.src.core.rag_engine import build_engine

    engine = build_engine(with_chat_logs=not args.skip_logs)

    query_sets = {name: TEST_QUERIES[name] for name in (args.category or TEST_QUERIES)}
    overrides = {"document_type": args.document_type}
    if args.threshold is not None:
        overrides["similarity_threshold"] = args.threshold
    options = EvaluationOptions(**overrides)

    evaluation = await engine.evaluator.run_comprehensive_evaluation(query_sets, options, include_logs=not args.skip_logs)
    return generate_report(evaluation)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    from lexrag.src.core.exceptions import LexRAGError
    from lexrag.src.utils.logger import get_logger

    logger = get_logger(__name__)
    try:
        report = asyncio.run(_run(args))
    except LexRAGError as exc:
        logger.error("Evaluation aborted: %s", exc)
        sys.exit(1)

    print(report)
    if args.output:
        args.output.write_text(report, encoding="utf-8")
        logger.info("Report written to %s", args.output)


if __name__ == "__main__":
    main()
