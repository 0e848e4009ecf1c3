"""
LexRAG - Database Setup & Ingestion Script
===========================================
CLI entry point that orchestrates:
    1. Load settings and fail fast when ``GOOGLE_API_KEY`` is missing.
    2. Build the engine (embedder, cache, LanceDB store).
    3. Optionally drop the chunk table / hash cache.
    4. Ingest every document in ``DATA_RAW_DIR``.
    5. Print an execution summary with a timing breakdown.

Flags:
    --drop       Drop the LanceDB table before ingesting (cache preserved).
    --purge      Drop table AND clear the hash cache (full re-ingestion).
    --drop-only  Drop the table and exit immediately (no ingestion).
    --source     Ingest another directory instead of ``DATA_RAW_DIR``.

Usage:
    python -m lexrag.scripts.setup_db
    python -m lexrag.scripts.setup_db --purge
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="LexRAG — Initialise the vector database and run document ingestion.")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop the LanceDB table before ingesting (hash cache preserved).")
    parser.add_argument("--purge", action="store_true", default=False, help="Drop the LanceDB table AND clear the hash cache (full clean re-ingestion).")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Drop the LanceDB table and exit (no ingestion).")
    parser.add_argument("--source", type=Path, default=None, help="Directory to ingest (defaults to DATA_RAW_DIR).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from lexrag.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from lexrag.src.core.exceptions import ConfigurationError
    from lexrag.src.core.rag_engine import build_engine
    from lexrag.src.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Settings loaded in %.1fms", settings_ms)
    _print_header(settings)

    # ── 1. Build engine (timed) ────────────────────────────────────────
    t_engine = time.perf_counter()
    try:
        engine = build_engine()
    except ConfigurationError as exc:
        logger.error("Cannot start ingestion: %s", exc)
        sys.exit(1)
    engine_ms = (time.perf_counter() - t_engine) * 1000
    logger.info("Engine initialised in %.1fms", engine_ms)

    store = engine.store
    if args.drop or args.purge or args.drop_only:
        logger.warning("Dropping table '%s' as requested.", settings.LANCEDB_TABLE_NAME)
        store.drop_table()

        if args.purge:
            engine.pipeline.clear_hash_cache()

        if args.drop_only:
            logger.info("--drop-only: Table dropped. Exiting.")
            _print_footer({"total_files": 0, "files_processed": 0, "files_skipped": 0, "files_failed": 0, "total_chunks": 0}, time.perf_counter() - t_start, settings_ms, engine_ms)
            return

    logger.info("VectorStore ready — table '%s' (%d existing rows).", settings.LANCEDB_TABLE_NAME, store.count())

    # ── 2. Ingest source directory ─────────────────────────────────────
    summary = engine.pipeline.ingest_directory(args.source)

    # ── 3. Print execution summary ─────────────────────────────────────
    _print_footer(summary, time.perf_counter() - t_start, settings_ms, engine_ms)
    if summary["files_failed"]:
        sys.exit(2)


# ── Pretty-print helpers ──────────────────────────────────────────────

def _mask(secret: object) -> str:
    if secret is None:
        return "(not set)"
    value = secret.get_secret_value()  # type: ignore[attr-defined]
    return f"****{value[-4:]}" if len(value) > 4 else "****"


def _print_header(settings: object) -> None:
    print()
    print("=" * 60)
    print("  LEXRAG — Vector Database Setup & Ingestion")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                   # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")       # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")          # type: ignore[attr-defined]
    print(f"  Source dir   : {settings.DATA_RAW_DIR}")          # type: ignore[attr-defined]
    print(f"  Chunk size   : {settings.CHUNK_SIZE} chars (min {settings.MIN_CHUNK_SIZE}, max {settings.MAX_CHUNK_SIZE})")  # type: ignore[attr-defined]
    print(f"  Workers      : {settings.MAX_WORKERS}")           # type: ignore[attr-defined]
    print(f"  API Key      : {_mask(settings.GOOGLE_API_KEY)}")  # type: ignore[attr-defined]
    print("=" * 60)
    print()


def _print_footer(summary: dict, elapsed: float, settings_ms: float, engine_ms: float) -> None:
    startup_ms = settings_ms + engine_ms
    processing_s = elapsed - (startup_ms / 1000)

    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Total files scanned  : {summary['total_files']}")
    print(f"  Files ingested       : {summary['files_processed']}")
    print(f"  Files skipped (cache): {summary['files_skipped']}")
    print(f"  Files failed         : {summary['files_failed']}")
    print(f"  Total chunks stored  : {summary['total_chunks']}")
    print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Engine init          : {engine_ms:>8.1f}ms")
    print(f"  Processing time      : {processing_s:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


if __name__ == "__main__":
    main()
