"""
LexRAG - IngestionPipeline
===========================
Chunk → embed → persist, for single documents, batches of documents and
whole source directories.

Key design decisions:
    • **Dependency Injection** – receives the ``Chunker``, the
      ``EmbeddingGateway`` and any ``VectorSearchBackend``.
    • **All-or-nothing per document** – every chunk is embedded before
      anything is written.  If one embedding fails the document is
      reported as failed and its previously indexed chunks stay untouched.
    • **Replace on re-ingest** – the new chunk set of a known ``document_id``
      is written first; older chunks are deleted only after that write
      succeeded, so a failed write keeps the previous version searchable.
    • **Concurrency** – directory files are processed in parallel via
      ``ThreadPoolExecutor`` (embedding calls are I/O-bound).
    • **Caching** – MD5-based file hashing skips unchanged files.

Usage:
    from lexrag.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(chunker, gateway, store)
    result   = pipeline.ingest(text, DocumentMetadata(title="Lei 8.666"))
"""

from __future__ import annotations

import hashlib
import json
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from lexrag.config.settings import settings
from lexrag.src.core.chunker import Chunker
from lexrag.src.core.embedding_gateway import EmbeddingGateway
from lexrag.src.core.exceptions import EmbeddingError, IngestionError, LexRAGError, VectorStoreError
from lexrag.src.core.models import BatchIngestResult, DocumentInput, DocumentMetadata, IngestResult
from lexrag.src.database.vector_store import VectorSearchBackend
from lexrag.src.utils.logger import get_logger
from lexrag.src.utils.text_utils import clean_text, extract_metadata_from_filename

logger = get_logger(__name__)

# File extensions the pipeline knows how to read
_SUPPORTED_EXTENSIONS = {".txt", ".md"}


class IngestionPipeline:
    """
    End-to-end document ingestion: chunk → embed → store.

    Parameters
    ----------
    chunker
        ``Chunker`` instance.
    gateway
        ``EmbeddingGateway`` used for batch embedding.
    store
        Vector store receiving the chunks.
    source_dir
        Directory scanned by ``ingest_directory``.  Defaults to ``settings.DATA_RAW_DIR``.
    max_workers
        Number of parallel threads for directory ingestion.
    hash_cache_path
        JSON file remembering file hashes.  Defaults to
        ``settings.DATA_PROCESSED_DIR / "ingestion_hashes.json"``.
    """

    def __init__(self, chunker: Chunker, gateway: EmbeddingGateway, store: VectorSearchBackend, source_dir: Path | None = None, max_workers: int | None = None, hash_cache_path: Path | None = None) -> None:
        self._chunker = chunker
        self._gateway = gateway
        self._store = store
        self._source_dir = source_dir or settings.DATA_RAW_DIR
        self._max_workers = max_workers or settings.MAX_WORKERS
        self._hash_cache_path: Path = hash_cache_path or settings.DATA_PROCESSED_DIR / "ingestion_hashes.json"
        self._hash_cache: dict[str, str] = self._load_hash_cache()

    # ══════════════════════════════════════════════════════════════════
    #  SINGLE DOCUMENT
    # ══════════════════════════════════════════════════════════════════

    def ingest(self, text: str, metadata: DocumentMetadata | None = None, document_id: str | None = None) -> IngestResult:
        """
        Chunk, embed and persist one document.

        A missing *document_id* is generated.  A missing creation time is
        set to now (UTC) so date-range filters apply to every chunk.

        Raises
        ------
        IngestionError
            If the text is empty, embedding fails, or the store write fails.
        """
        doc_id = document_id or uuid.uuid4().hex
        if not text.strip():
            raise IngestionError(doc_id, "Document is empty")

        meta = metadata or DocumentMetadata()
        if meta.created_at is None:
            meta = meta.model_copy(update={"created_at": datetime.now(timezone.utc)})

        t_doc = time.perf_counter()
        chunks = self._chunker.chunk(text, meta)

        try:
            vectors = self._gateway.embed_batch([c.content for c in chunks])
        except EmbeddingError as exc:
            logger.error("[INGEST] Embedding failed for '%s'; nothing written.", doc_id)
            raise IngestionError(doc_id, "Embedding failed; document not indexed", {"cause": str(exc)}) from exc

        try:
            added = self._store.replace_document(doc_id, chunks, vectors)
        except VectorStoreError as exc:
            logger.error("[INGEST] Store write failed for '%s'.", doc_id)
            raise IngestionError(doc_id, "Vector store write failed", {"cause": str(exc)}) from exc

        total_ms = (time.perf_counter() - t_doc) * 1000
        logger.info("[INGEST] Document '%s' → %d chunk(s) in %.1fms.", doc_id, added, total_ms)
        return IngestResult(document_id=doc_id, chunk_count=added)


    def ingest_many(self, documents: list[DocumentInput]) -> BatchIngestResult:
        """
        Ingest each document independently.

        One failing document does not stop the others; its error message
        is collected in ``errors``.
        """
        results: list[IngestResult] = []
        errors: list[str] = []

        for index, document in enumerate(documents):
            try:
                results.append(self.ingest(document.content, document.metadata, document.document_id))
            except IngestionError as exc:
                label = document.metadata.title or exc.document_id
                errors.append(f"Document {index} ({label}): {exc.message}")

        logger.info("[INGEST] Batch complete — %d created, %d failed.", len(results), len(errors))
        return BatchIngestResult(created=len(results), failed=len(errors), errors=tuple(errors), results=tuple(results))


    def delete_document(self, document_id: str) -> int:
        return self._store.delete_document(document_id)

    # ══════════════════════════════════════════════════════════════════
    #  DIRECTORY INGESTION
    # ══════════════════════════════════════════════════════════════════

    def ingest_directory(self, source_dir: Path | None = None) -> dict[str, Any]:
        """
        Ingest every supported file of *source_dir* with concurrency.

        Returns
        -------
        dict
            Execution summary with keys:
            ``total_files``, ``files_processed``, ``files_skipped``,
            ``files_failed``, ``total_chunks``, ``elapsed_seconds``.
        """
        t_start = time.perf_counter()
        source = Path(source_dir or self._source_dir)

        if not source.exists():
            logger.warning("[INGEST] Source directory does not exist: %s", source)
            return self._summary(0, 0, 0, 0, 0, time.perf_counter() - t_start)

        files = sorted(f for f in source.iterdir() if f.is_file() and f.suffix.lower() in _SUPPORTED_EXTENSIONS)
        if not files:
            logger.warning("[INGEST] No supported files found in %s", source)
            return self._summary(0, 0, 0, 0, 0, time.perf_counter() - t_start)

        logger.info("[INGEST] Starting ingestion — %d file(s) found in %s", len(files), source)

        total_chunks = 0
        processed = 0
        skipped = 0
        failed = 0

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            future_to_path = {pool.submit(self._ingest_file, fp): fp for fp in files}

            for future in as_completed(future_to_path):
                filepath = future_to_path[future]
                try:
                    result = future.result()
                except (LexRAGError, OSError):
                    logger.exception("[INGEST] Failed to ingest file: %s", filepath.name)
                    failed += 1
                    continue
                if result is None:
                    skipped += 1
                else:
                    total_chunks += result
                    processed += 1

        self._save_hash_cache()

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] Ingestion complete — %d processed, %d skipped, %d failed, %d chunk(s) in %.2fs.", processed, skipped, failed, total_chunks, elapsed)
        return self._summary(len(files), processed, skipped, failed, total_chunks, elapsed)


    def _ingest_file(self, filepath: Path) -> int | None:
        """
        Ingest one file.  Returns the chunk count, or ``None`` when the
        file is unchanged since the last run.
        """
        file_hash = self._compute_file_hash(filepath)
        if self._hash_cache.get(filepath.name) == file_hash:
            logger.info("[INGEST] CACHE_HIT — Skipping unchanged file: %s", filepath.name)
            return None

        cleaned = clean_text(self._read_file(filepath))
        if not cleaned:
            logger.warning("[INGEST] Skipping empty file: %s", filepath.name)
            self._hash_cache[filepath.name] = file_hash
            return 0

        file_meta = extract_metadata_from_filename(filepath.name)
        metadata = DocumentMetadata(title=file_meta["title"], document_type=file_meta["document_type"], source_url=filepath.resolve().as_uri())

        result = self.ingest(cleaned, metadata, document_id=f"file:{filepath.name}")

        # Update hash cache on success
        self._hash_cache[filepath.name] = file_hash
        return result.chunk_count


    @staticmethod
    def _read_file(filepath: Path) -> str:
        """Read a text file (UTF-8, Latin-1 fallback)."""
        try:
            return filepath.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return filepath.read_text(encoding="latin-1")

    # ══════════════════════════════════════════════════════════════════
    #  MD5 CACHING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _compute_file_hash(filepath: Path) -> str:
        """Return the MD5 hex digest of a file's contents."""
        hasher = hashlib.md5()
        with open(filepath, "rb") as f:
            for block in iter(lambda: f.read(8192), b""):
                hasher.update(block)
        return hasher.hexdigest()

    def _load_hash_cache(self) -> dict[str, str]:
        """Load the hash cache from disk (or return empty dict)."""
        if self._hash_cache_path.exists():
            try:
                return json.loads(self._hash_cache_path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.warning("[INGEST] Corrupt hash cache — starting fresh.")
        return {}

    def _save_hash_cache(self) -> None:
        self._hash_cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._hash_cache_path.write_text(json.dumps(self._hash_cache, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("[INGEST] Hash cache saved to %s", self._hash_cache_path)

    def clear_hash_cache(self) -> None:
        self._hash_cache = {}
        if self._hash_cache_path.exists():
            self._hash_cache_path.unlink()
            logger.warning("[INGEST] Hash cache deleted: %s", self._hash_cache_path)

    # ── Summary helper ─────────────────────────────────────────────────

    @staticmethod
    def _summary(total: int, processed: int, skipped: int, failed: int, chunks: int, elapsed: float) -> dict[str, Any]:
        return {
            "total_files": total,
            "files_processed": processed,
            "files_skipped": skipped,
            "files_failed": failed,
            "total_chunks": chunks,
            "elapsed_seconds": round(elapsed, 2),
        }
