"""
LexRAG - LexVectorStore
========================
OOP wrapper around LanceDB providing the vector-store contract the
retrieval engine and the ingestion pipeline rely on:

  • Chunk insertion scoped to an owning document (vector + text +
    denormalised document metadata for filter pushdown)
  • Cascading delete of every chunk of a document
  • Document replacement that writes the new chunk generation before
    deleting the old one
  • Cosine similarity search with a metadata pre-filter, a strict
    similarity lower bound and a result limit, ordered by descending
    similarity

Design decisions:
  • **Singleton DB connection** — ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per path to avoid file-lock issues.
  • **Lazy table** — the table is created on first insert, when the
    embedding dimension is known, so the vector column is fixed-size.
  • **Epoch timestamps** — ``created_at`` is stored as float seconds so
    date-range filters are plain numeric comparisons.

Usage:
    from lexrag.src.database.vector_store import LexVectorStore
    store = LexVectorStore()
    store.add_chunks("doc-1", chunks, vectors)
    results = store.search(query_vector, MetadataFilter(document_type="law"), 0.3, 10)
"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import lancedb
import pyarrow as pa

from lexrag.config.settings import settings
from lexrag.src.core.exceptions import VectorStoreError
from lexrag.src.core.models import Chunk, MetadataFilter, ResultMetadata, RetrievalResult
from lexrag.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
ChunkRecord = dict[str, str | int | float | list[float] | None]


# ── Vector Search Backend Protocol ────────────────────────────────────

@runtime_checkable
class VectorSearchBackend(Protocol):
    """Structural type of the store consumed by retrieval and ingestion."""

    def add_chunks(self, document_id: str, chunks: list[Chunk], vectors: list[list[float]]) -> int: ...

    def delete_document(self, document_id: str) -> int: ...

    def replace_document(self, document_id: str, chunks: list[Chunk], vectors: list[list[float]]) -> int: ...

    def search(self, query_vector: list[float], filters: MetadataFilter, min_similarity: float, limit: int) -> list[RetrievalResult]: ...

    def count(self) -> int: ...


# ── LanceDB Table Schema ──────────────────────────────────────────────

def build_schema(dimension: int) -> pa.Schema:
    """Chunk table schema with a fixed-size ``float32`` vector column."""
    return pa.schema([
        pa.field("vector", pa.list_(pa.float32(), dimension)),
        pa.field("text", pa.utf8()),
        pa.field("document_id", pa.utf8()),
        pa.field("chunk_index", pa.int32()),
        pa.field("title", pa.utf8()),
        pa.field("document_type", pa.utf8()),
        pa.field("source_url", pa.utf8()),
        pa.field("created_at", pa.float64()),
        pa.field("generation", pa.utf8()),
    ])


# ── Connection Cache ──────────────────────────────────────────────────
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Return a **singleton** ``lancedb.DBConnection`` for *db_path*.

    Thread-safe via ``_DB_LOCK``.
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("[STORE] Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


# ── Filter helpers ────────────────────────────────────────────────────

def _quote(value: str) -> str:
    """SQL string literal with embedded single quotes doubled."""
    return "'" + value.replace("'", "''") + "'"


def _escape_like(value: str) -> str:
    """Escape ``LIKE`` wildcards so *value* matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def build_where_clause(filters: MetadataFilter) -> str | None:
    """
    Translate a ``MetadataFilter`` into a LanceDB SQL predicate.

    Returns ``None`` when the filter does not constrain anything.

    Examples::

        MetadataFilter(document_type="law", title_contains="Licit")
            → "document_type = 'law' AND title LIKE '%Licit%'"
    """
    clauses: list[str] = []
    if filters.document_type is not None:
        clauses.append(f"document_type = {_quote(filters.document_type)}")
    if filters.title_contains:
        clauses.append(f"title LIKE {_quote('%' + _escape_like(filters.title_contains) + '%')}")
    if filters.date_from is not None:
        clauses.append(f"created_at >= {_to_epoch(filters.date_from)!r}")
    if filters.date_to is not None:
        clauses.append(f"created_at <= {_to_epoch(filters.date_to)!r}")
    return " AND ".join(clauses) if clauses else None


class LexVectorStore:
    """
    High-level abstraction over the LanceDB chunk table.

    Parameters
    ----------
    db_path
        Override the database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Override the table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    """

    __slots__ = ("_db_path", "_table_name", "_write_lock", "db", "table")

    def __init__(self, db_path: str | None = None, table_name: str | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._write_lock = threading.Lock()
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._connect()


    def _connect(self) -> None:
        """Open (or re-use) the connection and the table if it already exists."""
        try:
            self.db = _get_connection(self._db_path)
            if self._table_name in self.db.table_names():
                self.table = self.db.open_table(self._table_name)
                logger.info("[STORE] Opened existing table '%s' (%d rows).", self._table_name, self.table.count_rows())
            else:
                logger.info("[STORE] Table '%s' will be created on first insert.", self._table_name)
        except OSError as exc:
            logger.error("[STORE] LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise VectorStoreError("Could not open LanceDB", {"path": self._db_path, "error": str(exc)}) from exc

    # ══════════════════════════════════════════════════════════════════
    #  WRITES
    # ══════════════════════════════════════════════════════════════════

    def add_chunks(self, document_id: str, chunks: list[Chunk], vectors: list[list[float]], generation: str | None = None) -> int:
        """
        Persist *chunks* with their *vectors* under *document_id*.

        Every row of one call shares a *generation* tag (random when not
        given), which ``replace_document`` uses to tell old rows from new.

        Returns
        -------
        int
            Number of rows added.

        Raises
        ------
        ValueError
            If ``chunks`` and ``vectors`` have mismatched lengths.
        VectorStoreError
            If the write fails.
        """
        if len(chunks) != len(vectors):
            raise ValueError(f"Length mismatch: {len(chunks)} chunks vs {len(vectors)} vectors.")
        if not chunks:
            return 0

        tag = generation or uuid.uuid4().hex
        records: list[ChunkRecord] = [
            {
                "vector": [float(v) for v in vector],
                "text": chunk.content,
                "document_id": document_id,
                "chunk_index": idx,
                "title": chunk.metadata.title,
                "document_type": chunk.metadata.document_type,
                "source_url": chunk.metadata.source_url,
                "created_at": _to_epoch(chunk.metadata.created_at) if chunk.metadata.created_at else None,
                "generation": tag,
            }
            for idx, (chunk, vector) in enumerate(zip(chunks, vectors))
        ]

        try:
            with self._write_lock:
                table = self._ensure_table(len(vectors[0]))
                table.add(records)
        except (OSError, ValueError, RuntimeError) as exc:
            logger.error("[STORE] Failed to write %d record(s) for '%s': %s", len(records), document_id, exc)
            raise VectorStoreError("Failed to write chunks", {"document_id": document_id, "error": str(exc)}) from exc

        logger.info("[STORE] Added %d chunk(s) for document '%s'.", len(records), document_id)
        return len(records)


    def delete_document(self, document_id: str) -> int:
        """Delete every chunk of *document_id*.  Returns the number removed."""
        removed = self._delete_where(f"document_id = {_quote(document_id)}", document_id)
        if removed:
            logger.info("[STORE] Deleted %d chunk(s) of document '%s'.", removed, document_id)
        return removed


    def replace_document(self, document_id: str, chunks: list[Chunk], vectors: list[list[float]]) -> int:
        """
        Swap the indexed chunks of *document_id* for a new set.

        The new rows are written first under a fresh generation tag; only
        then are rows of older generations deleted.  A failed write leaves
        the previous version untouched.  If the cleanup fails, the new rows
        are removed again and the error propagates.

        Returns
        -------
        int
            Number of rows added.
        """
        generation = uuid.uuid4().hex
        added = self.add_chunks(document_id, chunks, vectors, generation)

        doc_clause = f"document_id = {_quote(document_id)}"
        stale = f"{doc_clause} AND (generation IS NULL OR generation != {_quote(generation)})"
        try:
            removed = self._delete_where(stale, document_id)
        except VectorStoreError:
            logger.error("[STORE] Cleanup of old chunks failed for '%s'; rolling back new generation.", document_id)
            self._delete_where(f"{doc_clause} AND generation = {_quote(generation)}", document_id)
            raise

        logger.info("[STORE] Replaced document '%s': %d chunk(s) in, %d out.", document_id, added, removed)
        return added


    def _delete_where(self, predicate: str, document_id: str) -> int:
        if self.table is None:
            return 0
        try:
            with self._write_lock:
                before = self.table.count_rows(predicate)
                if before:
                    self.table.delete(predicate)
        except (OSError, ValueError, RuntimeError) as exc:
            raise VectorStoreError("Failed to delete document chunks", {"document_id": document_id, "error": str(exc)}) from exc
        return before


    def _ensure_table(self, dimension: int) -> lancedb.table.Table:
        if self.table is None:
            assert self.db is not None
            self.table = self.db.create_table(self._table_name, schema=build_schema(dimension))
            logger.info("[STORE] Created table '%s' (dim=%d).", self._table_name, dimension)
        return self.table

    # ══════════════════════════════════════════════════════════════════
    #  SEARCH
    # ══════════════════════════════════════════════════════════════════

    def search(self, query_vector: list[float], filters: MetadataFilter, min_similarity: float, limit: int) -> list[RetrievalResult]:
        """
        Cosine similarity search with metadata pre-filtering.

        Parameters
        ----------
        query_vector
            Embedded query.
        filters
            Conjunction of metadata predicates, applied before ranking.
        min_similarity
            Strict lower bound; rows at or below it are excluded.
        limit
            Maximum number of rows returned.

        Returns
        -------
        list[RetrievalResult]
            Ordered by descending similarity.  Empty when the table does
            not exist yet or nothing clears the bound.

        Raises
        ------
        VectorStoreError
            If the query fails.
        """
        if self.table is None:
            return []

        where = build_where_clause(filters)
        try:
            if self.table.count_rows() == 0:
                return []
            query = self.table.search(query_vector).distance_type("cosine").limit(limit)
            if where:
                query = query.where(where, prefilter=True)
            rows = query.to_list()
        except (OSError, ValueError, RuntimeError) as exc:
            logger.error("[STORE] Search failed (filter=%s): %s", where, exc)
            raise VectorStoreError("Vector search failed", {"filter": where, "error": str(exc)}) from exc

        results = [self._to_result(row) for row in rows]
        results = [r for r in results if r.similarity > min_similarity]
        results.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug("[STORE] Search: %d row(s), %d above %.2f (filter=%s).", len(rows), len(results), min_similarity, where)
        return results[:limit]


    @staticmethod
    def _to_result(row: dict) -> RetrievalResult:
        created = row.get("created_at")
        return RetrievalResult(
            content=str(row.get("text", "")),
            similarity=1.0 - float(row.get("_distance", 1.0)),
            metadata=ResultMetadata(
                document_id=row.get("document_id"),
                title=row.get("title"),
                document_type=row.get("document_type"),
                source_url=row.get("source_url"),
                created_at=datetime.fromtimestamp(created, tz=timezone.utc) if created is not None else None,
            ),
        )

    # ══════════════════════════════════════════════════════════════════
    #  ADMIN
    # ══════════════════════════════════════════════════════════════════

    def count(self) -> int:
        """Return the total number of rows in the table."""
        if self.table is None:
            return 0
        return self.table.count_rows()


    def document_counts(self) -> dict[str, int]:
        """Chunk count per document id."""
        if self.table is None or self.table.count_rows() == 0:
            return {}
        grouped = self.table.to_arrow().group_by("document_id").aggregate([("chunk_index", "count")])
        return dict(zip(grouped.column("document_id").to_pylist(), grouped.column("chunk_index_count").to_pylist()))


    def drop_table(self) -> None:
        """Drop the chunk table (re-ingestion / tests)."""
        if self.db is None:
            logger.warning("[STORE] No database connection; nothing to drop.")
            return
        if self._table_name not in self.db.table_names():
            logger.warning("[STORE] Table '%s' does not exist — nothing to drop.", self._table_name)
            self.table = None
            return
        try:
            self.db.drop_table(self._table_name)
        except OSError as exc:
            logger.error("[STORE] Filesystem error dropping table '%s': %s", self._table_name, exc)
            raise VectorStoreError("Failed to drop table", {"table": self._table_name, "error": str(exc)}) from exc
        self.table = None
        logger.info("[STORE] Dropped table '%s'.", self._table_name)


    def __repr__(self) -> str:
        return f"LexVectorStore(db='{self._db_path}', table='{self._table_name}', rows={self.count()})"
