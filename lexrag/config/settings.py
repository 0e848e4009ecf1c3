"""
LexRAG - Centralized Configuration
===================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` and ``MONGO_URI`` are typed as ``SecretStr``.  The raw
  values are never exposed in repr, logs, or tracebacks.
- Both are optional at import time so the retrieval core can run with
  injected collaborators (tests, offline evaluation).  The factories that
  actually need them raise ``ConfigurationError`` when they are missing.

Paths
-----
All filesystem paths are ``Path.resolve()``-d at class level so they
work identically on Windows, WSL, and Linux.

Retrieval tuning
----------------
Chunk bounds, similarity threshold, candidate counts and the hybrid
weights all live here.  ``RetrievalOptions`` and ``EvaluationOptions``
read their defaults from this object.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr | None
        API key for Google AI Studio (Gemini embeddings).
        Access the raw value with ``settings.GOOGLE_API_KEY.get_secret_value()``.
    MONGO_URI : SecretStr | None
        MongoDB connection string for the chat-log collection.
    ENV : Literal["dev", "prod", "test"]
        Environment mode controlling logging verbosity.
    CHUNK_SIZE : int
        Target character count of a sliding-window chunk.
    MIN_CHUNK_SIZE / MAX_CHUNK_SIZE : int
        Bounds applied to structural and paragraph chunks.
    CHUNK_OVERLAP_FRACTION : float
        Fraction of sentence units carried into the next window.
    SIMILARITY_THRESHOLD : float
        Strict lower bound on cosine similarity for retrieval results.
    TOP_K_RESULTS / FINAL_RESULTS : int
        Candidates fetched from the store / results returned to callers.
    VECTOR_WEIGHT / KEYWORD_WEIGHT : float
        Weights of the hybrid score.
    CACHE_ENABLED / CACHE_MAX_SIZE
        Query-embedding cache switch and capacity.
    MAX_WORKERS : int
        Thread pool size for parallel file ingestion.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_RAW_DIR: Path = BASE_DIR / "data" / "raw"
    DATA_PROCESSED_DIR: Path = BASE_DIR / "data" / "processed"
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod", "test"] = "dev"
    LOG_LEVEL: str | None = None

    # ── API Keys ───────────────────────────────────────────────────────
    GOOGLE_API_KEY: SecretStr | None = None

    # ── MongoDB (chat logs) ────────────────────────────────────────────
    MONGO_URI: SecretStr | None = None
    MONGO_DB_NAME: str = "lexrag"
    CHAT_LOG_COLLECTION: str = "chat_logs"

    # ── Chunking ───────────────────────────────────────────────────────
    CHUNK_SIZE: int = 512
    MIN_CHUNK_SIZE: int = 50
    MAX_CHUNK_SIZE: int = 3000
    CHUNK_OVERLAP_FRACTION: float = 0.2

    # ── Embedding Model ────────────────────────────────────────────────
    EMBEDDING_MODEL: str = "gemini-embedding-001"
    EMBED_BATCH_SIZE: int = 64

    # ── Embedding Cache ────────────────────────────────────────────────
    CACHE_ENABLED: bool = True
    CACHE_MAX_SIZE: int = 1000

    # ── Retrieval ──────────────────────────────────────────────────────
    SIMILARITY_THRESHOLD: float = 0.3
    TOP_K_RESULTS: int = 10
    FINAL_RESULTS: int = 4

    # ── Hybrid Scoring ─────────────────────────────────────────────────
    VECTOR_WEIGHT: float = 0.7
    KEYWORD_WEIGHT: float = 0.3
    KEYWORD_MATCH_BOOST: float = 0.1
    KEYWORD_BOOST_CAP: float = 0.3
    MAX_KEYWORDS: int = 5

    # ── Evaluation ─────────────────────────────────────────────────────
    LOW_CONFIDENCE_THRESHOLD: float = 0.5
    LOG_LOW_SIMILARITY_THRESHOLD: float = 0.4
    SLOW_RETRIEVAL_MS: float = 1000.0
    LOG_SAMPLE_SIZE: int = 100

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "document_chunks"

    # ── Concurrency ────────────────────────────────────────────────────
    MAX_WORKERS: int = 4

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("MIN_CHUNK_SIZE", "CHUNK_SIZE", "MAX_CHUNK_SIZE", "TOP_K_RESULTS", "FINAL_RESULTS", "CACHE_MAX_SIZE", "EMBED_BATCH_SIZE", "MAX_KEYWORDS", "LOG_SAMPLE_SIZE")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("CHUNK_OVERLAP_FRACTION")
    @classmethod
    def _overlap_range(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError(f"CHUNK_OVERLAP_FRACTION must be in [0, 1), got {v}")
        return v


    @field_validator("VECTOR_WEIGHT", "KEYWORD_WEIGHT", "KEYWORD_BOOST_CAP")
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"weight must be in [0, 1], got {v}")
        return v


    @field_validator("MAX_WORKERS")
    @classmethod
    def _workers_range(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError(f"MAX_WORKERS must be 1–16, got {v}")
        return v


    @model_validator(mode="after")
    def _chunk_bounds_ordered(self) -> "Settings":
        if not self.MIN_CHUNK_SIZE <= self.CHUNK_SIZE <= self.MAX_CHUNK_SIZE:
            raise ValueError(f"Chunk sizes must satisfy MIN ≤ CHUNK ≤ MAX, got {self.MIN_CHUNK_SIZE} / {self.CHUNK_SIZE} / {self.MAX_CHUNK_SIZE}")
        return self

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from lexrag.config.settings import settings
settings = Settings()
