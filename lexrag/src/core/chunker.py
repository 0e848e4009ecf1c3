"""
LexRAG - Chunker
=================
Splits raw document text into bounded, semantically coherent segments.

Three strategies are tried in priority order and exactly one of them
produces the returned sequence:

    1. **Structural** – split immediately before every enumerated-section
       marker (``Art. 5``, ``Artigo 12``, ``Article 3``).  Segments outside
       ``[MIN_CHUNK_SIZE, MAX_CHUNK_SIZE]`` are dropped, never truncated.
       Wins when at least two segments survive.
    2. **Paragraph** – split on blank lines and keep paragraphs of at least
       ``MIN_CHUNK_SIZE`` characters.  Wins when the text has more than one
       paragraph and at least one survives.
    3. **Sliding window** – accumulate sentences up to ``CHUNK_SIZE``
       characters, carrying the trailing ``floor(n * overlap)`` sentences
       of each flushed window into the next one.  Falls back to the whole
       trimmed text as a single chunk when nothing else was produced.

The chunker is pure: no I/O, no shared state, no suspension points.

Usage:
    from lexrag.src.core.chunker import Chunker
    chunks = Chunker().chunk(text, DocumentMetadata(title="Lei 8.666"))
"""

from __future__ import annotations

import math
import re

from lexrag.config.lexicon import STRUCTURAL_MARKER_PATTERN
from lexrag.config.settings import settings
from lexrag.src.core.models import Chunk, DocumentMetadata
from lexrag.src.utils.logger import get_logger
from lexrag.src.utils.text_utils import split_sentences

logger = get_logger(__name__)

_MARKER_RE = re.compile(STRUCTURAL_MARKER_PATTERN, re.IGNORECASE)

# One or more blank lines (whitespace-only lines count as blank).
_PARAGRAPH_RE = re.compile(r"\n[^\S\n]*\n\s*")


class Chunker:
    """
    Deterministic three-strategy text splitter.

    Parameters
    ----------
    chunk_size
        Target length of a sliding-window chunk.  Defaults to ``settings.CHUNK_SIZE``.
    min_chunk_size
        Minimum kept segment length.  Defaults to ``settings.MIN_CHUNK_SIZE``.
    max_chunk_size
        Hard ceiling for structural segments.  Defaults to ``settings.MAX_CHUNK_SIZE``.
    overlap_fraction
        Share of sentences carried between windows.  Defaults to
        ``settings.CHUNK_OVERLAP_FRACTION``.
    """

    __slots__ = ("chunk_size", "min_chunk_size", "max_chunk_size", "overlap_fraction")

    def __init__(self, chunk_size: int | None = None, min_chunk_size: int | None = None, max_chunk_size: int | None = None, overlap_fraction: float | None = None) -> None:
        self.chunk_size = chunk_size if chunk_size is not None else settings.CHUNK_SIZE
        self.min_chunk_size = min_chunk_size if min_chunk_size is not None else settings.MIN_CHUNK_SIZE
        self.max_chunk_size = max_chunk_size if max_chunk_size is not None else settings.MAX_CHUNK_SIZE
        self.overlap_fraction = overlap_fraction if overlap_fraction is not None else settings.CHUNK_OVERLAP_FRACTION

        if not 0 < self.min_chunk_size <= self.max_chunk_size:
            raise ValueError(f"Invalid chunk bounds: min={self.min_chunk_size}, max={self.max_chunk_size}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be ≥ 1, got {self.chunk_size}")
        if not 0.0 <= self.overlap_fraction < 1.0:
            raise ValueError(f"overlap_fraction must be in [0, 1), got {self.overlap_fraction}")

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINTS
    # ══════════════════════════════════════════════════════════════════

    def chunk(self, text: str, metadata: DocumentMetadata | None = None) -> list[Chunk]:
        """
        Split *text* and tag every segment with *metadata*.

        Returns
        -------
        list[Chunk]
            At least one chunk, in document order.
        """
        meta = metadata or DocumentMetadata()
        return [Chunk(content=segment, metadata=meta) for segment in self.split(text)]


    def split(self, text: str) -> list[str]:
        """Run the strategy cascade and return plain segment strings."""
        structural = self._structural_split(text)
        if len(structural) >= 2:
            logger.info("[CHUNKER] Strategy: STRUCTURAL — %d segment(s).", len(structural))
            return structural

        paragraphs = self._paragraph_split(text)
        if paragraphs:
            logger.info("[CHUNKER] Strategy: PARAGRAPH — %d segment(s).", len(paragraphs))
            return paragraphs

        windows = self._sliding_window(text)
        logger.info("[CHUNKER] Strategy: SLIDING_WINDOW — %d segment(s).", len(windows))
        return windows

    # ══════════════════════════════════════════════════════════════════
    #  STRATEGIES
    # ══════════════════════════════════════════════════════════════════

    def _structural_split(self, text: str) -> list[str]:
        segments = [s.strip() for s in _MARKER_RE.split(text)]
        kept = [s for s in segments if self.min_chunk_size <= len(s) <= self.max_chunk_size]
        dropped = sum(1 for s in segments if s) - len(kept)
        if dropped:
            logger.debug("[CHUNKER] Structural split dropped %d out-of-range segment(s).", dropped)
        return kept


    def _paragraph_split(self, text: str) -> list[str]:
        """
        Paragraphs of at least ``min_chunk_size`` characters, or an empty
        list when the text has a single paragraph.
        """
        paragraphs = [p.strip() for p in _PARAGRAPH_RE.split(text.strip()) if p.strip()]
        if len(paragraphs) <= 1:
            return []
        return [p for p in paragraphs if len(p) >= self.min_chunk_size]


    def _sliding_window(self, text: str) -> list[str]:
        """
        Sentence-based windows of about ``chunk_size`` characters.

        A window is flushed when appending the next sentence would push
        the joined text past ``chunk_size``.  Flushed windows shorter than
        ``min_chunk_size`` are discarded.  The next window is seeded with
        the trailing ``floor(n * overlap_fraction)`` sentences; a zero
        count seeds an empty window.
        """
        chunks: list[str] = []
        window: list[str] = []

        for sentence in split_sentences(text):
            if window and len(" ".join([*window, sentence])) > self.chunk_size:
                self._flush(window, chunks)
                carry = math.floor(len(window) * self.overlap_fraction)
                window = window[len(window) - carry:] if carry > 0 else []
            window.append(sentence)

        if window:
            self._flush(window, chunks)

        if not chunks:
            logger.debug("[CHUNKER] No window reached the minimum size — emitting whole text.")
            return [text.strip()]
        return chunks


    def _flush(self, window: list[str], chunks: list[str]) -> None:
        candidate = " ".join(window).strip()
        if len(candidate) >= self.min_chunk_size:
            chunks.append(candidate)

    def __repr__(self) -> str:
        return f"Chunker(chunk_size={self.chunk_size}, min={self.min_chunk_size}, max={self.max_chunk_size}, overlap={self.overlap_fraction})"
