"""
LexRAG - Text Utilities
========================
Helper functions for text cleaning, sentence splitting, keyword
extraction, cache-key normalisation and filename-based metadata
extraction.

These utilities are consumed by the chunker, the embedding gateway,
the retrieval engine and the ingestion pipeline, and should remain
stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path

from lexrag.config.lexicon import ABBREVIATIONS, DEFAULT_DOCUMENT_TYPE, DOCUMENT_TYPE_KEYWORDS, STOP_WORDS
from lexrag.config.settings import settings


# ── Non-printable character pattern ────────────────────────────────────
# Matches control characters (C0/C1), except \n, \r, \t which we handle
# separately. Also catches BOM, zero-width chars, soft hyphens, etc.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

# Candidate sentence boundary: terminal punctuation followed by whitespace.
_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE_RE = re.compile(r"\s+")


# ── Cleaning ───────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Sanitise raw document text before chunking.

    Steps:
        1. Unicode NFC normalisation, so accented Portuguese characters
           have a single representation.
        2. Strip non-printable / zero-width characters and formatting
           artifacts (BOM, soft hyphens, directional marks).
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive newlines to a single blank line.

    Args:
        text: Raw text extracted from a source file.

    Returns:
        Cleaned, normalised text ready for chunking.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    text = "\n".join(line.strip() for line in text.splitlines())
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def prepare_embedding_input(text: str) -> str:
    """Replace newlines with spaces; the form sent to the embedding model."""
    return text.replace("\r\n", " ").replace("\n", " ")


def normalize_cache_key(text: str) -> str:
    """Whitespace-collapsed, lower-cased, trimmed form of *text*."""
    return normalize_whitespace(text).lower()


# ── Sentence splitting ─────────────────────────────────────────────────

def _ends_with_abbreviation(fragment: str) -> bool:
    """True if *fragment* ends in a period that belongs to an abbreviation."""
    if not fragment.endswith("."):
        return False
    last_token = fragment.rsplit(None, 1)[-1].rstrip(".").lower()
    if not last_token:
        return False
    if last_token in ABBREVIATIONS:
        return True
    # Single-letter initials ("J. Silva") never end a sentence.
    return len(last_token) == 1 and last_token.isalpha()


def split_sentences(text: str) -> list[str]:
    """
    Split *text* into sentence-like units.

    A period followed by whitespace ends a sentence unless the token it
    closes is a known abbreviation (``Art.``, ``Dr.``, ``e.g.``) or a
    single-letter initial, in which case the fragment is glued to the
    next one.  Empty units are dropped.

    Examples::

        "Conforme o Art. 5 da lei. Segue texto."
            → ["Conforme o Art. 5 da lei.", "Segue texto."]
    """
    fragments = [f for f in _SENTENCE_BOUNDARY_RE.split(text.strip()) if f]
    sentences: list[str] = []
    pending = ""

    for fragment in fragments:
        pending = f"{pending} {fragment}" if pending else fragment
        if _ends_with_abbreviation(fragment):
            continue
        sentences.append(pending.strip())
        pending = ""

    if pending.strip():
        sentences.append(pending.strip())
    return sentences


# ── Keywords ───────────────────────────────────────────────────────────

def extract_keywords(query: str, max_keywords: int | None = None) -> list[str]:
    """
    Derive up to ``max_keywords`` salient terms from a query.

    The query is lower-cased and split on whitespace; tokens of three
    characters or fewer and bilingual stop words are dropped.  The first
    surviving tokens are returned in their original order, with no
    frequency ranking.
    """
    limit = max_keywords if max_keywords is not None else settings.MAX_KEYWORDS
    terms = [t for t in query.lower().split() if len(t) > 3 and t not in STOP_WORDS]
    return terms[:limit]


def count_occurrences(text: str, keywords: list[str] | tuple[str, ...]) -> int:
    """Total case-insensitive, non-overlapping occurrences of *keywords* in *text*."""
    haystack = text.lower()
    return sum(haystack.count(kw.lower()) for kw in keywords if kw)


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


# ── Filename metadata ──────────────────────────────────────────────────

def extract_metadata_from_filename(filename: str) -> dict[str, str]:
    """
    Derive document metadata from a filename using case-insensitive
    keyword matching against the stem.

    Examples::

        "lei_8666_licitacoes.txt"    → document_type="law"
        "Decreto-1171.md"            → document_type="decree"
        "notas_gerais.txt"           → document_type="general"

    Args:
        filename: The file's name (stem + extension), **not** the full path.

    Returns:
        dict with keys ``title`` and ``document_type``.
    """
    stem = Path(filename).stem
    title = normalize_whitespace(re.sub(r"[_\-]+", " ", stem))
    lowered = stem.lower()

    for keyword, document_type in DOCUMENT_TYPE_KEYWORDS:
        if keyword in lowered:
            return {"title": title, "document_type": document_type}

    return {"title": title, "document_type": DEFAULT_DOCUMENT_TYPE}
