"""
LexRAG - Lexical Constants
===========================
Centralised word lists and canned query sets used by the chunker,
keyword extractor, ingestion pipeline and quality evaluator.  Keeping
them here lets the vocabularies be reviewed and extended independently
of application logic.

The corpus is bilingual (Portuguese legal / institutional documents with
English-speaking users), so every list covers both languages.

Exports
-------
STOP_WORDS, ABBREVIATIONS, STRUCTURAL_MARKER_PATTERN,
GENERIC_ANSWER_MARKERS, ISSUE_*, TEST_QUERIES, DOCUMENT_TYPE_KEYWORDS.
"""

# ══════════════════════════════════════════════════════════════════════
#  KEYWORD EXTRACTION
# ══════════════════════════════════════════════════════════════════════

# Portuguese + English function words dropped before hybrid boosting.
STOP_WORDS: frozenset[str] = frozenset({
    # Portuguese
    "o", "a", "os", "as", "de", "da", "do", "das", "dos", "em", "no", "na",
    "para", "com", "por", "e", "ou", "que", "qual", "quais", "como",
    "quando", "onde", "sobre", "entre", "pelo", "pela", "isso", "este",
    "esta", "esse", "essa", "são", "está", "foram",
    # English
    "the", "an", "in", "on", "at", "to", "for", "of", "with", "by", "and",
    "or", "what", "which", "how", "when", "where", "about", "this", "that",
    "these", "those", "from", "does", "have", "were",
})


# ══════════════════════════════════════════════════════════════════════
#  SENTENCE BOUNDARIES
# ══════════════════════════════════════════════════════════════════════

# Tokens whose trailing period does not end a sentence.  Compared
# case-insensitively and without the period.
ABBREVIATIONS: frozenset[str] = frozenset({
    # Portuguese legal / institutional
    "art", "arts", "inc", "par", "cap", "tít", "sr", "sra", "srs", "dr",
    "dra", "prof", "profa", "av", "n", "nº", "pág", "págs", "fls", "ltda",
    "min", "obs", "ref", "etc",
    # English
    "mr", "mrs", "ms", "jr", "st", "vs", "e.g", "i.e", "fig", "vol",
    "sec", "ch", "p", "pp",
})

# Enumerated-section markers ("Art. 5", "Artigo 12", "Article 3").
STRUCTURAL_MARKER_PATTERN: str = r"(?=\b(?:Art\.?|Artigo|Article)\s*\d+)"


# ══════════════════════════════════════════════════════════════════════
#  LOG ANALYSIS
# ══════════════════════════════════════════════════════════════════════

# Substrings (lower-cased) that mark an answer as a generic "don't know".
GENERIC_ANSWER_MARKERS: tuple[str, ...] = ("sorry", "don't know", "não sei")

ISSUE_GENERIC_ANSWER: str = "Generic answer (no results)"
ISSUE_NO_RESULTS: str = "No results returned"
ISSUE_LOW_SIMILARITY: str = "Low similarity scores"
ISSUE_SLOW_RETRIEVAL: str = "Slow retrieval (>1s)"


# ══════════════════════════════════════════════════════════════════════
#  CANNED EVALUATION QUERIES
# ══════════════════════════════════════════════════════════════════════

TEST_QUERIES: dict[str, tuple[str, ...]] = {
    "legal": (
        "O que diz o artigo 5º da Constituição?",
        "Quais são as competências do Ministério das Relações Exteriores?",
        "Como funciona o processo de licitação pública?",
        "Quais são as regras para contratos governamentais?",
    ),
    "transparency": (
        "Quanto o governo gastou em 2024?",
        "Quais foram os maiores contratos do ano passado?",
        "Quantos servidores públicos trabalham no MRE?",
    ),
    "general": (
        "Qual é a política externa do Brasil?",
        "Como solicitar uma certidão negativa?",
        "Quais são os direitos do cidadão?",
    ),
}


# ══════════════════════════════════════════════════════════════════════
#  FILENAME → DOCUMENT TYPE
# ══════════════════════════════════════════════════════════════════════
# Case-insensitive keyword matching against the filename stem.  The first
# match wins, so more specific keywords come first.

DOCUMENT_TYPE_KEYWORDS: list[tuple[str, str]] = [
    ("constituicao", "constitution"),
    ("constitution", "constitution"),
    ("decreto", "decree"),
    ("decree", "decree"),
    ("portaria", "ordinance"),
    ("resolucao", "resolution"),
    ("lei", "law"),
    ("law", "law"),
    ("contrato", "contract"),
    ("relatorio", "report"),
    ("faq", "faq"),
]

DEFAULT_DOCUMENT_TYPE: str = "general"
