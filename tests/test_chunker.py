"""Tests for the three-strategy chunker."""

import pytest

from lexrag.src.core.chunker import Chunker
from lexrag.src.core.models import DocumentMetadata


def _sentences(count: int) -> list[str]:
    return [f"Sentence number {i:02d} is here." for i in range(1, count + 1)]


class TestStructuralSplit:
    """Enumerated-section markers take priority."""

    def test_article_markers_yield_one_chunk_each(self):
        chunks = Chunker(min_chunk_size=5).chunk("Art. 1 Foo bar. Art. 2 Baz qux.")

        assert len(chunks) == 2
        assert chunks[0].content.startswith("Art. 1")
        assert chunks[1].content.startswith("Art. 2")

    def test_metadata_is_attached_to_every_chunk(self):
        meta = DocumentMetadata(title="Lei 8.666", document_type="law")
        chunks = Chunker(min_chunk_size=5).chunk("Art. 1 Foo bar. Art. 2 Baz qux.", meta)

        assert all(c.metadata == meta for c in chunks)

    def test_marker_variants_are_case_insensitive(self):
        text = "artigo 1 Das disposições gerais. ARTIGO 2 Das competências. Article 3 Final provisions."
        chunks = Chunker(min_chunk_size=5).chunk(text)

        assert [c.content.split()[0].lower() for c in chunks] == ["artigo", "artigo", "article"]

    def test_out_of_range_segments_are_dropped_not_truncated(self):
        long_body = "x" * 80
        text = f"Art. 1 ok texto. Art. 2 {long_body} Art. 3 outro texto."
        chunks = Chunker(chunk_size=40, min_chunk_size=5, max_chunk_size=40).chunk(text)

        assert [c.content for c in chunks] == ["Art. 1 ok texto.", "Art. 3 outro texto."]
        assert all(5 <= len(c.content) <= 40 for c in chunks)

    def test_marker_inside_word_is_not_a_boundary(self):
        chunker = Chunker(min_chunk_size=5)

        assert chunker._structural_split("The smart 3 plan. The part 2 plan.") == ["The smart 3 plan. The part 2 plan."]

    def test_single_structural_segment_falls_through(self):
        text = "Art. 1 Primeiro parágrafo com texto suficiente.\n\nSegundo parágrafo também com texto suficiente."
        chunks = Chunker(min_chunk_size=10).chunk(text)

        assert [c.content for c in chunks] == ["Art. 1 Primeiro parágrafo com texto suficiente.", "Segundo parágrafo também com texto suficiente."]


class TestParagraphSplit:
    def test_blank_lines_separate_paragraphs(self):
        text = "First paragraph has enough text.\n\n\n\nSecond paragraph has enough text.\n  \nThird paragraph has enough text."
        chunks = Chunker(min_chunk_size=10).chunk(text)

        assert [c.content for c in chunks] == [
            "First paragraph has enough text.",
            "Second paragraph has enough text.",
            "Third paragraph has enough text.",
        ]

    def test_short_paragraphs_are_dropped(self):
        text = "Tiny.\n\nThis paragraph is long enough to be kept."
        chunks = Chunker(min_chunk_size=10).chunk(text)

        assert [c.content for c in chunks] == ["This paragraph is long enough to be kept."]

    def test_single_newlines_do_not_split(self):
        text = "Line one of the text\nline two of the same paragraph."
        chunks = Chunker(chunk_size=500, min_chunk_size=10).chunk(text)

        assert len(chunks) == 1


class TestSlidingWindow:
    def test_windows_respect_target_size(self):
        text = " ".join(_sentences(12))
        chunks = Chunker(chunk_size=150, min_chunk_size=10, overlap_fraction=0.2).split(text)

        assert len(chunks) == 3
        assert all(len(c) <= 150 for c in chunks)

    def test_consecutive_windows_share_trailing_sentence(self):
        sentences = _sentences(12)
        chunks = Chunker(chunk_size=150, min_chunk_size=10, overlap_fraction=0.2).split(" ".join(sentences))

        assert chunks[0].endswith(sentences[4])
        assert chunks[1].startswith(sentences[4])
        assert chunks[1].endswith(sentences[8])
        assert chunks[2].startswith(sentences[8])
        assert chunks[2].endswith(sentences[11])

    def test_zero_overlap_reconstructs_text(self):
        text = " ".join(_sentences(12))
        chunks = Chunker(chunk_size=150, min_chunk_size=10, overlap_fraction=0.0).split(text)

        assert len(chunks) > 1
        assert " ".join(chunks) == text

    def test_abbreviations_do_not_break_sentences(self):
        text = "Conforme o Sr. Souza explicou ontem. O Dr. Silva assinou o termo. Fim do texto aqui."
        chunks = Chunker(chunk_size=40, min_chunk_size=10, overlap_fraction=0.0).split(text)

        assert chunks == ["Conforme o Sr. Souza explicou ontem.", "O Dr. Silva assinou o termo.", "Fim do texto aqui."]

    def test_short_text_falls_back_to_single_trimmed_chunk(self):
        chunks = Chunker(min_chunk_size=50).chunk("   Too short.   ")

        assert len(chunks) == 1
        assert chunks[0].content == "Too short."

    def test_always_returns_at_least_one_chunk(self):
        assert len(Chunker().split("")) == 1


class TestConfiguration:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_chunk_size": 0},
            {"min_chunk_size": 100, "max_chunk_size": 50},
            {"overlap_fraction": 1.0},
            {"chunk_size": 0},
        ],
    )
    def test_invalid_parameters_are_rejected(self, kwargs):
        with pytest.raises(ValueError):
            Chunker(**kwargs)

    def test_defaults_come_from_settings(self):
        from lexrag.config.settings import settings

        chunker = Chunker()

        assert chunker.chunk_size == settings.CHUNK_SIZE
        assert chunker.min_chunk_size == settings.MIN_CHUNK_SIZE
        assert chunker.max_chunk_size == settings.MAX_CHUNK_SIZE
