import pytest

from src.scribeflow.core.asr.text import (
    sanitize_transcript_text,
    segments_from_text,
    split_sentences,
)


class TestSanitize:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("<|startoftranscript|> Hello", "Hello"),
            ("Hello <|1.20|> world <|2.00|>", "Hello world"),
            ("[0m0s - 0m3s] Good morning", "Good morning"),
            ("(engine sounds)\nWe are landing", "We are landing"),
            ("Keep (laughs) going", "Keep going"),
            ("", ""),
        ],
    )
    def test_cleanup(self, raw, expected):
        assert sanitize_transcript_text(raw) == expected

    def test_preserve_returns_input(self):
        raw = "[0m0s - 0m3s] <|0.00|> hi"
        assert sanitize_transcript_text(raw, preserve=True) == raw


class TestSegments:
    def test_split_sentences(self):
        assert split_sentences("One. Two? Three") == ["One.", "Two?", "Three"]
        assert split_sentences("...") == []

    def test_even_spread(self):
        segments = segments_from_text("A b. C d. E f. G h.", 8.0)

        assert [(s.start, s.end) for s in segments] == [(0.0, 2.0), (2.0, 4.0), (4.0, 6.0), (6.0, 8.0)]

    def test_no_sentences(self):
        segments = segments_from_text("", 3.0)

        assert len(segments) == 1
        assert segments[0].end == 3.0
