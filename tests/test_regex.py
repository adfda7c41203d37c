"""Tests for pattern suggestion stage."""

import re

import pytest

from pidtag.models import InstrumentPattern, PatternConfig
from pidtag.pipeline.stage_regex import (
    DEFAULT_DRAWING_PATTERN,
    analyze_drawing_sample,
    analyze_instrument_sample,
    analyze_line_sample,
    generate_regex_from_samples,
)


def _full(pattern: str, text: str) -> bool:
    return re.fullmatch(pattern, text, re.IGNORECASE) is not None


class TestLineSamples:
    """Tests for line number suggestions."""

    def test_known_layout_generalizes(self):
        """The suggestion matches other lines of the same layout."""
        pattern = analyze_line_sample('8"-PL-30001-C1C')
        assert _full(pattern, '8"-PL-30001-C1C')
        assert _full(pattern, '3"-GL-30401-N1E')
        assert _full(pattern, "12-CW-5001")

    def test_unknown_layout_falls_back_to_segments(self):
        """Unrecognized samples still match themselves."""
        pattern = analyze_line_sample("10-ABCDE-X")
        assert _full(pattern, "10-ABCDE-X")

    def test_empty(self):
        """No sample, no pattern."""
        assert analyze_line_sample("") == ""


class TestInstrumentSamples:
    """Tests for function/number suggestions."""

    def test_suffix_letter(self):
        """A trailing letter makes the suffix optional."""
        pattern = analyze_instrument_sample("PCV-2001A")
        assert pattern.func == "[A-Z]{2,3}"
        assert pattern.num == r"\d{4}[A-Z]?"

    def test_plain_number(self):
        """Three-digit numbers allow three or four digits."""
        assert analyze_instrument_sample("FT 101").num == r"\d{3,4}"

    def test_long_function(self):
        """Four-letter functions widen the letter range."""
        assert analyze_instrument_sample("FICA-1001").func == "[A-Z]{2,5}"

    def test_unrecognized(self):
        """Anything else yields the default pattern."""
        assert analyze_instrument_sample("???") == InstrumentPattern()


class TestDrawingSamples:
    """Tests for drawing number suggestions."""

    @pytest.mark.parametrize(
        "sample", ["00342GS-7300-PRP-D-105", "P&ID-100-REV-A", "AB-12-CD-34", "1-2-3"]
    )
    def test_sample_matches_own_pattern(self, sample):
        """Each layout's pattern matches the sample it came from."""
        assert _full(analyze_drawing_sample(sample), sample)

    def test_no_layout(self):
        """Undashed samples get the generic pattern."""
        assert analyze_drawing_sample("DRAWING") == DEFAULT_DRAWING_PATTERN


class TestGenerateRegexFromSamples:
    """Tests for the combined suggestion."""

    def test_no_samples(self):
        """Nothing given, nothing suggested."""
        result = generate_regex_from_samples()
        assert (result.line, result.instrument, result.drawing) == (None, None, None)

    def test_duplicates_collapse(self):
        """Samples of one layout give one pattern."""
        result = generate_regex_from_samples(line_samples='8"-PL-30001-C1C, 3"-GL-30401-N1E')
        assert not result.line.startswith("(")

    def test_alternation(self):
        """Different layouts combine as alternatives."""
        result = generate_regex_from_samples(instrument_samples="FT-101, PCV 2001A")
        assert result.instrument.func == "[A-Z]{2,3}"
        assert result.instrument.num == r"(\d{3,4}|\d{4}[A-Z]?)"

    def test_apply_to(self):
        """Only suggested entries replace existing patterns."""
        base = PatternConfig()
        result = generate_regex_from_samples(drawing_samples="00342GS-7300-PRP-D-105")
        updated = result.apply_to(base)

        assert updated.drawing_number == result.drawing
        assert updated.line == base.line
        assert updated.instrument == base.instrument
