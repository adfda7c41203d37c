"""Tests for note description stage."""

import pytest

from conftest import make_item, make_tag
from pidtag.models import Category, NoteDescriptionPattern, RelationshipType
from pidtag.pipeline.stage_notes import (
    NoteDescriptionOptimizer,
    detect_note_descriptions,
    find_alignment_groups,
    link_note_descriptions,
    score_note_pattern,
)

PAGE_SIZES = {1: (1000.0, 800.0)}


@pytest.fixture
def note_column():
    """Two numbered notes in a right-hand column, the first spanning two lines."""
    return [
        make_item("1. Foo", (600, 100, 640, 110)),
        make_item("continued", (605, 115, 660, 125)),
        make_item("2. Bar", (600, 200, 640, 210)),
    ]


class TestDetectNoteDescriptions:
    """Tests for numbered note clustering."""

    def test_multi_line_note(self, note_column):
        """Lines under a numbered start join that note until the next start."""
        notes = detect_note_descriptions(note_column, 1000)

        assert [n.number for n in notes] == [1, 2]
        assert notes[0].text == "Foo continued"
        assert notes[1].text.startswith("Bar")
        assert len(notes[0].items) == 2

    def test_bbox_encloses_items(self, note_column):
        """The note box spans all of its lines."""
        note = detect_note_descriptions(note_column, 1000)[0]
        assert (note.bbox.x1, note.bbox.y1, note.bbox.x2, note.bbox.y2) == (600, 100, 660, 125)

    def test_left_side_text_ignored(self, note_column):
        """Drawing text left of the note column stays out of the note."""
        items = note_column + [make_item("PT-101", (100, 118, 140, 128))]
        notes = detect_note_descriptions(items, 1000)
        assert all("PT-101" not in n.text for n in notes)

    def test_starts_left_of_threshold_ignored(self):
        """Numbered text on the left half is not a note start."""
        items = [make_item("1. Foo", (100, 100, 140, 110))]
        assert detect_note_descriptions(items, 1000) == []

    def test_standalone_number(self):
        """A bare number takes the following line as its text."""
        items = [
            make_item("3.", (600, 100, 610, 110)),
            make_item("Provide drain", (620, 100, 700, 110)),
        ]
        notes = detect_note_descriptions(items, 1000)
        assert [(n.number, n.text) for n in notes] == [(3, "Provide drain")]

    def test_inline_fallback(self):
        """A single `n text` item without separator is still detected."""
        items = [make_item("5 CHECK VALVE ORIENTATION", (600, 100, 800, 110))]
        notes = detect_note_descriptions(items, 1000)
        assert [(n.number, n.text) for n in notes] == [(5, "CHECK VALVE ORIENTATION")]

    def test_empty_page(self):
        """No items, no notes."""
        assert detect_note_descriptions([], 1000) == []


class TestScoring:
    """Tests for note layout scoring."""

    def test_aligned_consecutive_notes(self, note_column):
        """Two aligned, consecutively numbered notes score the maximum for their count."""
        notes = detect_note_descriptions(note_column, 1000)
        groups = find_alignment_groups(notes, 10)

        assert len(groups) == 1
        assert score_note_pattern(notes, groups) == pytest.approx(20 + 30 + 20 + 20)

    def test_no_notes_scores_zero(self):
        """Nothing detected scores zero."""
        assert score_note_pattern([], {}) == 0.0


class TestNoteDescriptionOptimizer:
    """Tests for layout parameter search."""

    def test_quick_samples_small_document(self):
        """Small documents sample their only page."""
        assert NoteDescriptionOptimizer.quick_sample_pages(1) == [1]
        assert NoteDescriptionOptimizer.quick_sample_pages(0) == []

    def test_sample_pages_skip_front_matter(self):
        """Long documents skip the first pages."""
        pages = NoteDescriptionOptimizer().sample_pages(40)
        assert len(pages) == 5
        assert min(pages) > 3

    def test_quick_optimize_finds_notes(self, note_column):
        """Some preset detects both notes."""
        result = NoteDescriptionOptimizer().quick_optimize(note_column, PAGE_SIZES, 1)
        assert result.score > 0
        assert {n.number for n in result.notes} == {1, 2}

    def test_optimize_not_worse_than_default(self, note_column):
        """The grid result never scores below the default pattern."""
        optimizer = NoteDescriptionOptimizer()
        baseline, _ = optimizer.evaluate(note_column, NoteDescriptionPattern(), PAGE_SIZES, [1])
        result = optimizer.optimize(note_column, PAGE_SIZES, 1)
        assert result.score >= baseline

    def test_progress_reported(self, note_column):
        """Progress callback receives increasing percentages."""
        seen = []
        NoteDescriptionOptimizer().quick_optimize(
            note_column, PAGE_SIZES, 1, progress=lambda pct, msg: seen.append(pct)
        )
        assert seen == sorted(seen)
        assert len(seen) == 5


class TestLinkNoteDescriptions:
    """Tests for NOTE callout → description annotation."""

    def test_links_numbered_callout(self, note_column):
        """NOTE 1 is annotated with every item of description 1."""
        tag = make_tag("NOTE 1", Category.NOTES_AND_HOLDS, (100, 300, 140, 310))
        rels, texts = link_note_descriptions([tag], note_column, PAGE_SIZES)

        assert {r.to_id for r in rels} == {note_column[0].id, note_column[1].id}
        assert all(r.type == RelationshipType.ANNOTATION and r.from_id == tag.id for r in rels)
        assert texts[tag.id] == "Foo continued"

    def test_page_without_size_skipped(self, note_column):
        """Pages without a known size are not searched."""
        tag = make_tag("NOTE 1", Category.NOTES_AND_HOLDS, (100, 300, 140, 310))
        rels, texts = link_note_descriptions([tag], note_column, {})
        assert rels == [] and texts == {}
