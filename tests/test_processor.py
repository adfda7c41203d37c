"""Tests for whole-document processing."""

from unittest.mock import MagicMock

import pytest

from conftest import make_run
from pidtag.config import settings
from pidtag.models import AppSettings, Category, PageContent, RelationshipType
from pidtag.pipeline.stage_source import StaticPageSource
from pidtag.processor import DocumentProcessor


@pytest.fixture
def loop_page(viewport):
    """Page with split TT/205 and TIC/205 bubbles and a NOTE callout beside TT."""
    return PageContent(
        page_number=1,
        text_runs=[
            make_run("TT", 100, 500),
            make_run("205", 100, 488),
            make_run("TIC", 300, 500),
            make_run("205", 300, 488),
            make_run("NOTE 1", 125, 495),
        ],
        viewport=viewport,
    )


@pytest.fixture
def note_page(viewport):
    """Page with a NOTE 1 callout and a numbered note column."""
    return PageContent(
        page_number=1,
        text_runs=[
            make_run("NOTE 1", 150, 500),
            make_run("1. Foo", 600, 700),
            make_run("continued", 605, 685),
            make_run("2. Bar", 600, 600),
        ],
        viewport=viewport,
    )


class TestDocumentProcessor:
    """Tests for DocumentProcessor."""

    def test_collects_pages(self, instrument_page, viewport):
        """Tags and raw items of every page end up in one state."""
        second = instrument_page.model_copy(update={"page_number": 2})
        result = DocumentProcessor().process(StaticPageSource([instrument_page, second]))

        texts = [t.text for t in result.state.tags]
        assert texts.count("PT-101") == 2
        assert {t.page for t in result.state.tags} == {1, 2}
        assert result.page_sizes == {1: (1000.0, 800.0), 2: (1000.0, 800.0)}
        assert "from 2 pages" in result.message

    def test_loops_generated(self, loop_page):
        """Related instruments are grouped when loop generation is on."""
        result = DocumentProcessor().process(StaticPageSource([loop_page]))
        assert [loop.id for loop in result.state.loops] == ["T-205"]

    def test_loops_disabled(self, loop_page):
        """No loops when the setting is off."""
        app = AppSettings(auto_generate_loops=False)
        result = DocumentProcessor(app_settings=app).process(StaticPageSource([loop_page]))
        assert result.state.loops == []

    def test_note_connections(self, loop_page):
        """Instruments near a NOTE callout get a Note relationship."""
        result = DocumentProcessor().process(StaticPageSource([loop_page]))
        notes = [r for r in result.state.relationships if r.type == RelationshipType.NOTE]
        tt = next(t for t in result.state.tags if t.text == "TT-205")
        assert [r.from_id for r in notes] == [tt.id]

    def test_note_connections_disabled(self, loop_page, monkeypatch):
        """The setting switches automatic note connections off."""
        monkeypatch.setattr(settings, "auto_optimize_note_connections", False)
        result = DocumentProcessor().process(StaticPageSource([loop_page]))
        assert result.state.relationships == []

    def test_link_notes(self, note_page):
        """Note descriptions are detected and cited when requested."""
        result = DocumentProcessor().process(StaticPageSource([note_page]), link_notes=True)
        state = result.state

        assert [(d.metadata.number, d.text) for d in state.descriptions] == [
            (1, "Foo continued"),
            (2, "Bar"),
        ]
        callout = state.tags_by_category(Category.NOTES_AND_HOLDS)[0]
        cited = [r for r in state.relationships if r.type == RelationshipType.DESCRIPTION]
        assert [(r.from_id, r.to_id) for r in cited] == [(callout.id, state.descriptions[0].id)]

    def test_unreadable_page_skipped(self, instrument_page, caplog):
        """A page the source cannot read is skipped and reported."""
        source = MagicMock()
        source.page_count = 2
        source.get_page.side_effect = [
            RuntimeError("damaged content stream"),
            instrument_page.model_copy(update={"page_number": 2}),
        ]
        result = DocumentProcessor().process(source)

        assert result.skipped_pages == [1]
        assert {t.page for t in result.state.tags} == {2}
        assert "Skipping unreadable page 1" in caplog.text

    def test_progress(self, instrument_page):
        """Progress never goes backwards and ends at 100."""
        seen = []
        DocumentProcessor().process(
            StaticPageSource([instrument_page]), progress=lambda pct, msg: seen.append(pct)
        )
        assert seen == sorted(seen)
        assert seen[-1] == 100

    def test_link_notes_with_tuned_layout(self, note_page):
        """Tuning the description layout still finds the note column."""
        result = DocumentProcessor().process(
            StaticPageSource([note_page]), link_notes=True, optimize_notes=True
        )
        assert [d.metadata.number for d in result.state.descriptions] == [1, 2]
