"""Tests for instrument list export."""

import pytest
from openpyxl import load_workbook

from conftest import make_box, make_tag
from pidtag.config import settings
from pidtag.export import COLUMNS, build_instrument_rows, export_instrument_list
from pidtag.export.instrument_list import function_code
from pidtag.models import (
    AppSettings,
    Category,
    Description,
    DescriptionMetadata,
    InstrumentMapping,
    Relationship,
    RelationshipType,
)


@pytest.fixture
def linked_state(sample_state):
    """Sample project with TT-205 connected to NOTE 1 and NOTE 1 cited by a description."""
    tt = sample_state.tags[0]
    callout = sample_state.tags[4]
    description = Description(
        text="Provide thermowell",
        page=1,
        bbox=make_box(600, 100, 700, 110),
        metadata=DescriptionMetadata(number=1),
    )
    return sample_state.model_copy(
        update={
            "descriptions": [description],
            "relationships": [
                Relationship(from_id=tt.id, to_id=callout.id, type=RelationshipType.NOTE),
                Relationship(from_id=callout.id, to_id=description.id, type=RelationshipType.DESCRIPTION),
            ],
        }
    )


class TestFunctionCode:
    """Tests for function letter parsing."""

    @pytest.mark.parametrize(
        "text,expected", [("TT-205", "TT"), ("pcv 12", "PCV"), ("FF-1", None), ("NOTE", None)]
    )
    def test_function_code(self, text, expected):
        """Letters before the number, FF excluded."""
        assert function_code(text) == expected


class TestBuildInstrumentRows:
    """Tests for row construction."""

    def test_order_and_columns(self, sample_state):
        """Rows sort by page, loop and text and carry page-level context."""
        rows = build_instrument_rows(sample_state)

        assert [(r.no, r.tag_number, r.loop_number) for r in rows] == [
            (1, "PT-101", "P-101"),
            (2, "TIC-205", "T-205"),
            (3, "TT-205", "T-205"),
        ]
        assert {r.pid_number for r in rows} == {"00342GS-7300-PRP-D-105"}
        assert {r.line_number for r in rows} == {'8"-PL-30001'}

    def test_instrument_types(self, sample_state):
        """Function codes map to type and I/O columns."""
        row = build_instrument_rows(sample_state)[2]
        assert (row.instrument_type, row.io_type) == ("TEMPERATURE TRANSMITTER", "AI")

    def test_custom_mapping(self, sample_state):
        """Project mappings override the built-in table."""
        app = AppSettings(instrument_mappings={"PT": InstrumentMapping(instrument_type="GAUGE", io_type="HART")})
        row = build_instrument_rows(sample_state, app)[0]
        assert (row.instrument_type, row.io_type) == ("GAUGE", "HART")

    def test_unknown_function(self, sample_state):
        """FF tags export with empty loop and type columns."""
        ff = make_tag("FF-100", Category.INSTRUMENT, (0, 0, 10, 10))
        state = sample_state.model_copy(update={"tags": [*sample_state.tags, ff]})
        row = next(r for r in build_instrument_rows(state) if r.tag_number == "FF-100")
        assert (row.loop_number, row.instrument_type, row.io_type) == ("", "", "")

    def test_note_callout_text(self, linked_state):
        """Without descriptions the callout text is shown."""
        rows = {r.tag_number: r for r in build_instrument_rows(linked_state)}
        assert rows["TT-205"].note == "NOTE 1"
        assert rows["PT-101"].note == ""

    def test_note_prefix_stripped(self, linked_state):
        """`NOTE n:` is removed from callouts carrying their own text."""
        tags = [
            t.model_copy(update={"text": "NOTE 1: SEE VENDOR"}) if t.category == Category.NOTES_AND_HOLDS else t
            for t in linked_state.tags
        ]
        state = linked_state.model_copy(update={"tags": tags})
        rows = {r.tag_number: r for r in build_instrument_rows(state)}
        assert rows["TT-205"].note == "SEE VENDOR"

    def test_note_descriptions_included(self, linked_state):
        """With descriptions on, the cited body replaces the callout."""
        rows = {r.tag_number: r for r in build_instrument_rows(linked_state, include_note_descriptions=True)}
        assert rows["TT-205"].note == "Provide thermowell"

    def test_drawing_number_per_page(self, sample_state):
        """Instruments on a page without a drawing number leave it blank."""
        other = make_tag("LT-300", Category.INSTRUMENT, (0, 0, 10, 10), page=2)
        state = sample_state.model_copy(update={"tags": [*sample_state.tags, other]})
        row = build_instrument_rows(state)[-1]
        assert (row.tag_number, row.pid_number, row.line_number) == ("LT-300", "", "")


class TestExportInstrumentList:
    """Tests for the workbook file."""

    def test_workbook_contents(self, linked_state, output_dir):
        """Header row plus one row per instrument on the configured sheet."""
        path = export_instrument_list(output_dir / "instruments.xlsx", linked_state)
        ws = load_workbook(path).active

        assert ws.title == settings.export_sheet_name
        assert [c.value for c in ws[1]] == COLUMNS
        assert ws[1][0].font.bold
        assert ws.max_row == 4
        assert [c.value for c in ws[4]][:4] == [3, "00342GS-7300-PRP-D-105", "T-205", "TT-205"]

    def test_setting_default_for_descriptions(self, linked_state, output_dir, monkeypatch):
        """The configured default decides whether bodies are exported."""
        monkeypatch.setattr(settings, "include_note_descriptions", True)
        path = export_instrument_list(output_dir / "instruments.xlsx", linked_state)
        ws = load_workbook(path).active
        assert ws.cell(row=4, column=8).value == "Provide thermowell"
