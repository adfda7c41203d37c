"""Instrument list spreadsheet export.

One row per instrument tag, sorted by page, loop number and tag text. Each
row carries the page's drawing number, the nearest line number and the
NOTE callouts connected to the instrument.
"""

import logging
import re
from dataclasses import astuple, dataclass
from pathlib import Path
from typing import Optional, Union

from openpyxl import Workbook
from openpyxl.styles import Font

from pidtag.config import settings
from pidtag.graph.loops import LOOP_NUMBER, extract_loop_number
from pidtag.models import (
    AppSettings,
    Category,
    ProjectState,
    RelationshipType,
    Tag,
)
from pidtag.pipeline.stage_geometry import center_distance

logger = logging.getLogger(__name__)

COLUMNS = [
    "No.",
    "P&ID Number",
    "Loop Number",
    "Tag Number",
    "Line Number",
    "Instrument Type",
    "I/O Type",
    "NOTE",
]

NOTE_PREFIX = re.compile(r"^NOTE\s*\d+\s*:?\s*", re.IGNORECASE)


@dataclass
class InstrumentRow:
    """One spreadsheet row, fields in column order."""

    no: int
    pid_number: str
    loop_number: str
    tag_number: str
    line_number: str
    instrument_type: str
    io_type: str
    note: str


def function_code(text: str) -> Optional[str]:
    """Upper-cased function letters of an instrument tag; None for `FF` or no match."""
    match = LOOP_NUMBER.match(text.strip())
    if not match:
        return None
    code = match.group(1).upper()
    return None if code == "FF" else code


def _closest_line(instrument: Tag, lines: list[Tag]) -> str:
    same_page = [line for line in lines if line.page == instrument.page]
    if not same_page:
        return ""
    return min(same_page, key=lambda line: center_distance(instrument.bbox, line.bbox)).text


def _strip_note_prefix(text: str) -> str:
    return NOTE_PREFIX.sub("", text).strip() or text


def _note_descriptions(state: ProjectState) -> dict[str, str]:
    """Callout id → description text, from Description links or annotated raw items."""
    descriptions = {d.id: d.text for d in state.descriptions}
    raw = {r.id: r.text for r in state.raw_text_items}
    texts: dict[str, list[str]] = {}
    for rel in state.relationships:
        if rel.type == RelationshipType.DESCRIPTION and rel.to_id in descriptions:
            texts.setdefault(rel.from_id, []).append(descriptions[rel.to_id])
    for rel in state.relationships:
        if rel.type == RelationshipType.ANNOTATION and rel.to_id in raw:
            texts.setdefault(rel.from_id, []).append(raw[rel.to_id])
    return {tag_id: " ".join(parts) for tag_id, parts in texts.items()}


def build_instrument_rows(
    state: ProjectState,
    app_settings: Optional[AppSettings] = None,
    include_note_descriptions: bool = False,
) -> list[InstrumentRow]:
    """Build the instrument list rows for a project.

    Args:
        state: Project state to export.
        app_settings: Loop rules and instrument mappings.
        include_note_descriptions: Show the body of each connected note
            instead of the callout text.

    Returns:
        Rows numbered from 1 in output order.
    """
    app_settings = app_settings or AppSettings()
    loop_rules = app_settings.loop_rules
    mappings = app_settings.instrument_mappings

    instruments = state.tags_by_category(Category.INSTRUMENT)
    lines = state.tags_by_category(Category.LINE)
    callouts = {t.id: t for t in state.tags_by_category(Category.NOTES_AND_HOLDS)}
    drawing_by_page: dict[int, str] = {}
    for tag in state.tags_by_category(Category.DRAWING_NUMBER):
        drawing_by_page.setdefault(tag.page, tag.text)

    bodies = _note_descriptions(state) if include_note_descriptions else {}
    instrument_ids = {t.id for t in instruments}
    notes: dict[str, list[str]] = {}
    for rel in state.relationships:
        if rel.type != RelationshipType.NOTE:
            continue
        if rel.from_id not in instrument_ids or rel.to_id not in callouts:
            continue
        callout = callouts[rel.to_id]
        text = bodies.get(callout.id) or _strip_note_prefix(callout.text)
        notes.setdefault(rel.from_id, []).append(text)

    ordered = sorted(
        instruments,
        key=lambda t: (t.page, extract_loop_number(t.text, loop_rules), t.text),
    )
    rows = []
    for n, tag in enumerate(ordered, start=1):
        code = function_code(tag.text)
        mapping = mappings.get(code) if code else None
        rows.append(
            InstrumentRow(
                no=n,
                pid_number=drawing_by_page.get(tag.page, ""),
                loop_number=extract_loop_number(tag.text, loop_rules),
                tag_number=tag.text,
                line_number=_closest_line(tag, lines),
                instrument_type=mapping.instrument_type if mapping else "",
                io_type=mapping.io_type if mapping else "",
                note="; ".join(notes.get(tag.id, [])),
            )
        )
    return rows


def export_instrument_list(
    path: Union[str, Path],
    state: ProjectState,
    app_settings: Optional[AppSettings] = None,
    include_note_descriptions: Optional[bool] = None,
) -> Path:
    """Write the instrument list to an `.xlsx` workbook.

    Returns:
        Path of the written file.
    """
    if include_note_descriptions is None:
        include_note_descriptions = settings.include_note_descriptions
    rows = build_instrument_rows(state, app_settings, include_note_descriptions)

    wb = Workbook()
    ws = wb.active
    ws.title = settings.export_sheet_name
    ws.append(COLUMNS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(list(astuple(row)))

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    logger.info("Exported %d instruments to %s", len(rows), path)
    return path
