"""Note Connection Stage - Link instruments to nearby NOTE callouts.

Two related pieces:
- NoteConnectionOptimizer calibrates a distance multiplier: each NOTE
  callout reaches out `multiplier × its own diagonal` and connects to the
  single closest instrument in range.
- create_optimized_note_connections builds the actual relationships from
  the instrument side, using a circle of three half-diagonals around each
  instrument and the closest intersecting NOTE callout.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from pidtag.models import (
    BoundingBox,
    Category,
    NoteHoldType,
    Relationship,
    RelationshipType,
    Tag,
)

from .stage_geometry import center_distance, circle_rect_distance
from .stage_tolerance import select_representative_page, select_sample_pages

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

MULTIPLIERS = [3, 4, 5, 6, 7, 8]
QUICK_MULTIPLIERS = [4, 5, 6]
DEFAULT_MULTIPLIER = 6

# Used when there are no NOTE callouts to measure
DEFAULT_NOTE_BOX = (30.0, 15.0, 33.5)

INSTRUMENT_RADIUS_FACTOR = 3


@dataclass
class NoteConnection:
    """Candidate pairing found while scoring a multiplier."""

    instrument: Tag
    note: Tag
    distance: float


@dataclass
class NoteConnectionResult:
    """Best multiplier found and how it scored."""

    distance: float
    multiplier: int = DEFAULT_MULTIPLIER
    score: float = 0.0
    connection_count: int = 0
    tested_pages: list[int] = field(default_factory=list)
    connections_by_page: dict[int, int] = field(default_factory=dict)
    avg_proximity: float = 0.0
    coverage_rate: float = 0.0


def is_note_callout(tag: Tag) -> bool:
    """NotesAndHolds tag whose text reads as a NOTE (not a HOLD)."""
    return NoteHoldType.from_text(tag.text) == NoteHoldType.NOTE


def average_note_box(note_tags: list[Tag]) -> tuple[float, float, float]:
    """Average (width, height, diagonal) of NOTE callout boxes."""
    if not note_tags:
        return DEFAULT_NOTE_BOX
    width = sum(t.bbox.width for t in note_tags) / len(note_tags)
    height = sum(t.bbox.height for t in note_tags) / len(note_tags)
    return width, height, math.hypot(width, height)


def connection_quality(connections: list[NoteConnection], note_tags: list[Tag]) -> float:
    """Score a set of pairings.

    Rewards count (log-scaled), short average distance, NOTE coverage and
    spread over pages, plus a flat bonus for the one-instrument-per-note rule.
    """
    if not connections:
        return 0.0
    count_score = math.log(len(connections) + 1) * 15
    avg_distance = sum(c.distance for c in connections) / len(connections)
    proximity_score = max(0.0, 30 - avg_distance / 10)
    connected = {c.note.id for c in connections}
    coverage_score = len(connected) / max(1, len(note_tags)) * 30
    pages = {c.instrument.page for c in connections}
    distribution_score = min(len(pages) * 8, 25)
    unique_score = 25
    return count_score + proximity_score + coverage_score + distribution_score + unique_score


def match_notes(
    instrument_tags: list[Tag],
    note_tags: list[Tag],
    multiplier: float,
    pages: list[int],
) -> list[NoteConnection]:
    """Pair every NOTE callout with its closest instrument within range."""
    connections = []
    for page in pages:
        instruments = [t for t in instrument_tags if t.page == page]
        for note in (t for t in note_tags if t.page == page and is_note_callout(t)):
            max_distance = note.bbox.diagonal * multiplier
            closest, closest_dist = None, math.inf
            for instrument in instruments:
                dist = center_distance(instrument.bbox, note.bbox)
                if dist <= max_distance and dist < closest_dist:
                    closest, closest_dist = instrument, dist
            if closest is not None:
                connections.append(NoteConnection(closest, note, closest_dist))
    return connections


class NoteConnectionOptimizer:
    """Chooses the note-to-instrument distance multiplier."""

    def __init__(self, max_pages_to_test: int = 3):
        self.max_pages_to_test = max_pages_to_test

    def _run(
        self,
        instrument_tags: list[Tag],
        note_tags: list[Tag],
        multipliers: list[int],
        pages: list[int],
        progress: Optional[ProgressCallback],
    ) -> NoteConnectionResult:
        _, _, avg_diagonal = average_note_box([t for t in note_tags if is_note_callout(t)])
        best = NoteConnectionResult(
            distance=avg_diagonal * DEFAULT_MULTIPLIER, tested_pages=pages
        )
        relevant = [t for t in note_tags if t.page in pages]

        for n, multiplier in enumerate(multipliers, start=1):
            if progress:
                progress(n / len(multipliers) * 100, f"Testing {multiplier}x note box distance")
            connections = match_notes(instrument_tags, note_tags, multiplier, pages)
            score = connection_quality(connections, note_tags)
            if score <= best.score:
                continue
            by_page = {p: sum(1 for c in connections if c.instrument.page == p) for p in pages}
            connected = {c.note.id for c in connections}
            best = NoteConnectionResult(
                distance=avg_diagonal * multiplier,
                multiplier=multiplier,
                score=score,
                connection_count=len(connections),
                tested_pages=pages,
                connections_by_page=by_page,
                avg_proximity=sum(c.distance for c in connections) / len(connections),
                coverage_rate=len(connected) / len(relevant) if relevant else 0.0,
            )

        logger.info(
            "Note connection multiplier %dx (score %.1f, %d connections)",
            best.multiplier,
            best.score,
            best.connection_count,
        )
        return best

    def optimize(
        self,
        instrument_tags: list[Tag],
        note_tags: list[Tag],
        total_pages: int,
        progress: Optional[ProgressCallback] = None,
    ) -> NoteConnectionResult:
        """Test every multiplier on sampled pages.

        Args:
            instrument_tags: Instrument tags of the document.
            note_tags: NotesAndHolds tags of the document.
            total_pages: Page count used for sampling.
            progress: Optional `(percent, message)` callback.

        Returns:
            NoteConnectionResult; the default 6x distance with score 0 when
            nothing connects.
        """
        pages = select_sample_pages(total_pages, self.max_pages_to_test)
        return self._run(instrument_tags, note_tags, MULTIPLIERS, pages, progress)

    def quick_optimize(
        self,
        instrument_tags: list[Tag],
        note_tags: list[Tag],
        total_pages: int,
        progress: Optional[ProgressCallback] = None,
    ) -> NoteConnectionResult:
        """Test a few common multipliers on one representative page."""
        pages = [select_representative_page(total_pages)]
        return self._run(instrument_tags, note_tags, QUICK_MULTIPLIERS, pages, progress)


def create_optimized_note_connections(
    tags: Iterable[Tag], existing: Iterable[Relationship] = ()
) -> list[Relationship]:
    """Connect each instrument to the closest NOTE callout its circle reaches.

    Args:
        tags: All tags of the project.
        existing: Relationships already present; duplicates are not recreated.

    Returns:
        New Note relationships, instrument → NOTE callout.
    """
    tags = list(tags)
    notes_by_page: dict[int, list[Tag]] = {}
    for tag in tags:
        if tag.category == Category.NOTES_AND_HOLDS and is_note_callout(tag):
            notes_by_page.setdefault(tag.page, []).append(tag)

    seen = {r.key for r in existing}
    created = []
    for tag in tags:
        if tag.category != Category.INSTRUMENT:
            continue
        radius = tag.bbox.diagonal / 2 * INSTRUMENT_RADIUS_FACTOR
        closest = _closest_in_circle(tag.bbox, radius, notes_by_page.get(tag.page, []))
        if closest is None:
            continue
        rel = Relationship(from_id=tag.id, to_id=closest.id, type=RelationshipType.NOTE)
        if rel.key not in seen:
            seen.add(rel.key)
            created.append(rel)
    return created


def _closest_in_circle(box: BoundingBox, radius: float, candidates: list[Tag]) -> Optional[Tag]:
    center = box.center
    closest, closest_dist = None, math.inf
    for candidate in candidates:
        dist = circle_rect_distance(center, candidate.bbox)
        if dist <= radius and dist < closest_dist:
            closest, closest_dist = candidate, dist
    return closest
