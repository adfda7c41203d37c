"""Note Description Stage - Cluster raw text into numbered note bodies.

Drawing notes usually sit in a column on the right side of the sheet:

    NOTES:
    1. ALL DIMENSIONS IN MM
       UNLESS OTHERWISE STATED.
    2. HOLD FOR VENDOR DATA.

The detector finds the numbered starts and gathers the lines beneath each
one until the next start. A small parameter search tunes the layout
thresholds per document.
"""

import logging
import math
import re
import statistics
from dataclasses import dataclass, field
from typing import Callable, Optional

from pidtag.models import (
    BoundingBox,
    NoteDescriptionPattern,
    RawTextItem,
    Relationship,
    RelationshipType,
    Tag,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

NOTE_START = re.compile(r"^[(\[]?(\d+)[)\]]?\s*[-.:]?\s*(.*)$")
HAS_SEPARATOR = re.compile(r"^[(\[]?\d+[)\]]?\s*[-.:]")
HAS_BRACKETS = re.compile(r"^[(\[]?\d+[)\]]")
STARTS_WITH_NUMBER = re.compile(r"^[(\[]?\d+[)\]]?\s*[-.:]?\s")
INLINE_NOTE = re.compile(r"^[(\[]?(\d+)[)\]]?\s*[-.:]?\s+(.+)$")
HEADER_PATTERNS = [
    re.compile(r"^[A-Z]{4,}[:\s]"),
    re.compile(r"^FIGURE\s+\d+", re.IGNORECASE),
    re.compile(r"^TABLE\s+\d+", re.IGNORECASE),
]
NOTE_NUMBER = re.compile(r"NOTE\s*(\d+)", re.IGNORECASE)

X_BOUNDS_TOLERANCE = 10
SAME_LINE_TOLERANCE = 5
MAX_CONSECUTIVE_LARGE_GAPS = 3
LARGE_GAP_FACTOR = 2.5
HARD_GAP_FACTOR = 4

QUICK_PATTERNS = [
    NoteDescriptionPattern(min_x_position=0.45, alignment_tolerance=40, max_y_gap=300, max_horizontal_gap=200, max_line_gap=50),
    NoteDescriptionPattern(min_x_position=0.50, alignment_tolerance=35, max_y_gap=280, max_horizontal_gap=180, max_line_gap=45),
    NoteDescriptionPattern(min_x_position=0.40, alignment_tolerance=45, max_y_gap=350, max_horizontal_gap=220, max_line_gap=55),
    NoteDescriptionPattern(min_x_position=0.55, alignment_tolerance=30, max_y_gap=250, max_horizontal_gap=150, max_line_gap=40),
    NoteDescriptionPattern(min_x_position=0.35, alignment_tolerance=50, max_y_gap=400, max_horizontal_gap=250, max_line_gap=60),
]


@dataclass
class DetectedNote:
    """A numbered note body found on a page."""

    number: int
    text: str
    bbox: BoundingBox
    items: list[RawTextItem]
    page: Optional[int] = None


@dataclass
class _NoteStart:
    item: RawTextItem
    number: int
    index: int  # position in the page-sorted item list


def _looks_like_header(text: str) -> bool:
    return any(p.match(text) for p in HEADER_PATTERNS)


def _find_note_starts(sorted_items: list[RawTextItem], min_x: float) -> list[_NoteStart]:
    starts = []
    for index, item in enumerate(sorted_items):
        if item.bbox.x1 < min_x:
            continue
        match = NOTE_START.match(item.text)
        if not match:
            continue
        standalone = not match.group(2).strip()
        if HAS_SEPARATOR.match(item.text) or standalone or HAS_BRACKETS.match(item.text):
            starts.append(_NoteStart(item=item, number=int(match.group(1)), index=index))
    return starts


def detect_note_descriptions(
    items: list[RawTextItem],
    page_width: float,
    pattern: Optional[NoteDescriptionPattern] = None,
) -> list[DetectedNote]:
    """Detect numbered note descriptions among one page's raw items.

    Text between two numbered starts belongs to the preceding note. Lines
    are kept when they stay within the first text line's horizontal extent.

    Args:
        items: Raw text items of a single page.
        page_width: Displayed page width.
        pattern: Layout thresholds, defaults when omitted.

    Returns:
        One DetectedNote per note start (plus inline leftovers), in page order.
    """
    pattern = pattern or NoteDescriptionPattern()
    min_x = page_width * pattern.min_x_position
    sorted_items = sorted(items, key=lambda i: (i.bbox.y1, i.bbox.x1))
    starts = _find_note_starts(sorted_items, min_x)
    processed: set[str] = set()
    notes: list[DetectedNote] = []

    for n, start in enumerate(starts):
        is_last = n == len(starts) - 1
        end_index = len(sorted_items) if is_last else starts[n + 1].index

        note_items = [start.item]
        processed.add(start.item.id)
        text = NOTE_START.match(start.item.text).group(2).strip()
        standalone = not text

        x_min, x_max = start.item.bbox.x1, start.item.bbox.x2
        first_line_found = not standalone
        large_gaps = 0

        for i in range(start.index + 1, end_index):
            item = sorted_items[i]
            if item.id in processed:
                continue

            vertical_gap = item.bbox.y1 - note_items[-1].bbox.y2
            if vertical_gap > pattern.max_y_gap:
                break

            if not first_line_found and item.text.strip():
                x_min = min(x_min, item.bbox.x1)
                x_max = max(x_max, item.bbox.x2)
                first_line_found = True

            within_x = (
                x_min - X_BOUNDS_TOLERANCE <= item.bbox.x1 <= x_max + X_BOUNDS_TOLERANCE
                if first_line_found
                else True
            )
            same_line = (
                abs(item.bbox.y1 - start.item.bbox.y1) < SAME_LINE_TOLERANCE
                and item.bbox.x1 > start.item.bbox.x2
            )
            first_after_number = standalone and not text and i == start.index + 1

            if _looks_like_header(item.text):
                continue

            include = False
            if within_x:
                if not STARTS_WITH_NUMBER.match(item.text):
                    include = not (
                        item.bbox.x1 < min_x * 0.2
                        and item.bbox.x1 < start.item.bbox.x1 - 400
                    )
                else:
                    include = item.bbox.x1 >= min_x * 0.5
            if same_line or first_after_number:
                include = True

            if not include:
                if vertical_gap > pattern.max_line_gap * HARD_GAP_FACTOR:
                    break
                continue

            if (
                vertical_gap > pattern.max_line_gap * LARGE_GAP_FACTOR
                and not same_line
                and not first_after_number
            ):
                large_gaps += 1
                if large_gaps > MAX_CONSECUTIVE_LARGE_GAPS:
                    break
            else:
                large_gaps = 0

            note_items.append(item)
            processed.add(item.id)
            text = f"{text} {item.text.strip()}" if text else item.text.strip()

        if text or len(note_items) > 1:
            notes.append(
                DetectedNote(
                    number=start.number,
                    text=text,
                    bbox=BoundingBox.enclosing(i.bbox for i in note_items),
                    items=note_items,
                )
            )

    # Single-item notes the span walk did not reach
    for item in sorted_items:
        if item.bbox.x1 < min_x or item.id in processed:
            continue
        match = INLINE_NOTE.match(item.text)
        if match and len(match.group(2)) > 3:
            processed.add(item.id)
            number = int(match.group(1))
            if all(note.number != number for note in notes):
                notes.append(
                    DetectedNote(number=number, text=match.group(2), bbox=item.bbox, items=[item])
                )

    return notes


def find_alignment_groups(notes: list[DetectedNote], tolerance: float) -> dict[float, list[DetectedNote]]:
    """Group notes whose left edges line up within a tolerance."""
    groups: dict[float, list[DetectedNote]] = {}
    for note in notes:
        for group_x, members in groups.items():
            if abs(note.bbox.x1 - group_x) <= tolerance:
                members.append(note)
                break
        else:
            groups[note.bbox.x1] = [note]
    return groups


def score_note_pattern(notes: list[DetectedNote], groups: dict[float, list[DetectedNote]]) -> float:
    """Quality of a detection: count, alignment, numbering and spacing."""
    if not notes:
        return 0.0

    count_score = min(len(notes) * 10, 30)

    largest_group = max((len(g) for g in groups.values()), default=0)
    alignment_score = largest_group / max(1, len(notes)) * 30

    numbers = sorted(n.number for n in notes)
    consecutive = sum(1 for a, b in zip(numbers, numbers[1:]) if b == a + 1)
    consecutive_score = consecutive / max(1, len(numbers) - 1) * 20

    spacing_score = 0.0
    ordered = sorted(notes, key=lambda n: n.bbox.y1)
    gaps = [b.bbox.y1 - a.bbox.y2 for a, b in zip(ordered, ordered[1:])]
    if gaps:
        avg_gap = statistics.fmean(gaps)
        std_dev = statistics.pstdev(gaps)
        if avg_gap:
            spacing_score = max(0.0, 20 - std_dev / avg_gap * 20)

    return count_score + alignment_score + consecutive_score + spacing_score


@dataclass
class NoteDescriptionResult:
    """Best pattern found by the note description optimizer."""

    pattern: NoteDescriptionPattern
    score: float = 0.0
    notes: list[DetectedNote] = field(default_factory=list)
    tested_pages: list[int] = field(default_factory=list)


def _frange(start: float, stop: float, step: float) -> list[float]:
    count = int(math.floor((stop - start) / step + 1e-9)) + 1
    return [round(start + i * step, 6) for i in range(max(count, 0))]


class NoteDescriptionOptimizer:
    """Searches layout thresholds that best fit a document's note column."""

    def __init__(
        self,
        x_position_range: tuple[float, float, float] = (0.5, 0.8, 0.05),
        alignment_tolerance_range: tuple[float, float, float] = (5, 30, 5),
        max_y_gap_range: tuple[float, float, float] = (50, 200, 25),
        samples_to_test: int = 5,
    ):
        self.x_position_range = x_position_range
        self.alignment_tolerance_range = alignment_tolerance_range
        self.max_y_gap_range = max_y_gap_range
        self.samples_to_test = samples_to_test

    def sample_pages(self, total_pages: int) -> list[int]:
        """Spread samples over the document, skipping the first pages."""
        skip_initial = min(3, int(total_pages * 0.1))
        skip_final = min(2, int(total_pages * 0.05))
        usable = total_pages - skip_initial - skip_final
        pages = []
        for i in range(min(self.samples_to_test, max(usable, 0))):
            index = skip_initial + (i * usable) // self.samples_to_test
            pages.append(min(index + 1, total_pages))
        return sorted(set(pages))

    @staticmethod
    def quick_sample_pages(total_pages: int) -> list[int]:
        """Three to five pages spread across the document."""
        if total_pages <= 0:
            return []
        count = min(5, max(3, int(total_pages * 0.3)))
        skip_initial = min(2, int(total_pages * 0.1))
        pages = [
            min(skip_initial + (i * (total_pages - skip_initial)) // count + 1, total_pages)
            for i in range(count)
        ]
        return sorted(set(pages))

    @staticmethod
    def evaluate(
        items: list[RawTextItem],
        pattern: NoteDescriptionPattern,
        page_sizes: dict[int, tuple[float, float]],
        pages: list[int],
    ) -> tuple[float, list[DetectedNote]]:
        """Detect on the given pages and score the combined result."""
        all_notes: list[DetectedNote] = []
        merged: dict[float, list[DetectedNote]] = {}
        for page in pages:
            size = page_sizes.get(page)
            if size is None:
                continue
            page_items = [i for i in items if i.page == page]
            detected = detect_note_descriptions(page_items, size[0], pattern)
            for note in detected:
                note.page = page
            all_notes.extend(detected)
            for x, members in find_alignment_groups(detected, pattern.alignment_tolerance).items():
                existing = next(
                    (gx for gx in merged if abs(gx - x) <= pattern.alignment_tolerance), None
                )
                if existing is None:
                    merged[x] = list(members)
                else:
                    merged[existing].extend(members)
        return score_note_pattern(all_notes, merged), all_notes

    def optimize(
        self,
        items: list[RawTextItem],
        page_sizes: dict[int, tuple[float, float]],
        total_pages: int,
        progress: Optional[ProgressCallback] = None,
    ) -> NoteDescriptionResult:
        """Grid search over right-side threshold, alignment and gap size."""
        pages = self.sample_pages(total_pages)
        best = NoteDescriptionResult(pattern=NoteDescriptionPattern(), tested_pages=pages)

        grid = [
            (x, a, y)
            for x in _frange(*self.x_position_range)
            for a in _frange(*self.alignment_tolerance_range)
            for y in _frange(*self.max_y_gap_range)
        ]
        for n, (x_pos, align_tol, y_gap) in enumerate(grid, start=1):
            if progress:
                progress(n / len(grid) * 100, f"Testing x {x_pos:.0%}, alignment {align_tol}px, gap {y_gap}px")
            candidate = NoteDescriptionPattern(
                min_x_position=x_pos,
                alignment_tolerance=align_tol,
                max_y_gap=y_gap,
                max_horizontal_gap=100 + align_tol,
                max_line_gap=min(y_gap / 4, 35),
            )
            score, notes = self.evaluate(items, candidate, page_sizes, pages)
            if score > best.score:
                best = NoteDescriptionResult(
                    pattern=candidate, score=score, notes=notes, tested_pages=pages
                )

        logger.info("Note description pattern score %.1f (%d notes)", best.score, len(best.notes))
        return best

    def quick_optimize(
        self,
        items: list[RawTextItem],
        page_sizes: dict[int, tuple[float, float]],
        total_pages: int,
        progress: Optional[ProgressCallback] = None,
    ) -> NoteDescriptionResult:
        """Try a handful of presets on a few representative pages."""
        pages = self.quick_sample_pages(total_pages)
        best = NoteDescriptionResult(pattern=NoteDescriptionPattern(), tested_pages=pages)
        for n, candidate in enumerate(QUICK_PATTERNS):
            if progress:
                progress(n / len(QUICK_PATTERNS) * 100, f"Quick test {n + 1}/{len(QUICK_PATTERNS)}")
            score, notes = self.evaluate(items, candidate, page_sizes, pages)
            if score > best.score:
                best = NoteDescriptionResult(
                    pattern=candidate, score=score, notes=notes, tested_pages=pages
                )
        return best


def link_note_descriptions(
    note_tags: list[Tag],
    items: list[RawTextItem],
    page_sizes: dict[int, tuple[float, float]],
    pattern: Optional[NoteDescriptionPattern] = None,
) -> tuple[list[Relationship], dict[str, str]]:
    """Annotate `NOTE n` tags with the raw items of description n.

    A lone un-numbered NOTE tag on a page is linked to every description there.

    Returns:
        Tuple of (new Annotation relationships, tag id → description text).
    """
    relationships: list[Relationship] = []
    texts: dict[str, str] = {}

    by_page: dict[int, list[Tag]] = {}
    for tag in note_tags:
        if "NOTE" in tag.text.upper():
            by_page.setdefault(tag.page, []).append(tag)

    for page, page_tags in by_page.items():
        size = page_sizes.get(page)
        if size is None:
            continue
        detected = detect_note_descriptions([i for i in items if i.page == page], size[0], pattern)
        if not detected:
            continue

        for tag in page_tags:
            match = NOTE_NUMBER.search(tag.text)
            if match:
                targets = [d for d in detected if d.number == int(match.group(1))][:1]
            elif len(page_tags) == 1:
                targets = detected
            else:
                continue
            for note in targets:
                relationships.extend(
                    Relationship(from_id=tag.id, to_id=item.id, type=RelationshipType.ANNOTATION)
                    for item in note.items
                )
            if targets:
                texts[tag.id] = "\n".join(note.text for note in targets)

    return relationships, texts
