"""Tag Extraction Stage - Categorize page text runs into tags.

Three ordered passes over a page's text runs, each run consumed at most once:
1. Split instrument merge: function code above loop number → one Instrument tag
2. Single-token regex: Line and NotesAndHolds patterns
3. Drawing number: best-scoring candidate per page (+ optional sheet number)

Whatever is left becomes a RawTextItem.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional

from pidtag.models import (
    AppSettings,
    BoundingBox,
    Category,
    PageContent,
    PatternConfig,
    RawTextItem,
    Tag,
    ToleranceConfig,
    Viewport,
)

from .stage_geometry import compute_bbox, right_bottom_corner

logger = logging.getLogger(__name__)

WHITESPACE = re.compile(r"\s+")

# Drawing number scoring
SCORE_NO_LEADING_DASH = 1000
SCORE_ALNUM_START = 500
SCORE_FIVE_DIGIT_PREFIX = 300
SCORE_MANY_SEGMENTS = 200
SCORE_LONG_TEXT = 100
DISTANCE_PENALTY = 0.1

ALNUM_START = re.compile(r"^[A-Z0-9]", re.IGNORECASE)
FIVE_DIGIT_PREFIX = re.compile(r"^[0-9]{5}[A-Z]")

# Minimum vertical overlap for two boxes to share a visual line
SAME_LINE_OVERLAP = 0.5


@dataclass
class PositionedRun:
    """A text run with its display-space bbox and original index."""

    index: int
    text: str
    bbox: BoundingBox

    def to_raw_item(self, page: int) -> RawTextItem:
        return RawTextItem(text=self.text, page=page, bbox=self.bbox)


@dataclass
class ExtractionResult:
    """Output of extracting a single page."""

    page: int
    tags: list[Tag] = field(default_factory=list)
    raw_text_items: list[RawTextItem] = field(default_factory=list)
    consumed: set[int] = field(default_factory=set)
    dropped: int = 0  # runs with non-finite geometry


def compile_pattern(pattern: Optional[str], flags: int = 0, anchored: bool = False) -> Optional[re.Pattern]:
    """Compile a user pattern, returning None when empty or malformed."""
    if not pattern:
        return None
    source = f"^(?:{pattern})$" if anchored else pattern
    try:
        return re.compile(source, flags)
    except re.error as exc:
        logger.warning("Skipping invalid pattern %r: %s", pattern, exc)
        return None


def strip_whitespace(text: str) -> str:
    """Remove every whitespace character."""
    return WHITESPACE.sub("", text)


class TagExtractor:
    """Extracts categorized tags from a page's text runs.

    Stateless apart from compiled patterns; safe to reuse across pages.
    """

    def __init__(
        self,
        patterns: Optional[PatternConfig] = None,
        tolerances: Optional[ToleranceConfig] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        """Initialize extractor.

        Args:
            patterns: Regex patterns per category.
            tolerances: Instrument pairing tolerances.
            app_settings: Whitespace, search area and sheet number options.
        """
        self.patterns = patterns or PatternConfig()
        self.tolerances = tolerances or ToleranceConfig()
        self.app_settings = app_settings or AppSettings()

        instrument = self.patterns.instrument
        self.func_regex = compile_pattern(instrument.func, anchored=True)
        self.num_regex = compile_pattern(instrument.num, anchored=True)
        self.single_token_regexes = [
            (category, compile_pattern(self.patterns.for_category(category), re.IGNORECASE))
            for category in (Category.LINE, Category.NOTES_AND_HOLDS)
        ]
        self.drawing_regex = compile_pattern(self.patterns.drawing_number, re.IGNORECASE)
        self.sheet_regex = compile_pattern(self.app_settings.sheet_no_pattern)

    def extract(self, page: PageContent) -> ExtractionResult:
        """Run all passes over one page.

        Args:
            page: Page text runs and viewport.

        Returns:
            ExtractionResult with tags and leftover raw items.
        """
        result = ExtractionResult(page=page.page_number)
        runs = self._position_runs(page, result)

        self._merge_split_instruments(runs, result)
        self._match_single_tokens(runs, result)
        self._select_drawing_number(runs, page.viewport, result)

        for run in runs:
            if run.index not in result.consumed:
                result.raw_text_items.append(run.to_raw_item(result.page))

        logger.debug(
            "Page %d: %d tags, %d raw items",
            result.page,
            len(result.tags),
            len(result.raw_text_items),
        )
        return result

    def _position_runs(self, page: PageContent, result: ExtractionResult) -> list[PositionedRun]:
        runs = []
        for index, run in enumerate(page.text_runs):
            if not run.text.strip():
                continue
            try:
                bbox = compute_bbox(run, page.viewport)
            except ValueError as exc:
                logger.warning("Dropping run %r on page %d: %s", run.text, page.page_number, exc)
                result.dropped += 1
                continue
            if not bbox.is_finite:
                logger.warning("Dropping run %r on page %d: non-finite bbox", run.text, page.page_number)
                result.dropped += 1
                continue
            runs.append(PositionedRun(index=index, text=run.text, bbox=bbox))
        return runs

    def _clean(self, text: str, category: Category) -> str:
        if self.app_settings.auto_remove_whitespace and category != Category.NOTES_AND_HOLDS:
            return strip_whitespace(text)
        return text

    def _merge_split_instruments(self, runs: list[PositionedRun], result: ExtractionResult) -> None:
        """Pass 1: pair function codes with the loop number below them."""
        if self.func_regex is None or self.num_regex is None:
            return

        funcs, nums = [], []
        for run in runs:
            if self.func_regex.match(run.text):
                if run.text.strip().upper() != "FF":
                    funcs.append(run)
            elif self.num_regex.match(run.text):
                nums.append(run)

        tolerance = self.tolerances.instrument
        for func in funcs:
            if func.index in result.consumed:
                continue
            fx, fy = func.bbox.center
            best: Optional[PositionedRun] = None
            best_dist = math.inf
            for num in nums:
                if num.index in result.consumed:
                    continue
                nx, ny = num.bbox.center
                if fy >= ny:
                    continue
                dx, dy = abs(fx - nx), abs(fy - ny)
                if dx > tolerance.horizontal or dy > tolerance.vertical:
                    continue
                dist = dx * dx + dy * dy
                if dist < best_dist:
                    best, best_dist = num, dist

            if best is None:
                continue
            text = self._clean(f"{func.text}-{best.text}", Category.INSTRUMENT)
            result.tags.append(
                Tag(
                    text=text,
                    page=result.page,
                    bbox=func.bbox.union(best.bbox),
                    category=Category.INSTRUMENT,
                    source_items=[func.to_raw_item(result.page), best.to_raw_item(result.page)],
                )
            )
            result.consumed.update((func.index, best.index))

    def _match_single_tokens(self, runs: list[PositionedRun], result: ExtractionResult) -> None:
        """Pass 2: Line and NotesAndHolds patterns, every match becomes a tag."""
        for run in runs:
            if run.index in result.consumed:
                continue
            matched = hit = False
            for category, regex in self.single_token_regexes:
                if regex is None:
                    continue
                for match in regex.finditer(run.text):
                    value = match.group(0)
                    if not value:
                        continue
                    hit = True
                    # FF matches consume the run but never become tags
                    if value.upper().startswith("FF"):
                        continue
                    # Only the first tag built from a run keeps it as a source
                    sources = None if matched else [run.to_raw_item(result.page)]
                    result.tags.append(
                        Tag(
                            text=self._clean(value, category),
                            page=result.page,
                            bbox=run.bbox,
                            category=category,
                            source_items=sources,
                        )
                    )
                    matched = True
            if hit:
                result.consumed.add(run.index)

    def _in_search_area(self, bbox: BoundingBox, viewport: Optional[Viewport]) -> bool:
        area = self.app_settings.drawing_search_area
        if not area.enabled or viewport is None:
            return True
        x1, y1, x2, y2 = area.to_rect(viewport.width, viewport.height)
        cx, cy = bbox.center
        return x1 <= cx <= x2 and y1 <= cy <= y2

    def _score_drawing_candidate(
        self, text: str, bbox: BoundingBox, viewport: Optional[Viewport]
    ) -> float:
        score = 0.0
        if not text.startswith("-"):
            score += SCORE_NO_LEADING_DASH
        if ALNUM_START.match(text):
            score += SCORE_ALNUM_START
        if FIVE_DIGIT_PREFIX.match(text):
            score += SCORE_FIVE_DIGIT_PREFIX
        if text.count("-") >= 3:
            score += SCORE_MANY_SEGMENTS
        if len(text) > 15:
            score += SCORE_LONG_TEXT

        if viewport is not None:
            corner_x, corner_y = right_bottom_corner(viewport)
            target_y = bbox.y1 if viewport.rotation % 360 in (180, 270) else bbox.y2
            distance = math.hypot(corner_x - bbox.x2, corner_y - target_y)
            score -= distance * DISTANCE_PENALTY
        return score

    def _select_drawing_number(
        self,
        runs: list[PositionedRun],
        viewport: Optional[Viewport],
        result: ExtractionResult,
    ) -> None:
        """Pass 3: keep only the best drawing number candidate on the page."""
        if self.drawing_regex is None:
            return

        best: Optional[tuple[PositionedRun, str]] = None
        best_score = -math.inf
        for run in runs:
            if run.index in result.consumed:
                continue
            match = self.drawing_regex.search(run.text)
            if not match:
                continue
            if not self._in_search_area(run.bbox, viewport):
                continue
            text = match.group(0)
            score = self._score_drawing_candidate(text, run.bbox, viewport)
            if score > best_score:
                best, best_score = (run, text), score

        if best is None:
            return

        run, text = best
        bbox = run.bbox
        sources = [run.to_raw_item(result.page)]
        result.consumed.add(run.index)

        sheet = self._find_sheet_number(runs, run, result.consumed)
        if sheet is not None:
            bbox = bbox.union(sheet.bbox)
            sources.append(sheet.to_raw_item(result.page))
            result.consumed.add(sheet.index)
            if self.app_settings.combine_drawing_and_sheet:
                text = f"{text}-{sheet.text.strip()}"

        result.tags.append(
            Tag(
                text=text,
                page=result.page,
                bbox=bbox,
                category=Category.DRAWING_NUMBER,
                source_items=sources,
            )
        )

    def _find_sheet_number(
        self,
        runs: list[PositionedRun],
        drawing: PositionedRun,
        consumed: set[int],
    ) -> Optional[PositionedRun]:
        """Nearest sheet-number token on the same line, right of the drawing number."""
        if self.sheet_regex is None:
            return None

        tolerance = self.app_settings.sheet_no_tolerance_px
        drawing_cx = drawing.bbox.center[0]
        best, best_gap = None, math.inf
        for run in runs:
            if run.index in consumed:
                continue
            if not self.sheet_regex.search(run.text.strip()):
                continue
            if run.bbox.center[0] <= drawing_cx:
                continue
            if drawing.bbox.vertical_overlap_ratio(run.bbox) < SAME_LINE_OVERLAP:
                continue
            gap = run.bbox.x1 - drawing.bbox.x2
            if gap > tolerance:
                continue
            if abs(gap) < best_gap:
                best, best_gap = run, abs(gap)
        return best


def extract_tags(
    page: PageContent,
    patterns: Optional[PatternConfig] = None,
    tolerances: Optional[ToleranceConfig] = None,
    app_settings: Optional[AppSettings] = None,
) -> ExtractionResult:
    """Extract tags and raw items from a single page."""
    return TagExtractor(patterns, tolerances, app_settings).extract(page)
