"""Tolerance Optimization Stage - Tune instrument pairing tolerances.

Runs the tag extractor on a few sampled pages for every candidate
`{vertical, horizontal, autoLinkDistance}` combination and keeps the one
with the best detection-quality score. The quick variant tests common
presets on a single page, then searches a narrow range around the winner.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from pidtag.models import (
    AppSettings,
    Category,
    InstrumentTolerance,
    PageContent,
    PatternConfig,
    Tag,
    ToleranceConfig,
)

from .stage_extract import TagExtractor
from .stage_source import PageSource

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

VALID_INSTRUMENT = re.compile(r"^[A-Z]{2,4}[-\s]?\d{3,4}[A-Z]?$", re.IGNORECASE)

# (vertical, horizontal, autoLinkDistance)
QUICK_PRESETS = [
    (15, 20, 30),
    (10, 15, 25),
    (20, 25, 35),
    (12, 18, 30),
]

# Source errors that skip a page instead of aborting the search
PAGE_ERRORS = (RuntimeError, ValueError, OSError)


@dataclass
class SearchRange:
    """Inclusive numeric range walked with a fixed step."""

    min: float
    max: float
    step: float

    def values(self) -> list[float]:
        count = int(math.floor((self.max - self.min) / self.step + 1e-9)) + 1
        return [self.min + i * self.step for i in range(max(count, 0))]


@dataclass
class OptimizationConfig:
    """Search space for the tolerance optimizer."""

    vertical: SearchRange = field(default_factory=lambda: SearchRange(5, 30, 5))
    horizontal: SearchRange = field(default_factory=lambda: SearchRange(5, 40, 5))
    auto_link_distance: SearchRange = field(default_factory=lambda: SearchRange(20, 50, 10))
    max_pages_to_test: int = 3


@dataclass
class OptimizationResult:
    """Best tolerances found plus how they scored."""

    tolerances: ToleranceConfig
    score: float = 0.0
    tag_count: int = 0
    tested_pages: list[int] = field(default_factory=list)
    tags_by_page: dict[int, int] = field(default_factory=dict)


def select_sample_pages(total_pages: int, max_pages: int = 3) -> list[int]:
    """Pick pages likely to hold process content rather than title/legend sheets.

    Args:
        total_pages: Number of pages in the document.
        max_pages: Upper bound on sampled pages for long documents.

    Returns:
        Sorted 1-indexed page numbers.
    """
    if total_pages <= 0:
        return []
    if total_pages <= 3:
        return list(range(1, total_pages + 1))

    skip = 3 if total_pages > 5 else 1
    pages: list[int] = []
    if total_pages <= 10:
        mid = total_pages // 2
        pages.append(mid)
        if mid - 1 >= skip:
            pages.append(mid - 1)
        if mid + 1 <= total_pages:
            pages.append(mid + 1)
    else:
        start = int(total_pages * 0.2)
        end = int(total_pages * 0.8)
        step = max(1, (end - start) // max_pages)
        page = start
        while page <= end and len(pages) < max_pages:
            if page > skip:
                pages.append(page)
            page += step

    if not pages:
        pages.append(max(1, total_pages // 2))
    return sorted(set(pages))


def select_representative_page(total_pages: int) -> int:
    """Single page used by the quick searches."""
    if total_pages <= 3:
        return max(1, min(2, total_pages))
    if total_pages <= 10:
        return total_pages // 2
    return int(total_pages * 0.4)


def calculate_quality_score(tags: list[Tag]) -> float:
    """Heuristic quality of an extraction run, based on instrument tags.

    Rewards volume with diminishing returns, well-formed tag text and tags
    spread over several pages; penalizes implausibly dense pages.
    """
    instruments = [t for t in tags if t.category == Category.INSTRUMENT]
    if not instruments:
        return 0.0

    count_score = math.log(len(instruments) + 1) * 10
    valid = sum(1 for t in instruments if VALID_INSTRUMENT.match(t.text))
    pattern_score = valid / len(instruments) * 30

    pages = {t.page for t in instruments}
    distribution_score = min(len(pages) * 5, 20)

    avg_per_page = len(instruments) / len(pages)
    density_score = 20.0 if avg_per_page <= 100 else max(0.0, 20 - (avg_per_page - 100) * 0.2)

    return count_score + pattern_score + distribution_score + density_score


class ToleranceOptimizer:
    """Finds instrument tolerances that maximize the quality score.

    Pages are read once per call and cached; nothing persists between calls.
    """

    def __init__(
        self,
        patterns: Optional[PatternConfig] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self.patterns = patterns or PatternConfig()
        self.app_settings = app_settings or AppSettings()

    def _load_pages(self, source: PageSource, page_numbers: list[int]) -> list[PageContent]:
        pages = []
        for number in page_numbers:
            try:
                pages.append(source.get_page(number))
            except PAGE_ERRORS as exc:
                logger.warning("Skipping page %d during optimization: %s", number, exc)
        return pages

    def evaluate(
        self, pages: list[PageContent], tolerance: InstrumentTolerance
    ) -> tuple[float, list[Tag]]:
        """Score one tolerance set on already-loaded pages."""
        extractor = TagExtractor(
            self.patterns,
            ToleranceConfig(instrument=tolerance),
            self.app_settings,
        )
        tags: list[Tag] = []
        for page in pages:
            tags.extend(extractor.extract(page).tags)
        return calculate_quality_score(tags), tags

    def _result(
        self, tolerance: InstrumentTolerance, score: float, tags: list[Tag], pages: list[int]
    ) -> OptimizationResult:
        instruments = [t for t in tags if t.category == Category.INSTRUMENT]
        by_page: dict[int, int] = {}
        for tag in instruments:
            by_page[tag.page] = by_page.get(tag.page, 0) + 1
        return OptimizationResult(
            tolerances=ToleranceConfig(instrument=tolerance),
            score=score,
            tag_count=len(instruments),
            tested_pages=pages,
            tags_by_page=by_page,
        )

    def _search(
        self,
        pages: list[PageContent],
        page_numbers: list[int],
        seeds: list[InstrumentTolerance],
        config: OptimizationConfig,
        progress: Optional[ProgressCallback],
    ) -> OptimizationResult:
        best: Optional[OptimizationResult] = None
        for seed in seeds:
            score, tags = self.evaluate(pages, seed)
            if best is None or score > best.score:
                best = self._result(seed, score, tags, page_numbers)

        grid = [
            (v, h, a)
            for v in config.vertical.values()
            for h in config.horizontal.values()
            for a in config.auto_link_distance.values()
        ]
        for n, (vertical, horizontal, auto_link) in enumerate(grid, start=1):
            candidate = InstrumentTolerance(
                vertical=vertical, horizontal=horizontal, auto_link_distance=auto_link
            )
            score, tags = self.evaluate(pages, candidate)
            if score > best.score:
                best = self._result(candidate, score, tags, page_numbers)
            if progress:
                progress(
                    n / len(grid) * 100,
                    f"Tested vertical {vertical:g}, horizontal {horizontal:g}, link {auto_link:g}",
                )

        logger.info(
            "Best tolerances %s (score %.1f, %d tags)",
            best.tolerances.instrument.model_dump(),
            best.score,
            best.tag_count,
        )
        return best

    def optimize(
        self,
        source: PageSource,
        current: Optional[ToleranceConfig] = None,
        config: Optional[OptimizationConfig] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> OptimizationResult:
        """Grid search over vertical × horizontal × auto-link distance.

        The current tolerances are scored first and only replaced by a
        strictly better candidate.

        Args:
            source: Page source for the document.
            current: Tolerances in use now.
            config: Search space.
            progress: Optional `(percent, message)` callback.

        Returns:
            OptimizationResult with the best tolerances found.
        """
        config = config or OptimizationConfig()
        current = current or ToleranceConfig()
        page_numbers = select_sample_pages(source.page_count, config.max_pages_to_test)
        pages = self._load_pages(source, page_numbers)
        return self._search(pages, page_numbers, [current.instrument], config, progress)

    def quick_optimize(
        self,
        source: PageSource,
        current: Optional[ToleranceConfig] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> OptimizationResult:
        """Preset screening on one page followed by a local search."""
        current = current or ToleranceConfig()
        total = source.page_count
        test_pages = self._load_pages(source, [select_representative_page(total)])

        best_preset, best_score = None, -1.0
        for n, (vertical, horizontal, auto_link) in enumerate(QUICK_PRESETS):
            if progress:
                progress(n / len(QUICK_PRESETS) * 30, f"Preset {n + 1}/{len(QUICK_PRESETS)}")
            candidate = InstrumentTolerance(
                vertical=vertical, horizontal=horizontal, auto_link_distance=auto_link
            )
            score, _ = self.evaluate(test_pages, candidate)
            if score > best_score:
                best_preset, best_score = candidate, score

        v, h = best_preset.vertical, best_preset.horizontal
        a = best_preset.auto_link_distance
        local = OptimizationConfig(
            vertical=SearchRange(max(5, v - 5), min(30, v + 5), 2),
            horizontal=SearchRange(max(5, h - 5), min(40, h + 5), 2),
            auto_link_distance=SearchRange(max(20, a - 10), min(50, a + 10), 5),
            max_pages_to_test=min(3, max(1, total - 3)),
        )

        def fine_progress(percent: float, message: str) -> None:
            if progress:
                progress(30 + percent * 0.7, message)

        page_numbers = select_sample_pages(total, local.max_pages_to_test)
        pages = self._load_pages(source, page_numbers)
        return self._search(
            pages, page_numbers, [current.instrument, best_preset], local, fine_progress
        )
