"""Whole-document processing.

Runs tag extraction on every page of a document and assembles the project
state, then applies the post-processing enabled in settings:

1. Extract tags and raw text items page by page
2. Connect instruments to nearby NOTE callouts
3. Detect note descriptions and link NOTE/HOLD callouts (optional)
4. Group related instruments into loops
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from pidtag.config import settings
from pidtag.graph import auto_generate_loops, auto_link_notes_and_holds, create_note_links
from pidtag.models import (
    AppSettings,
    NoteDescriptionPattern,
    PatternConfig,
    ProjectState,
    RawTextItem,
    Tag,
    ToleranceConfig,
)
from pidtag.pipeline import NoteDescriptionOptimizer, PageSource, TagExtractor
from pidtag.pipeline.stage_tolerance import PAGE_ERRORS

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

EXTRACTION_SHARE = 90


@dataclass
class ProcessingResult:
    """Project state built from a document plus per-page sizes."""

    state: ProjectState
    page_sizes: dict[int, tuple[float, float]] = field(default_factory=dict)
    skipped_pages: list[int] = field(default_factory=list)
    message: str = ""


class DocumentProcessor:
    """Turns a page source into a project state."""

    def __init__(
        self,
        patterns: Optional[PatternConfig] = None,
        tolerances: Optional[ToleranceConfig] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self.patterns = patterns or PatternConfig()
        self.tolerances = tolerances or ToleranceConfig()
        self.app_settings = app_settings or AppSettings()
        self.extractor = TagExtractor(self.patterns, self.tolerances, self.app_settings)

    def process(
        self,
        source: PageSource,
        progress: Optional[ProgressCallback] = None,
        link_notes: bool = False,
        note_pattern: Optional[NoteDescriptionPattern] = None,
        optimize_notes: bool = False,
    ) -> ProcessingResult:
        """Extract every page and post-process the result.

        Args:
            source: Page source for the document.
            progress: Optional `(percent, message)` callback.
            link_notes: Also detect note descriptions and link callouts.
            note_pattern: Layout parameters for description detection.
            optimize_notes: Tune the description layout before linking;
                ignored when `note_pattern` is given.

        Returns:
            ProcessingResult; unreadable pages are skipped and listed.
        """
        total = source.page_count
        tags: list[Tag] = []
        raw_items: list[RawTextItem] = []
        page_sizes: dict[int, tuple[float, float]] = {}
        skipped: list[int] = []

        for number in range(1, total + 1):
            if progress:
                progress((number - 1) / max(total, 1) * EXTRACTION_SHARE, f"Extracting page {number}/{total}")
            try:
                page = source.get_page(number)
            except PAGE_ERRORS as exc:
                logger.warning("Skipping unreadable page %d: %s", number, exc)
                skipped.append(number)
                continue
            result = self.extractor.extract(page)
            tags.extend(result.tags)
            raw_items.extend(result.raw_text_items)
            if page.size:
                page_sizes[number] = page.size

        state = ProjectState(tags=tags, raw_text_items=raw_items)

        if settings.auto_optimize_note_connections:
            if progress:
                progress(EXTRACTION_SHARE, "Connecting instruments to notes")
            links = create_note_links(state.tags, state.relationships)
            state = state.model_copy(update={"relationships": [*state.relationships, *links]})

        if link_notes:
            if progress:
                progress(EXTRACTION_SHARE + 4, "Linking note descriptions")
            if note_pattern is None and optimize_notes:
                tuned = NoteDescriptionOptimizer().quick_optimize(
                    state.raw_text_items, page_sizes, total
                )
                if tuned.score > 0:
                    note_pattern = tuned.pattern
            state, _ = auto_link_notes_and_holds(state, page_sizes, note_pattern)

        if self.app_settings.auto_generate_loops:
            loops = auto_generate_loops(state.tags, state.loops)
            state = state.model_copy(update={"loops": [*state.loops, *loops]})

        message = (
            f"Extracted {len(state.tags)} tags and {len(state.raw_text_items)} raw items "
            f"from {total - len(skipped)} pages"
        )
        logger.info(message)
        if progress:
            progress(100, message)
        return ProcessingResult(
            state=state, page_sizes=page_sizes, skipped_pages=skipped, message=message
        )
