"""Pipeline stages for P&ID tag extraction.

Extraction Stages:
1. stage_source - PDF text runs and viewports (PyMuPDF)
2. stage_geometry - Text run transform → display-space bounding box
3. stage_extract - Instrument merge, category regexes, drawing number
4. stage_notes - Numbered note description detection

Optimization Stages:
5. stage_tolerance - Instrument tolerance search
6. stage_note_links - NOTE callout ↔ instrument distance calibration

Authoring Aids:
7. stage_regex - Pattern suggestions from sample tags

Each stage is a pure function of its inputs and can be run separately or
through `pidtag.processor.DocumentProcessor`.
"""

from .stage_extract import ExtractionResult, TagExtractor, extract_tags
from .stage_geometry import compute_bbox, right_bottom_corner
from .stage_note_links import (
    NoteConnectionOptimizer,
    NoteConnectionResult,
    create_optimized_note_connections,
)
from .stage_notes import (
    DetectedNote,
    NoteDescriptionOptimizer,
    NoteDescriptionResult,
    detect_note_descriptions,
    link_note_descriptions,
)
from .stage_regex import GeneratedPatterns, generate_regex_from_samples
from .stage_source import PageSource, PyMuPDFPageSource, StaticPageSource
from .stage_tolerance import (
    OptimizationConfig,
    OptimizationResult,
    ToleranceOptimizer,
    calculate_quality_score,
    select_sample_pages,
)

__all__ = [
    # Source
    "PageSource",
    "PyMuPDFPageSource",
    "StaticPageSource",
    # Geometry
    "compute_bbox",
    "right_bottom_corner",
    # Extraction
    "ExtractionResult",
    "TagExtractor",
    "extract_tags",
    # Note Descriptions
    "DetectedNote",
    "NoteDescriptionOptimizer",
    "NoteDescriptionResult",
    "detect_note_descriptions",
    "link_note_descriptions",
    # Tolerance Optimization
    "OptimizationConfig",
    "OptimizationResult",
    "ToleranceOptimizer",
    "calculate_quality_score",
    "select_sample_pages",
    # Note Connections
    "NoteConnectionOptimizer",
    "NoteConnectionResult",
    "create_optimized_note_connections",
    # Pattern Suggestions
    "GeneratedPatterns",
    "generate_regex_from_samples",
]
