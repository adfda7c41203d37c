"""Data models for P&ID tag extraction.

Pydantic models for everything that flows between the pipeline stages, the
graph operations and the project snapshot. All models serialize with the
camelCase keys used by project files and accept snake_case names on input.

Model Hierarchy:
- PageContent → TextRuns (+ Viewport)
- ProjectState → Tags, RawTextItems, Relationships, Descriptions, Loops
- ProjectSnapshot → ProjectState + ProjectSettings
"""

from .base import (
    BaseEntity,
    BoundingBox,
    CamelModel,
    Category,
    DescriptionScope,
    NoteHoldType,
    RelationshipType,
    new_id,
)
from .page import (
    PageContent,
    TextRun,
    Viewport,
)
from .project import (
    ProjectSnapshot,
    ProjectState,
)
from .relationship import (
    Loop,
    Relationship,
    relationship_key,
)
from .settings import (
    AppSettings,
    DrawingSearchArea,
    HyphenSettings,
    InstrumentMapping,
    InstrumentPattern,
    InstrumentTolerance,
    NoteDescriptionPattern,
    PatternConfig,
    ProjectSettings,
    ToleranceConfig,
)
from .tag import (
    Description,
    DescriptionMetadata,
    RawTextItem,
    SourceItem,
    Tag,
)

__all__ = [
    # Base types
    "BaseEntity",
    "BoundingBox",
    "CamelModel",
    "Category",
    "DescriptionScope",
    "NoteHoldType",
    "RelationshipType",
    "new_id",
    # Page
    "PageContent",
    "TextRun",
    "Viewport",
    # Entities
    "Description",
    "DescriptionMetadata",
    "RawTextItem",
    "SourceItem",
    "Tag",
    # Graph
    "Loop",
    "Relationship",
    "relationship_key",
    # Settings
    "AppSettings",
    "DrawingSearchArea",
    "HyphenSettings",
    "InstrumentMapping",
    "InstrumentPattern",
    "InstrumentTolerance",
    "NoteDescriptionPattern",
    "PatternConfig",
    "ProjectSettings",
    "ToleranceConfig",
    # Project
    "ProjectSnapshot",
    "ProjectState",
]
