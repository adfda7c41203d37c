"""Base models and common types for P&ID tag extraction."""

import math
from enum import Enum
from typing import Iterable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Return a fresh opaque entity identifier."""
    return str(uuid4())


class Category(str, Enum):
    """Categories a tag can be assigned to."""

    LINE = "Line"
    INSTRUMENT = "Instrument"
    DRAWING_NUMBER = "DrawingNumber"
    NOTES_AND_HOLDS = "NotesAndHolds"
    UNCATEGORIZED = "Uncategorized"


class RelationshipType(str, Enum):
    """Kinds of directed edges in the project graph."""

    CONNECTION = "Connection"
    INSTALLATION = "Installation"
    ANNOTATION = "Annotation"
    NOTE = "Note"
    DESCRIPTION = "Description"


class NoteHoldType(str, Enum):
    """Whether a callout or description is a NOTE or a HOLD."""

    NOTE = "Note"
    HOLD = "Hold"

    @classmethod
    def from_text(cls, text: str) -> Optional["NoteHoldType"]:
        """Classify callout text, NOTE taking precedence over HOLD."""
        lowered = text.lower()
        if "note" in lowered:
            return cls.NOTE
        if "hold" in lowered:
            return cls.HOLD
        return None


class DescriptionScope(str, Enum):
    """Whether a description applies to specific callouts or the whole drawing."""

    GENERAL = "General"
    SPECIFIC = "Specific"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys.

    Accepts both snake_case attribute names and camelCase aliases on input.
    """

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class BoundingBox(CamelModel):
    """Axis-aligned box in page-local, top-left-origin coordinates (PDF points)."""

    x1: float = Field(..., description="Left edge X coordinate")
    y1: float = Field(..., description="Top edge Y coordinate")
    x2: float = Field(..., description="Right edge X coordinate")
    y2: float = Field(..., description="Bottom edge Y coordinate")

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _check_order(self) -> "BoundingBox":
        if self.x1 > self.x2 or self.y1 > self.y2:
            raise ValueError(
                f"bbox corners out of order: ({self.x1}, {self.y1}, {self.x2}, {self.y2})"
            )
        return self

    @property
    def width(self) -> float:
        """Box width."""
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        """Box height."""
        return self.y2 - self.y1

    @property
    def center(self) -> tuple[float, float]:
        """Center point as (x, y)."""
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def diagonal(self) -> float:
        """Length of the box diagonal."""
        return math.hypot(self.width, self.height)

    @property
    def is_finite(self) -> bool:
        """True if no coordinate is NaN or infinite."""
        return all(math.isfinite(v) for v in (self.x1, self.y1, self.x2, self.y2))

    def union(self, other: "BoundingBox") -> "BoundingBox":
        """Smallest box containing both boxes."""
        return BoundingBox(
            x1=min(self.x1, other.x1),
            y1=min(self.y1, other.y1),
            x2=max(self.x2, other.x2),
            y2=max(self.y2, other.y2),
        )

    def vertical_overlap_ratio(self, other: "BoundingBox") -> float:
        """Vertical overlap as a fraction of the smaller box height."""
        overlap = min(self.y2, other.y2) - max(self.y1, other.y1)
        smaller = min(self.height, other.height)
        if overlap <= 0:
            return 0.0
        if smaller <= 0:
            return 1.0
        return overlap / smaller

    @classmethod
    def from_points(cls, xs: Iterable[float], ys: Iterable[float]) -> "BoundingBox":
        """Box spanning the given coordinates."""
        xs, ys = list(xs), list(ys)
        return cls(x1=min(xs), y1=min(ys), x2=max(xs), y2=max(ys))

    @classmethod
    def enclosing(cls, boxes: Iterable["BoundingBox"]) -> "BoundingBox":
        """Union of a non-empty collection of boxes."""
        boxes = list(boxes)
        if not boxes:
            raise ValueError("cannot enclose an empty collection of boxes")
        return cls(
            x1=min(b.x1 for b in boxes),
            y1=min(b.y1 for b in boxes),
            x2=max(b.x2 for b in boxes),
            y2=max(b.y2 for b in boxes),
        )


class BaseEntity(CamelModel):
    """Base class for project entities with an opaque id."""

    id: str = Field(default_factory=new_id)
