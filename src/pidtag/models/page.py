"""Page-level models supplied by the PDF page collaborator."""

from typing import Optional

from pydantic import Field

from .base import CamelModel


class TextRun(CamelModel):
    """A single positioned text run as reported by the PDF text layer."""

    text: str
    transform: tuple[float, float, float, float, float, float] = Field(
        ..., description="Affine transform [a, b, c, d, e, f] in PDF user space"
    )
    width: float = Field(default=0.0, description="Advance width along the baseline")
    height: float = Field(default=0.0, description="Glyph height (font size)")


class Viewport(CamelModel):
    """Page viewport at scale 1.0."""

    width: float = Field(..., description="Displayed page width (after rotation)")
    height: float = Field(..., description="Displayed page height (after rotation)")
    view_box: tuple[float, float, float, float] = Field(
        default=(0.0, 0.0, 0.0, 0.0), description="PDF view box [x1, y1, x2, y2]"
    )
    rotation: int = Field(default=0, description="Page rotation (0, 90, 180, 270)")


class PageContent(CamelModel):
    """Text runs and viewport for one page."""

    page_number: int = Field(..., ge=1, description="1-indexed page number")
    text_runs: list[TextRun] = Field(default_factory=list)
    viewport: Optional[Viewport] = None

    @property
    def size(self) -> Optional[tuple[float, float]]:
        """Displayed (width, height), if the viewport is known."""
        if self.viewport is None:
            return None
        return (self.viewport.width, self.viewport.height)
