"""PDF Source Stage - Read text runs and viewports from PDF pages.

Uses PyMuPDF (fitz) for the text layer. Each span becomes a TextRun whose
transform is expressed in PDF user space (bottom-left origin), so the
coordinate transform stage can treat every source the same way.
"""

import logging
import math
from pathlib import Path
from typing import Iterator, Optional, Protocol, Union

import fitz  # PyMuPDF

from pidtag.models import PageContent, TextRun, Viewport

logger = logging.getLogger(__name__)


class PageSource(Protocol):
    """Anything that can hand out page text runs by 1-based page number."""

    @property
    def page_count(self) -> int: ...

    def get_page(self, page_number: int) -> PageContent: ...


class StaticPageSource:
    """Page source backed by already-built PageContent objects."""

    def __init__(self, pages: list[PageContent]):
        self._pages = {p.page_number: p for p in pages}

    @property
    def page_count(self) -> int:
        return max(self._pages, default=0)

    def get_page(self, page_number: int) -> PageContent:
        page = self._pages.get(page_number)
        if page is None:
            # Gaps are treated as blank pages
            return PageContent(page_number=page_number)
        return page


class PyMuPDFPageSource:
    """Page source reading a PDF file with PyMuPDF.

    Usable as a context manager so the document handle is closed.
    """

    def __init__(self, pdf_path: Union[str, Path]):
        """Open a PDF document.

        Args:
            pdf_path: Path to the PDF file.
        """
        self.pdf_path = Path(pdf_path)
        if not self.pdf_path.exists():
            raise FileNotFoundError(f"PDF not found: {self.pdf_path}")
        self._doc = fitz.open(str(self.pdf_path))

    def __enter__(self) -> "PyMuPDFPageSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying document."""
        self._doc.close()

    @property
    def page_count(self) -> int:
        return len(self._doc)

    def iter_pages(self) -> Iterator[PageContent]:
        """Yield every page in order."""
        for page_number in range(1, self.page_count + 1):
            yield self.get_page(page_number)

    def get_page(self, page_number: int) -> PageContent:
        """Read one page's text runs and viewport.

        Args:
            page_number: 1-indexed page number.

        Returns:
            PageContent with one TextRun per non-blank span.
        """
        if not 1 <= page_number <= self.page_count:
            raise ValueError(f"Page {page_number} out of range (1-{self.page_count})")

        page = self._doc[page_number - 1]
        mediabox = page.mediabox
        viewport = Viewport(
            width=page.rect.width,
            height=page.rect.height,
            view_box=(mediabox.x0, mediabox.y0, mediabox.x1, mediabox.y1),
            rotation=page.rotation,
        )

        # Extracted text follows the rotated page; undo the rotation first
        to_pdf_space = page.derotation_matrix * ~page.transformation_matrix
        runs: list[TextRun] = []
        text_dict = page.get_text("dict")
        for block in text_dict.get("blocks", []):
            if block.get("type", 0) != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    run = _span_to_run(span, line.get("dir", (1.0, 0.0)), to_pdf_space)
                    if run is not None:
                        runs.append(run)

        logger.debug("Page %d: %d text runs", page_number, len(runs))
        return PageContent(page_number=page_number, text_runs=runs, viewport=viewport)


def _span_to_run(span: dict, direction: tuple, to_pdf_space) -> Optional[TextRun]:
    """Convert a PyMuPDF span dict to a TextRun in PDF user space."""
    text = span.get("text", "")
    if not text.strip():
        return None

    size = float(span.get("size", 0.0))
    cos, sin = direction
    x0, y0, x1, y1 = span["bbox"]
    # Extent along the writing direction
    width = abs(x1 - x0) if abs(cos) >= abs(sin) else abs(y1 - y0)

    origin = fitz.Point(span["origin"]) * to_pdf_space
    # Direction goes through the linear part of the mapping only
    heading = fitz.Point(cos, sin) * to_pdf_space - fitz.Point(0, 0) * to_pdf_space
    angle = math.atan2(heading.y, heading.x)
    a, b = math.cos(angle) * size, math.sin(angle) * size
    return TextRun(
        text=text,
        transform=(a, b, -b, a, origin.x, origin.y),
        width=width,
        height=size,
    )
