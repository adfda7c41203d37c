"""Pytest configuration and fixtures."""

import pytest

from pidtag.models import (
    BoundingBox,
    Category,
    PageContent,
    ProjectState,
    RawTextItem,
    Tag,
    TextRun,
    Viewport,
)

PAGE_WIDTH = 1000.0
PAGE_HEIGHT = 800.0


def make_run(text: str, x: float, y: float, size: float = 10.0, width: float = None) -> TextRun:
    """Horizontal text run with its baseline origin at PDF-space (x, y)."""
    return TextRun(
        text=text,
        transform=(size, 0.0, 0.0, size, x, y),
        width=len(text) * size * 0.6 if width is None else width,
        height=size,
    )


def make_box(x1: float, y1: float, x2: float, y2: float) -> BoundingBox:
    return BoundingBox(x1=x1, y1=y1, x2=x2, y2=y2)


def make_tag(text: str, category: Category, box: tuple, page: int = 1, **kwargs) -> Tag:
    return Tag(text=text, page=page, bbox=make_box(*box), category=category, **kwargs)


def make_item(text: str, box: tuple, page: int = 1) -> RawTextItem:
    return RawTextItem(text=text, page=page, bbox=make_box(*box))


@pytest.fixture
def viewport():
    """Unrotated landscape viewport."""
    return Viewport(
        width=PAGE_WIDTH,
        height=PAGE_HEIGHT,
        view_box=(0.0, 0.0, PAGE_WIDTH, PAGE_HEIGHT),
        rotation=0,
    )


@pytest.fixture
def instrument_page(viewport):
    """Page with a split PT / 101 instrument bubble and a line number."""
    return PageContent(
        page_number=1,
        text_runs=[
            make_run("PT", 100, 500),
            make_run("101", 100, 488),
            make_run('8"-PL-30001-C1C', 300, 500),
            make_run("VENDOR", 600, 300),
        ],
        viewport=viewport,
    )


@pytest.fixture
def sample_state():
    """Small project: two loop instruments, a line, a note callout and loose text."""
    tags = [
        make_tag("TT-205", Category.INSTRUMENT, (100, 100, 130, 120)),
        make_tag("TIC-205", Category.INSTRUMENT, (100, 200, 135, 220)),
        make_tag("PT-101", Category.INSTRUMENT, (500, 100, 530, 120)),
        make_tag('8"-PL-30001', Category.LINE, (90, 140, 200, 150)),
        make_tag("NOTE 1", Category.NOTES_AND_HOLDS, (140, 100, 170, 112)),
        make_tag("00342GS-7300-PRP-D-105", Category.DRAWING_NUMBER, (800, 750, 950, 760)),
    ]
    items = [
        make_item("SET", (300, 300, 320, 310)),
        make_item("AT", (330, 300, 345, 310)),
        make_item("50", (300, 320, 315, 330)),
    ]
    return ProjectState(tags=tags, raw_text_items=items)


@pytest.fixture
def output_dir(tmp_path):
    """Create a temporary output directory."""
    out_dir = tmp_path / "output"
    out_dir.mkdir()
    return out_dir
