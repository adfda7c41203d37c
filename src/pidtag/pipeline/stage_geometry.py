"""Coordinate Transform Stage - PDF text runs to screen-space boxes.

Every consumer that needs a text run's position goes through this module:
- compute_bbox: affine transform + page rotation → top-left-origin bbox
- right_bottom_corner: rotation-aware reference corner for drawing numbers
- distance helpers shared by the linking and optimization stages
"""

import math
from typing import Optional

from pidtag.models import BoundingBox, TextRun, Viewport

# Fraction of glyph height that sits below the baseline
DESCENT_RATIO = 0.2


def _pdf_space_bbox(run: TextRun, offset_x: float, offset_y: float) -> BoundingBox:
    """Rotate the run's local glyph box by its transform and take min/max."""
    a, b, _c, _d, e, f = run.transform
    angle = math.atan2(b, a)
    cos, sin = math.cos(angle), math.sin(angle)
    descent = run.height * DESCENT_RATIO

    corners = [
        (0.0, -descent),
        (run.width, -descent),
        (run.width, run.height),
        (0.0, run.height),
    ]
    xs = [x * cos - y * sin + e - offset_x for x, y in corners]
    ys = [x * sin + y * cos + f - offset_y for x, y in corners]
    return BoundingBox.from_points(xs, ys)


def compute_bbox(run: TextRun, viewport: Optional[Viewport]) -> BoundingBox:
    """Convert a text run to a bbox in display coordinates.

    Args:
        run: Text run with affine transform and glyph size.
        viewport: Page viewport. Without one the raw PDF-space box is returned.

    Returns:
        BoundingBox whose coordinates grow left→right and top→bottom.
    """
    if viewport is None:
        return _pdf_space_bbox(run, 0.0, 0.0)

    vb = viewport.view_box
    pdf = _pdf_space_bbox(run, vb[0], vb[1])
    rotation = viewport.rotation % 360

    if rotation == 90:
        return BoundingBox(x1=pdf.y1, y1=pdf.x1, x2=pdf.y2, y2=pdf.x2)

    if rotation == 270:
        # Uses view box extents rather than viewport size
        vb_width = vb[2] or viewport.width
        vb_height = vb[3] or viewport.height
        return BoundingBox(
            x1=vb_height - pdf.y2,
            y1=vb_width - pdf.x2,
            x2=vb_height - pdf.y1,
            y2=vb_width - pdf.x1,
        )

    if rotation == 180:
        return BoundingBox(
            x1=viewport.width - pdf.x2,
            y1=viewport.height - pdf.y2,
            x2=viewport.width - pdf.x1,
            y2=viewport.height - pdf.y1,
        )

    return BoundingBox(
        x1=pdf.x1,
        y1=viewport.height - pdf.y2,
        x2=pdf.x2,
        y2=viewport.height - pdf.y1,
    )


def right_bottom_corner(viewport: Viewport) -> tuple[float, float]:
    """Reference corner where the title block usually sits, per rotation."""
    rotation = viewport.rotation % 360
    if rotation == 90:
        return (0.0, viewport.height)
    if rotation == 180:
        return (0.0, 0.0)
    if rotation == 270:
        return (viewport.height, 0.0)
    return (viewport.width, viewport.height)


def center_distance(a: BoundingBox, b: BoundingBox) -> float:
    """Euclidean distance between box centers."""
    (ax, ay), (bx, by) = a.center, b.center
    return math.hypot(ax - bx, ay - by)


def min_corner_distance(point: tuple[float, float], box: BoundingBox) -> float:
    """Smallest distance from a point to the box's four corners or center."""
    px, py = point
    probes = [
        (box.x1, box.y1),
        (box.x2, box.y1),
        (box.x1, box.y2),
        (box.x2, box.y2),
        box.center,
    ]
    return min(math.hypot(px - x, py - y) for x, y in probes)


def circle_rect_distance(center: tuple[float, float], box: BoundingBox) -> float:
    """Distance from a point to the closest point of a rectangle."""
    cx, cy = center
    closest_x = max(box.x1, min(cx, box.x2))
    closest_y = max(box.y1, min(cy, box.y2))
    return math.hypot(cx - closest_x, cy - closest_y)


def circle_intersects_rect(center: tuple[float, float], radius: float, box: BoundingBox) -> bool:
    """True if a circle touches or overlaps the rectangle."""
    return circle_rect_distance(center, box) <= radius
