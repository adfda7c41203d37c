"""Relationship construction over tags, raw items and descriptions.

Every builder returns only the relationships that are new: candidates are
checked against the existing `from-to-type` keys (and against each other)
before they are returned.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pidtag.models import (
    Category,
    Description,
    DescriptionScope,
    NoteHoldType,
    RawTextItem,
    Relationship,
    RelationshipType,
    Tag,
)
from pidtag.pipeline.stage_geometry import min_corner_distance
from pidtag.pipeline.stage_note_links import create_optimized_note_connections

logger = logging.getLogger(__name__)

INTEGER = re.compile(r"\d+")


@dataclass
class LinkResult:
    """Outcome of a linking operation.

    An empty result with a message means the operation was a no-op.
    """

    relationships: list[Relationship] = field(default_factory=list)
    descriptions: list[Description] = field(default_factory=list)
    message: str = ""


def extract_numbers(text: str) -> list[int]:
    """All integers appearing in a text, e.g. `NOTE 1, 3` → [1, 3]."""
    return [int(n) for n in INTEGER.findall(text)]


def dedupe_relationships(
    candidates: Iterable[Relationship], existing: Iterable[Relationship] = ()
) -> list[Relationship]:
    """Drop candidates whose `from-to-type` key already exists."""
    seen = {r.key for r in existing}
    fresh = []
    for rel in candidates:
        if rel.key in seen:
            continue
        seen.add(rel.key)
        fresh.append(rel)
    return fresh


def _edge(from_id: str, to_id: str, rel_type: RelationshipType) -> Relationship:
    return Relationship(from_id=from_id, to_id=to_id, type=rel_type)


def create_connections(
    ordered_tags: list[Tag], existing: Iterable[Relationship] = ()
) -> list[Relationship]:
    """Chain tags in selection order: A→B, B→C, …"""
    candidates = [
        _edge(a.id, b.id, RelationshipType.CONNECTION)
        for a, b in zip(ordered_tags, ordered_tags[1:])
    ]
    return dedupe_relationships(candidates, existing)


def create_installations(
    instruments: list[Tag], base: Tag, existing: Iterable[Relationship] = ()
) -> list[Relationship]:
    """Link each instrument to the single base tag it is installed on.

    Raises:
        ValueError: If the base tag is also listed as an instrument.
    """
    if any(t.id == base.id for t in instruments):
        raise ValueError("Installation base must not be one of the instruments")
    candidates = [
        _edge(t.id, base.id, RelationshipType.INSTALLATION)
        for t in instruments
        if t.category == Category.INSTRUMENT
    ]
    return dedupe_relationships(candidates, existing)


def create_annotations(
    tag: Tag, items: list[RawTextItem], existing: Iterable[Relationship] = ()
) -> list[Relationship]:
    """Manually annotate a tag with raw text items."""
    candidates = [_edge(tag.id, item.id, RelationshipType.ANNOTATION) for item in items]
    return dedupe_relationships(candidates, existing)


def create_note_relationships(
    tag: Tag, note_tags: list[Tag], existing: Iterable[Relationship] = ()
) -> list[Relationship]:
    """Manually link a tag to NOTE/HOLD callouts."""
    candidates = [
        _edge(tag.id, note.id, RelationshipType.NOTE)
        for note in note_tags
        if note.category == Category.NOTES_AND_HOLDS
    ]
    return dedupe_relationships(candidates, existing)


def auto_link_annotations(
    tags: list[Tag],
    items: list[RawTextItem],
    existing: Iterable[Relationship],
    auto_link_distance: Optional[float],
) -> LinkResult:
    """Attach each raw item to its nearest instrument within a distance.

    Distance is measured from the instrument's center to the closest corner
    (or center) of the raw item. Items that already carry an annotation are
    left alone.
    """
    if auto_link_distance is None:
        return LinkResult(message="Auto-link distance is not configured; nothing linked")

    existing = list(existing)
    annotated = {r.to_id for r in existing if r.type == RelationshipType.ANNOTATION}
    instruments_by_page: dict[int, list[Tag]] = {}
    for tag in tags:
        if tag.category == Category.INSTRUMENT:
            instruments_by_page.setdefault(tag.page, []).append(tag)

    candidates = []
    for item in items:
        if item.id in annotated:
            continue
        closest, closest_dist = None, math.inf
        for tag in instruments_by_page.get(item.page, []):
            dist = min_corner_distance(tag.bbox.center, item.bbox)
            if dist <= auto_link_distance and dist < closest_dist:
                closest, closest_dist = tag, dist
        if closest is not None:
            candidates.append(_edge(closest.id, item.id, RelationshipType.ANNOTATION))

    created = dedupe_relationships(candidates, existing)
    logger.debug("Auto-linked %d of %d raw items", len(created), len(items))
    return LinkResult(relationships=created, message=f"Linked {len(created)} raw items")


def create_note_links(
    tags: list[Tag], existing: Iterable[Relationship] = ()
) -> list[Relationship]:
    """Connect instruments to the closest NOTE callout within reach."""
    return create_optimized_note_connections(tags, existing)


def link_descriptions(
    tags: list[Tag],
    descriptions: list[Description],
    existing: Iterable[Relationship] = (),
) -> list[Relationship]:
    """Link NOTE/HOLD callouts to the numbered descriptions they cite.

    A callout `NOTE 1, 3` links to Specific NOTE descriptions 1 and 3 on the
    same page.
    """
    candidates = []
    for tag in tags:
        if tag.category != Category.NOTES_AND_HOLDS:
            continue
        kind = NoteHoldType.from_text(tag.text)
        if kind is None:
            continue
        numbers = set(extract_numbers(tag.text))
        if not numbers:
            continue
        for desc in descriptions:
            meta = desc.metadata
            if (
                desc.page == tag.page
                and meta.type == kind
                and meta.scope == DescriptionScope.SPECIFIC
                and meta.number in numbers
            ):
                candidates.append(_edge(tag.id, desc.id, RelationshipType.DESCRIPTION))
    return dedupe_relationships(candidates, existing)


def drop_relationships_touching(
    relationships: Iterable[Relationship], ids: Iterable[str]
) -> list[Relationship]:
    """Relationships that reference none of the given ids."""
    ids = set(ids)
    return [r for r in relationships if r.from_id not in ids and r.to_id not in ids]

