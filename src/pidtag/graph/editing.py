"""Editing operations over a project state.

Every operation takes a `ProjectState` and returns a new one; the input is
never mutated. Operations keep the project graph consistent: entities that
are removed take their relationships (and loop memberships) with them.
"""

import logging
import re
from functools import cmp_to_key
from typing import Iterable, Optional

from pidtag.models import (
    AppSettings,
    BoundingBox,
    Category,
    Description,
    DescriptionMetadata,
    DescriptionScope,
    NoteHoldType,
    ProjectState,
    RawTextItem,
    RelationshipType,
    SourceItem,
    Tag,
)

from .loops import remove_tags_from_loops
from .relationships import drop_relationships_touching, link_descriptions

logger = logging.getLogger(__name__)

ROW_TOLERANCE = 5
WHITESPACE = re.compile(r"\s+")


def _row_compare(a: SourceItem, b: SourceItem) -> float:
    dy = a.bbox.y1 - b.bbox.y1
    if abs(dy) > ROW_TOLERANCE:
        return dy
    return a.bbox.x1 - b.bbox.x1


def reading_order(items: Iterable[SourceItem]) -> list[SourceItem]:
    """Sort top to bottom, then left to right within a 5 px row band."""
    return sorted(items, key=cmp_to_key(_row_compare))


def _single_page(items: list[SourceItem]) -> int:
    if not items:
        raise ValueError("No items selected")
    page = items[0].page
    if any(item.page != page for item in items):
        raise ValueError("Selected items must be on the same page")
    return page


def _clean_text(text: str, category: Category, app_settings: AppSettings) -> str:
    if app_settings.auto_remove_whitespace and category != Category.NOTES_AND_HOLDS:
        return WHITESPACE.sub("", text)
    return text


# Tags


def create_tag_from_items(
    state: ProjectState,
    item_ids: Iterable[str],
    category: Category,
    app_settings: Optional[AppSettings] = None,
) -> tuple[ProjectState, Tag]:
    """Combine raw text items into one tag.

    Args:
        state: Current project state.
        item_ids: Raw items to convert.
        category: Category of the new tag.
        app_settings: Hyphen and whitespace options.

    Returns:
        (new state, created tag). The items are removed from the raw pool
        and kept as the tag's source items.

    Raises:
        ValueError: If no items are selected or they span several pages.
    """
    app_settings = app_settings or AppSettings()
    wanted = set(item_ids)
    items = [r for r in state.raw_text_items if r.id in wanted]
    page = _single_page(items)

    separator = "-" if app_settings.hyphen_settings.for_category(category) else ""
    text = separator.join(item.text for item in reading_order(items))
    tag = Tag(
        text=_clean_text(text, category, app_settings),
        page=page,
        bbox=BoundingBox.enclosing(item.bbox for item in items),
        category=category,
        source_items=items,
    )

    consumed = {item.id for item in items}
    relationships = [
        r
        for r in state.relationships
        if not (r.type == RelationshipType.ANNOTATION and r.to_id in consumed)
    ]
    new_state = state.model_copy(
        update={
            "tags": [*state.tags, tag],
            "raw_text_items": [r for r in state.raw_text_items if r.id not in consumed],
            "relationships": relationships,
        }
    )
    return new_state, tag


def create_manual_tag(
    state: ProjectState,
    text: str,
    page: int,
    bbox: BoundingBox,
    category: Category,
    app_settings: Optional[AppSettings] = None,
) -> tuple[ProjectState, Tag]:
    """Add a tag drawn by hand, with no source items."""
    if not text:
        raise ValueError("Tag text must not be empty")
    app_settings = app_settings or AppSettings()
    tag = Tag(
        text=_clean_text(text, category, app_settings),
        page=page,
        bbox=bbox,
        category=category,
        source_items=[],
    )
    return state.model_copy(update={"tags": [*state.tags, tag]}), tag


def _restore_items(tag: Tag) -> list[RawTextItem]:
    if tag.source_items:
        return [
            RawTextItem(text=item.text, page=tag.page, bbox=item.bbox)
            for item in tag.source_items
        ]
    return [RawTextItem(text=tag.text, page=tag.page, bbox=tag.bbox)]


def delete_tags(state: ProjectState, tag_ids: Iterable[str]) -> ProjectState:
    """Delete tags, putting their text back into the raw pool.

    Tags built from raw items restore those items (with fresh ids); other
    tags come back as a single raw item carrying the tag's text and box.
    """
    doomed = set(tag_ids)
    restored = []
    for tag in state.tags:
        if tag.id in doomed:
            restored.extend(_restore_items(tag))
    logger.debug("Deleting %d tags, restoring %d raw items", len(doomed), len(restored))
    return state.model_copy(
        update={
            "tags": [t for t in state.tags if t.id not in doomed],
            "raw_text_items": [*state.raw_text_items, *restored],
            "relationships": drop_relationships_touching(state.relationships, doomed),
            "loops": remove_tags_from_loops(state.loops, doomed),
        }
    )


def merge_raw_items(state: ProjectState, item_ids: Iterable[str]) -> tuple[ProjectState, RawTextItem]:
    """Merge raw items into one, joined with spaces in reading order.

    Raises:
        ValueError: Fewer than two items, or items on different pages.
    """
    wanted = set(item_ids)
    items = [r for r in state.raw_text_items if r.id in wanted]
    if len(items) < 2:
        raise ValueError("Select at least two raw text items to merge")
    page = _single_page(items)

    merged = RawTextItem(
        text=" ".join(item.text for item in reading_order(items)),
        page=page,
        bbox=BoundingBox.enclosing(item.bbox for item in items),
    )
    removed = {item.id for item in items}
    new_state = state.model_copy(
        update={
            "raw_text_items": [
                *(r for r in state.raw_text_items if r.id not in removed),
                merged,
            ],
            "relationships": [r for r in state.relationships if r.to_id not in removed],
        }
    )
    return new_state, merged


def delete_raw_items(state: ProjectState, item_ids: Iterable[str]) -> ProjectState:
    """Remove raw items and the relationships pointing at them."""
    doomed = set(item_ids)
    return state.model_copy(
        update={
            "raw_text_items": [r for r in state.raw_text_items if r.id not in doomed],
            "relationships": [r for r in state.relationships if r.to_id not in doomed],
        }
    )


def update_tag_text(state: ProjectState, tag_id: str, text: str) -> ProjectState:
    tags = [t.model_copy(update={"text": text}) if t.id == tag_id else t for t in state.tags]
    return state.model_copy(update={"tags": tags})


def update_raw_item_text(state: ProjectState, item_id: str, text: str) -> ProjectState:
    items = [
        r.model_copy(update={"text": text}) if r.id == item_id else r
        for r in state.raw_text_items
    ]
    return state.model_copy(update={"raw_text_items": items})


def set_tags_reviewed(state: ProjectState, tag_ids: Iterable[str], reviewed: bool = True) -> ProjectState:
    """Set the review flag on the given tags."""
    wanted = set(tag_ids)
    tags = [
        t.model_copy(update={"is_reviewed": reviewed}) if t.id in wanted else t
        for t in state.tags
    ]
    return state.model_copy(update={"tags": tags})


def remove_whitespace(state: ProjectState) -> tuple[ProjectState, int]:
    """Strip all whitespace from Line and Instrument tags.

    Returns:
        (new state, number of tags whose text changed).
    """
    changed = 0
    tags = []
    for tag in state.tags:
        if tag.category in (Category.LINE, Category.INSTRUMENT):
            text = WHITESPACE.sub("", tag.text)
            if text != tag.text:
                changed += 1
                tag = tag.model_copy(update={"text": text})
        tags.append(tag)
    logger.info("Removed whitespace from %d tags", changed)
    return state.model_copy(update={"tags": tags}), changed


# Descriptions


def next_description_number(
    descriptions: Iterable[Description],
    page: int,
    kind: NoteHoldType,
    exclude_id: Optional[str] = None,
) -> int:
    """One more than the highest number of this type on the page (1 if none)."""
    numbers = [
        d.metadata.number
        for d in descriptions
        if d.page == page and d.metadata.type == kind and d.id != exclude_id
    ]
    return max(numbers) + 1 if numbers else 1


def create_description(
    state: ProjectState,
    selected_ids: Iterable[str],
    kind: NoteHoldType = NoteHoldType.NOTE,
) -> tuple[ProjectState, Description]:
    """Turn selected tags and raw items into a numbered description.

    The selection is removed from the project and kept as the description's
    sources. Matching NOTE/HOLD callouts on the page are linked to it.

    Raises:
        ValueError: If nothing is selected or the selection spans pages.
    """
    selection = state.find(selected_ids)
    page = _single_page(selection)

    ordered = sorted(selection, key=lambda item: item.bbox.y1)
    description = Description(
        text=" ".join(item.text for item in ordered),
        page=page,
        bbox=BoundingBox.enclosing(item.bbox for item in ordered),
        source_items=ordered,
        metadata=DescriptionMetadata(
            type=kind,
            scope=DescriptionScope.SPECIFIC,
            number=next_description_number(state.descriptions, page, kind),
        ),
    )

    consumed = {item.id for item in selection}
    remaining_tags = [t for t in state.tags if t.id not in consumed]
    relationships = drop_relationships_touching(state.relationships, consumed)
    callouts = [t for t in remaining_tags if t.page == page]
    links = link_descriptions(callouts, [description], relationships)

    new_state = state.model_copy(
        update={
            "tags": remaining_tags,
            "raw_text_items": [r for r in state.raw_text_items if r.id not in consumed],
            "descriptions": [*state.descriptions, description],
            "relationships": [*relationships, *links],
            "loops": remove_tags_from_loops(state.loops, consumed),
        }
    )
    return new_state, description


def delete_descriptions(state: ProjectState, description_ids: Iterable[str]) -> ProjectState:
    """Delete descriptions and restore their sources that are not present."""
    doomed = set(description_ids)
    tags = list(state.tags)
    items = list(state.raw_text_items)
    present = {t.id for t in tags} | {r.id for r in items}

    for desc in state.descriptions:
        if desc.id not in doomed:
            continue
        for source in desc.source_items:
            if source.id in present:
                continue
            present.add(source.id)
            if isinstance(source, Tag):
                tags.append(source)
            else:
                items.append(source)

    return state.model_copy(
        update={
            "tags": tags,
            "raw_text_items": items,
            "descriptions": [d for d in state.descriptions if d.id not in doomed],
            "relationships": drop_relationships_touching(state.relationships, doomed),
        }
    )


def update_description(
    state: ProjectState,
    description_id: str,
    text: Optional[str] = None,
    metadata: Optional[DescriptionMetadata] = None,
) -> ProjectState:
    """Edit a description's text or metadata.

    Changing the type renumbers the description to the next free number of
    the new type on its page.
    """
    updated = []
    for desc in state.descriptions:
        if desc.id == description_id:
            changes: dict = {}
            if text is not None:
                changes["text"] = text
            if metadata is not None:
                if metadata.type != desc.metadata.type:
                    number = next_description_number(
                        state.descriptions, desc.page, metadata.type, exclude_id=desc.id
                    )
                    metadata = metadata.model_copy(update={"number": number})
                changes["metadata"] = metadata
            desc = desc.model_copy(update=changes)
        updated.append(desc)
    return state.model_copy(update={"descriptions": updated})
