"""Project-level NOTE/HOLD linking.

Runs the whole note workflow over a project state:
1. Link existing descriptions to the NOTE/HOLD callouts citing them
2. Detect numbered note descriptions in the raw text of each page
3. Store new descriptions (consuming their raw items) and link them
4. Connect instruments to nearby NOTE callouts
"""

import logging
from typing import Optional

from pidtag.models import (
    Category,
    Description,
    DescriptionMetadata,
    DescriptionScope,
    NoteDescriptionPattern,
    NoteHoldType,
    ProjectState,
)
from pidtag.pipeline.stage_notes import detect_note_descriptions

from .relationships import LinkResult, create_note_links, link_descriptions

logger = logging.getLogger(__name__)


def auto_link_notes_and_holds(
    state: ProjectState,
    page_sizes: Optional[dict[int, tuple[float, float]]],
    pattern: Optional[NoteDescriptionPattern] = None,
) -> tuple[ProjectState, LinkResult]:
    """Detect note descriptions and link callouts, descriptions and instruments.

    Args:
        state: Current project state.
        page_sizes: Page number → (width, height); None when the document
            is not available.
        pattern: Layout parameters for description detection.

    Returns:
        (new state, LinkResult with the created relationships and
        descriptions). Without page sizes the state is returned unchanged.
    """
    if page_sizes is None:
        return state, LinkResult(message="No page sizes available; load the PDF first")

    relationships = list(state.relationships)
    existing_links = link_descriptions(state.tags, state.descriptions, relationships)
    relationships.extend(existing_links)

    known = {(d.page, d.metadata.type, d.metadata.number) for d in state.descriptions}
    new_descriptions: list[Description] = []
    consumed: set[str] = set()
    for page, (width, _) in sorted(page_sizes.items()):
        items = [r for r in state.raw_text_items if r.page == page and r.id not in consumed]
        for note in detect_note_descriptions(items, width, pattern):
            key = (page, NoteHoldType.NOTE, note.number)
            if key in known:
                continue
            known.add(key)
            new_descriptions.append(
                Description(
                    text=note.text,
                    page=page,
                    bbox=note.bbox,
                    source_items=note.items,
                    metadata=DescriptionMetadata(
                        type=NoteHoldType.NOTE,
                        scope=DescriptionScope.SPECIFIC,
                        number=note.number,
                    ),
                )
            )
            consumed.update(item.id for item in note.items)

    description_links = link_descriptions(state.tags, new_descriptions, relationships)
    relationships.extend(description_links)
    note_links = create_note_links(state.tags, relationships)
    relationships.extend(note_links)

    # Annotations on consumed items would dangle
    relationships = [r for r in relationships if r.to_id not in consumed]
    created = existing_links + description_links + note_links

    callouts = len(state.tags_by_category(Category.NOTES_AND_HOLDS))
    message = (
        f"Created {len(new_descriptions)} descriptions and {len(created)} relationships "
        f"for {callouts} NOTE/HOLD tags"
    )
    logger.info(message)

    new_state = state.model_copy(
        update={
            "raw_text_items": [r for r in state.raw_text_items if r.id not in consumed],
            "descriptions": [*state.descriptions, *new_descriptions],
            "relationships": relationships,
        }
    )
    return new_state, LinkResult(
        relationships=created, descriptions=new_descriptions, message=message
    )
