"""Project graph operations.

Relationship builders, loop grouping and editing operations. All of them
work on plain model collections or a `ProjectState` and return new values.
"""

from .editing import (
    create_description,
    create_manual_tag,
    create_tag_from_items,
    delete_descriptions,
    delete_raw_items,
    delete_tags,
    merge_raw_items,
    reading_order,
    remove_whitespace,
    set_tags_reviewed,
    update_description,
    update_raw_item_text,
    update_tag_text,
)
from .linking import auto_link_notes_and_holds
from .loops import (
    ParsedInstrumentTag,
    auto_generate_loops,
    create_loop,
    delete_loops,
    extract_loop_number,
    generate_loop_id,
    parse_instrument_tag,
    remove_tags_from_loops,
    update_loop,
)
from .relationships import (
    LinkResult,
    auto_link_annotations,
    create_annotations,
    create_connections,
    create_installations,
    create_note_links,
    create_note_relationships,
    dedupe_relationships,
    link_descriptions,
)

__all__ = [
    # Relationships
    "LinkResult",
    "auto_link_annotations",
    "create_annotations",
    "create_connections",
    "create_installations",
    "create_note_links",
    "create_note_relationships",
    "dedupe_relationships",
    "link_descriptions",
    "auto_link_notes_and_holds",
    # Loops
    "ParsedInstrumentTag",
    "auto_generate_loops",
    "create_loop",
    "delete_loops",
    "extract_loop_number",
    "generate_loop_id",
    "parse_instrument_tag",
    "remove_tags_from_loops",
    "update_loop",
    # Editing
    "create_description",
    "create_manual_tag",
    "create_tag_from_items",
    "delete_descriptions",
    "delete_raw_items",
    "delete_tags",
    "merge_raw_items",
    "reading_order",
    "remove_whitespace",
    "set_tags_reviewed",
    "update_description",
    "update_raw_item_text",
    "update_tag_text",
]
