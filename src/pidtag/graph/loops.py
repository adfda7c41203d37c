"""Instrument loop grouping.

Instrument tags such as `TT-205` and `TIC-205` belong to the same control
loop: they share the measured-variable letter and the loop number. Loops
are keyed by a derived id (`T-205`), so creating one twice is rejected.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from pidtag.models import Category, Loop, Tag

logger = logging.getLogger(__name__)

TAG_WITH_DASH = re.compile(r"^([A-Z]{1,4})-?(\d+)\s*([A-Z]*)$")
TAG_WITHOUT_DASH = re.compile(r"^([A-Z]{1,4})(\d+)([A-Z]*)$")

# Loose parse used for export columns (`PT 101`, `pt-101a`, ...)
LOOP_NUMBER = re.compile(r"^([A-Z]+)[- ]?(\d+)", re.IGNORECASE)

MIN_LOOP_SIZE = 2


@dataclass(frozen=True)
class ParsedInstrumentTag:
    """Structured view of an instrument tag text."""

    function: str
    number: int
    suffix: str = ""


def parse_instrument_tag(text: str) -> Optional[ParsedInstrumentTag]:
    """Split `PT-7083 C` into function `PT`, number 7083 and suffix `C`."""
    clean = text.strip()
    match = TAG_WITH_DASH.match(clean) or TAG_WITHOUT_DASH.match(clean)
    if not match:
        return None
    return ParsedInstrumentTag(
        function=match.group(1),
        number=int(match.group(2)),
        suffix=match.group(3).strip(),
    )


def _common_prefix(a: str, b: str) -> str:
    i = 0
    while i < min(len(a), len(b)) and a[i] == b[i]:
        i += 1
    return a[:i]


def generate_loop_id(tags: list[Tag]) -> Optional[str]:
    """Derive a loop id from the tags' common function prefix and number.

    Args:
        tags: Instrument tags, the first one anchoring the number.

    Returns:
        Loop id such as `T-205`, or None for an empty list.
    """
    if not tags:
        return None
    first = parse_instrument_tag(tags[0].text)
    if first is None:
        return f"{tags[0].text[:1]}-000"

    prefix = first.function
    for tag in tags[1:]:
        parsed = parse_instrument_tag(tag.text)
        if parsed and parsed.number == first.number:
            prefix = _common_prefix(prefix, parsed.function)
    if not prefix:
        prefix = first.function[0]
    return f"{prefix}-{first.number}"


def group_instruments(tags: Iterable[Tag]) -> dict[str, list[Tag]]:
    """Group parseable instrument tags by first function letter and number."""
    groups: dict[str, list[Tag]] = {}
    for tag in tags:
        if tag.category != Category.INSTRUMENT:
            continue
        parsed = parse_instrument_tag(tag.text)
        if parsed is None:
            continue
        groups.setdefault(f"{parsed.function[0]}-{parsed.number}", []).append(tag)
    return groups


def auto_generate_loops(
    tags: Iterable[Tag],
    existing: Iterable[Loop] = (),
    page: Optional[int] = None,
) -> list[Loop]:
    """Build loops for every group of two or more related instruments.

    Args:
        tags: Project tags; non-instruments are ignored.
        existing: Current loops; their ids are never reused.
        page: Restrict to one page when given.

    Returns:
        Newly created loops only.
    """
    taken = {loop.id for loop in existing}
    candidates = [t for t in tags if page is None or t.page == page]
    created = []
    for key, members in group_instruments(candidates).items():
        if len(members) < MIN_LOOP_SIZE:
            continue
        loop_id = generate_loop_id(members) or key
        if loop_id in taken:
            continue
        taken.add(loop_id)
        created.append(
            Loop(id=loop_id, tag_ids=[t.id for t in members], is_auto_generated=True)
        )
    logger.debug("Generated %d loops", len(created))
    return created


def create_loop(
    tags: Iterable[Tag],
    selected_ids: Iterable[str],
    existing: Iterable[Loop] = (),
    name: Optional[str] = None,
) -> Loop:
    """Create a loop from a manual selection of instrument tags.

    Raises:
        ValueError: Fewer than two instruments selected, or the derived id
            already exists.
    """
    selected = set(selected_ids)
    instruments = [
        t for t in tags if t.id in selected and t.category == Category.INSTRUMENT
    ]
    if len(instruments) < MIN_LOOP_SIZE:
        raise ValueError("Select at least two instrument tags to create a loop")

    loop_id = generate_loop_id(instruments)
    if any(loop.id == loop_id for loop in existing):
        raise ValueError(f'Loop "{loop_id}" already exists')
    return Loop(id=loop_id, tag_ids=[t.id for t in instruments], name=name)


def update_loop(
    loops: Iterable[Loop], loop_id: str, tag_ids: list[str], name: Optional[str] = None
) -> list[Loop]:
    """Replace a loop's members and name; loops left too small are removed."""
    updated = []
    for loop in loops:
        if loop.id == loop_id:
            loop = loop.model_copy(update={"tag_ids": list(tag_ids), "name": name})
        if len(loop.tag_ids) >= MIN_LOOP_SIZE:
            updated.append(loop)
    return updated


def delete_loops(loops: Iterable[Loop], loop_ids: Iterable[str]) -> list[Loop]:
    """Loops without the given ids."""
    doomed = set(loop_ids)
    return [loop for loop in loops if loop.id not in doomed]


def remove_tags_from_loops(loops: Iterable[Loop], tag_ids: Iterable[str]) -> list[Loop]:
    """Drop deleted tags from loop membership, removing loops left too small."""
    removed = set(tag_ids)
    remaining = []
    for loop in loops:
        members = [t for t in loop.tag_ids if t not in removed]
        if len(members) < MIN_LOOP_SIZE:
            continue
        if len(members) != len(loop.tag_ids):
            loop = loop.model_copy(update={"tag_ids": members})
        remaining.append(loop)
    return remaining


def extract_loop_number(text: str, loop_rules: dict[str, str]) -> str:
    """Loop number for export, e.g. `TT-205` → `T-205` with default rules.

    Uses the configured function → prefix rule, falling back to the first
    letter. `FF` tags have no loop.
    """
    match = LOOP_NUMBER.match(text.strip())
    if not match:
        return ""
    function, number = match.group(1).upper(), match.group(2)
    if function == "FF":
        return ""
    prefix = loop_rules.get(function, function[0])
    return f"{prefix}-{number}"
