"""Tests for project editing operations."""

import pytest

from conftest import make_box, make_item, make_tag
from pidtag.graph.editing import (
    create_description,
    create_manual_tag,
    create_tag_from_items,
    delete_descriptions,
    delete_raw_items,
    delete_tags,
    merge_raw_items,
    next_description_number,
    reading_order,
    remove_whitespace,
    set_tags_reviewed,
    update_description,
    update_raw_item_text,
    update_tag_text,
)
from pidtag.models import (
    Category,
    DescriptionMetadata,
    Loop,
    NoteHoldType,
    Relationship,
    RelationshipType,
)


def _raw_pool(state):
    return sorted((r.text, r.bbox.x1, r.bbox.y1, r.bbox.x2, r.bbox.y2) for r in state.raw_text_items)


@pytest.fixture
def set_at_ids(sample_state):
    return [sample_state.raw_text_items[0].id, sample_state.raw_text_items[1].id]


class TestReadingOrder:
    """Tests for row-banded ordering."""

    def test_rows_then_columns(self):
        """Items within 5 px vertically share a row and sort by x."""
        right = make_item("B", (50, 102, 60, 110))
        left = make_item("A", (10, 100, 20, 110))
        below = make_item("C", (0, 120, 10, 130))
        assert [i.text for i in reading_order([below, right, left])] == ["A", "B", "C"]


class TestCreateTag:
    """Tests for tag creation from raw items."""

    def test_instrument_joined_with_hyphen(self, sample_state, set_at_ids):
        """Instrument items join with a hyphen and leave the raw pool."""
        state, tag = create_tag_from_items(sample_state, set_at_ids, Category.INSTRUMENT)

        assert tag.text == "SET-AT"
        assert tag.category == Category.INSTRUMENT
        assert [s.text for s in tag.source_items] == ["SET", "AT"]
        assert (tag.bbox.x1, tag.bbox.x2) == (300, 345)
        assert [r.text for r in state.raw_text_items] == ["50"]

    def test_line_joined_without_separator(self, sample_state, set_at_ids):
        """Line items join directly."""
        _, tag = create_tag_from_items(sample_state, set_at_ids, Category.LINE)
        assert tag.text == "SETAT"

    def test_input_state_unchanged(self, sample_state, set_at_ids):
        """The original state is not mutated."""
        create_tag_from_items(sample_state, set_at_ids, Category.INSTRUMENT)
        assert len(sample_state.raw_text_items) == 3
        assert len(sample_state.tags) == 6

    def test_items_on_different_pages(self, sample_state):
        """A selection must stay on one page."""
        other = make_item("X", (0, 0, 5, 5), page=2)
        state = sample_state.model_copy(update={"raw_text_items": [*sample_state.raw_text_items, other]})
        with pytest.raises(ValueError, match="same page"):
            create_tag_from_items(state, [state.raw_text_items[0].id, other.id], Category.LINE)

    def test_empty_selection(self, sample_state):
        """Nothing selected is an error."""
        with pytest.raises(ValueError):
            create_tag_from_items(sample_state, [], Category.LINE)

    def test_annotations_to_consumed_items_dropped(self, sample_state, set_at_ids):
        """Annotations pointing at converted items are removed."""
        rel = Relationship(
            from_id=sample_state.tags[0].id, to_id=set_at_ids[0], type=RelationshipType.ANNOTATION
        )
        state = sample_state.model_copy(update={"relationships": [rel]})
        state, _ = create_tag_from_items(state, set_at_ids, Category.INSTRUMENT)
        assert state.relationships == []

    def test_manual_tag(self, sample_state):
        """A hand-drawn tag has no source items."""
        state, tag = create_manual_tag(
            sample_state, "FV 300", 1, make_box(0, 0, 10, 10), Category.INSTRUMENT
        )
        assert tag.text == "FV300"
        assert tag.source_items == []
        assert tag in state.tags

    def test_manual_tag_requires_text(self, sample_state):
        """Empty text is rejected."""
        with pytest.raises(ValueError):
            create_manual_tag(sample_state, "", 1, make_box(0, 0, 1, 1), Category.LINE)


class TestDeleteTags:
    """Tests for tag deletion."""

    def test_round_trip_restores_raw_pool(self, sample_state, set_at_ids):
        """Creating a tag and deleting it gives back the same text and boxes."""
        state, tag = create_tag_from_items(sample_state, set_at_ids, Category.INSTRUMENT)
        restored = delete_tags(state, [tag.id])

        assert _raw_pool(restored) == _raw_pool(sample_state)
        assert tag.id not in {t.id for t in restored.tags}

    def test_tag_without_sources_becomes_one_item(self, sample_state):
        """An extracted tag comes back as a raw item with its text."""
        line = sample_state.tags[3]
        state = delete_tags(sample_state, [line.id])
        assert [r.text for r in state.raw_text_items][-1] == line.text

    def test_relationships_and_loops_cleaned(self, sample_state):
        """Edges and loop memberships of deleted tags go away."""
        tt, tic, pt = sample_state.tags[:3]
        state = sample_state.model_copy(
            update={
                "relationships": [
                    Relationship(from_id=tt.id, to_id=tic.id, type=RelationshipType.CONNECTION),
                    Relationship(from_id=tic.id, to_id=pt.id, type=RelationshipType.CONNECTION),
                ],
                "loops": [Loop(id="T-205", tag_ids=[tt.id, tic.id])],
            }
        )
        state = delete_tags(state, [tt.id])

        assert [(r.from_id, r.to_id) for r in state.relationships] == [(tic.id, pt.id)]
        assert state.loops == []


class TestRawItems:
    """Tests for raw item editing."""

    def test_merge(self, sample_state, set_at_ids):
        """Merged text is space-joined in reading order."""
        state, merged = merge_raw_items(sample_state, list(reversed(set_at_ids)))
        assert merged.text == "SET AT"
        assert sorted(r.text for r in state.raw_text_items) == ["50", "SET AT"]

    def test_merge_needs_two(self, sample_state, set_at_ids):
        """One item cannot be merged."""
        with pytest.raises(ValueError, match="at least two"):
            merge_raw_items(sample_state, set_at_ids[:1])

    def test_delete_drops_relationships(self, sample_state, set_at_ids):
        """Relationships pointing at deleted items are removed."""
        rel = Relationship(
            from_id=sample_state.tags[0].id, to_id=set_at_ids[0], type=RelationshipType.ANNOTATION
        )
        state = sample_state.model_copy(update={"relationships": [rel]})
        state = delete_raw_items(state, set_at_ids[:1])
        assert state.relationships == []
        assert len(state.raw_text_items) == 2

    def test_update_texts(self, sample_state, set_at_ids):
        """Tag and raw item text can be edited in place."""
        tag_id = sample_state.tags[0].id
        state = update_tag_text(sample_state, tag_id, "TT-206")
        state = update_raw_item_text(state, set_at_ids[0], "SETPOINT")
        assert state.tags[0].text == "TT-206"
        assert state.raw_text_items[0].text == "SETPOINT"
        assert sample_state.tags[0].text == "TT-205"


class TestBulkTagEdits:
    """Tests for review flags and whitespace cleanup."""

    def test_reviewed(self, sample_state):
        """Only the listed tags are flagged."""
        state = set_tags_reviewed(sample_state, [sample_state.tags[0].id])
        assert state.tags[0].is_reviewed is True
        assert state.tags[1].is_reviewed is None

    def test_remove_whitespace(self, sample_state):
        """Line and Instrument text is stripped; NOTE callouts keep spaces."""
        spaced = make_tag("PT - 102", Category.INSTRUMENT, (0, 0, 10, 10))
        state = sample_state.model_copy(update={"tags": [*sample_state.tags, spaced]})
        state, changed = remove_whitespace(state)

        assert changed == 1
        assert state.tags[-1].text == "PT-102"
        assert "NOTE 1" in [t.text for t in state.tags]


class TestDescriptions:
    """Tests for description editing."""

    def test_create_links_callout(self, sample_state):
        """The first NOTE description on a page is number 1 and linked to NOTE 1."""
        items = sample_state.raw_text_items
        state, desc = create_description(sample_state, [items[2].id, items[0].id])

        assert desc.text == "SET 50"
        assert desc.metadata.number == 1
        assert [r.text for r in state.raw_text_items] == ["AT"]
        links = [r for r in state.relationships if r.type == RelationshipType.DESCRIPTION]
        assert [(r.from_id, r.to_id) for r in links] == [(sample_state.tags[4].id, desc.id)]

    def test_numbers_increase(self, sample_state):
        """A second description of the same type gets the next number."""
        items = sample_state.raw_text_items
        state, _ = create_description(sample_state, [items[0].id])
        state, second = create_description(state, [items[1].id])
        assert second.metadata.number == 2

    def test_tags_can_be_sources(self, sample_state):
        """Selected tags are consumed and leave their loops."""
        tt, tic = sample_state.tags[:2]
        state = sample_state.model_copy(update={"loops": [Loop(id="T-205", tag_ids=[tt.id, tic.id])]})
        state, desc = create_description(state, [tt.id])

        assert tt.id not in {t.id for t in state.tags}
        assert state.loops == []
        assert desc.source_items[0].id == tt.id

    def test_delete_restores_sources(self, sample_state):
        """Deleting a description brings its tags and items back."""
        tt = sample_state.tags[0]
        item = sample_state.raw_text_items[0]
        state, desc = create_description(sample_state, [tt.id, item.id])
        state = delete_descriptions(state, [desc.id])

        assert tt.id in {t.id for t in state.tags}
        assert item.id in {r.id for r in state.raw_text_items}
        assert state.descriptions == []
        assert not any(r.to_id == desc.id for r in state.relationships)

    def test_type_change_renumbers(self, sample_state):
        """Switching NOTE 2 to HOLD makes it HOLD 1."""
        items = sample_state.raw_text_items
        state, _ = create_description(sample_state, [items[0].id])
        state, second = create_description(state, [items[1].id])
        state = update_description(
            state, second.id, text="Hold for vendor data", metadata=DescriptionMetadata(type=NoteHoldType.HOLD, number=2)
        )
        updated = state.descriptions[-1]

        assert updated.text == "Hold for vendor data"
        assert updated.metadata.type == NoteHoldType.HOLD
        assert updated.metadata.number == 1

    def test_next_number_per_page_and_type(self, sample_state):
        """Numbering is independent per page and type."""
        items = sample_state.raw_text_items
        state, _ = create_description(sample_state, [items[0].id])
        assert next_description_number(state.descriptions, 1, NoteHoldType.NOTE) == 2
        assert next_description_number(state.descriptions, 1, NoteHoldType.HOLD) == 1
        assert next_description_number(state.descriptions, 2, NoteHoldType.NOTE) == 1
