"""Tag, raw text and description models."""

from typing import Annotated, Literal, Optional, Union

from pydantic import AliasChoices, Field

from .base import (
    BaseEntity,
    BoundingBox,
    CamelModel,
    Category,
    DescriptionScope,
    NoteHoldType,
)


class RawTextItem(BaseEntity):
    """Uncategorized text run left over after extraction."""

    kind: Literal["raw"] = "raw"
    # pdf.js text items carry their text under `str`
    text: str = Field(..., validation_alias=AliasChoices("text", "str"))
    page: int = Field(..., ge=1)
    bbox: BoundingBox


class Tag(BaseEntity):
    """
    Categorized engineering annotation.

    `source_items` keeps the raw runs a tag was built from so that deleting
    the tag can put them back into the raw text pool.
    """

    kind: Literal["tag"] = "tag"
    text: str
    page: int = Field(..., ge=1)
    bbox: BoundingBox
    category: Category
    source_items: Optional[list[RawTextItem]] = None
    is_reviewed: Optional[bool] = None


# A selection is either a tag or a raw item; validated left to right so that
# payloads without a `kind` key resolve by the presence of `category`.
SourceItem = Annotated[Union[Tag, RawTextItem], Field(union_mode="left_to_right")]


class DescriptionMetadata(CamelModel):
    """Classification of a note/hold description."""

    type: NoteHoldType = NoteHoldType.NOTE
    scope: DescriptionScope = DescriptionScope.SPECIFIC
    number: int = Field(default=1, ge=0)


class Description(BaseEntity):
    """Numbered multi-line note or hold body."""

    text: str
    page: int = Field(..., ge=1)
    bbox: BoundingBox
    source_items: list[SourceItem] = Field(default_factory=list)
    metadata: DescriptionMetadata = Field(default_factory=DescriptionMetadata)
