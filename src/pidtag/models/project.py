"""Project state and snapshot models."""

from datetime import datetime, timezone
from typing import Iterable

from pydantic import Field

from .base import CamelModel, Category
from .relationship import Loop, Relationship
from .settings import ProjectSettings
from .tag import Description, RawTextItem, SourceItem, Tag


class ProjectState(CamelModel):
    """
    All entity collections of a project.

    Owned by the caller; editing operations return a new state instead of
    mutating this one.
    """

    tags: list[Tag] = Field(default_factory=list)
    raw_text_items: list[RawTextItem] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    descriptions: list[Description] = Field(default_factory=list)
    loops: list[Loop] = Field(default_factory=list)

    def tags_by_category(self, category: Category) -> list[Tag]:
        """Tags of one category."""
        return [t for t in self.tags if t.category == category]

    def find(self, ids: Iterable[str]) -> list[SourceItem]:
        """Resolve ids to tags or raw items, preserving id order."""
        index: dict[str, SourceItem] = {t.id: t for t in self.tags}
        index.update({r.id: r for r in self.raw_text_items})
        return [index[i] for i in ids if i in index]

    def page_numbers(self) -> list[int]:
        """Sorted pages that hold at least one tag or raw item."""
        pages = {t.page for t in self.tags} | {r.page for r in self.raw_text_items}
        return sorted(pages)


class ProjectSnapshot(ProjectState):
    """Persisted project: state plus file metadata and settings."""

    pdf_file_name: str
    export_date: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    settings: ProjectSettings = Field(default_factory=ProjectSettings)

    @property
    def state(self) -> ProjectState:
        """Collections only, without metadata."""
        return ProjectState(
            tags=self.tags,
            raw_text_items=self.raw_text_items,
            relationships=self.relationships,
            descriptions=self.descriptions,
            loops=self.loops,
        )

