"""Graph edge and loop models."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from .base import BaseEntity, CamelModel, RelationshipType


class Relationship(BaseEntity):
    """Directed edge between two entity ids."""

    from_id: str = Field(..., alias="from")
    to_id: str = Field(..., alias="to")
    type: RelationshipType

    @property
    def key(self) -> str:
        """De-duplication key in `from-to-type` form."""
        return relationship_key(self.from_id, self.to_id, self.type)


def relationship_key(from_id: str, to_id: str, rel_type: RelationshipType) -> str:
    """Build the `from-to-type` key used to de-duplicate relationships."""
    return f"{from_id}-{to_id}-{RelationshipType(rel_type).value}"


class Loop(CamelModel):
    """Group of instrument tags sharing a control loop identifier.

    The id is the loop identifier itself (e.g. ``T-205``), not a random UUID.
    """

    id: str
    tag_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_auto_generated: bool = False
    name: Optional[str] = None
