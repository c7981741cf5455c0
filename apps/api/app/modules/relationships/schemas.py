from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

RelationshipType = Literal[
    "friend",
    "enemy",
    "parent",
    "child",
    "sibling",
    "spouse",
    "lover",
    "mentor",
    "student",
    "ally",
    "rival",
    "colleague",
    "leader",
    "subordinate",
    "other",
]

NOTE_MAX = 5000


class RelationshipCreateIn(BaseModel):
    from_character_id: str = Field(min_length=1)
    to_character_id: str = Field(min_length=1)
    type: RelationshipType
    note: str = Field(default="", max_length=NOTE_MAX)


class RelationshipPatchIn(BaseModel):
    type: Optional[RelationshipType] = None
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX)
    expected_version: Optional[int] = Field(default=None, ge=1)


class RelationshipOut(BaseModel):
    id: str
    project_id: str
    from_character_id: str
    to_character_id: str
    type: RelationshipType
    note: str = ""
    created_at: str
    updated_at: str
    version: int = 1


class RelationshipsListOut(BaseModel):
    items: List[RelationshipOut]
