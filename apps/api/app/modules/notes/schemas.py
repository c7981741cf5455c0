from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

NoteType = Literal["md", "txt"]


class NoteCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    type: NoteType = "md"


class NoteOut(BaseModel):
    id: str
    project_id: str
    title: str
    path: str  # relative: notes/...
    type: NoteType
    created_at: str
    updated_at: str
    version: int = 1


class NotesListOut(BaseModel):
    items: List[NoteOut]


class NoteContentIn(BaseModel):
    content: str = ""
    expected_version: Optional[int] = Field(default=None, ge=1)


class NoteContentOut(BaseModel):
    note: NoteOut
    content: str


class NoteRenameIn(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    expected_version: Optional[int] = Field(default=None, ge=1)
