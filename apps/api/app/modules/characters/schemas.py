from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

NAME_MAX = 120
SUMMARY_MAX = 1000
NOTES_MAX = 200_000
TAG_MAX = 40


def _check_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    out: List[str] = []
    for t in tags:
        t = (t or "").strip()
        if not t or len(t) > TAG_MAX:
            raise ValueError(f"each tag must be 1..{TAG_MAX} characters")
        out.append(t)
    return out


class CharacterCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=NAME_MAX)
    summary: str = Field(default="", max_length=SUMMARY_MAX)
    notes: str = Field(default="", max_length=NOTES_MAX)
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: List[str]) -> List[str]:
        return _check_tags(v) or []


class CharacterPatchIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX)
    summary: Optional[str] = Field(default=None, max_length=SUMMARY_MAX)
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX)
    tags: Optional[List[str]] = None
    expected_version: Optional[int] = Field(default=None, ge=1)

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _check_tags(v)


class CharacterOut(BaseModel):
    id: str
    project_id: str
    name: str
    summary: str = ""
    notes: str = ""
    tags: List[str] = Field(default_factory=list)
    photo_path: str = ""
    created_at: str
    updated_at: str
    version: int = 1


class CharactersListOut(BaseModel):
    items: List[CharacterOut]
