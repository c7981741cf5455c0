from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

GameSystem = Literal["generic", "dnd5e", "vtm", "cyberpunk", "wh40k_rt"]


class ProjectCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    root_path: Optional[str] = None
    system: GameSystem = "generic"


class ProjectOut(BaseModel):
    id: str
    name: str
    path: str
    system: GameSystem = "generic"
    created_at: str


class ProjectsListOut(BaseModel):
    items: List[ProjectOut]
