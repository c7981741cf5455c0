from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field


class MapOut(BaseModel):
    id: str
    project_id: str
    parent_map_id: Optional[str] = None
    title: str
    filename: str  # relative: assets/maps/...
    created_at: str
    updated_at: str
    version: int = 1


class MapsListOut(BaseModel):
    items: List[MapOut]


class MapPatchIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    # explicit null detaches the map to the root level
    parent_map_id: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, ge=1)


class MapTreeNode(BaseModel):
    id: str
    title: str
    parent_map_id: Optional[str] = None
    children: List["MapTreeNode"] = Field(default_factory=list)


class MapTreeOut(BaseModel):
    roots: List[MapTreeNode]


class MapDeleteOut(BaseModel):
    map_id: str
    unlinked_markers: int = 0
    deleted_markers: int = 0
    reparented_maps: int = 0
    status: str = "deleted"


MapTreeNode.model_rebuild()
