from __future__ import annotations

from fastapi import APIRouter, Path, Request

from app.core.http import request_id

from .schemas import RelationshipCreateIn, RelationshipOut, RelationshipPatchIn, RelationshipsListOut
from .service import (
    create_relationship,
    delete_relationship,
    get_relationship,
    list_relationships,
    patch_relationship,
)

router = APIRouter(tags=["relationships"])


@router.get("/projects/{project_id}/relationships", response_model=RelationshipsListOut)
def api_list_relationships(project_id: str = Path(...)) -> RelationshipsListOut:
    return RelationshipsListOut(items=list_relationships(project_id))


@router.post("/projects/{project_id}/relationships", response_model=RelationshipOut)
def api_create_relationship(body: RelationshipCreateIn, project_id: str = Path(...)) -> RelationshipOut:
    return RelationshipOut(
        **create_relationship(project_id, body.from_character_id, body.to_character_id, body.type, body.note)
    )


@router.get("/relationships/{rel_id}", response_model=RelationshipOut)
def api_get_relationship(rel_id: str = Path(...)) -> RelationshipOut:
    return RelationshipOut(**get_relationship(rel_id))


@router.patch("/relationships/{rel_id}", response_model=RelationshipOut)
def api_patch_relationship(body: RelationshipPatchIn, rel_id: str = Path(...)) -> RelationshipOut:
    return RelationshipOut(
        **patch_relationship(rel_id, rel_type=body.type, note=body.note, expected_version=body.expected_version)
    )


@router.delete("/relationships/{rel_id}")
def api_delete_relationship(request: Request, rel_id: str = Path(...)) -> dict:
    delete_relationship(rel_id, request_id=request_id(request))
    return {"id": rel_id, "status": "deleted"}
