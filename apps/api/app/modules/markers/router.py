from __future__ import annotations

from fastapi import APIRouter, Path, Request

from app.core.http import request_id

from .schemas import MarkerCreateIn, MarkerOut, MarkerPatchIn, MarkersListOut
from .service import create_marker, delete_marker, get_marker, list_markers, patch_marker

router = APIRouter(tags=["markers"])


@router.get("/maps/{map_id}/markers", response_model=MarkersListOut)
def api_list_markers(map_id: str = Path(...)) -> MarkersListOut:
    return MarkersListOut(items=list_markers(map_id))


@router.post("/maps/{map_id}/markers", response_model=MarkerOut)
def api_create_marker(body: MarkerCreateIn, map_id: str = Path(...)) -> MarkerOut:
    return MarkerOut(**create_marker(map_id, body))


@router.get("/markers/{marker_id}", response_model=MarkerOut)
def api_get_marker(marker_id: str = Path(...)) -> MarkerOut:
    return MarkerOut(**get_marker(marker_id))


@router.patch("/markers/{marker_id}", response_model=MarkerOut)
def api_patch_marker(body: MarkerPatchIn, marker_id: str = Path(...)) -> MarkerOut:
    return MarkerOut(**patch_marker(marker_id, body))


@router.delete("/markers/{marker_id}")
def api_delete_marker(request: Request, marker_id: str = Path(...)) -> dict:
    delete_marker(marker_id, request_id=request_id(request))
    return {"id": marker_id, "status": "deleted"}
