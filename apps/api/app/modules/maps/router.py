from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, File, Form, Path, Request, UploadFile
from fastapi.responses import FileResponse

from app.core.http import read_upload, request_id
from app.core.storage import max_map_bytes

from .schemas import MapDeleteOut, MapOut, MapPatchIn, MapsListOut, MapTreeOut
from .service import (
    create_map,
    delete_map,
    get_map,
    get_map_file,
    list_maps,
    map_tree,
    patch_map,
    replace_map_image,
)

router = APIRouter(tags=["maps"])


@router.get("/projects/{project_id}/maps", response_model=MapsListOut)
def api_list_maps(project_id: str = Path(...)) -> MapsListOut:
    return MapsListOut(items=list_maps(project_id))


@router.get("/projects/{project_id}/maps/tree", response_model=MapTreeOut)
def api_map_tree(project_id: str = Path(...)) -> MapTreeOut:
    return MapTreeOut(roots=map_tree(project_id))


@router.post("/projects/{project_id}/maps", response_model=MapOut)
def api_create_map(
    request: Request,
    project_id: str = Path(...),
    title: str = Form(...),
    parent_map_id: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
) -> MapOut:
    upload = read_upload(file, max_map_bytes())
    return MapOut(**create_map(project_id, title, upload, parent_map_id=parent_map_id, request_id=request_id(request)))


@router.get("/maps/{map_id}", response_model=MapOut)
def api_get_map(map_id: str = Path(...)) -> MapOut:
    return MapOut(**get_map(map_id))


@router.patch("/maps/{map_id}", response_model=MapOut)
def api_patch_map(body: MapPatchIn, map_id: str = Path(...)) -> MapOut:
    patch = body.model_dump(exclude_unset=True, exclude={"expected_version"})
    return MapOut(**patch_map(map_id, patch, expected_version=body.expected_version))


@router.delete("/maps/{map_id}", response_model=MapDeleteOut)
def api_delete_map(request: Request, map_id: str = Path(...)) -> MapDeleteOut:
    return MapDeleteOut(**delete_map(map_id, request_id=request_id(request)))


@router.get("/maps/{map_id}/file")
def api_get_map_file(map_id: str = Path(...)) -> FileResponse:
    abs_path, media_type = get_map_file(map_id)
    return FileResponse(str(abs_path), media_type=media_type)


@router.put("/maps/{map_id}/file", response_model=MapOut)
def api_replace_map_file(
    request: Request,
    map_id: str = Path(...),
    file: Optional[UploadFile] = File(None),
) -> MapOut:
    upload = read_upload(file, max_map_bytes())
    return MapOut(**replace_map_image(map_id, upload, request_id=request_id(request)))
