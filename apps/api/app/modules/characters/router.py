from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, File, Path, Request, UploadFile
from fastapi.responses import FileResponse

from app.core.http import read_upload, request_id
from app.core.storage import max_photo_bytes

from .schemas import CharacterCreateIn, CharacterOut, CharacterPatchIn, CharactersListOut
from .service import (
    clear_character_photo,
    create_character,
    delete_character,
    get_character,
    get_character_photo,
    list_characters,
    patch_character,
    set_character_photo,
)

router = APIRouter(tags=["characters"])


@router.get("/projects/{project_id}/characters", response_model=CharactersListOut)
def api_list_characters(project_id: str = Path(...)) -> CharactersListOut:
    return CharactersListOut(items=list_characters(project_id))


@router.post("/projects/{project_id}/characters", response_model=CharacterOut)
def api_create_character(body: CharacterCreateIn, project_id: str = Path(...)) -> CharacterOut:
    return CharacterOut(
        **create_character(project_id, name=body.name, summary=body.summary, notes=body.notes, tags=body.tags)
    )


@router.get("/characters/{character_id}", response_model=CharacterOut)
def api_get_character(character_id: str = Path(...)) -> CharacterOut:
    return CharacterOut(**get_character(character_id))


@router.patch("/characters/{character_id}", response_model=CharacterOut)
def api_patch_character(body: CharacterPatchIn, character_id: str = Path(...)) -> CharacterOut:
    patch = body.model_dump(exclude_unset=True, exclude={"expected_version"})
    return CharacterOut(**patch_character(character_id, patch, expected_version=body.expected_version))


@router.delete("/characters/{character_id}")
def api_delete_character(request: Request, character_id: str = Path(...)) -> dict:
    return delete_character(character_id, request_id=request_id(request))


@router.get("/characters/{character_id}/photo")
def api_get_character_photo(character_id: str = Path(...)) -> FileResponse:
    abs_path, media_type = get_character_photo(character_id)
    return FileResponse(str(abs_path), media_type=media_type)


@router.put("/characters/{character_id}/photo", response_model=CharacterOut)
def api_set_character_photo(
    request: Request,
    character_id: str = Path(...),
    file: Optional[UploadFile] = File(None),
) -> CharacterOut:
    upload = read_upload(file, max_photo_bytes())
    return CharacterOut(**set_character_photo(character_id, upload, request_id=request_id(request)))


@router.delete("/characters/{character_id}/photo", response_model=CharacterOut)
def api_clear_character_photo(request: Request, character_id: str = Path(...)) -> CharacterOut:
    return CharacterOut(**clear_character_photo(character_id, request_id=request_id(request)))
