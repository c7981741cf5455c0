from __future__ import annotations

from fastapi import APIRouter, Path, Request

from app.core.http import request_id

from .schemas import NoteContentIn, NoteContentOut, NoteCreateIn, NoteOut, NoteRenameIn, NotesListOut
from .service import (
    create_note,
    delete_note,
    get_note,
    get_note_content,
    list_notes,
    rename_note,
    save_note_content,
)

router = APIRouter(tags=["notes"])


@router.get("/projects/{project_id}/notes", response_model=NotesListOut)
def api_list_notes(project_id: str = Path(...)) -> NotesListOut:
    return NotesListOut(items=list_notes(project_id))


@router.post("/projects/{project_id}/notes", response_model=NoteOut)
def api_create_note(request: Request, body: NoteCreateIn, project_id: str = Path(...)) -> NoteOut:
    return NoteOut(**create_note(project_id, body.title, body.type, request_id=request_id(request)))


@router.get("/notes/{note_id}", response_model=NoteOut)
def api_get_note(note_id: str = Path(...)) -> NoteOut:
    return NoteOut(**get_note(note_id))


@router.patch("/notes/{note_id}", response_model=NoteOut)
def api_rename_note(body: NoteRenameIn, note_id: str = Path(...)) -> NoteOut:
    return NoteOut(**rename_note(note_id, body.title, expected_version=body.expected_version))


@router.get("/notes/{note_id}/content", response_model=NoteContentOut)
def api_get_note_content(note_id: str = Path(...)) -> NoteContentOut:
    note, content = get_note_content(note_id)
    return NoteContentOut(note=note, content=content)


@router.put("/notes/{note_id}/content", response_model=NoteOut)
def api_save_note_content(request: Request, body: NoteContentIn, note_id: str = Path(...)) -> NoteOut:
    return NoteOut(
        **save_note_content(note_id, body.content, expected_version=body.expected_version, request_id=request_id(request))
    )


@router.delete("/notes/{note_id}")
def api_delete_note(request: Request, note_id: str = Path(...)) -> dict:
    return delete_note(note_id, request_id=request_id(request))
