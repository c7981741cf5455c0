from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from app.core.errors import NotFoundError, ValidationFailed, not_found
from app.core.files import resolve_inside, safe_unlink
from app.core.ids import new_ulid
from app.core.locator import locate
from app.core.observability import emit, now_iso
from app.core.project_store import check_version, transaction
from app.core.storage import CHARACTERS_SUBDIR, max_photo_bytes
from app.modules.assets.schemas import UploadIn
from app.modules.assets.service import (
    asset_relpath,
    choose_extension,
    media_type_for,
    store_asset,
    validate_upload,
)
from app.modules.projects.service import open_project

from .schemas import NAME_MAX, NOTES_MAX, SUMMARY_MAX, TAG_MAX

CHARACTER_COLUMNS = "id, project_id, name, summary, notes, tags_json, photo_path, created_at, updated_at, version"


def _row_to_character(row: sqlite3.Row) -> Dict[str, Any]:
    try:
        tags = json.loads(row["tags_json"] or "[]")
    except json.JSONDecodeError:
        tags = []
    return {
        "id": row["id"],
        "project_id": row["project_id"],
        "name": row["name"],
        "summary": row["summary"] or "",
        "notes": row["notes"] or "",
        "tags": tags if isinstance(tags, list) else [],
        "photo_path": row["photo_path"] or "",
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "version": int(row["version"]),
    }


def _fetch_character(conn: sqlite3.Connection, character_id: str) -> sqlite3.Row:
    row = conn.execute(f"SELECT {CHARACTER_COLUMNS} FROM characters WHERE id=?;", (character_id,)).fetchone()
    if row is None:
        raise not_found("character")
    return row


def _clean_name(name: Optional[str]) -> str:
    n = (name or "").strip()
    if not n or len(n) > NAME_MAX:
        raise ValidationFailed(f"name must be 1..{NAME_MAX} characters", fields=["name"])
    return n


def _check_text(value: str, field: str, limit: int) -> str:
    if len(value) > limit:
        raise ValidationFailed(f"{field} must be at most {limit} characters", fields=[field])
    return value


def _clean_tags(tags: Optional[List[str]]) -> List[str]:
    out: List[str] = []
    for t in tags or []:
        t = (t or "").strip()
        if not t or len(t) > TAG_MAX:
            raise ValidationFailed(f"each tag must be 1..{TAG_MAX} characters", fields=["tags"])
        out.append(t)
    return out


def list_characters(project_id: str) -> List[Dict[str, Any]]:
    with open_project(project_id) as (_project, conn):
        rows = conn.execute(
            f"SELECT {CHARACTER_COLUMNS} FROM characters WHERE project_id=? ORDER BY name COLLATE NOCASE ASC, id ASC;",
            (project_id,),
        ).fetchall()
        return [_row_to_character(r) for r in rows]


def create_character(
    project_id: str,
    name: str,
    summary: str = "",
    notes: str = "",
    tags: Optional[List[str]] = None,
) -> Dict[str, Any]:
    name = _clean_name(name)
    summary = _check_text(summary or "", "summary", SUMMARY_MAX)
    notes = _check_text(notes or "", "notes", NOTES_MAX)
    tags = _clean_tags(tags)

    with open_project(project_id) as (_project, conn):
        character_id = new_ulid()
        now = now_iso()
        with transaction(conn):
            conn.execute(
                """
                INSERT INTO characters
                  (id, project_id, name, summary, notes, tags_json, photo_path, created_at, updated_at, version)
                VALUES (?, ?, ?, ?, ?, ?, '', ?, ?, 1);
                """,
                (character_id, project_id, name, summary, notes, json.dumps(tags, ensure_ascii=False), now, now),
            )
        return _row_to_character(_fetch_character(conn, character_id))


def get_character(character_id: str) -> Dict[str, Any]:
    with locate(character_id, "characters") as owned:
        return _row_to_character(owned.row)


def patch_character(character_id: str, patch: Dict[str, Any], expected_version: Optional[int] = None) -> Dict[str, Any]:
    sets: List[str] = []
    args: List[Any] = []
    if patch.get("name") is not None:
        sets.append("name=?")
        args.append(_clean_name(patch["name"]))
    if patch.get("summary") is not None:
        sets.append("summary=?")
        args.append(_check_text(patch["summary"], "summary", SUMMARY_MAX))
    if patch.get("notes") is not None:
        sets.append("notes=?")
        args.append(_check_text(patch["notes"], "notes", NOTES_MAX))
    if patch.get("tags") is not None:
        sets.append("tags_json=?")
        args.append(json.dumps(_clean_tags(patch["tags"]), ensure_ascii=False))

    with locate(character_id, "characters") as owned:
        conn = owned.conn
        with transaction(conn):
            row = _fetch_character(conn, character_id)
            check_version(row, expected_version, "character")
            if sets:
                conn.execute(
                    f"UPDATE characters SET {', '.join(sets)}, updated_at=?, version=version+1 WHERE id=?;",
                    [*args, now_iso(), character_id],
                )
        return _row_to_character(_fetch_character(conn, character_id))


def delete_character(character_id: str, request_id: Optional[str] = None) -> Dict[str, Any]:
    with locate(character_id, "characters") as owned:
        conn = owned.conn
        root = owned.root
        with transaction(conn):
            row = _fetch_character(conn, character_id)
            photo_path = row["photo_path"] or ""
            removed = conn.execute(
                "DELETE FROM relationships WHERE from_character_id=? OR to_character_id=?;",
                (character_id, character_id),
            ).rowcount
            conn.execute("DELETE FROM characters WHERE id=?;", (character_id,))

    if photo_path:
        safe_unlink(root, photo_path, request_id)
    emit(
        "info",
        "character.delete",
        f"character {character_id} deleted",
        request_id,
        __name__,
        removed_relationships=int(removed),
    )
    return {"id": character_id, "removed_relationships": int(removed), "status": "deleted"}


# --- photo ---
def set_character_photo(character_id: str, upload: Optional[UploadIn], request_id: Optional[str] = None) -> Dict[str, Any]:
    upload = validate_upload(upload, max_photo_bytes())
    with locate(character_id, "characters") as owned:
        conn = owned.conn
        root = owned.root
        old_relpath = owned.row["photo_path"] or ""

        ext = choose_extension(upload.filename, upload.mime_type)
        relpath = asset_relpath(CHARACTERS_SUBDIR, owned.row["name"], character_id, ext, fallback="character")
        store_asset(root, relpath, upload.data, request_id)

        with transaction(conn):
            _fetch_character(conn, character_id)
            conn.execute(
                "UPDATE characters SET photo_path=?, updated_at=?, version=version+1 WHERE id=?;",
                (relpath, now_iso(), character_id),
            )
        updated = _row_to_character(_fetch_character(conn, character_id))

    if old_relpath and old_relpath != relpath:
        safe_unlink(root, old_relpath, request_id)
    return updated


def clear_character_photo(character_id: str, request_id: Optional[str] = None) -> Dict[str, Any]:
    with locate(character_id, "characters") as owned:
        conn = owned.conn
        root = owned.root
        with transaction(conn):
            old_relpath = _fetch_character(conn, character_id)["photo_path"] or ""
            if old_relpath:
                conn.execute(
                    "UPDATE characters SET photo_path='', updated_at=?, version=version+1 WHERE id=?;",
                    (now_iso(), character_id),
                )
        updated = _row_to_character(_fetch_character(conn, character_id))

    if old_relpath:
        safe_unlink(root, old_relpath, request_id)
    return updated


def get_character_photo(character_id: str) -> Tuple[Path, str]:
    with locate(character_id, "characters") as owned:
        relpath = owned.row["photo_path"] or ""
        abs_path = resolve_inside(owned.root, relpath) if relpath else None
    if abs_path is None or not abs_path.is_file():
        raise NotFoundError(
            "Character photo not found",
            code="CHARACTER_PHOTO_NOT_FOUND",
            details={"character_id": character_id},
        )
    return abs_path, media_type_for(relpath)
