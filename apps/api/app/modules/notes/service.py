"""
Notes: a row per note plus a UTF-8 text body under <project>/notes/.

The body file is written before the row that points at it and removed only
after the row is gone.
"""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from app.core.errors import ResourceTooLargeError, StorageFailure, ValidationFailed, not_found
from app.core.files import resolve_inside, safe_unlink
from app.core.ids import new_ulid
from app.core.locator import locate
from app.core.observability import emit, now_iso
from app.core.project_store import check_version, transaction
from app.core.storage import NOTES_SUBDIR, note_max_bytes
from app.modules.assets.service import asset_relpath, store_asset
from app.modules.projects.service import open_project

NOTE_COLUMNS = "id, project_id, title, path, type, created_at, updated_at, version"
NOTE_TYPES = ("md", "txt")
TITLE_MAX = 120


def _row_to_note(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "project_id": row["project_id"],
        "title": row["title"],
        "path": row["path"],
        "type": row["type"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "version": int(row["version"]),
    }


def _clean_title(title: Optional[str]) -> str:
    t = (title or "").strip()
    if not t or len(t) > TITLE_MAX:
        raise ValidationFailed(f"title must be 1..{TITLE_MAX} characters", fields=["title"])
    return t


def _fetch_note(conn: sqlite3.Connection, note_id: str) -> sqlite3.Row:
    row = conn.execute(f"SELECT {NOTE_COLUMNS} FROM notes WHERE id=?;", (note_id,)).fetchone()
    if row is None:
        raise not_found("note")
    return row


def list_notes(project_id: str) -> List[Dict[str, Any]]:
    with open_project(project_id) as (_project, conn):
        rows = conn.execute(
            f"SELECT {NOTE_COLUMNS} FROM notes WHERE project_id=? ORDER BY updated_at DESC, rowid DESC;",
            (project_id,),
        ).fetchall()
        return [_row_to_note(r) for r in rows]


def create_note(project_id: str, title: str, note_type: str = "md", request_id: Optional[str] = None) -> Dict[str, Any]:
    title = _clean_title(title)
    if note_type not in NOTE_TYPES:
        raise ValidationFailed("type must be md or txt", fields=["type"])

    with open_project(project_id) as (project, conn):
        note_id = new_ulid()
        relpath = asset_relpath(NOTES_SUBDIR, title, note_id, note_type, fallback="note")
        store_asset(project.path, relpath, b"", request_id)

        now = now_iso()
        with transaction(conn):
            conn.execute(
                """
                INSERT INTO notes (id, project_id, title, path, type, created_at, updated_at, version)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1);
                """,
                (note_id, project_id, title, relpath, note_type, now, now),
            )
        return _row_to_note(_fetch_note(conn, note_id))


def get_note(note_id: str) -> Dict[str, Any]:
    with locate(note_id, "notes") as owned:
        return _row_to_note(owned.row)


def get_note_content(note_id: str) -> Tuple[Dict[str, Any], str]:
    with locate(note_id, "notes") as owned:
        note = _row_to_note(owned.row)
        abs_path = resolve_inside(owned.root, note["path"])
    try:
        content = abs_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        # body never written or removed by hand; an empty note is still readable
        content = ""
    except (OSError, UnicodeDecodeError) as e:
        raise StorageFailure("cannot read note body", details={"path": note["path"], "type": type(e).__name__}) from e
    return note, content


def save_note_content(
    note_id: str,
    content: str,
    expected_version: Optional[int] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    data = (content or "").encode("utf-8")
    limit = note_max_bytes()
    if len(data) > limit:
        raise ResourceTooLargeError(
            "note too large",
            code="NOTE_TOO_LARGE",
            details={"size_bytes": len(data), "max_bytes": limit},
        )

    with locate(note_id, "notes") as owned:
        conn = owned.conn
        # the store write lock is held from the version check through the body
        # write, so two saves of one note cannot interleave
        with transaction(conn):
            row = _fetch_note(conn, note_id)
            check_version(row, expected_version, "note")
            store_asset(owned.root, row["path"], data, request_id)
            conn.execute(
                "UPDATE notes SET updated_at=?, version=version+1 WHERE id=?;",
                (now_iso(), note_id),
            )
        return _row_to_note(_fetch_note(conn, note_id))


def rename_note(note_id: str, title: str, expected_version: Optional[int] = None) -> Dict[str, Any]:
    title = _clean_title(title)
    with locate(note_id, "notes") as owned:
        conn = owned.conn
        with transaction(conn):
            row = _fetch_note(conn, note_id)
            check_version(row, expected_version, "note")
            # path stays put; it only carries the title at creation time
            conn.execute(
                "UPDATE notes SET title=?, updated_at=?, version=version+1 WHERE id=?;",
                (title, now_iso(), note_id),
            )
        return _row_to_note(_fetch_note(conn, note_id))


def delete_note(note_id: str, request_id: Optional[str] = None) -> Dict[str, Any]:
    with locate(note_id, "notes") as owned:
        conn = owned.conn
        root = owned.root
        now = now_iso()
        with transaction(conn):
            row = _fetch_note(conn, note_id)
            relpath = row["path"]
            unlinked = conn.execute(
                """
                UPDATE markers
                SET link_type=NULL, link_note_id=NULL, updated_at=?, version=version+1
                WHERE link_note_id=?;
                """,
                (now, note_id),
            ).rowcount
            conn.execute("DELETE FROM notes WHERE id=?;", (note_id,))

    safe_unlink(root, relpath, request_id)
    emit("info", "note.delete", f"note {note_id} deleted", request_id, __name__, unlinked_markers=int(unlinked))
    return {"id": note_id, "unlinked_markers": int(unlinked), "status": "deleted"}
