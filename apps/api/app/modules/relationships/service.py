"""Directed, typed edges between two characters of the same project."""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from app.core.errors import InvalidReferenceError, ValidationFailed, not_found
from app.core.ids import new_ulid
from app.core.locator import locate
from app.core.observability import emit, now_iso
from app.core.project_store import check_version, transaction
from app.modules.projects.service import open_project

from .schemas import NOTE_MAX

RELATIONSHIP_TYPES = (
    "friend",
    "enemy",
    "parent",
    "child",
    "sibling",
    "spouse",
    "lover",
    "mentor",
    "student",
    "ally",
    "rival",
    "colleague",
    "leader",
    "subordinate",
    "other",
)

RELATIONSHIP_COLUMNS = "id, project_id, from_character_id, to_character_id, type, note, created_at, updated_at, version"


def _row_to_relationship(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "project_id": row["project_id"],
        "from_character_id": row["from_character_id"],
        "to_character_id": row["to_character_id"],
        "type": row["type"],
        "note": row["note"] or "",
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "version": int(row["version"]),
    }


def _fetch_relationship(conn: sqlite3.Connection, rel_id: str) -> sqlite3.Row:
    row = conn.execute(f"SELECT {RELATIONSHIP_COLUMNS} FROM relationships WHERE id=?;", (rel_id,)).fetchone()
    if row is None:
        raise not_found("relationship")
    return row


def _check_type(rel_type: Optional[str]) -> str:
    if rel_type not in RELATIONSHIP_TYPES:
        raise ValidationFailed(f"unknown relationship type: {rel_type}", fields=["type"])
    return rel_type


def _check_note(note: Optional[str]) -> str:
    note = note or ""
    if len(note) > NOTE_MAX:
        raise ValidationFailed(f"note must be at most {NOTE_MAX} characters", fields=["note"])
    return note


def _require_character(conn: sqlite3.Connection, project_id: str, character_id: str, field: str) -> None:
    row = conn.execute(
        "SELECT 1 FROM characters WHERE id=? AND project_id=?;",
        (character_id, project_id),
    ).fetchone()
    if row is None:
        raise InvalidReferenceError(
            "Character not found in this project",
            code="RELATIONSHIP_CHARACTER_NOT_FOUND",
            details={field: character_id},
        )


def list_relationships(project_id: str) -> List[Dict[str, Any]]:
    with open_project(project_id) as (_project, conn):
        rows = conn.execute(
            f"SELECT {RELATIONSHIP_COLUMNS} FROM relationships WHERE project_id=? ORDER BY created_at ASC, rowid ASC;",
            (project_id,),
        ).fetchall()
        return [_row_to_relationship(r) for r in rows]


def create_relationship(
    project_id: str,
    from_character_id: str,
    to_character_id: str,
    rel_type: str,
    note: str = "",
) -> Dict[str, Any]:
    if from_character_id == to_character_id:
        raise ValidationFailed(
            "a character cannot have a relationship with itself",
            code="RELATIONSHIP_SELF",
            fields=["from_character_id", "to_character_id"],
        )
    rel_type = _check_type(rel_type)
    note = _check_note(note)

    with open_project(project_id) as (_project, conn):
        rel_id = new_ulid()
        now = now_iso()
        with transaction(conn):
            _require_character(conn, project_id, from_character_id, "from_character_id")
            _require_character(conn, project_id, to_character_id, "to_character_id")
            conn.execute(
                f"""
                INSERT INTO relationships ({RELATIONSHIP_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1);
                """,
                (rel_id, project_id, from_character_id, to_character_id, rel_type, note, now, now),
            )
        return _row_to_relationship(_fetch_relationship(conn, rel_id))


def get_relationship(rel_id: str) -> Dict[str, Any]:
    with locate(rel_id, "relationships") as owned:
        return _row_to_relationship(owned.row)


def patch_relationship(
    rel_id: str,
    rel_type: Optional[str] = None,
    note: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Dict[str, Any]:
    sets: List[str] = []
    args: List[Any] = []
    if rel_type is not None:
        sets.append("type=?")
        args.append(_check_type(rel_type))
    if note is not None:
        sets.append("note=?")
        args.append(_check_note(note))

    with locate(rel_id, "relationships") as owned:
        conn = owned.conn
        with transaction(conn):
            row = _fetch_relationship(conn, rel_id)
            check_version(row, expected_version, "relationship")
            if sets:
                conn.execute(
                    f"UPDATE relationships SET {', '.join(sets)}, updated_at=?, version=version+1 WHERE id=?;",
                    [*args, now_iso(), rel_id],
                )
        return _row_to_relationship(_fetch_relationship(conn, rel_id))


def delete_relationship(rel_id: str, request_id: Optional[str] = None) -> None:
    with locate(rel_id, "relationships") as owned:
        with transaction(owned.conn):
            owned.conn.execute("DELETE FROM relationships WHERE id=?;", (rel_id,))
    emit("info", "relationship.delete", f"relationship {rel_id} deleted", request_id, __name__)
