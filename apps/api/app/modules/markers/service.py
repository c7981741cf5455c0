"""
Markers placed on a map image, each optionally linked to a note or another map.

The link is a tagged triple (link_type, link_note_id, link_map_id); every write
re-validates that the tag matches the ids and that the target row exists in the
same project store.
"""
from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, List, Optional

from app.core.errors import InvalidReferenceError, ValidationFailed, not_found
from app.core.ids import new_ulid
from app.core.locator import locate
from app.core.observability import emit, now_iso
from app.core.project_store import check_version, transaction

from .schemas import LINK_FIELDS, LinkState, MarkerCreateIn, MarkerPatchIn, check_link_shape

MARKER_COLUMNS = (
    "id, map_id, title, description, x, y, marker_type, color, icon, points, style, "
    "link_type, link_note_id, link_map_id, created_at, updated_at, version"
)


def _loads(raw: Optional[str]) -> Any:
    if raw is None or raw == "":
        return None
    return json.loads(raw)


def _dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _row_to_marker(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "map_id": row["map_id"],
        "title": row["title"],
        "description": row["description"] or "",
        "x": float(row["x"]),
        "y": float(row["y"]),
        "marker_type": row["marker_type"],
        "color": row["color"],
        "icon": row["icon"] or "",
        "points": _loads(row["points"]),
        "style": _loads(row["style"]),
        "link_type": row["link_type"],
        "link_note_id": row["link_note_id"],
        "link_map_id": row["link_map_id"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "version": int(row["version"]),
    }


def _fetch_marker(conn: sqlite3.Connection, marker_id: str) -> sqlite3.Row:
    row = conn.execute(f"SELECT {MARKER_COLUMNS} FROM markers WHERE id=?;", (marker_id,)).fetchone()
    if row is None:
        raise not_found("marker")
    return row


def _points_json(points: Any) -> Optional[str]:
    if points is None:
        return None
    return _dumps([{"x": float(p.x), "y": float(p.y)} for p in points])


def resolve_link_state(current: LinkState, patch: Dict[str, Any]) -> LinkState:
    """Merge explicitly patched link fields over the current ones, then normalise.

    The tag comes from the patch when sent, else from the row. Ids the tag does
    not use are dropped when they come from the row, but an id sent in the patch
    that the tag does not use is an error (e.g. link_map_id on a note link). The
    resulting triple is shape-checked again.
    """
    link_type = patch["link_type"] if "link_type" in patch else current.link_type
    note_id = patch["link_note_id"] if "link_note_id" in patch else current.link_note_id
    map_id = patch["link_map_id"] if "link_map_id" in patch else current.link_map_id

    bad: List[str] = []
    if link_type != "note" and "link_note_id" in patch and patch["link_note_id"] is not None:
        bad.append("link_note_id")
    if link_type != "map" and "link_map_id" in patch and patch["link_map_id"] is not None:
        bad.append("link_map_id")
    if bad:
        raise ValidationFailed("link id does not match link_type", fields=bad)

    state = LinkState(link_type=link_type, link_note_id=note_id, link_map_id=map_id).normalized()
    check_link_shape(state.link_type, state.link_note_id, state.link_map_id)
    return state


def validate_link_targets(conn: sqlite3.Connection, state: LinkState) -> None:
    if state.link_type == "note":
        row = conn.execute("SELECT 1 FROM notes WHERE id=?;", (state.link_note_id,)).fetchone()
        if row is None:
            raise InvalidReferenceError(
                "Linked note not found",
                code="LINK_NOTE_NOT_FOUND",
                details={"link_note_id": state.link_note_id},
            )
    elif state.link_type == "map":
        row = conn.execute("SELECT 1 FROM maps WHERE id=?;", (state.link_map_id,)).fetchone()
        if row is None:
            raise InvalidReferenceError(
                "Linked map not found",
                code="LINK_MAP_NOT_FOUND",
                details={"link_map_id": state.link_map_id},
            )


def list_markers(map_id: str) -> List[Dict[str, Any]]:
    with locate(map_id, "maps") as owned:
        rows = owned.conn.execute(
            f"SELECT {MARKER_COLUMNS} FROM markers WHERE map_id=? ORDER BY created_at ASC, rowid ASC;",
            (map_id,),
        ).fetchall()
        return [_row_to_marker(r) for r in rows]


def get_marker(marker_id: str) -> Dict[str, Any]:
    with locate(marker_id, "markers") as owned:
        return _row_to_marker(owned.row)


def create_marker(map_id: str, payload: MarkerCreateIn) -> Dict[str, Any]:
    state = payload.link_state().normalized()
    with locate(map_id, "maps") as owned:
        conn = owned.conn
        marker_id = new_ulid()
        now = now_iso()
        with transaction(conn):
            validate_link_targets(conn, state)
            conn.execute(
                f"""
                INSERT INTO markers ({MARKER_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1);
                """,
                (
                    marker_id,
                    map_id,
                    payload.title.strip(),
                    payload.description or "",
                    float(payload.x),
                    float(payload.y),
                    payload.marker_type,
                    payload.color,
                    payload.icon or "",
                    _points_json(payload.points),
                    _dumps(payload.style),
                    state.link_type,
                    state.link_note_id,
                    state.link_map_id,
                    now,
                    now,
                ),
            )
        return _row_to_marker(_fetch_marker(conn, marker_id))


_PLAIN_FIELDS = ("title", "description", "x", "y", "marker_type", "color", "icon")


def patch_marker(marker_id: str, patch: MarkerPatchIn) -> Dict[str, Any]:
    given = patch.model_fields_set
    with locate(marker_id, "markers") as owned:
        conn = owned.conn
        with transaction(conn):
            row = _fetch_marker(conn, marker_id)
            check_version(row, patch.expected_version, "marker")

            sets: List[str] = []
            args: List[Any] = []

            for f in _PLAIN_FIELDS:
                value = getattr(patch, f)
                # explicit null on a required column means "leave as is"
                if f in given and value is not None:
                    if f == "title":
                        value = value.strip()
                    sets.append(f"{f}=?")
                    args.append(value)

            if "points" in given:
                sets.append("points=?")
                args.append(_points_json(patch.points))
            if "style" in given:
                sets.append("style=?")
                args.append(_dumps(patch.style))

            if any(f in given for f in LINK_FIELDS):
                current = LinkState(
                    link_type=row["link_type"],
                    link_note_id=row["link_note_id"],
                    link_map_id=row["link_map_id"],
                )
                explicit = {f: getattr(patch, f) for f in LINK_FIELDS if f in given}
                state = resolve_link_state(current, explicit)
                validate_link_targets(conn, state)
                sets.extend(["link_type=?", "link_note_id=?", "link_map_id=?"])
                args.extend([state.link_type, state.link_note_id, state.link_map_id])

            if sets:
                sets.append("updated_at=?")
                args.append(now_iso())
                sets.append("version=version+1")
                args.append(marker_id)
                conn.execute(f"UPDATE markers SET {', '.join(sets)} WHERE id=?;", args)

        return _row_to_marker(_fetch_marker(conn, marker_id))


def delete_marker(marker_id: str, request_id: Optional[str] = None) -> None:
    with locate(marker_id, "markers") as owned:
        with transaction(owned.conn):
            owned.conn.execute("DELETE FROM markers WHERE id=?;", (marker_id,))
    emit("info", "marker.delete", f"marker {marker_id} deleted", request_id, __name__)
