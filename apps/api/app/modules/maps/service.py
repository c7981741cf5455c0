"""
Map hierarchy: a per-project forest keyed by parent_map_id.

Deleting a map splices it out of the tree (children move up one level) instead
of deleting the subtree; only markers placed directly on the map are removed.
"""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from app.core.errors import InvalidReferenceError, NotFoundError, ValidationFailed, not_found
from app.core.files import resolve_inside, safe_unlink
from app.core.ids import new_ulid
from app.core.locator import locate
from app.core.observability import emit, now_iso
from app.core.project_store import check_version, transaction
from app.core.storage import MAPS_SUBDIR, max_map_bytes
from app.modules.assets.schemas import UploadIn
from app.modules.assets.service import (
    asset_relpath,
    choose_extension,
    media_type_for,
    store_asset,
    validate_upload,
)
from app.modules.projects.service import open_project

MAP_COLUMNS = "id, project_id, parent_map_id, title, filename, created_at, updated_at, version"
TITLE_MAX = 120

# sentinel for "field not present in patch"
_UNSET: Any = object()


def _row_to_map(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "project_id": row["project_id"],
        "parent_map_id": row["parent_map_id"],
        "title": row["title"],
        "filename": row["filename"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "version": int(row["version"]),
    }


def _clean_title(title: Optional[str]) -> str:
    t = (title or "").strip()
    if not t or len(t) > TITLE_MAX:
        raise ValidationFailed(f"title must be 1..{TITLE_MAX} characters", fields=["title"])
    return t


def _fetch_map(conn: sqlite3.Connection, map_id: str) -> sqlite3.Row:
    row = conn.execute(f"SELECT {MAP_COLUMNS} FROM maps WHERE id=?;", (map_id,)).fetchone()
    if row is None:
        raise not_found("map")
    return row


def _validate_parent(conn: sqlite3.Connection, project_id: str, parent_id: str) -> None:
    row = conn.execute("SELECT 1 FROM maps WHERE id=? AND project_id=?;", (parent_id, project_id)).fetchone()
    if row is None:
        raise InvalidReferenceError(
            "Invalid parent_map_id",
            code="INVALID_PARENT_MAP",
            details={"parent_map_id": parent_id},
        )


def _assert_acyclic(conn: sqlite3.Connection, map_id: str, new_parent_id: str) -> None:
    """Walk up from the proposed parent; reaching map_id would close a loop."""
    seen: Set[str] = set()
    cur: Optional[str] = new_parent_id
    while cur is not None:
        if cur == map_id:
            raise ValidationFailed(
                "map cannot be moved under itself or one of its descendants",
                code="MAP_CYCLE",
                fields=["parent_map_id"],
            )
        if cur in seen:
            # a loop that does not involve map_id; stop walking
            break
        seen.add(cur)
        row = conn.execute("SELECT parent_map_id FROM maps WHERE id=?;", (cur,)).fetchone()
        cur = row["parent_map_id"] if row is not None else None


def list_maps(project_id: str) -> List[Dict[str, Any]]:
    with open_project(project_id) as (_project, conn):
        rows = conn.execute(
            f"SELECT {MAP_COLUMNS} FROM maps WHERE project_id=? ORDER BY created_at DESC, rowid DESC;",
            (project_id,),
        ).fetchall()
        return [_row_to_map(r) for r in rows]


def map_tree(project_id: str) -> List[Dict[str, Any]]:
    maps = list_maps(project_id)
    nodes: Dict[str, Dict[str, Any]] = {
        m["id"]: {"id": m["id"], "title": m["title"], "parent_map_id": m["parent_map_id"], "children": []}
        for m in maps
    }
    roots: List[Dict[str, Any]] = []
    for node in nodes.values():
        parent = nodes.get(node["parent_map_id"]) if node["parent_map_id"] else None
        if parent is None:
            roots.append(node)
        else:
            parent["children"].append(node)

    def _sort(items: List[Dict[str, Any]]) -> None:
        items.sort(key=lambda n: (n["title"].lower(), n["id"]))
        for n in items:
            _sort(n["children"])

    _sort(roots)
    return roots


def get_map(map_id: str) -> Dict[str, Any]:
    with locate(map_id, "maps") as owned:
        return _row_to_map(owned.row)


def create_map(
    project_id: str,
    title: str,
    upload: Optional[UploadIn],
    parent_map_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    title = _clean_title(title)
    upload = validate_upload(upload, max_map_bytes())
    parent = (parent_map_id or "").strip() or None

    with open_project(project_id) as (project, conn):
        # parent checked before the file write so a bad request leaves no file
        if parent:
            _validate_parent(conn, project_id, parent)

        map_id = new_ulid()
        ext = choose_extension(upload.filename, upload.mime_type)
        relpath = asset_relpath(MAPS_SUBDIR, title, map_id, ext, fallback="map")
        store_asset(project.path, relpath, upload.data, request_id)

        now = now_iso()
        with transaction(conn):
            if parent:
                _validate_parent(conn, project_id, parent)
            conn.execute(
                """
                INSERT INTO maps (id, project_id, parent_map_id, title, filename, created_at, updated_at, version)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1);
                """,
                (map_id, project_id, parent, title, relpath, now, now),
            )
        return _row_to_map(_fetch_map(conn, map_id))


def patch_map(map_id: str, patch: Dict[str, Any], expected_version: Optional[int] = None) -> Dict[str, Any]:
    with locate(map_id, "maps") as owned:
        conn = owned.conn
        with transaction(conn):
            row = _fetch_map(conn, map_id)
            check_version(row, expected_version, "map")

            sets: List[str] = []
            args: List[Any] = []

            if patch.get("title") is not None:
                sets.append("title=?")
                args.append(_clean_title(patch["title"]))

            new_parent = patch.get("parent_map_id", _UNSET)
            if new_parent is not _UNSET:
                new_parent = (new_parent or "").strip() or None
                if new_parent is not None:
                    if new_parent == map_id:
                        raise ValidationFailed("map cannot be its own parent", code="MAP_CYCLE", fields=["parent_map_id"])
                    _validate_parent(conn, row["project_id"], new_parent)
                    _assert_acyclic(conn, map_id, new_parent)
                sets.append("parent_map_id=?")
                args.append(new_parent)

            if sets:
                sets.append("updated_at=?")
                args.append(now_iso())
                sets.append("version=version+1")
                args.append(map_id)
                conn.execute(f"UPDATE maps SET {', '.join(sets)} WHERE id=?;", args)

        return _row_to_map(_fetch_map(conn, map_id))


def replace_map_image(map_id: str, upload: Optional[UploadIn], request_id: Optional[str] = None) -> Dict[str, Any]:
    upload = validate_upload(upload, max_map_bytes())
    with locate(map_id, "maps") as owned:
        conn = owned.conn
        row = owned.row
        old_relpath = row["filename"]

        ext = choose_extension(upload.filename, upload.mime_type)
        relpath = asset_relpath(MAPS_SUBDIR, row["title"], map_id, ext, fallback="map")
        store_asset(owned.root, relpath, upload.data, request_id)

        with transaction(conn):
            _fetch_map(conn, map_id)
            conn.execute(
                "UPDATE maps SET filename=?, updated_at=?, version=version+1 WHERE id=?;",
                (relpath, now_iso(), map_id),
            )
        updated = _row_to_map(_fetch_map(conn, map_id))
        root = owned.root

    # old file goes only after the row points at the new one
    if old_relpath and old_relpath != relpath:
        safe_unlink(root, old_relpath, request_id)
    return updated


def get_map_file(map_id: str) -> Tuple[Path, str]:
    with locate(map_id, "maps") as owned:
        relpath = owned.row["filename"]
        abs_path = resolve_inside(owned.root, relpath)
    if not abs_path.is_file():
        raise NotFoundError("Map image not found", code="MAP_FILE_NOT_FOUND", details={"map_id": map_id})
    return abs_path, media_type_for(relpath)


def delete_map(map_id: str, request_id: Optional[str] = None) -> Dict[str, Any]:
    with locate(map_id, "maps") as owned:
        conn = owned.conn
        root = owned.root
        now = now_iso()
        with transaction(conn):
            row = _fetch_map(conn, map_id)
            parent_id = row["parent_map_id"]
            filename = row["filename"]

            # 1) links from markers on other maps
            unlinked = conn.execute(
                """
                UPDATE markers
                SET link_type=NULL, link_map_id=NULL, updated_at=?, version=version+1
                WHERE link_map_id=? AND map_id<>?;
                """,
                (now, map_id, map_id),
            ).rowcount
            # 2) markers placed on this map
            deleted = conn.execute("DELETE FROM markers WHERE map_id=?;", (map_id,)).rowcount
            # 3) splice children up one level
            reparented = conn.execute(
                "UPDATE maps SET parent_map_id=?, updated_at=?, version=version+1 WHERE parent_map_id=?;",
                (parent_id, now, map_id),
            ).rowcount
            # 4) the map itself
            conn.execute("DELETE FROM maps WHERE id=?;", (map_id,))

    safe_unlink(root, filename, request_id)

    summary = {
        "map_id": map_id,
        "unlinked_markers": int(unlinked),
        "deleted_markers": int(deleted),
        "reparented_maps": int(reparented),
        "status": "deleted",
    }
    emit("info", "map.delete", f"map {map_id} deleted", request_id, __name__, **{k: v for k, v in summary.items() if k != "status"})
    return summary
