"""
One embedded sqlite database per project root (<root>/db.sqlite).

Opening a store always:
- enables WAL + foreign keys
- creates any missing base tables (idempotent)
- raises PRAGMA user_version through the additive upgrade steps below

Stores are opened per logical operation and closed afterwards.
"""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from app.core.errors import ConflictError, StorageFailure, StoreError
from app.core.observability import emit

PROJECT_DB_FILENAME = "db.sqlite"
SCHEMA_VERSION = 3
BUSY_TIMEOUT_MS = 5000

ENTITY_TABLES = ("maps", "markers", "notes", "characters", "relationships")

# version 1: base tables
_BASE_DDL: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS maps (
      id TEXT NOT NULL PRIMARY KEY,
      project_id TEXT NOT NULL,
      parent_map_id TEXT NULL REFERENCES maps(id),
      title TEXT NOT NULL,
      filename TEXT NOT NULL,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS notes (
      id TEXT NOT NULL PRIMARY KEY,
      project_id TEXT NOT NULL,
      title TEXT NOT NULL,
      path TEXT NOT NULL,
      type TEXT NOT NULL CHECK (type IN ('md', 'txt')),
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS markers (
      id TEXT NOT NULL PRIMARY KEY,
      map_id TEXT NOT NULL REFERENCES maps(id),
      title TEXT NOT NULL,
      description TEXT NOT NULL DEFAULT '',
      x REAL NOT NULL,
      y REAL NOT NULL,
      marker_type TEXT NOT NULL,
      color TEXT NOT NULL,
      link_type TEXT NULL CHECK (link_type IS NULL OR link_type IN ('note', 'map')),
      link_note_id TEXT NULL REFERENCES notes(id),
      link_map_id TEXT NULL REFERENCES maps(id),
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS characters (
      id TEXT NOT NULL PRIMARY KEY,
      project_id TEXT NOT NULL,
      name TEXT NOT NULL,
      summary TEXT NOT NULL DEFAULT '',
      notes TEXT NOT NULL DEFAULT '',
      tags_json TEXT NOT NULL DEFAULT '[]',
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS relationships (
      id TEXT NOT NULL PRIMARY KEY,
      project_id TEXT NOT NULL,
      from_character_id TEXT NOT NULL REFERENCES characters(id),
      to_character_id TEXT NOT NULL REFERENCES characters(id),
      type TEXT NOT NULL,
      note TEXT NOT NULL DEFAULT '',
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL,
      CHECK (from_character_id <> to_character_id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS ix_maps_project_id ON maps (project_id);",
    "CREATE INDEX IF NOT EXISTS ix_maps_parent_map_id ON maps (parent_map_id);",
    "CREATE INDEX IF NOT EXISTS ix_markers_map_id ON markers (map_id);",
    "CREATE INDEX IF NOT EXISTS ix_markers_link_map_id ON markers (link_map_id);",
    "CREATE INDEX IF NOT EXISTS ix_markers_link_note_id ON markers (link_note_id);",
    "CREATE INDEX IF NOT EXISTS ix_notes_project_id ON notes (project_id);",
    "CREATE INDEX IF NOT EXISTS ix_characters_project_id ON characters (project_id);",
    "CREATE INDEX IF NOT EXISTS ix_relationships_project_id ON relationships (project_id);",
    "CREATE INDEX IF NOT EXISTS ix_relationships_from ON relationships (from_character_id);",
    "CREATE INDEX IF NOT EXISTS ix_relationships_to ON relationships (to_character_id);",
]


def _columns(conn: sqlite3.Connection, table: str) -> List[str]:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    return [r["name"] for r in rows]


def _add_column(conn: sqlite3.Connection, table: str, col: str, decl: str) -> None:
    # stores written before user_version was tracked may already have it
    if col not in _columns(conn, table):
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {col} {decl};")


def _upgrade_to_2(conn: sqlite3.Connection) -> None:
    _add_column(conn, "markers", "points", "TEXT NULL")
    _add_column(conn, "markers", "style", "TEXT NULL")
    _add_column(conn, "markers", "icon", "TEXT NOT NULL DEFAULT ''")
    _add_column(conn, "characters", "photo_path", "TEXT NOT NULL DEFAULT ''")


def _upgrade_to_3(conn: sqlite3.Connection) -> None:
    for table in ENTITY_TABLES:
        _add_column(conn, table, "version", "INTEGER NOT NULL DEFAULT 1")


_UPGRADES: List[Tuple[int, Callable[[sqlite3.Connection], None]]] = [
    (2, _upgrade_to_2),
    (3, _upgrade_to_3),
]


def schema_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version;").fetchone()[0])


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    conn.execute("BEGIN IMMEDIATE;")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK;")
        raise
    else:
        conn.execute("COMMIT;")


def ensure_schema(conn: sqlite3.Connection) -> int:
    """Bring the store up to SCHEMA_VERSION; returns the version found on entry.

    Runs under BEGIN IMMEDIATE so two operations opening the same store at once
    serialize on the write lock instead of racing on ALTER TABLE.
    """
    with transaction(conn):
        for ddl in _BASE_DDL:
            conn.execute(ddl)
        found = schema_version(conn)
        for version, step in _UPGRADES:
            if version > found:
                step(conn)
        if found < SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    return found


def schema_snapshot(conn: sqlite3.Connection) -> Dict[str, List[Tuple[Any, ...]]]:
    out: Dict[str, List[Tuple[Any, ...]]] = {}
    tables = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name;"
    ).fetchall()
    for t in tables:
        rows = conn.execute(f"PRAGMA table_info({t['name']});").fetchall()
        out[t["name"]] = [(r["name"], r["type"], r["notnull"], r["dflt_value"], r["pk"]) for r in rows]
    return out


def store_path(root: Union[str, Path]) -> Path:
    return Path(root) / PROJECT_DB_FILENAME


def open_project_store(root: Union[str, Path]) -> sqlite3.Connection:
    root_p = Path(root)
    if not root_p.is_dir():
        raise StorageFailure("project directory is missing", code="PROJECT_DIR_MISSING", details={"path": str(root_p)})

    try:
        conn = sqlite3.connect(
            str(store_path(root_p)),
            timeout=BUSY_TIMEOUT_MS / 1000,
            check_same_thread=False,
            isolation_level=None,
        )
    except sqlite3.Error as e:
        raise StorageFailure("cannot open project store", details={"path": str(root_p), "type": type(e).__name__}) from e

    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS};")
        found = ensure_schema(conn)
    except sqlite3.Error as e:
        conn.close()
        raise StorageFailure("cannot migrate project store", details={"path": str(root_p), "type": type(e).__name__}) from e

    if found < SCHEMA_VERSION:
        emit(
            "info",
            "project_store.migrate",
            f"schema {found} -> {SCHEMA_VERSION}",
            None,
            __name__,
            root=str(root_p),
        )
    return conn


@contextmanager
def project_store(root: Union[str, Path]) -> Iterator[sqlite3.Connection]:
    conn = open_project_store(root)
    try:
        yield conn
    except StoreError:
        raise
    except sqlite3.Error as e:
        raise StorageFailure("project store operation failed", details={"type": type(e).__name__, "error": str(e)}) from e
    finally:
        conn.close()


def check_version(row: sqlite3.Row, expected_version: Optional[int], entity: str) -> None:
    if expected_version is None:
        return
    current = int(row["version"])
    if current != int(expected_version):
        raise ConflictError(
            f"{entity} was modified concurrently",
            details={"id": row["id"], "expected_version": int(expected_version), "current_version": current},
        )
