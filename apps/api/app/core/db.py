"""
Project registry database (the only non-sharded store).

Defaults:
- REGISTRY_DATABASE_URL: sqlite:///<PROJECTS_ROOT>/app.sqlite

The engine is created lazily once per process; creation applies the alembic
ladder in apps/api/migrations up to head.
"""
from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlmodel import Session

from app.core.observability import emit
from app.core.storage import get_projects_root


def get_registry_url() -> str:
    url = os.getenv("REGISTRY_DATABASE_URL")
    if url:
        return url
    return "sqlite:///" + (get_projects_root() / "app.sqlite").as_posix()


def _repo_root() -> Path:
    # apps/api/app/core/db.py -> repo root = parents[4]
    return Path(__file__).resolve().parents[4]


def _migrations_dir() -> Path:
    # apps/api/app/core/db.py -> apps/api/migrations
    return Path(__file__).resolve().parents[2] / "migrations"


def resolve_sqlite_path(database_url: str) -> Optional[Path]:
    if not database_url.startswith("sqlite:///"):
        return None
    p = database_url[len("sqlite:///") :]

    # absolute unix
    if p.startswith("/"):
        return Path(p)

    # absolute windows drive, both C:/ and C:\ forms
    if len(p) >= 3 and p[1] == ":" and (p[2] == "/" or p[2] == "\\"):
        return Path(p)

    # relative -> repo root
    return (_repo_root() / p).resolve()


_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def _set_sqlite_pragmas(dbapi_conn: Any, _record: Any) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA foreign_keys=ON;")
    cur.close()


def _alembic_config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(_migrations_dir()))
    cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return cfg


def upgrade_registry(engine: Engine) -> None:
    cfg = _alembic_config(str(engine.url))
    with engine.begin() as conn:
        cfg.attributes["connection"] = conn
        command.upgrade(cfg, "head")


def get_engine() -> Engine:
    global _engine
    if _engine is not None:
        return _engine

    with _engine_lock:
        if _engine is not None:
            return _engine

        url = get_registry_url()
        connect_args = {}
        if url.startswith("sqlite:"):
            connect_args = {"check_same_thread": False}

        sp = resolve_sqlite_path(url)
        if sp is not None:
            sp.parent.mkdir(parents=True, exist_ok=True)
            url = "sqlite:///" + sp.as_posix()

        engine = create_engine(url, future=True, connect_args=connect_args)
        if url.startswith("sqlite:"):
            event.listen(engine, "connect", _set_sqlite_pragmas)

        upgrade_registry(engine)
        emit("info", "registry.open", f"registry ready at {url}", None, __name__)
        _engine = engine
        return _engine


def reset_registry_engine() -> None:
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None


def registry_session() -> Session:
    return Session(get_engine(), expire_on_commit=False)


def db_health() -> Dict[str, Any]:
    url = get_registry_url()
    kind = "sqlite" if url.startswith("sqlite") else "unknown"
    sp = resolve_sqlite_path(url)
    path = str(sp.as_posix()) if sp is not None else url

    try:
        eng = get_engine()
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ok", "kind": kind, "path": path}
    except Exception as e:
        return {"status": "error", "kind": kind, "path": path, "error": str(e)}
