from fastapi import FastAPI
import os

APP_VERSION = os.getenv("APP_VERSION", "0.1.0")

app = FastAPI(title="Campaign Store API", version=APP_VERSION)

# === OBSERVABILITY FOUNDATIONS ===
# Contract:
# - /health keys: status, version, db, storage, last_error_summary
# - X-Request-Id in/out (missing -> generated; always echoed back; also on errors)
# - Error envelope keys: error, message, request_id, details
import uuid
from typing import Any, Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import StoreError
from app.core.observability import configure_logging, emit

configure_logging()

_last_error_summary: Optional[str] = None


def _err_envelope(error: str, message: str, request_id: Optional[str], details: Any, status_code: int):
    headers = {}
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {
                "error": error,
                "message": message,
                "request_id": request_id,
                "details": details,
            }
        ),
        headers=headers,
    )


@app.middleware("http")
async def _request_id_mw(request: Request, call_next):
    rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex.upper()
    request.state.request_id = rid
    emit("info", "http.request.start", f"{request.method} {request.url.path}", rid, __name__)
    try:
        resp = await call_next(request)
    except Exception as e:
        emit("error", "http.request.exception", str(e), rid, __name__)
        raise
    resp.headers["X-Request-Id"] = rid
    emit("info", "http.request.end", f"{request.method} {request.url.path} -> {getattr(resp,'status_code',None)}", rid, __name__)
    return resp


@app.exception_handler(StoreError)
async def _store_exc_handler(request: Request, exc: StoreError):
    global _last_error_summary
    rid = getattr(request.state, "request_id", None)
    if exc.status_code >= 500:
        _last_error_summary = f"{exc.code}: {exc.message}"
        emit("error", "store.error", exc.message, rid, __name__, code=exc.code)
    return _err_envelope(exc.code, exc.message, rid, exc.details, exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def _http_exc_handler(request: Request, exc: StarletteHTTPException):
    rid = getattr(request.state, "request_id", None)
    return _err_envelope("http_error", str(exc.detail), rid, {"status_code": exc.status_code}, exc.status_code)


@app.exception_handler(RequestValidationError)
async def _validation_exc_handler(request: Request, exc: RequestValidationError):
    rid = getattr(request.state, "request_id", None)
    return _err_envelope("validation_error", "request validation failed", rid, exc.errors(), 422)


@app.exception_handler(Exception)
async def _unhandled_exc_handler(request: Request, exc: Exception):
    global _last_error_summary
    rid = getattr(request.state, "request_id", None)
    _last_error_summary = f"{type(exc).__name__}: {exc}"
    return _err_envelope("internal_error", "internal server error", rid, {"type": type(exc).__name__}, 500)
# === END OBSERVABILITY FOUNDATIONS ===


from app.core.db import db_health
from app.core.storage import storage_health

from app.modules.projects.router import router as projects_router
from app.modules.maps.router import router as maps_router
from app.modules.markers.router import router as markers_router
from app.modules.notes.router import router as notes_router
from app.modules.characters.router import router as characters_router
from app.modules.relationships.router import router as relationships_router

app.include_router(projects_router, prefix="/api")
app.include_router(maps_router, prefix="/api")
app.include_router(markers_router, prefix="/api")
app.include_router(notes_router, prefix="/api")
app.include_router(characters_router, prefix="/api")
app.include_router(relationships_router, prefix="/api")


@app.get("/health")
def health():
    db = db_health()
    storage = storage_health()
    ok = db.get("status") == "ok" and storage.get("status") == "ok"
    return {
        "status": "ok" if ok else "degraded",
        "version": APP_VERSION,
        "db": db,
        "storage": storage,
        "last_error_summary": _last_error_summary,
    }
