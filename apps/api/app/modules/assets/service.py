"""
Asset naming and storage for map images, character photos and note bodies.

Relative paths are `<subdir>/<slug>-<entity id>.<ext>`: the slug keeps files
legible on disk, the id keeps two entities with the same title apart.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Union

from app.core.errors import ResourceTooLargeError, StorageFailure, ValidationFailed
from app.core.files import resolve_inside, write_atomic
from app.core.observability import emit

from .schemas import UploadIn

ALLOWED_EXTS = ("png", "jpg", "jpeg", "svg")

MIME_TO_EXT = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/svg+xml": "svg",
}

EXT_TO_MIME = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "svg": "image/svg+xml",
    "md": "text/markdown",
    "txt": "text/plain",
}

FALLBACK_EXT = "bin"


def slugify(text: str, fallback: str = "project") -> str:
    s = (text or "").strip().lower()
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"[^a-z0-9\-_]", "", s)
    s = re.sub(r"-+", "-", s)
    s = s.strip("-")
    return s or fallback


def choose_extension(original_filename: Optional[str], mime_type: Optional[str]) -> str:
    ext = Path(original_filename or "").suffix.lower().lstrip(".")
    if ext in ALLOWED_EXTS:
        return ext
    return MIME_TO_EXT.get((mime_type or "").lower(), FALLBACK_EXT)


def validate_upload(upload: Optional[UploadIn], max_bytes: int) -> UploadIn:
    if upload is None or upload.size == 0:
        raise ValidationFailed("file is required", code="FILE_REQUIRED", fields=["file"])
    if (upload.mime_type or "").lower() not in MIME_TO_EXT:
        raise ValidationFailed(
            "unsupported image type (png, jpeg or svg only)",
            code="INVALID_MIME",
            fields=["file"],
            details={"mime_type": upload.mime_type},
        )
    if upload.size > max_bytes:
        raise ResourceTooLargeError(
            "file too large",
            code="FILE_TOO_LARGE",
            details={"size_bytes": upload.size, "max_bytes": max_bytes},
        )
    return upload


def asset_relpath(subdir: str, display_name: str, entity_id: str, ext: str, fallback: str) -> str:
    base = slugify(display_name, fallback=fallback)
    return f"{subdir.strip('/')}/{base}-{entity_id}.{ext}"


def store_asset(
    root: Union[str, Path],
    relpath: str,
    data: bytes,
    request_id: Optional[str] = None,
) -> Path:
    abs_path = resolve_inside(root, relpath)
    try:
        write_atomic(abs_path, data)
    except OSError as e:
        emit("error", "asset.write_failed", f"cannot write {relpath}", request_id, __name__, error=type(e).__name__)
        raise StorageFailure("cannot write asset", details={"path": relpath, "type": type(e).__name__}) from e
    return abs_path


def media_type_for(relpath: str) -> str:
    ext = Path(relpath or "").suffix.lower().lstrip(".")
    return EXT_TO_MIME.get(ext, "application/octet-stream")
