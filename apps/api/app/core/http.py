from __future__ import annotations

from typing import Optional

from fastapi import Request, UploadFile

from app.modules.assets.schemas import UploadIn


def request_id(request: Request) -> Optional[str]:
    return (
        getattr(getattr(request, "state", None), "request_id", None)
        or request.headers.get("X-Request-Id")
    )


def read_upload(file: Optional[UploadFile], max_bytes: int) -> Optional[UploadIn]:
    if file is None:
        return None
    # one byte past the ceiling is enough to reject without buffering the rest
    data = file.file.read(max_bytes + 1)
    return UploadIn(
        filename=file.filename or "",
        mime_type=file.content_type or "",
        data=data,
    )
