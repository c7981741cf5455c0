from __future__ import annotations

from pydantic import BaseModel, Field


class UploadIn(BaseModel):
    """Raw upload as handed over by the HTTP layer (or a test)."""

    filename: str = ""
    mime_type: str = ""
    data: bytes = Field(default=b"", repr=False)

    @property
    def size(self) -> int:
        return len(self.data)
