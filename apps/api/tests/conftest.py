"""Shared fixtures: every test gets its own projects root and registry file."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from app.core.db import reset_registry_engine
from app.core.locator import set_locator
from app.modules.assets.schemas import UploadIn

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32


@pytest.fixture(autouse=True)
def isolated_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    root = tmp_path / "campaigns"
    monkeypatch.setenv("PROJECTS_ROOT", str(root))
    monkeypatch.setenv("REGISTRY_DATABASE_URL", "sqlite:///" + (tmp_path / "registry.sqlite").as_posix())
    reset_registry_engine()
    set_locator(None)
    yield root
    reset_registry_engine()
    set_locator(None)


@pytest.fixture
def project():
    from app.modules.projects.service import create_project

    return create_project("Lost Mine", system="dnd5e")


def png_upload(name: str = "map.png", data: bytes = PNG_BYTES) -> UploadIn:
    return UploadIn(filename=name, mime_type="image/png", data=data)


def jpeg_upload(name: str = "photo.jpg", data: bytes = JPEG_BYTES) -> UploadIn:
    return UploadIn(filename=name, mime_type="image/jpeg", data=data)
