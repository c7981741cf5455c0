from __future__ import annotations

from pathlib import Path

import pytest

from app.core.errors import ConflictError, NotFoundError, ValidationFailed
from app.modules.characters.service import (
    clear_character_photo,
    create_character,
    delete_character,
    get_character,
    get_character_photo,
    list_characters,
    patch_character,
    set_character_photo,
)
from app.modules.relationships.service import create_relationship, get_relationship, list_relationships

from conftest import JPEG_BYTES, jpeg_upload, png_upload


def _photo_files(project) -> list:
    return sorted(p.name for p in (Path(project.path) / "characters").iterdir())


def test_create_and_list_characters(project) -> None:
    b = create_character(project.id, "Bree", summary="Ranger", tags=["elf", " scout "])
    a = create_character(project.id, "aldric")
    assert b["tags"] == ["elf", "scout"]
    assert b["photo_path"] == ""
    assert [c["name"] for c in list_characters(project.id)] == ["aldric", "Bree"]
    assert get_character(b["id"]) == b


def test_character_limits(project) -> None:
    with pytest.raises(ValidationFailed):
        create_character(project.id, " ")
    with pytest.raises(ValidationFailed):
        create_character(project.id, "x", summary="s" * 1001)
    with pytest.raises(ValidationFailed):
        create_character(project.id, "x", tags=["t" * 41])


def test_patch_character(project) -> None:
    c = create_character(project.id, "Bree")
    out = patch_character(c["id"], {"summary": "Ranger of the north", "tags": ["ally"]})
    assert out["summary"] == "Ranger of the north"
    assert out["tags"] == ["ally"]
    assert out["name"] == "Bree"
    assert out["version"] == 2
    with pytest.raises(ConflictError):
        patch_character(c["id"], {"name": "B"}, expected_version=1)


def test_second_photo_replaces_first(project) -> None:
    c = create_character(project.id, "Bree")
    first = set_character_photo(c["id"], png_upload("bree.png"))
    assert first["photo_path"] == f"characters/bree-{c['id']}.png"

    second = set_character_photo(c["id"], jpeg_upload("bree2.jpg"))
    assert second["photo_path"] == f"characters/bree-{c['id']}.jpg"
    assert _photo_files(project) == [f"bree-{c['id']}.jpg"]

    path, media_type = get_character_photo(c["id"])
    assert path.read_bytes() == JPEG_BYTES
    assert media_type == "image/jpeg"


def test_same_extension_photo_overwrites_in_place(project) -> None:
    c = create_character(project.id, "Bree")
    set_character_photo(c["id"], png_upload(data=b"one"))
    out = set_character_photo(c["id"], png_upload(data=b"two"))
    assert _photo_files(project) == [Path(out["photo_path"]).name]
    assert (Path(project.path) / out["photo_path"]).read_bytes() == b"two"


def test_clear_photo(project) -> None:
    c = create_character(project.id, "Bree")
    set_character_photo(c["id"], png_upload())
    out = clear_character_photo(c["id"])
    assert out["photo_path"] == ""
    assert _photo_files(project) == []
    with pytest.raises(NotFoundError) as ei:
        get_character_photo(c["id"])
    assert ei.value.code == "CHARACTER_PHOTO_NOT_FOUND"


def test_delete_character_removes_relationships_and_photo(project) -> None:
    a = create_character(project.id, "A")
    b = create_character(project.id, "B")
    c = create_character(project.id, "C")
    set_character_photo(a["id"], png_upload())
    r_ab = create_relationship(project.id, a["id"], b["id"], "friend")
    r_ca = create_relationship(project.id, c["id"], a["id"], "rival")
    r_bc = create_relationship(project.id, b["id"], c["id"], "ally")

    out = delete_character(a["id"])
    assert out["removed_relationships"] == 2
    assert _photo_files(project) == []
    for rid in (r_ab["id"], r_ca["id"]):
        with pytest.raises(NotFoundError):
            get_relationship(rid)
    assert [r["id"] for r in list_relationships(project.id)] == [r_bc["id"]]
