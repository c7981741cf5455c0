from __future__ import annotations

from pathlib import Path

import pytest

from app.core.errors import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    ResourceTooLargeError,
    ValidationFailed,
)
from app.modules.assets.schemas import UploadIn
from app.modules.maps.service import (
    create_map,
    delete_map,
    get_map,
    get_map_file,
    list_maps,
    map_tree,
    patch_map,
    replace_map_image,
)
from app.modules.markers.schemas import MarkerCreateIn
from app.modules.markers.service import create_marker, get_marker, list_markers
from app.modules.projects.service import create_project

from conftest import PNG_BYTES, jpeg_upload, png_upload


def _map_files(project) -> list:
    return sorted(p.name for p in (Path(project.path) / "assets" / "maps").iterdir())


def test_create_map_writes_image_and_row(project) -> None:
    m = create_map(project.id, "The Sword Coast", png_upload())
    assert m["filename"] == f"assets/maps/the-sword-coast-{m['id']}.png"
    assert (Path(project.path) / m["filename"]).read_bytes() == PNG_BYTES
    assert m["parent_map_id"] is None
    assert m["version"] == 1
    assert get_map(m["id"]) == m


def test_create_map_with_unknown_parent_writes_nothing(project) -> None:
    with pytest.raises(InvalidReferenceError) as ei:
        create_map(project.id, "Orphan", png_upload(), parent_map_id="missing")
    assert ei.value.code == "INVALID_PARENT_MAP"
    assert _map_files(project) == []
    assert list_maps(project.id) == []


def test_parent_must_be_in_same_project(project) -> None:
    other = create_project("Other")
    foreign = create_map(other.id, "Foreign", png_upload())
    with pytest.raises(InvalidReferenceError):
        create_map(project.id, "Child", png_upload(), parent_map_id=foreign["id"])


def test_upload_checks(project, monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(ValidationFailed) as ei:
        create_map(project.id, "No file", None)
    assert ei.value.code == "FILE_REQUIRED"

    with pytest.raises(ValidationFailed) as ei:
        create_map(project.id, "Gif", UploadIn(filename="x.gif", mime_type="image/gif", data=b"GIF89a"))
    assert ei.value.code == "INVALID_MIME"

    monkeypatch.setenv("MAX_MAP_BYTES", "10")
    with pytest.raises(ResourceTooLargeError) as ei:
        create_map(project.id, "Huge", png_upload(data=b"x" * 11))
    assert ei.value.code == "FILE_TOO_LARGE"
    assert _map_files(project) == []


def test_blank_title_rejected(project) -> None:
    with pytest.raises(ValidationFailed) as ei:
        create_map(project.id, "   ", png_upload())
    assert ei.value.details["fields"] == ["title"]


def test_map_tree_nests_children(project) -> None:
    world = create_map(project.id, "World", png_upload())
    city = create_map(project.id, "City", png_upload(), parent_map_id=world["id"])
    create_map(project.id, "Sewers", png_upload(), parent_map_id=city["id"])
    create_map(project.id, "Astral", png_upload())

    roots = map_tree(project.id)
    assert [r["title"] for r in roots] == ["Astral", "World"]
    assert roots[1]["children"][0]["title"] == "City"
    assert roots[1]["children"][0]["children"][0]["title"] == "Sewers"


def test_patch_map_title_and_parent(project) -> None:
    a = create_map(project.id, "A", png_upload())
    b = create_map(project.id, "B", png_upload())

    out = patch_map(b["id"], {"parent_map_id": a["id"]})
    assert out["parent_map_id"] == a["id"]
    assert out["version"] == 2

    out = patch_map(b["id"], {"title": "Bee"})
    assert out["title"] == "Bee"
    assert out["parent_map_id"] == a["id"]

    out = patch_map(b["id"], {"parent_map_id": None})
    assert out["parent_map_id"] is None


def test_patch_map_rejects_cycles(project) -> None:
    a = create_map(project.id, "A", png_upload())
    b = create_map(project.id, "B", png_upload(), parent_map_id=a["id"])
    c = create_map(project.id, "C", png_upload(), parent_map_id=b["id"])

    with pytest.raises(ValidationFailed) as ei:
        patch_map(a["id"], {"parent_map_id": c["id"]})
    assert ei.value.code == "MAP_CYCLE"
    with pytest.raises(ValidationFailed):
        patch_map(a["id"], {"parent_map_id": a["id"]})
    assert get_map(a["id"])["parent_map_id"] is None


def test_patch_map_version_conflict(project) -> None:
    m = create_map(project.id, "A", png_upload())
    patch_map(m["id"], {"title": "A1"}, expected_version=1)
    with pytest.raises(ConflictError):
        patch_map(m["id"], {"title": "A2"}, expected_version=1)
    assert get_map(m["id"])["title"] == "A1"


def test_replace_map_image_swaps_file(project) -> None:
    m = create_map(project.id, "World", png_upload())
    old = Path(project.path) / m["filename"]

    out = replace_map_image(m["id"], jpeg_upload())
    assert out["filename"].endswith(".jpg")
    assert not old.exists()
    assert _map_files(project) == [Path(out["filename"]).name]

    path, media_type = get_map_file(m["id"])
    assert media_type == "image/jpeg"
    assert path.is_file()


def test_get_map_file_missing_on_disk(project) -> None:
    m = create_map(project.id, "World", png_upload())
    (Path(project.path) / m["filename"]).unlink()
    with pytest.raises(NotFoundError) as ei:
        get_map_file(m["id"])
    assert ei.value.code == "MAP_FILE_NOT_FOUND"


def test_delete_map_splices_children_up(project) -> None:
    top = create_map(project.id, "Top", png_upload())
    mid = create_map(project.id, "Mid", png_upload(), parent_map_id=top["id"])
    leaf1 = create_map(project.id, "Leaf1", png_upload(), parent_map_id=mid["id"])
    leaf2 = create_map(project.id, "Leaf2", png_upload(), parent_map_id=mid["id"])

    summary = delete_map(mid["id"])
    assert summary["reparented_maps"] == 2

    assert get_map(leaf1["id"])["parent_map_id"] == top["id"]
    assert get_map(leaf2["id"])["parent_map_id"] == top["id"]
    with pytest.raises(NotFoundError):
        get_map(mid["id"])
    assert not (Path(project.path) / mid["filename"]).exists()


def test_delete_root_map_makes_children_roots(project) -> None:
    root = create_map(project.id, "Root", png_upload())
    child = create_map(project.id, "Child", png_upload(), parent_map_id=root["id"])
    delete_map(root["id"])
    assert get_map(child["id"])["parent_map_id"] is None


def test_delete_map_removes_only_its_markers_and_unlinks_others(project) -> None:
    a = create_map(project.id, "A", png_upload())
    b = create_map(project.id, "B", png_upload())

    on_a = [create_marker(a["id"], MarkerCreateIn(title=f"a{i}", x=0.1, y=0.1)) for i in range(3)]
    on_b = create_marker(b["id"], MarkerCreateIn(title="b", x=0.2, y=0.2))
    link_to_a = create_marker(b["id"], MarkerCreateIn(title="to a", x=0.3, y=0.3, link_type="map", link_map_id=a["id"]))

    summary = delete_map(a["id"])
    assert summary["deleted_markers"] == 3
    assert summary["unlinked_markers"] == 1

    for m in on_a:
        with pytest.raises(NotFoundError):
            get_marker(m["id"])
    assert get_marker(on_b["id"])["title"] == "b"

    relinked = get_marker(link_to_a["id"])
    assert relinked["link_type"] is None
    assert relinked["link_map_id"] is None
    assert len(list_markers(b["id"])) == 2


def test_delete_map_survives_missing_image(project) -> None:
    m = create_map(project.id, "World", png_upload())
    (Path(project.path) / m["filename"]).unlink()
    assert delete_map(m["id"])["status"] == "deleted"


def test_delete_unknown_map() -> None:
    with pytest.raises(NotFoundError) as ei:
        delete_map("nope")
    assert ei.value.code == "MAP_NOT_FOUND"
