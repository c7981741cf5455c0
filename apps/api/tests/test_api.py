from __future__ import annotations

from fastapi.testclient import TestClient
import pytest

from app.main import app

from conftest import PNG_BYTES


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def _project(client: TestClient, name: str = "Homebrew") -> dict:
    r = client.post("/api/projects", json={"name": name, "system": "generic"})
    assert r.status_code == 200, r.text
    return r.json()


def _map(client: TestClient, project_id: str, title: str, parent: str | None = None) -> dict:
    data = {"title": title}
    if parent:
        data["parent_map_id"] = parent
    r = client.post(
        f"/api/projects/{project_id}/maps",
        data=data,
        files={"file": ("map.png", PNG_BYTES, "image/png")},
    )
    assert r.status_code == 200, r.text
    return r.json()


def test_health_reports_db_and_storage(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["db"]["status"] == "ok"
    assert body["storage"]["status"] == "ok"
    assert "X-Request-Id" in r.headers


def test_request_id_is_echoed(client: TestClient) -> None:
    r = client.get("/api/projects", headers={"X-Request-Id": "abc123"})
    assert r.headers["X-Request-Id"] == "abc123"
    assert r.json() == {"items": []}


def test_not_found_uses_error_envelope(client: TestClient) -> None:
    r = client.get("/api/maps/missing", headers={"X-Request-Id": "rid-1"})
    assert r.status_code == 404
    body = r.json()
    assert body["error"] == "MAP_NOT_FOUND"
    assert body["request_id"] == "rid-1"
    assert set(body) == {"error", "message", "request_id", "details"}


def test_map_upload_tree_and_file(client: TestClient) -> None:
    p = _project(client)
    world = _map(client, p["id"], "Overworld")
    dungeon = _map(client, p["id"], "Dungeon", parent=world["id"])

    tree = client.get(f"/api/projects/{p['id']}/maps/tree").json()
    assert tree["roots"][0]["id"] == world["id"]
    assert tree["roots"][0]["children"][0]["id"] == dungeon["id"]

    r = client.get(f"/api/maps/{world['id']}/file")
    assert r.status_code == 200
    assert r.content == PNG_BYTES
    assert r.headers["content-type"] == "image/png"


def test_map_upload_rejects_gif(client: TestClient) -> None:
    p = _project(client)
    r = client.post(
        f"/api/projects/{p['id']}/maps",
        data={"title": "Anim"},
        files={"file": ("x.gif", b"GIF89a", "image/gif")},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "INVALID_MIME"


def test_marker_patch_and_inconsistent_link(client: TestClient) -> None:
    p = _project(client)
    world = _map(client, p["id"], "World")
    note = client.post(f"/api/projects/{p['id']}/notes", json={"title": "Boss Notes", "type": "md"}).json()

    r = client.post(
        f"/api/maps/{world['id']}/markers",
        json={"title": "Boss", "x": 0.5, "y": 0.5, "link_type": "note", "link_note_id": note["id"]},
    )
    assert r.status_code == 200, r.text
    marker = r.json()

    r = client.patch(f"/api/markers/{marker['id']}", json={"x": 0.25})
    assert r.status_code == 200
    assert r.json()["link_note_id"] == note["id"]

    r = client.patch(f"/api/markers/{marker['id']}", json={"link_type": "map"})
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["details"]["fields"] == ["link_map_id"]

    other = client.post(f"/api/projects/{p['id']}/notes", json={"title": "Epilogue", "type": "md"}).json()
    r = client.patch(f"/api/markers/{marker['id']}", json={"link_note_id": other["id"]})
    assert r.status_code == 200, r.text
    assert (r.json()["link_type"], r.json()["link_note_id"]) == ("note", other["id"])


def test_delete_map_summary(client: TestClient) -> None:
    p = _project(client)
    world = _map(client, p["id"], "World")
    child = _map(client, p["id"], "Child", parent=world["id"])
    client.post(f"/api/maps/{world['id']}/markers", json={"title": "m", "x": 0.1, "y": 0.1})

    r = client.delete(f"/api/maps/{world['id']}")
    assert r.status_code == 200
    assert r.json() == {
        "map_id": world["id"],
        "unlinked_markers": 0,
        "deleted_markers": 1,
        "reparented_maps": 1,
        "status": "deleted",
    }
    assert client.get(f"/api/maps/{child['id']}").json()["parent_map_id"] is None


def test_note_content_round_trip(client: TestClient) -> None:
    p = _project(client)
    note = client.post(f"/api/projects/{p['id']}/notes", json={"title": "Lore"}).json()
    r = client.put(f"/api/notes/{note['id']}/content", json={"content": "# Lore\n"})
    assert r.status_code == 200
    r = client.get(f"/api/notes/{note['id']}/content")
    assert r.json()["content"] == "# Lore\n"


def test_character_photo_and_relationships(client: TestClient) -> None:
    p = _project(client)
    a = client.post(f"/api/projects/{p['id']}/characters", json={"name": "Aldric"}).json()
    b = client.post(f"/api/projects/{p['id']}/characters", json={"name": "Bree", "tags": ["elf"]}).json()

    r = client.put(
        f"/api/characters/{a['id']}/photo",
        files={"file": ("a.png", PNG_BYTES, "image/png")},
    )
    assert r.status_code == 200
    assert r.json()["photo_path"].startswith("characters/aldric-")
    assert client.get(f"/api/characters/{a['id']}/photo").content == PNG_BYTES

    r = client.post(
        f"/api/projects/{p['id']}/relationships",
        json={"from_character_id": a["id"], "to_character_id": a["id"], "type": "friend"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "RELATIONSHIP_SELF"

    r = client.post(
        f"/api/projects/{p['id']}/relationships",
        json={"from_character_id": a["id"], "to_character_id": b["id"], "type": "friend"},
    )
    assert r.status_code == 200

    r = client.delete(f"/api/characters/{a['id']}")
    assert r.json()["removed_relationships"] == 1


def test_version_conflict_is_409(client: TestClient) -> None:
    p = _project(client)
    world = _map(client, p["id"], "World")
    assert client.patch(f"/api/maps/{world['id']}", json={"title": "W1", "expected_version": 1}).status_code == 200
    r = client.patch(f"/api/maps/{world['id']}", json={"title": "W2", "expected_version": 1})
    assert r.status_code == 409
    assert r.json()["error"] == "VERSION_CONFLICT"


def test_delete_project(client: TestClient) -> None:
    p = _project(client)
    r = client.delete(f"/api/projects/{p['id']}")
    assert r.status_code == 200
    assert client.get(f"/api/projects/{p['id']}").status_code == 404
