from __future__ import annotations

import pytest

from app.core.errors import ConflictError, InvalidReferenceError, NotFoundError, ValidationFailed
from app.modules.characters.service import create_character
from app.modules.projects.service import create_project
from app.modules.relationships.service import (
    create_relationship,
    delete_relationship,
    get_relationship,
    list_relationships,
    patch_relationship,
)


@pytest.fixture
def pair(project):
    return create_character(project.id, "Aldric"), create_character(project.id, "Bree")


def test_self_relationship_rejected_and_nothing_written(project, pair) -> None:
    a, _b = pair
    with pytest.raises(ValidationFailed) as ei:
        create_relationship(project.id, a["id"], a["id"], "friend")
    assert ei.value.code == "RELATIONSHIP_SELF"
    assert list_relationships(project.id) == []


def test_create_and_patch_relationship(project, pair) -> None:
    a, b = pair
    r = create_relationship(project.id, a["id"], b["id"], "mentor", note="taught swordplay")
    assert (r["from_character_id"], r["to_character_id"], r["type"]) == (a["id"], b["id"], "mentor")

    out = patch_relationship(r["id"], rel_type="rival")
    assert out["type"] == "rival"
    assert out["note"] == "taught swordplay"
    with pytest.raises(ConflictError):
        patch_relationship(r["id"], note="x", expected_version=1)


def test_unknown_type_and_long_note(project, pair) -> None:
    a, b = pair
    with pytest.raises(ValidationFailed):
        create_relationship(project.id, a["id"], b["id"], "nemesis")
    with pytest.raises(ValidationFailed):
        create_relationship(project.id, a["id"], b["id"], "friend", note="n" * 5001)


def test_endpoints_must_belong_to_project(project, pair) -> None:
    a, _b = pair
    other = create_project("Other")
    stranger = create_character(other.id, "Stranger")
    with pytest.raises(InvalidReferenceError) as ei:
        create_relationship(project.id, a["id"], stranger["id"], "enemy")
    assert ei.value.code == "RELATIONSHIP_CHARACTER_NOT_FOUND"


def test_delete_relationship(project, pair) -> None:
    a, b = pair
    r = create_relationship(project.id, a["id"], b["id"], "friend")
    delete_relationship(r["id"])
    with pytest.raises(NotFoundError) as ei:
        get_relationship(r["id"])
    assert ei.value.code == "RELATIONSHIP_NOT_FOUND"
