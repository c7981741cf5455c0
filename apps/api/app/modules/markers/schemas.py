from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.errors import ValidationFailed

MarkerType = Literal["location", "event", "character", "area"]
MarkerIcon = Literal["", "pin", "star", "user", "flag", "skull", "crown", "book", "home"]
LinkType = Literal["note", "map"]

DESCRIPTION_MAX_BYTES = 300 * 1024
COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
LINK_FIELDS = ("link_type", "link_note_id", "link_map_id")


class LinkState(BaseModel):
    """Tagged link: none, a note, or a map. Exactly one shape is valid per tag."""

    link_type: Optional[LinkType] = None
    link_note_id: Optional[str] = None
    link_map_id: Optional[str] = None

    def normalized(self) -> "LinkState":
        if self.link_type == "note":
            return LinkState(link_type="note", link_note_id=self.link_note_id, link_map_id=None)
        if self.link_type == "map":
            return LinkState(link_type="map", link_note_id=None, link_map_id=self.link_map_id)
        return LinkState()


def check_link_shape(link_type: Optional[str], link_note_id: Optional[str], link_map_id: Optional[str]) -> None:
    bad: List[str] = []
    if link_type is None:
        if link_note_id is not None:
            bad.append("link_note_id")
        if link_map_id is not None:
            bad.append("link_map_id")
    elif link_type == "note":
        if not link_note_id:
            bad.append("link_note_id")
        if link_map_id is not None:
            bad.append("link_map_id")
    elif link_type == "map":
        if not link_map_id:
            bad.append("link_map_id")
        if link_note_id is not None:
            bad.append("link_note_id")
    else:
        bad.append("link_type")
    if bad:
        raise ValidationFailed("inconsistent link fields", fields=bad)


def check_link_fragment(sent: Dict[str, Any]) -> None:
    """Reject a partial link patch that contradicts itself.

    Only combinations decidable without the stored row are checked: a tag sent
    with the id it needs missing, or with the other kind of id set. Fields not
    sent are filled from the current row later, see resolve_link_state.
    """
    if "link_type" in sent:
        check_link_shape(sent["link_type"], sent.get("link_note_id"), sent.get("link_map_id"))


class PointIn(BaseModel):
    x: float = Field(ge=0, le=1)
    y: float = Field(ge=0, le=1)


def _check_description(v: Optional[str]) -> Optional[str]:
    if v is not None and len(v.encode("utf-8")) > DESCRIPTION_MAX_BYTES:
        raise ValueError("description too large")
    return v


def _check_points(v: Optional[List[PointIn]]) -> Optional[List[PointIn]]:
    if v is not None and len(v) < 3:
        raise ValueError("an area needs at least 3 points")
    return v


class MarkerCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    description: str = ""
    x: float = Field(ge=0, le=1)
    y: float = Field(ge=0, le=1)
    marker_type: MarkerType = "location"
    color: str = Field(default="#E53935", pattern=COLOR_PATTERN)
    icon: MarkerIcon = ""
    points: Optional[List[PointIn]] = None
    style: Optional[Dict[str, Any]] = None
    link_type: Optional[LinkType] = None
    link_note_id: Optional[str] = None
    link_map_id: Optional[str] = None

    @field_validator("description")
    @classmethod
    def _description_size(cls, v: Optional[str]) -> Optional[str]:
        return _check_description(v)

    @field_validator("points")
    @classmethod
    def _points_count(cls, v: Optional[List[PointIn]]) -> Optional[List[PointIn]]:
        return _check_points(v)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @model_validator(mode="after")
    def _link_shape(self) -> "MarkerCreateIn":
        check_link_shape(self.link_type, self.link_note_id, self.link_map_id)
        return self

    def link_state(self) -> LinkState:
        return LinkState(link_type=self.link_type, link_note_id=self.link_note_id, link_map_id=self.link_map_id)


class MarkerPatchIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    x: Optional[float] = Field(default=None, ge=0, le=1)
    y: Optional[float] = Field(default=None, ge=0, le=1)
    marker_type: Optional[MarkerType] = None
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    icon: Optional[MarkerIcon] = None
    points: Optional[List[PointIn]] = None
    style: Optional[Dict[str, Any]] = None
    link_type: Optional[LinkType] = None
    link_note_id: Optional[str] = None
    link_map_id: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, ge=1)

    @field_validator("description")
    @classmethod
    def _description_size(cls, v: Optional[str]) -> Optional[str]:
        return _check_description(v)

    @field_validator("points")
    @classmethod
    def _points_count(cls, v: Optional[List[PointIn]]) -> Optional[List[PointIn]]:
        return _check_points(v)

    @model_validator(mode="after")
    def _link_shape(self) -> "MarkerPatchIn":
        sent = {f: getattr(self, f) for f in LINK_FIELDS if f in self.model_fields_set}
        check_link_fragment(sent)
        return self


class MarkerOut(BaseModel):
    id: str
    map_id: str
    title: str
    description: str = ""
    x: float
    y: float
    marker_type: MarkerType
    color: str
    icon: str = ""
    points: Optional[List[PointIn]] = None
    style: Optional[Dict[str, Any]] = None
    link_type: Optional[LinkType] = None
    link_note_id: Optional[str] = None
    link_map_id: Optional[str] = None
    created_at: str
    updated_at: str
    version: int = 1


class MarkersListOut(BaseModel):
    items: List[MarkerOut]
