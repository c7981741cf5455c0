from __future__ import annotations

import pytest

from app.core import ids
from app.core.ids import new_ulid


def test_ulid_shape() -> None:
    u = new_ulid()
    assert len(u) == 26
    assert set(u) <= set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")


def test_ulids_sort_by_creation_time(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ids.time, "time", lambda: 1_700_000_000.000)
    first = new_ulid()
    monkeypatch.setattr(ids.time, "time", lambda: 1_700_000_000.001)
    second = new_ulid()
    assert first[:10] < second[:10]
    assert first < second
