"""Shared fixtures for Plex Share Manager tests."""

from __future__ import annotations

import pytest

from plexshare.models import CachedItem
from plexshare.review_store import ReviewStore
from plexshare.storage import MemoryStorage


class StepClock:
    """Deterministic millisecond clock that advances on every call."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> int:
        value = self.current
        self.current += self.step
        return value


def make_item(
    item_id: str, library_id: str = "1", added_at: int = 100, **overrides
) -> CachedItem:
    fields = {
        "item_id": item_id,
        "library_id": library_id,
        "title": f"Title {item_id}",
        "media_type": "movie",
        "added_at": added_at,
    }
    fields.update(overrides)
    return CachedItem(**fields)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, clock):
    return ReviewStore(storage, clock=clock)
