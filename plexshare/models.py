"""Data structures for the media review cache.

Field names follow Python conventions in memory; ``to_dict``/``from_dict``
translate to the camelCase keys used in the persisted JSON document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable


DATASET_VERSION = 1
MEDIA_TYPES = ("movie", "show")
REVIEW_ACTIONS = ("shared", "skipped")


class InvalidReviewAction(ValueError):
    """Raised when a review action is not one of REVIEW_ACTIONS."""


def validate_action(action: str) -> str:
    """Return the action unchanged if it is a known review action."""

    if action not in REVIEW_ACTIONS:
        raise InvalidReviewAction("action must be 'shared' or 'skipped'")
    return action


@dataclass(frozen=True)
class CachedItem:
    """One media item as last observed in a library snapshot."""

    item_id: str
    library_id: str
    title: str
    media_type: str
    added_at: int
    year: int | None = None
    thumb: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ratingKey": self.item_id,
            "libraryId": self.library_id,
            "title": self.title,
            "type": self.media_type,
            "addedAt": self.added_at,
        }
        if self.year is not None:
            payload["year"] = self.year
        if self.thumb is not None:
            payload["thumb"] = self.thumb
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CachedItem":
        return cls(
            item_id=str(payload["ratingKey"]),
            library_id=str(payload["libraryId"]),
            title=payload.get("title") or "",
            media_type=payload.get("type") or "movie",
            added_at=int(payload.get("addedAt") or 0),
            year=payload.get("year"),
            thumb=payload.get("thumb"),
        )


@dataclass(frozen=True)
class ReviewRecord:
    """A recorded human decision for one item."""

    item_id: str
    reviewed_at: int
    action: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "ratingKey": self.item_id,
            "reviewedAt": self.reviewed_at,
            "action": self.action,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ReviewRecord":
        return cls(
            item_id=str(payload["ratingKey"]),
            reviewed_at=int(payload.get("reviewedAt") or 0),
            action=validate_action(payload["action"]),
        )


def _check_sync_time(timestamp: int) -> int:
    if timestamp <= 0:
        raise ValueError(f"Sync time must be a positive epoch value, got {timestamp}")
    return timestamp


@dataclass
class ReviewDataset:
    """The persisted review aggregate.

    ``last_sync`` is ``None`` until the first successful sync; the JSON
    document stores that state as ``0``, so a recorded sync time must be a
    positive epoch-millisecond value.
    """

    version: int = DATASET_VERSION
    last_sync: int | None = None
    media_cache: dict[str, list[CachedItem]] = field(default_factory=dict)
    review_status: dict[str, ReviewRecord] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.last_sync is not None:
            _check_sync_time(self.last_sync)

    @classmethod
    def empty(cls) -> "ReviewDataset":
        return cls()

    @property
    def has_synced(self) -> bool:
        return self.last_sync is not None

    def mark_synced(self, timestamp: int) -> None:
        """Record a completed sync at ``timestamp`` (epoch milliseconds)."""

        self.last_sync = _check_sync_time(timestamp)

    def cached_items(self) -> Iterable[CachedItem]:
        """Yield every cached item in library then snapshot order."""

        for items in self.media_cache.values():
            yield from items

    def replace_library_snapshot(
        self, library_id: str, items: list[CachedItem]
    ) -> list[CachedItem]:
        """Replace one library's snapshot and return the reportable new items.

        New items are reported only when the library had a previous snapshot
        or the dataset has synced before; the very first sync is a baseline.
        """

        previous_items = self.media_cache.get(library_id, [])
        previous_ids = {item.item_id for item in previous_items}
        new_items = [item for item in items if item.item_id not in previous_ids]
        reportable = bool(previous_items) or self.has_synced
        self.media_cache[library_id] = list(items)
        return new_items if reportable else []

    def to_dict(self) -> dict[str, Any]:
        last_sync = 0
        if self.last_sync is not None:
            last_sync = _check_sync_time(self.last_sync)
        return {
            "version": self.version,
            "lastSync": last_sync,
            "mediaCache": {
                library_id: [item.to_dict() for item in items]
                for library_id, items in self.media_cache.items()
            },
            "reviewStatus": {
                item_id: record.to_dict()
                for item_id, record in self.review_status.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ReviewDataset":
        """Build a dataset from its JSON form.

        Raises KeyError, TypeError or ValueError for malformed documents.
        """

        if not isinstance(payload, dict):
            raise TypeError("Review dataset must be a JSON object")
        version = int(payload.get("version", DATASET_VERSION))
        if version != DATASET_VERSION:
            raise ValueError(f"Unsupported review dataset version: {version}")
        raw_last_sync = payload.get("lastSync")
        last_sync = int(raw_last_sync) if raw_last_sync else None
        media_cache = {
            str(library_id): [CachedItem.from_dict(item) for item in items]
            for library_id, items in (payload.get("mediaCache") or {}).items()
        }
        review_status = {
            str(item_id): ReviewRecord.from_dict(record)
            for item_id, record in (payload.get("reviewStatus") or {}).items()
        }
        return cls(
            version=version,
            last_sync=last_sync,
            media_cache=media_cache,
            review_status=review_status,
        )


@dataclass(frozen=True)
class LibraryStats:
    total: int
    unreviewed: int

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "unreviewed": self.unreviewed}


@dataclass(frozen=True)
class ReviewStats:
    """Aggregate counts derived from a dataset."""

    total_cached: int
    unreviewed: int
    shared: int
    skipped: int
    last_sync: int | None
    by_library: dict[str, LibraryStats]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCached": self.total_cached,
            "unreviewed": self.unreviewed,
            "shared": self.shared,
            "skipped": self.skipped,
            "lastSync": self.last_sync,
            "byLibrary": {
                library_id: stats.to_dict()
                for library_id, stats in self.by_library.items()
            },
        }


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one sync against the Plex server."""

    new_items: list[CachedItem]
    total_items: int
    libraries_synced: int
    failed_libraries: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "newItems": [item.to_dict() for item in self.new_items],
            "totalItems": self.total_items,
            "librariesSynced": self.libraries_synced,
            "failedLibraries": list(self.failed_libraries),
        }
