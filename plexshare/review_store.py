"""Review cache for newly added media.

The store keeps the last-known item set per library and the review decision
per item in one persisted dataset. Derived views (unreviewed items, stats,
status lookups) are computed from a fresh load on every call.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Mapping

from plexshare.models import (
    CachedItem,
    LibraryStats,
    ReviewDataset,
    ReviewRecord,
    ReviewStats,
    validate_action,
)
from plexshare.storage import DatasetStorage, StorageCorruptError

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current time in epoch milliseconds."""

    return int(time.time() * 1000)


class ReviewStore:
    """Load-modify-save access to the review dataset.

    Mutations hold a process-local lock for the whole read-modify-write cycle
    so concurrent requests cannot drop each other's changes.
    """

    def __init__(
        self, storage: DatasetStorage, clock: Callable[[], int] = now_ms
    ) -> None:
        self.storage = storage
        self._clock = clock
        self._lock = threading.RLock()

    def load(self) -> ReviewDataset:
        """Return the persisted dataset, or an empty one if none is readable.

        An unreadable document is left in place; only a locked update moves it
        aside before writing over it.
        """

        return self._read_dataset(quarantine=False)

    def _read_dataset(self, quarantine: bool) -> ReviewDataset:
        try:
            payload = self.storage.read()
        except StorageCorruptError:
            logger.exception(
                "Review dataset unreadable, starting empty",
                extra={"event": "review_data_unreadable"},
            )
            if quarantine:
                self._quarantine()
            return ReviewDataset.empty()
        if payload is None:
            return ReviewDataset.empty()
        try:
            return ReviewDataset.from_dict(payload)
        except (KeyError, TypeError, ValueError, AttributeError):
            logger.exception(
                "Review dataset malformed, starting empty",
                extra={"event": "review_data_malformed"},
            )
            if quarantine:
                self._quarantine()
            return ReviewDataset.empty()

    def _quarantine(self) -> None:
        try:
            self.storage.quarantine()
        except OSError as exc:
            logger.warning(
                "Could not move unreadable review dataset aside",
                extra={
                    "event": "review_data_quarantine_failed",
                    "context": {"error": str(exc)},
                },
            )

    def save(self, dataset: ReviewDataset) -> None:
        """Persist the whole dataset as one unit."""

        with self._lock:
            self.storage.write(dataset.to_dict())

    @contextmanager
    def transaction(self) -> Iterator[ReviewDataset]:
        """Hold the lock across load and save; nothing is saved on error.

        The read happens under the lock, so a document found unreadable here is
        still the one on disk when it is moved aside.
        """

        with self._lock:
            dataset = self._read_dataset(quarantine=True)
            yield dataset
            self.save(dataset)

    def apply_snapshots(
        self, snapshots: Mapping[str, list[CachedItem]]
    ) -> list[CachedItem]:
        """Apply fresh library snapshots and mark the dataset as synced now.

        Each library goes through ``ReviewDataset.replace_library_snapshot``.
        Returns the reportable new items across all libraries, in library order.
        """

        new_items: list[CachedItem] = []
        with self.transaction() as dataset:
            for library_id, items in snapshots.items():
                library_new = dataset.replace_library_snapshot(library_id, items)
                new_items.extend(library_new)
                logger.info(
                    "Replaced library snapshot",
                    extra={
                        "event": "library_snapshot_replaced",
                        "context": {
                            "library_id": library_id,
                            "items": len(items),
                            "new_items": len(library_new),
                        },
                    },
                )
            dataset.mark_synced(self._clock())
        return new_items

    def mark_reviewed(self, item_ids: Iterable[str], action: str) -> None:
        """Record ``action`` for every id, replacing any earlier decision."""

        validate_action(action)
        ids = [str(item_id) for item_id in item_ids]
        if not ids:
            return
        with self.transaction() as dataset:
            reviewed_at = self._clock()
            for item_id in ids:
                dataset.review_status[item_id] = ReviewRecord(
                    item_id=item_id, reviewed_at=reviewed_at, action=action
                )
        logger.info(
            "Marked items as reviewed",
            extra={
                "event": "items_reviewed",
                "context": {"count": len(ids), "action": action},
            },
        )

    def list_unreviewed(self, library_id: str | None = None) -> list[CachedItem]:
        """Return unreviewed cached items, most recently added first."""

        dataset = self.load()
        unreviewed = [
            item
            for item in dataset.cached_items()
            if item.item_id not in dataset.review_status
            and (library_id is None or item.library_id == library_id)
        ]
        unreviewed.sort(key=lambda item: item.added_at, reverse=True)
        return unreviewed

    def compute_stats(self) -> ReviewStats:
        dataset = self.load()
        by_library: dict[str, LibraryStats] = {}
        for library_id, items in dataset.media_cache.items():
            library_unreviewed = sum(
                1 for item in items if item.item_id not in dataset.review_status
            )
            by_library[library_id] = LibraryStats(
                total=len(items), unreviewed=library_unreviewed
            )
        shared = sum(
            1 for record in dataset.review_status.values() if record.action == "shared"
        )
        return ReviewStats(
            total_cached=sum(stats.total for stats in by_library.values()),
            unreviewed=sum(stats.unreviewed for stats in by_library.values()),
            shared=shared,
            skipped=len(dataset.review_status) - shared,
            last_sync=dataset.last_sync,
            by_library=by_library,
        )

    def status_of(self, item_id: str) -> str | None:
        """Return the recorded action for an item, or None if unreviewed."""

        record = self.load().review_status.get(str(item_id))
        return record.action if record else None

    def status_map(self) -> tuple[dict[str, str | None], int | None]:
        """Map every cached or reviewed item id to its action (None = unreviewed)."""

        dataset = self.load()
        statuses: dict[str, str | None] = {
            item.item_id: None for item in dataset.cached_items()
        }
        for item_id, record in dataset.review_status.items():
            statuses[item_id] = record.action
        return statuses, dataset.last_sync

    def reset(self) -> None:
        """Overwrite the dataset with the empty initial state."""

        self.save(ReviewDataset.empty())
        logger.info("Cleared review data", extra={"event": "review_data_reset"})
