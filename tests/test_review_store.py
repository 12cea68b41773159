"""Tests for the review store: dedup, review upserts, stats and ordering."""

from __future__ import annotations

import threading

import pytest

from conftest import make_item
from plexshare.models import InvalidReviewAction, ReviewDataset
from plexshare.review_store import ReviewStore
from plexshare.storage import MemoryStorage


def _ids(items):
    return [item.item_id for item in items]


class TestLoadAndReset:
    def test_load_without_data_returns_empty_dataset(self, store, storage):
        dataset = store.load()
        assert dataset == ReviewDataset.empty()
        assert dataset.last_sync is None
        assert storage.writes == 0

    def test_reset_then_load_yields_initial_state(self, store):
        store.apply_snapshots({"1": [make_item("a")]})
        store.mark_reviewed(["a"], "shared")

        store.reset()

        assert store.load().to_dict() == {
            "version": 1,
            "lastSync": 0,
            "mediaCache": {},
            "reviewStatus": {},
        }

    def test_reset_is_idempotent(self, store):
        store.reset()
        store.reset()
        assert store.load() == ReviewDataset.empty()

    def test_save_then_load_round_trips(self, store):
        dataset = ReviewDataset.empty()
        dataset.last_sync = 1_700_000_000_123
        dataset.media_cache["1"] = [
            make_item("a", added_at=5, year=1999, thumb="/thumb/a"),
            make_item("b", added_at=7),
        ]
        dataset.media_cache["2"] = []
        store.save(dataset)
        store.mark_reviewed(["b"], "skipped")
        expected = store.load()

        store.save(expected)

        assert store.load() == expected

    def test_malformed_document_falls_back_to_empty(self, clock):
        storage = MemoryStorage({"version": 1, "mediaCache": {"1": [{"title": "x"}]}})
        store = ReviewStore(storage, clock=clock)
        assert store.load() == ReviewDataset.empty()

    def test_unknown_version_falls_back_to_empty(self, clock):
        storage = MemoryStorage({"version": 2, "lastSync": 5})
        store = ReviewStore(storage, clock=clock)
        assert store.load() == ReviewDataset.empty()

    def test_zero_sync_time_is_rejected(self):
        with pytest.raises(ValueError):
            ReviewDataset(last_sync=0)
        dataset = ReviewDataset.empty()
        with pytest.raises(ValueError):
            dataset.mark_synced(0)
        assert dataset.last_sync is None

    def test_sync_time_set_after_construction_is_checked_on_save(self, store):
        dataset = ReviewDataset.empty()
        dataset.last_sync = 0
        with pytest.raises(ValueError):
            store.save(dataset)

    def test_negative_persisted_sync_time_falls_back_to_empty(self, clock):
        storage = MemoryStorage({"version": 1, "lastSync": -5})
        store = ReviewStore(storage, clock=clock)
        assert store.load() == ReviewDataset.empty()


class TestReplaceLibrarySnapshot:
    def test_reports_only_items_missing_from_previous_snapshot(self):
        dataset = ReviewDataset(last_sync=1)
        dataset.media_cache["lib"] = [make_item("A"), make_item("B")]
        fresh = [make_item("A"), make_item("B"), make_item("C")]

        new_items = dataset.replace_library_snapshot("lib", fresh)

        assert _ids(new_items) == ["C"]
        assert _ids(dataset.media_cache["lib"]) == ["A", "B", "C"]

    def test_first_sync_is_a_silent_baseline(self):
        dataset = ReviewDataset.empty()
        fresh = [make_item("A"), make_item("B"), make_item("C")]

        new_items = dataset.replace_library_snapshot("lib", fresh)

        assert new_items == []
        assert _ids(dataset.media_cache["lib"]) == ["A", "B", "C"]

    def test_empty_previous_snapshot_after_earlier_sync_reports_items(self):
        dataset = ReviewDataset(last_sync=1)
        dataset.media_cache["lib"] = []

        new_items = dataset.replace_library_snapshot("lib", [make_item("A")])

        assert _ids(new_items) == ["A"]

    def test_unseen_library_after_earlier_sync_reports_items(self):
        dataset = ReviewDataset(last_sync=1)
        dataset.media_cache["other"] = [make_item("X", library_id="other")]

        new_items = dataset.replace_library_snapshot("lib", [make_item("A")])

        assert _ids(new_items) == ["A"]

    def test_snapshot_is_replaced_not_merged(self):
        dataset = ReviewDataset(last_sync=1)
        dataset.media_cache["lib"] = [make_item("A"), make_item("B")]

        new_items = dataset.replace_library_snapshot("lib", [make_item("B")])

        assert new_items == []
        assert _ids(dataset.media_cache["lib"]) == ["B"]


class TestApplySnapshots:
    def test_first_sync_records_baseline_and_advances_last_sync(self, store, clock):
        new_items = store.apply_snapshots(
            {"1": [make_item("a")], "2": [make_item("b", library_id="2")]}
        )

        dataset = store.load()
        assert new_items == []
        assert dataset.last_sync is not None
        assert set(dataset.media_cache) == {"1", "2"}

    def test_second_sync_reports_new_items_across_libraries(self, store):
        store.apply_snapshots({"1": [make_item("a")], "2": []})

        new_items = store.apply_snapshots(
            {
                "1": [make_item("a"), make_item("c")],
                "2": [make_item("d", library_id="2")],
                "3": [make_item("e", library_id="3")],
            }
        )

        assert _ids(new_items) == ["c", "d", "e"]

    def test_libraries_missing_from_sync_keep_previous_snapshot(self, store):
        store.apply_snapshots({"1": [make_item("a")], "2": [make_item("b", library_id="2")]})

        store.apply_snapshots({"1": [make_item("a")]})

        assert _ids(store.load().media_cache["2"]) == ["b"]

    def test_failed_transaction_saves_nothing(self, store, storage):
        store.apply_snapshots({"1": [make_item("a")]})
        writes = storage.writes

        with pytest.raises(RuntimeError):
            with store.transaction() as dataset:
                dataset.media_cache["1"] = []
                raise RuntimeError("boom")

        assert storage.writes == writes
        assert _ids(store.load().media_cache["1"]) == ["a"]


class TestMarkReviewed:
    def test_last_review_wins(self, store):
        store.mark_reviewed(["X"], "shared")
        store.mark_reviewed(["X"], "skipped")
        assert store.status_of("X") == "skipped"

    def test_records_reviewed_at_from_clock(self, store, clock):
        expected = clock.current
        store.mark_reviewed(["X", "Y"], "shared")
        records = store.load().review_status
        assert records["X"].reviewed_at == expected
        assert records["Y"].reviewed_at == expected

    def test_ids_without_cache_entry_are_recorded(self, store):
        store.mark_reviewed(["ghost"], "shared")
        assert store.status_of("ghost") == "shared"

    def test_invalid_action_is_rejected(self, store, storage):
        with pytest.raises(InvalidReviewAction):
            store.mark_reviewed(["X"], "archived")
        assert storage.writes == 0

    def test_empty_id_list_is_a_no_op(self, store, storage):
        store.mark_reviewed([], "shared")
        assert storage.writes == 0

    def test_concurrent_reviews_do_not_lose_updates(self, store):
        def review(prefix: str) -> None:
            for index in range(25):
                store.mark_reviewed([f"{prefix}-{index}"], "shared")

        threads = [
            threading.Thread(target=review, args=(f"t{number}",)) for number in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.load().review_status) == 100


class TestQueries:
    def test_unreviewed_items_sorted_newest_first(self, store):
        store.apply_snapshots(
            {
                "1": [
                    make_item("a", added_at=100),
                    make_item("b", added_at=300),
                    make_item("c", added_at=200),
                ]
            }
        )
        assert [item.added_at for item in store.list_unreviewed()] == [300, 200, 100]

    def test_unreviewed_ties_keep_cache_order(self, store):
        store.apply_snapshots(
            {
                "1": [make_item("a", added_at=50), make_item("b", added_at=50)],
                "2": [make_item("c", library_id="2", added_at=50)],
            }
        )
        assert _ids(store.list_unreviewed()) == ["a", "b", "c"]

    def test_unreviewed_excludes_reviewed_and_filters_by_library(self, store):
        store.apply_snapshots(
            {
                "1": [make_item("a"), make_item("b")],
                "2": [make_item("c", library_id="2")],
            }
        )
        store.mark_reviewed(["a"], "skipped")

        assert _ids(store.list_unreviewed()) == ["b", "c"]
        assert _ids(store.list_unreviewed("2")) == ["c"]

    def test_status_of_unreviewed_item_is_none(self, store):
        store.apply_snapshots({"1": [make_item("a")]})
        assert store.status_of("a") is None
        assert store.status_of("missing") is None

    def test_status_map_overlays_review_records(self, store, clock):
        store.apply_snapshots({"1": [make_item("a"), make_item("b")]})
        store.mark_reviewed(["b", "gone"], "shared")

        statuses, last_sync = store.status_map()

        assert statuses == {"a": None, "b": "shared", "gone": "shared"}
        assert last_sync == store.load().last_sync


class TestStats:
    def test_empty_dataset_reports_no_sync(self, store):
        stats = store.compute_stats()
        assert stats.total_cached == 0
        assert stats.unreviewed == 0
        assert stats.last_sync is None
        assert stats.to_dict()["lastSync"] is None

    def test_counts_per_library_and_totals(self, store):
        store.apply_snapshots(
            {
                "1": [make_item("a"), make_item("b"), make_item("c")],
                "2": [make_item("d", library_id="2")],
            }
        )
        store.mark_reviewed(["a"], "shared")
        store.mark_reviewed(["d"], "skipped")
        store.mark_reviewed(["stale"], "shared")

        stats = store.compute_stats()

        assert stats.total_cached == 4
        assert stats.unreviewed == 2
        assert stats.shared == 2
        assert stats.skipped == 1
        assert stats.by_library["1"].to_dict() == {"total": 3, "unreviewed": 2}
        assert stats.by_library["2"].to_dict() == {"total": 1, "unreviewed": 0}
        assert stats.total_cached == sum(row.total for row in stats.by_library.values())
        assert stats.unreviewed == sum(
            row.unreviewed for row in stats.by_library.values()
        )
        assert stats.last_sync is not None
