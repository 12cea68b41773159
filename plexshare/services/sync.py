"""Sync library snapshots from Plex into the review store."""

from __future__ import annotations

import logging

from plexshare.models import CachedItem, SyncResult
from plexshare.review_store import ReviewStore
from plexshare.services.plex_client import (
    REVIEWABLE_LIBRARY_TYPES,
    PlexClient,
    PlexError,
)

logger = logging.getLogger(__name__)


def sync_media(client: PlexClient, store: ReviewStore) -> SyncResult:
    """Fetch every movie/show library and apply the snapshots to the store.

    A library whose fetch fails is skipped and keeps its previous snapshot.
    Failure to list libraries propagates and leaves the store untouched.
    """

    libraries = [
        library
        for library in client.list_libraries()
        if library.get("type") in REVIEWABLE_LIBRARY_TYPES
    ]
    snapshots: dict[str, list[CachedItem]] = {}
    failed: list[str] = []
    for library in libraries:
        library_id = library["key"]
        try:
            snapshots[library_id] = client.fetch_library_snapshot(library)
        except PlexError as exc:
            failed.append(library_id)
            logger.warning(
                "Skipping library after fetch failure",
                extra={
                    "event": "library_fetch_failed",
                    "context": {"library_id": library_id, "error": str(exc)},
                },
            )

    new_items = store.apply_snapshots(snapshots)
    result = SyncResult(
        new_items=new_items,
        total_items=sum(len(items) for items in snapshots.values()),
        libraries_synced=len(libraries),
        failed_libraries=failed,
    )
    logger.info(
        "Media sync complete",
        extra={
            "event": "media_sync_complete",
            "context": {
                "libraries": result.libraries_synced,
                "failed": len(failed),
                "total_items": result.total_items,
                "new_items": len(new_items),
            },
        },
    )
    return result
