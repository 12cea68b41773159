"""Library sharing and labeling actions against Plex."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from plexshare.services.plex_client import PlexClient, PlexError

logger = logging.getLogger(__name__)

SHARE_ACTIONS = ("add", "remove")


class FriendNotFound(LookupError):
    """Raised when a friend id is not in the owner's friend list."""


@dataclass(frozen=True)
class ShareOutcome:
    """Aggregate result of a share or unshare request across friends."""

    success: bool
    message: str
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


def update_sharing(
    client: PlexClient,
    friend_ids: list[str],
    server_id: str,
    action: str,
    library_ids: list[str],
) -> ShareOutcome:
    """Share (``add``) or unshare (``remove``) libraries for each friend.

    Failures for individual friends are collected rather than raised.
    """

    if action not in SHARE_ACTIONS:
        raise ValueError("action must be 'add' or 'remove'")
    errors: list[str] = []
    success_count = 0
    for friend_id in friend_ids:
        try:
            if action == "add":
                client.share_libraries(server_id, friend_id, library_ids)
            else:
                client.unshare_libraries(server_id, friend_id)
            success_count += 1
        except PlexError as exc:
            verb = "share with" if action == "add" else "unshare from"
            errors.append(f"Failed to {verb} friend {friend_id}: {exc}")
    logger.info(
        "Updated library sharing",
        extra={
            "event": "sharing_updated",
            "context": {
                "action": action,
                "server_id": server_id,
                "friends": len(friend_ids),
                "succeeded": success_count,
            },
        },
    )
    verb = "shared" if action == "add" else "unshared"
    return ShareOutcome(
        success=success_count > 0,
        message=(
            f"Successfully {verb} with {success_count} out of "
            f"{len(friend_ids)} friends"
        ),
        errors=errors,
    )


def shared_content(
    client: PlexClient, friend_id: str, server_id: str | None
) -> tuple[list[str], bool]:
    """Return the library ids shared with a friend on ``server_id``."""

    friend = next(
        (row for row in client.list_friends() if row["id"] == friend_id), None
    )
    if friend is None:
        raise FriendNotFound(friend_id)
    for server in friend["sharedServers"]:
        if server["id"] == server_id:
            return list(server["libraryIds"]), server["allLibraries"]
    return [], False


def label_items(
    client: PlexClient, item_ids: list[str], label: str
) -> list[dict[str, Any]]:
    """Apply ``label`` to each item, reporting per-item success."""

    results: list[dict[str, Any]] = []
    for item_id in item_ids:
        try:
            client.add_label(item_id, label)
            results.append({"ratingKey": item_id, "success": True})
        except PlexError as exc:
            results.append({"ratingKey": item_id, "success": False, "error": str(exc)})
    return results
