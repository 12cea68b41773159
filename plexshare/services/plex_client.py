"""HTTP client for the Plex Media Server and plex.tv."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

import requests

from plexshare.config import PLEX_TV_URL, PlexSettings
from plexshare.models import CachedItem

logger = logging.getLogger(__name__)

SNAPSHOT_CONTAINER_SIZE = 10000
REVIEWABLE_LIBRARY_TYPES = ("movie", "show")


class PlexError(RuntimeError):
    """Raised when a Plex request fails or returns a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
            "hasNext": self.page < self.total_pages,
            "hasPrev": self.page > 1,
        }


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


class PlexClient:
    """Thin wrapper over the Plex HTTP endpoints used by the dashboard."""

    def __init__(
        self,
        settings: PlexSettings,
        session: requests.Session | None = None,
        plex_tv_url: str = PLEX_TV_URL,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.plex_tv_url = plex_tv_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "X-Plex-Token": self.settings.auth_token or "",
            "X-Plex-Client-Identifier": self.settings.client_identifier,
            "Accept": "application/json",
        }

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request, raising PlexError for transport errors and non-2xx codes."""

        headers = self._headers()
        headers.update(kwargs.pop("headers", {}))
        logger.info(
            "Plex request",
            extra={
                "event": "plex_request",
                "context": {"method": method, "url": url},
            },
        )
        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                timeout=self.settings.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise PlexError(f"Plex request failed: {exc}") from exc
        if not response.ok:
            raise PlexError(
                f"Plex request failed: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        return response

    def _server_json(self, path: str, **kwargs: Any) -> dict[str, Any]:
        self.settings.require_server()
        response = self._request("GET", f"{self.settings.server_url}{path}", **kwargs)
        return response.json() or {}

    def list_libraries(self) -> list[dict[str, Any]]:
        data = self._server_json("/library/sections")
        libraries = []
        for directory in (data.get("MediaContainer") or {}).get("Directory") or []:
            libraries.append(
                {
                    "id": _as_str(directory.get("key")),
                    "key": _as_str(directory.get("key")),
                    "title": directory.get("title") or "",
                    "type": directory.get("type") or "movie",
                    "agent": directory.get("agent") or "",
                    "scanner": directory.get("scanner") or "",
                    "language": directory.get("language") or "",
                    "uuid": directory.get("uuid") or "",
                    "updatedAt": directory.get("updatedAt") or 0,
                    "createdAt": directory.get("createdAt") or 0,
                    "scannedAt": directory.get("scannedAt") or 0,
                }
            )
        return libraries

    def list_library_items(
        self,
        section_id: str,
        page: int = 1,
        limit: int = 100,
        search: str = "",
        label: str = "",
    ) -> tuple[list[dict[str, Any]], Pagination]:
        """Return one page of items in a section plus pagination info.

        ``search`` filters titles on the returned page only.
        """

        page = max(1, page)
        limit = max(1, limit)
        params = {
            "X-Plex-Container-Start": str((page - 1) * limit),
            "X-Plex-Container-Size": str(limit),
        }
        if label:
            params["label"] = label
        data = self._server_json(f"/library/sections/{section_id}/all", params=params)
        container = data.get("MediaContainer") or {}
        items = []
        for item in container.get("Metadata") or []:
            items.append(
                {
                    "id": _as_str(item.get("ratingKey")),
                    "key": item.get("key") or "",
                    "ratingKey": _as_str(item.get("ratingKey")),
                    "title": item.get("title") or "",
                    "type": item.get("type") or "movie",
                    "year": item.get("year"),
                    "thumb": item.get("thumb"),
                    "art": item.get("art"),
                    "rating": item.get("rating"),
                    "summary": item.get("summary"),
                    "duration": item.get("duration"),
                    "addedAt": item.get("addedAt"),
                    "updatedAt": item.get("updatedAt"),
                    "labels": [label_row.get("tag") for label_row in item.get("Label") or []],
                }
            )
        if search:
            needle = search.lower()
            items = [item for item in items if needle in item["title"].lower()]
        total = container.get("totalSize") or len(items)
        return items, Pagination(page=page, limit=limit, total=int(total))

    def fetch_library_snapshot(self, library: dict[str, Any]) -> list[CachedItem]:
        """Fetch every item of a library as cache entries."""

        library_id = _as_str(library.get("key") or library.get("id"))
        media_type = library.get("type") or "movie"
        data = self._server_json(
            f"/library/sections/{library_id}/all",
            params={"X-Plex-Container-Size": str(SNAPSHOT_CONTAINER_SIZE)},
        )
        raw_items = (data.get("MediaContainer") or {}).get("Metadata") or []
        return [
            CachedItem(
                item_id=_as_str(item.get("ratingKey")),
                library_id=library_id,
                title=item.get("title") or "",
                media_type=media_type,
                added_at=int(item.get("addedAt") or 0),
                year=item.get("year"),
                thumb=item.get("thumb"),
            )
            for item in raw_items
        ]

    def list_labels(self, section_id: str) -> list[dict[str, Any]]:
        data = self._server_json(f"/library/sections/{section_id}/label")
        return [
            {
                "id": _as_str(label.get("id")),
                "key": label.get("key") or "",
                "tag": label.get("tag") or label.get("title") or "",
                "count": label.get("count") or 0,
            }
            for label in (data.get("MediaContainer") or {}).get("Directory") or []
        ]

    def list_friends(self) -> list[dict[str, Any]]:
        self.settings.require_token()
        response = self._request("GET", f"{self.plex_tv_url}/api/v2/friends")
        friends = []
        for friend in response.json() or []:
            shared_servers = [
                {
                    "id": _as_str(server.get("id")),
                    "name": server.get("name") or "",
                    "libraryIds": [
                        _as_str(section.get("id"))
                        for section in server.get("sections") or []
                    ],
                    "allLibraries": bool(server.get("allLibraries")),
                }
                for server in friend.get("servers") or []
            ]
            friends.append(
                {
                    "id": _as_str(friend.get("id")),
                    "email": friend.get("email") or "",
                    "username": friend.get("username") or "",
                    "friendlyName": friend.get("friendlyName")
                    or friend.get("username")
                    or friend.get("title")
                    or "",
                    "thumb": friend.get("thumb"),
                    "sharedServers": shared_servers,
                }
            )
        return friends

    def fetch_image(self, path: str) -> tuple[bytes, str]:
        """Download a thumbnail from the server. Returns (content, content type)."""

        self.settings.require_server()
        if not path.startswith("/"):
            raise PlexError("Image path must be server-relative", status_code=400)
        response = self._request("GET", f"{self.settings.server_url}{path}")
        content_type = response.headers.get("Content-Type") or "image/jpeg"
        return response.content, content_type

    def share_libraries(
        self, server_id: str, friend_id: str, library_ids: list[str]
    ) -> None:
        self.settings.require_token()
        self._request(
            "POST",
            f"{self.plex_tv_url}/api/servers/{server_id}/shared_servers",
            data={
                "server_id": server_id,
                "shared_server[library_section_ids][]": ",".join(library_ids),
                "shared_server[invited_id]": friend_id,
            },
        )

    def unshare_libraries(self, server_id: str, friend_id: str) -> None:
        self.settings.require_token()
        self._request(
            "DELETE",
            f"{self.plex_tv_url}/api/servers/{server_id}/shared_servers/{friend_id}",
        )

    def add_label(self, item_id: str, label: str, media_type: str = "movie") -> None:
        """Tag one item with a label."""

        self.settings.require_server()
        self._request(
            "PUT",
            f"{self.settings.server_url}/library/metadata/{item_id}",
            data={
                "type": "2" if media_type == "show" else "1",
                "id": item_id,
                "label[].tag.tag": label,
                "label.locked": "1",
            },
        )
