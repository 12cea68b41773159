"""Flask entrypoint for Plex Share Manager."""

from __future__ import annotations

import logging

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from plexshare.config import (
    AppPaths,
    ConfigurationError,
    get_paths,
    get_secret_key,
    load_plex_settings,
)
from plexshare.logging_setup import setup_logging
from plexshare.models import REVIEW_ACTIONS
from plexshare.review_store import ReviewStore
from plexshare.services.plex_client import PlexClient, PlexError
from plexshare.services.sharing import (
    SHARE_ACTIONS,
    FriendNotFound,
    label_items,
    shared_content,
    update_sharing,
)
from plexshare.services.sync import sync_media
from plexshare.storage import JsonFileStorage

IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable"


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def _string_list(value) -> list[str] | None:
    """Return value as a list of strings, or None if it is not a non-empty list."""

    if not isinstance(value, list) or not value:
        return None
    return [str(entry) for entry in value]


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def create_app(
    store: ReviewStore | None = None,
    plex_client: PlexClient | None = None,
    paths: AppPaths | None = None,
    configure_logging: bool = True,
) -> Flask:
    """Application factory for Plex Share Manager."""

    paths = paths or get_paths()
    if configure_logging:
        setup_logging(paths.logs_dir)

    store = store or ReviewStore(JsonFileStorage(paths.review_data_path))
    client = plex_client or PlexClient(load_plex_settings())

    app = Flask(__name__)
    app.secret_key = get_secret_key()

    @app.errorhandler(ConfigurationError)
    def handle_configuration_error(exc: ConfigurationError):
        return _error(str(exc), 500)

    @app.errorhandler(PlexError)
    def handle_plex_error(exc: PlexError):
        logging.warning(
            "Plex request failed",
            extra={
                "event": "plex_error",
                "context": {"path": request.path, "error": str(exc)},
            },
        )
        return _error(str(exc), 502)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logging.exception(
            "Unhandled request error",
            extra={"event": "request_failed", "context": {"path": request.path}},
        )
        return _error("Request failed", 500)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.route("/api/media-review/sync", methods=["POST"])
    def media_review_sync():
        """Pull fresh library snapshots and report newly added items."""

        result = sync_media(client, store)
        return jsonify({"success": True, "data": result.to_dict()})

    @app.route("/api/media-review/new")
    def media_review_new():
        """Return unreviewed items, optionally limited to one library."""

        library_id = request.args.get("libraryId") or None
        items = store.list_unreviewed(library_id)
        return jsonify(
            {
                "success": True,
                "data": {
                    "items": [item.to_dict() for item in items],
                    "total": len(items),
                },
            }
        )

    @app.route("/api/media-review/review", methods=["POST"])
    def media_review_review():
        body = request.get_json(silent=True) or {}
        item_ids = _string_list(body.get("ratingKeys"))
        if item_ids is None:
            return _error("ratingKeys array is required", 400)
        action = body.get("action")
        if action not in REVIEW_ACTIONS:
            return _error("action must be 'shared' or 'skipped'", 400)
        store.mark_reviewed(item_ids, action)
        return jsonify(
            {
                "success": True,
                "message": f"Marked {len(item_ids)} item(s) as {action}",
            }
        )

    @app.route("/api/media-review/status")
    def media_review_status():
        return jsonify({"success": True, "data": store.compute_stats().to_dict()})

    @app.route("/api/media-review/status-map")
    def media_review_status_map():
        statuses, last_sync = store.status_map()
        return jsonify({"success": True, "statusMap": statuses, "lastSync": last_sync})

    @app.route("/api/media-review/reset", methods=["POST"])
    def media_review_reset():
        store.reset()
        return jsonify({"success": True, "message": "Review data cleared"})

    @app.route("/api/plex/libraries")
    def plex_libraries():
        return jsonify({"success": True, "libraries": client.list_libraries()})

    @app.route("/api/plex/library-items")
    def plex_library_items():
        section_id = request.args.get("sectionId")
        if not section_id:
            return _error("sectionId is required", 400)
        try:
            page = _int_arg("page", 1)
            limit = _int_arg("limit", 100)
        except ValueError:
            return _error("page and limit must be integers", 400)
        items, pagination = client.list_library_items(
            section_id,
            page=page,
            limit=limit,
            search=request.args.get("search", ""),
            label=request.args.get("labelId", ""),
        )
        return jsonify(
            {"success": True, "items": items, "pagination": pagination.to_dict()}
        )

    @app.route("/api/plex/labels")
    def plex_labels():
        section_id = request.args.get("sectionId")
        if not section_id:
            return _error("sectionId is required", 400)
        return jsonify({"success": True, "labels": client.list_labels(section_id)})

    @app.route("/api/plex/label-items", methods=["POST"])
    def plex_label_items():
        body = request.get_json(silent=True) or {}
        item_ids = _string_list(body.get("itemRatingKeys"))
        if item_ids is None:
            return _error("itemRatingKeys array is required", 400)
        label = body.get("label")
        if not label:
            return _error("label is required", 400)
        results = label_items(client, item_ids, str(label))
        succeeded = sum(1 for row in results if row["success"])
        all_labeled = succeeded == len(results)
        if all_labeled:
            message = f'Successfully labeled {len(results)} items with "{label}"'
        else:
            message = f"Labeled {succeeded}/{len(results)} items"
        return jsonify(
            {"success": all_labeled, "message": message, "results": results}
        )

    @app.route("/api/plex/friends")
    def plex_friends():
        return jsonify({"success": True, "friends": client.list_friends()})

    @app.route("/api/plex/shared-content")
    def plex_shared_content():
        friend_id = request.args.get("friendId")
        if not friend_id:
            return _error("friendId is required", 400)
        try:
            library_ids, all_libraries = shared_content(
                client, friend_id, client.settings.server_id
            )
        except FriendNotFound:
            return _error("Friend not found", 404)
        return jsonify(
            {
                "success": True,
                "sharedLibraries": library_ids,
                "allLibraries": all_libraries,
            }
        )

    @app.route("/api/plex/share", methods=["POST"])
    def plex_share():
        """Share or unshare library sections with friends."""

        body = request.get_json(silent=True) or {}
        friend_ids = _string_list(body.get("friendIds"))
        if friend_ids is None:
            return jsonify({"success": False, "message": "friendIds are required"}), 400
        server_id = body.get("serverId")
        if not server_id:
            return jsonify({"success": False, "message": "serverId is required"}), 400
        library_ids = _string_list(body.get("libraryIds"))
        if library_ids is None:
            return jsonify({"success": False, "message": "libraryIds are required"}), 400
        action = body.get("action")
        if action not in SHARE_ACTIONS:
            return (
                jsonify({"success": False, "message": "action must be 'add' or 'remove'"}),
                400,
            )
        outcome = update_sharing(client, friend_ids, str(server_id), action, library_ids)
        return jsonify(outcome.to_dict())

    @app.route("/api/plex/image")
    def plex_image():
        path = request.args.get("path")
        if not path:
            return _error("path is required", 400)
        try:
            content, content_type = client.fetch_image(path)
        except PlexError as exc:
            status = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
            return _error("Failed to fetch image", status)
        return Response(
            content,
            content_type=content_type,
            headers={"Cache-Control": IMAGE_CACHE_CONTROL},
        )

    return app


if __name__ == "__main__":
    application = create_app()
    application.run(debug=True)
