"""Configuration helpers for Plex Share Manager."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


ROOT_ENV_VAR = "PLEX_SHARE_ROOT"
SECRET_KEY_ENV_VAR = "PLEX_SHARE_SECRET_KEY"
REVIEW_DATA_FILENAME = "media-review.json"
PLEX_TV_URL = "https://plex.tv"
DEFAULT_CLIENT_IDENTIFIER = "plex-share-manager"
DEFAULT_TIMEOUT_SECONDS = 30.0


class ConfigurationError(RuntimeError):
    """Raised when required Plex settings are missing."""


@dataclass(frozen=True)
class AppPaths:
    """Container for application paths.

    The data directory is created lazily by the review storage.
    """

    root: Path
    data_dir: Path
    review_data_path: Path
    logs_dir: Path


def get_paths(root: Path | None = None) -> AppPaths:
    """Resolve application paths relative to the project root.

    Args:
        root: Optional root override. Falls back to ``PLEX_SHARE_ROOT`` and
            then the current working directory.

    Returns:
        AppPaths with the data directory, review dataset and logs paths.
    """

    if root is None:
        env_root = os.environ.get(ROOT_ENV_VAR, "").strip()
        root = Path(env_root) if env_root else Path.cwd()
    data_dir = root / "data"
    review_data_path = data_dir / REVIEW_DATA_FILENAME
    logs_dir = data_dir / "logs"
    return AppPaths(
        root=root,
        data_dir=data_dir,
        review_data_path=review_data_path,
        logs_dir=logs_dir,
    )


@dataclass(frozen=True)
class PlexSettings:
    """Connection settings for the Plex server and plex.tv."""

    server_url: str | None
    auth_token: str | None
    server_id: str | None = None
    client_identifier: str = DEFAULT_CLIENT_IDENTIFIER
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def has_server(self) -> bool:
        return bool(self.server_url and self.auth_token)

    def require_server(self) -> None:
        """Raise ConfigurationError unless the server URL and token are set."""

        if not self.has_server:
            raise ConfigurationError("Plex server URL or auth token not configured")

    def require_token(self) -> None:
        """Raise ConfigurationError unless the auth token is set."""

        if not self.auth_token:
            raise ConfigurationError("Plex auth token not configured")


def load_plex_settings(env: Mapping[str, str] | None = None) -> PlexSettings:
    """Read Plex settings from environment variables."""

    logger = logging.getLogger(__name__)
    source = os.environ if env is None else env
    server_url = (source.get("PLEX_SERVER_URL") or "").strip().rstrip("/") or None
    auth_token = (source.get("PLEX_AUTH_TOKEN") or "").strip() or None
    server_id = (source.get("PLEX_SERVER_ID") or "").strip() or None
    timeout_seconds = DEFAULT_TIMEOUT_SECONDS
    raw_timeout = (source.get("PLEX_TIMEOUT_SECONDS") or "").strip()
    if raw_timeout:
        try:
            timeout_seconds = float(raw_timeout)
        except ValueError:
            logger.warning(
                "Ignoring invalid Plex timeout",
                extra={
                    "event": "plex_timeout_invalid",
                    "context": {"value": raw_timeout},
                },
            )
    settings = PlexSettings(
        server_url=server_url,
        auth_token=auth_token,
        server_id=server_id,
        client_identifier=(
            source.get("PLEX_CLIENT_IDENTIFIER") or DEFAULT_CLIENT_IDENTIFIER
        ),
        timeout_seconds=timeout_seconds,
    )
    if not settings.has_server:
        logger.info(
            "Plex server settings incomplete",
            extra={
                "event": "plex_settings_incomplete",
                "context": {
                    "server_url_set": bool(server_url),
                    "auth_token_set": bool(auth_token),
                },
            },
        )
    return settings


def get_secret_key(env: Mapping[str, str] | None = None) -> str:
    """Return the Flask secret key."""

    source = os.environ if env is None else env
    return source.get(SECRET_KEY_ENV_VAR, "plex-share-dev-secret")
