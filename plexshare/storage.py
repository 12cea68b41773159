"""Persistence backends for the review dataset.

Backends exchange plain JSON-compatible dictionaries; conversion to model
objects happens in the review store.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StorageCorruptError(RuntimeError):
    """Raised when a persisted document exists but cannot be decoded."""


class DatasetStorage:
    """Interface for review dataset persistence."""

    def read(self) -> dict[str, Any] | None:
        """Return the stored document, or None when nothing has been saved."""

        raise NotImplementedError

    def write(self, payload: dict[str, Any]) -> None:
        """Replace the stored document as a single unit."""

        raise NotImplementedError

    def quarantine(self) -> Path | None:
        """Move an unreadable document aside. Returns its new location, if any."""

        return None


class MemoryStorage(DatasetStorage):
    """In-memory storage used by tests and ephemeral runs."""

    def __init__(self, payload: dict[str, Any] | None = None) -> None:
        self._payload = copy.deepcopy(payload)
        self.writes = 0

    def read(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._payload)

    def write(self, payload: dict[str, Any]) -> None:
        self._payload = copy.deepcopy(payload)
        self.writes += 1


class JsonFileStorage(DatasetStorage):
    """Single JSON document on disk, rewritten atomically on every save."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> dict[str, Any] | None:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageCorruptError(f"Could not read {self.path}: {exc}") from exc
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise StorageCorruptError(f"Invalid JSON in {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StorageCorruptError(f"Expected a JSON object in {self.path}")
        return payload

    def write(self, payload: dict[str, Any]) -> None:
        """Write to a temp file in the same directory, then rename over the target."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        logger.debug(
            "Saved review dataset",
            extra={"event": "review_data_saved", "context": {"path": str(self.path)}},
        )

    def quarantine(self) -> Path | None:
        if not self.path.exists():
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        os.replace(self.path, target)
        logger.warning(
            "Moved unreadable review dataset aside",
            extra={
                "event": "review_data_quarantined",
                "context": {"path": str(self.path), "quarantined_to": str(target)},
            },
        )
        return target
