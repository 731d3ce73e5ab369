"""On-disk JSON snapshots read by the site renderer."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Generic, Mapping, TypeVar

from .records import (
    PayloadError,
    ProfileSnapshot,
    VideoSnapshot,
    profile_snapshot_from_payload,
    profile_snapshot_to_payload,
    video_snapshot_from_payload,
    video_snapshot_to_payload,
)

LOGGER = logging.getLogger(__name__)

SnapshotT = TypeVar("SnapshotT")


class SnapshotIntegrityError(RuntimeError):
    """Raised when an existing snapshot file cannot be decoded."""


class SnapshotStore(Generic[SnapshotT]):
    """Whole-file JSON snapshot with atomic replacement.

    A missing file is the normal empty state. A file that exists but does not
    decode is reported as :class:`SnapshotIntegrityError`.
    """

    def __init__(
        self,
        path: Path,
        *,
        encode: Callable[[SnapshotT], dict[str, Any]],
        decode: Callable[[Mapping[str, Any]], SnapshotT],
    ) -> None:
        self._path = path
        self._encode = encode
        self._decode = decode

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> SnapshotT | None:
        try:
            raw_text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise SnapshotIntegrityError(f"Snapshot {self._path} could not be read: {exc}") from exc

        try:
            payload = json.loads(raw_text)
        except json.JSONDecodeError as exc:
            raise SnapshotIntegrityError(f"Snapshot {self._path} is not valid JSON: {exc}") from exc

        try:
            return self._decode(payload)
        except PayloadError as exc:
            raise SnapshotIntegrityError(f"Snapshot {self._path} is malformed: {exc}") from exc

    def save(self, snapshot: SnapshotT) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        serialized = json.dumps(self._encode(snapshot), ensure_ascii=False, indent=2)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as handle:
                handle.write(serialized)
                handle.flush()
                os.fsync(handle.fileno())
            tmp_path.replace(self._path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        LOGGER.debug("Wrote snapshot %s (%d bytes)", self._path, len(serialized))


class VideoSnapshotStore(SnapshotStore[VideoSnapshot]):
    def __init__(self, path: Path) -> None:
        super().__init__(path, encode=video_snapshot_to_payload, decode=video_snapshot_from_payload)


class ProfileSnapshotStore(SnapshotStore[ProfileSnapshot]):
    def __init__(self, path: Path) -> None:
        super().__init__(path, encode=profile_snapshot_to_payload, decode=profile_snapshot_from_payload)
