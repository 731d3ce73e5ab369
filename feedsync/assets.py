"""Local caching of remote images referenced by the feed."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Protocol, Sequence
from urllib.parse import urlsplit

from .config import FeedConfig
from .http_client import HttpFetcher, HttpFetchError
from .normalizer import slugify
from .pacing import Pacer

LOGGER = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")
DEFAULT_EXTENSION = ".jpg"


class AssetDownloadError(RuntimeError):
    """Raised when an asset cannot be downloaded or persisted."""


class CacheIndex(Protocol):
    """Maps cache filenames to stored files and their public references."""

    def contains(self, filename: str) -> bool:
        ...

    def store(self, filename: str, content: bytes) -> None:
        ...

    def public_path(self, filename: str) -> str:
        ...


class FilesystemCacheIndex:
    """Cache index backed by a directory; presence of the file is a cache hit."""

    def __init__(self, directory: Path, public_prefix: str) -> None:
        self._directory = directory
        self._public_prefix = public_prefix.rstrip("/")

    def contains(self, filename: str) -> bool:
        return (self._directory / filename).is_file()

    def store(self, filename: str, content: bytes) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        target = self._directory / filename
        temporary_target = target.with_name(target.name + ".part")
        try:
            temporary_target.write_bytes(content)
            temporary_target.replace(target)
        except OSError:
            temporary_target.unlink(missing_ok=True)
            raise

    def public_path(self, filename: str) -> str:
        return f"{self._public_prefix}/{filename}"


class AssetOutcome(str, Enum):
    DOWNLOADED = "downloaded"
    CACHED = "cached"
    FALLBACK = "fallback"
    MISSING = "missing"


@dataclass(slots=True)
class AssetRequest:
    remote_url: str | None
    stable_key: str


@dataclass(slots=True)
class AssetResult:
    stable_key: str
    reference: str | None
    outcome: AssetOutcome


@dataclass(slots=True)
class AssetCacheStats:
    downloaded: int = 0
    cached: int = 0
    fallback: int = 0
    missing: int = 0

    def record(self, outcome: AssetOutcome) -> None:
        if outcome is AssetOutcome.DOWNLOADED:
            self.downloaded += 1
        elif outcome is AssetOutcome.CACHED:
            self.cached += 1
        elif outcome is AssetOutcome.FALLBACK:
            self.fallback += 1
        else:
            self.missing += 1


def extension_from_url(url: str | None) -> str:
    if not url:
        return DEFAULT_EXTENSION
    suffix = PurePosixPath(urlsplit(url).path).suffix.lower()
    return suffix if suffix in ALLOWED_EXTENSIONS else DEFAULT_EXTENSION


class AssetCache:
    """Resolve remote image URLs to cached local files.

    Every stable key resolves at most once per instance: a file already in the
    index is reused without touching the network, a download failure falls
    back to the remote URL, and either outcome is remembered for the rest of
    the run.
    """

    def __init__(
        self,
        config: FeedConfig,
        *,
        http: HttpFetcher,
        index: CacheIndex | None = None,
        pacer: Pacer | None = None,
    ) -> None:
        self._config = config
        self._http = http
        self._index = index or FilesystemCacheIndex(
            config.paths.video_images_dir,
            config.paths.public_video_images_prefix,
        )
        self._pacer = pacer or Pacer()
        self._name_prefix = slugify(config.model.name)
        self._resolved: dict[str, AssetResult] = {}
        self.stats = AssetCacheStats()

    def filename_for(self, remote_url: str | None, stable_key: str) -> str:
        return f"{self._name_prefix}-{stable_key}{extension_from_url(remote_url)}"

    def materialize(self, remote_url: str | None, stable_key: str) -> str | None:
        """Return the local reference for ``remote_url``, or ``remote_url`` itself on failure."""

        result = self._resolve_without_download(AssetRequest(remote_url, stable_key))
        if result is None:
            result = self._download(AssetRequest(remote_url, stable_key))
            self._resolved[stable_key] = result
        self.stats.record(result.outcome)
        return result.reference

    def materialize_many(self, requests: Sequence[AssetRequest]) -> list[AssetResult]:
        """Resolve ``requests`` in fixed-size concurrent batches, preserving input order."""

        batch_size = max(1, self._config.rate_limit.max_workers)
        results: list[AssetResult | None] = [None] * len(requests)

        with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="asset") as executor:
            for start in range(0, len(requests), batch_size):
                positions = range(start, min(start + batch_size, len(requests)))
                pending: dict[str, Future[AssetResult]] = {}

                for position in positions:
                    request = requests[position]
                    if request.stable_key in pending:
                        continue
                    resolved = self._resolve_without_download(request)
                    if resolved is not None:
                        results[position] = resolved
                        continue
                    pending[request.stable_key] = executor.submit(self._download, request)

                if pending:
                    wait(pending.values())
                    for key, future in pending.items():
                        self._resolved[key] = future.result()

                for position in positions:
                    if results[position] is None:
                        results[position] = self._resolved[requests[position].stable_key]
                    self.stats.record(results[position].outcome)

                done = positions.stop
                LOGGER.debug("%d/%d assets processed", done, len(requests))
                if done < len(requests):
                    self._pacer.wait(self._config.rate_limit.batch_delay, "asset batch")

        return [result for result in results if result is not None]

    def _resolve_without_download(self, request: AssetRequest) -> AssetResult | None:
        if not request.remote_url:
            return AssetResult(request.stable_key, None, AssetOutcome.MISSING)

        known = self._resolved.get(request.stable_key)
        if known is not None:
            return known

        filename = self.filename_for(request.remote_url, request.stable_key)
        if self._index.contains(filename):
            result = AssetResult(request.stable_key, self._index.public_path(filename), AssetOutcome.CACHED)
            self._resolved[request.stable_key] = result
            return result
        return None

    def _download(self, request: AssetRequest) -> AssetResult:
        filename = self.filename_for(request.remote_url, request.stable_key)
        headers = {"Referer": self._config.referer} if self._config.referer else None
        try:
            content = self._http.fetch_bytes(request.remote_url, headers=headers)
            if not content:
                raise AssetDownloadError(f"Empty response body for {request.remote_url}")
            self._index.store(filename, content)
        except (HttpFetchError, AssetDownloadError, OSError) as exc:
            LOGGER.warning("Could not cache %s: %s", request.stable_key, exc)
            return AssetResult(request.stable_key, request.remote_url, AssetOutcome.FALLBACK)

        LOGGER.debug("Cached %s as %s", request.remote_url, filename)
        return AssetResult(request.stable_key, self._index.public_path(filename), AssetOutcome.DOWNLOADED)
