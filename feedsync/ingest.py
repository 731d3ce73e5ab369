"""Command-line entrypoint and orchestration of one feed ingestion run."""

from __future__ import annotations

import argparse
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Sequence

import httpx

from .assets import AssetCache, AssetCacheStats, AssetRequest, CacheIndex, FilesystemCacheIndex
from .config import ConfigError, FeedConfig, PathConfig, load_config
from .http_client import HttpFetcher
from .normalizer import FieldNormalizer, format_iso
from .pacing import IngestionCancelled, Pacer
from .pagination import FeedFetchError, PaginationFetcher, ProfileFetcher
from .records import ProfileRecord, ProfileSnapshot, VideoRecord, VideoSnapshot
from .sample_data import build_sample_videos
from .snapshot_store import ProfileSnapshotStore, SnapshotIntegrityError, VideoSnapshotStore

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/site.json")
AVATAR_KEY = "avatar"


class Stage(str, Enum):
    FETCH_PROFILE = "fetch_profile"
    CACHE_AVATAR = "cache_avatar"
    FETCH_VIDEO_PAGES = "fetch_video_pages"
    NORMALIZE_ALL = "normalize_all"
    CACHE_THUMBNAILS = "cache_thumbnails"
    PERSIST_SNAPSHOT = "persist_snapshot"
    DONE = "done"


_NEXT_STAGE = {
    Stage.FETCH_PROFILE: Stage.CACHE_AVATAR,
    Stage.CACHE_AVATAR: Stage.FETCH_VIDEO_PAGES,
    Stage.FETCH_VIDEO_PAGES: Stage.NORMALIZE_ALL,
    Stage.NORMALIZE_ALL: Stage.CACHE_THUMBNAILS,
    Stage.CACHE_THUMBNAILS: Stage.PERSIST_SNAPSHOT,
    Stage.PERSIST_SNAPSHOT: Stage.DONE,
}


def next_stage(stage: Stage) -> Stage:
    if stage is Stage.DONE:
        raise ValueError("DONE is terminal")
    return _NEXT_STAGE[stage]


class RunOutcome(str, Enum):
    UPDATED = "updated"
    FALLBACK_CACHED = "fallback_cached"
    FALLBACK_SAMPLE = "fallback_sample"


@dataclass(slots=True)
class IngestionResult:
    outcome: RunOutcome
    videos: list[VideoRecord]
    profile: ProfileRecord | None
    asset_stats: AssetCacheStats
    stages: list[Stage] = field(default_factory=list)


@dataclass(slots=True)
class _RunState:
    now: datetime
    existing: VideoSnapshot | None = None
    profile: ProfileRecord | None = None
    raw_items: list[Any] = field(default_factory=list)
    videos: list[VideoRecord] = field(default_factory=list)
    outcome: RunOutcome | None = None
    stages: list[Stage] = field(default_factory=list)


class IngestionOrchestrator:
    """Run the feed stages in order and degrade to cached or sample data on failure."""

    def __init__(
        self,
        config: FeedConfig,
        *,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
        now: Callable[[], datetime] | None = None,
        cancel_event: threading.Event | None = None,
        skip_profile: bool = False,
        thumbnail_index: CacheIndex | None = None,
        avatar_index: CacheIndex | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._transport = transport
        self._pacer = Pacer(sleep=sleep, cancel_event=cancel_event)
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._skip_profile = skip_profile
        self._thumbnail_index = thumbnail_index
        self._avatar_index = avatar_index or FilesystemCacheIndex(
            config.paths.images_dir,
            config.paths.public_images_prefix,
        )
        self.video_store = VideoSnapshotStore(config.paths.videos_file)
        self.profile_store = ProfileSnapshotStore(config.paths.profile_file)

    def run(self) -> IngestionResult:
        state = _RunState(now=self._now())
        state.existing = self.video_store.load()
        if state.existing is not None:
            LOGGER.info(
                "Existing snapshot: %d videos (%s)",
                state.existing.total_videos,
                state.existing.last_updated or "unknown",
            )

        with HttpFetcher(self._config, client=self._client, transport=self._transport) as http:
            normalizer = FieldNormalizer(self._config, now=state.now)
            thumbnail_cache = AssetCache(
                self._config,
                http=http,
                index=self._thumbnail_index,
                pacer=self._pacer,
            )
            steps: dict[Stage, Callable[[_RunState], Stage]] = {
                Stage.FETCH_PROFILE: lambda s: self._fetch_profile(s, http, normalizer),
                Stage.CACHE_AVATAR: lambda s: self._cache_avatar(s, http),
                Stage.FETCH_VIDEO_PAGES: lambda s: self._fetch_video_pages(s, http),
                Stage.NORMALIZE_ALL: lambda s: self._normalize_all(s, normalizer),
                Stage.CACHE_THUMBNAILS: lambda s: self._cache_thumbnails(s, thumbnail_cache),
                Stage.PERSIST_SNAPSHOT: self._persist_snapshot,
            }

            stage = Stage.FETCH_PROFILE
            while stage is not Stage.DONE:
                self._pacer.check()
                state.stages.append(stage)
                LOGGER.debug("Entering stage %s", stage.value)
                stage = steps[stage](state)

        if state.outcome is None:
            raise RuntimeError("Ingestion finished without an outcome")
        if state.outcome is RunOutcome.UPDATED:
            stats = thumbnail_cache.stats
            LOGGER.info(
                "Feed update complete: %d videos (downloaded %d, cached %d, fallback %d)",
                len(state.videos),
                stats.downloaded,
                stats.cached,
                stats.fallback,
            )
        return IngestionResult(
            outcome=state.outcome,
            videos=state.videos,
            profile=state.profile,
            asset_stats=thumbnail_cache.stats,
            stages=state.stages,
        )

    def _fetch_profile(self, state: _RunState, http: HttpFetcher, normalizer: FieldNormalizer) -> Stage:
        if self._skip_profile:
            LOGGER.info("Skipping profile stage")
            return next_stage(Stage.FETCH_PROFILE)

        LOGGER.info("Fetching profile data")
        raw_profile = ProfileFetcher(self._config, http=http).fetch()
        state.profile = normalizer.normalize_profile(raw_profile)
        if state.profile is None:
            LOGGER.warning("No profile available; continuing without profile output")
        else:
            LOGGER.info("Profile: %s (age %s)", state.profile.name, state.profile.age)
        return next_stage(Stage.FETCH_PROFILE)

    def _cache_avatar(self, state: _RunState, http: HttpFetcher) -> Stage:
        profile = state.profile
        if profile is not None:
            if profile.avatar_original:
                avatar_cache = AssetCache(self._config, http=http, index=self._avatar_index, pacer=self._pacer)
                profile.avatar = avatar_cache.materialize(profile.avatar_original, AVATAR_KEY)
                if profile.avatar == profile.avatar_original:
                    LOGGER.warning("Avatar could not be cached; keeping remote URL")
            try:
                self.profile_store.save(ProfileSnapshot(last_updated=format_iso(state.now), profile=profile))
                LOGGER.info("Profile saved to %s", self.profile_store.path)
            except OSError as exc:
                LOGGER.warning("Could not write profile snapshot %s: %s", self.profile_store.path, exc)

        if not self._skip_profile:
            self._pacer.wait(self._config.rate_limit.profile_delay, "profile rate limit")
        return next_stage(Stage.CACHE_AVATAR)

    def _fetch_video_pages(self, state: _RunState, http: HttpFetcher) -> Stage:
        LOGGER.info("Fetching videos from feed")
        fetcher = PaginationFetcher(self._config, http=http, pacer=self._pacer)
        try:
            state.raw_items = fetcher.fetch_all()
        except FeedFetchError as exc:
            LOGGER.warning("Could not fetch video data: %s", exc)
            return self._fall_back(state)

        if not state.raw_items:
            LOGGER.warning("Feed returned no videos")
            return self._fall_back(state)
        return next_stage(Stage.FETCH_VIDEO_PAGES)

    def _normalize_all(self, state: _RunState, normalizer: FieldNormalizer) -> Stage:
        state.videos = normalizer.normalize_all(state.raw_items)
        return next_stage(Stage.NORMALIZE_ALL)

    def _cache_thumbnails(self, state: _RunState, cache: AssetCache) -> Stage:
        LOGGER.info("Caching %d thumbnails", len(state.videos))
        requests = [AssetRequest(video.thumbnail_original, video.slug) for video in state.videos]
        for video, result in zip(state.videos, cache.materialize_many(requests)):
            if result.reference:
                video.thumbnail = result.reference
        return next_stage(Stage.CACHE_THUMBNAILS)

    def _persist_snapshot(self, state: _RunState) -> Stage:
        self.video_store.save(self._snapshot(state.videos, state.now))
        LOGGER.info("Saved %d videos to %s", len(state.videos), self.video_store.path)
        state.outcome = RunOutcome.UPDATED
        return next_stage(Stage.PERSIST_SNAPSHOT)

    def _fall_back(self, state: _RunState) -> Stage:
        if state.existing is not None and state.existing.videos:
            LOGGER.warning("Using existing snapshot with %d videos", state.existing.total_videos)
            state.videos = state.existing.videos
            state.outcome = RunOutcome.FALLBACK_CACHED
            return Stage.DONE

        LOGGER.warning("No usable snapshot; writing sample data for development")
        state.videos = build_sample_videos(self._config, state.now)
        self.video_store.save(self._snapshot(state.videos, state.now))
        state.outcome = RunOutcome.FALLBACK_SAMPLE
        return Stage.DONE

    def _snapshot(self, videos: list[VideoRecord], now: datetime) -> VideoSnapshot:
        return VideoSnapshot(
            last_updated=format_iso(now),
            model_id=self._config.model.id,
            model_name=self._config.model.name,
            videos=videos,
        )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch the video feed and profile into local snapshots")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the JSON site configuration (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--data-dir", type=Path, default=None, help="Directory for videos.json and profile.json")
    parser.add_argument("--images-dir", type=Path, default=None, help="Directory for cached images")
    parser.add_argument("--page-size", type=int, default=None, help="Videos requested per page (default: 200)")
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help=(
            "Fail the fetch when the feed has more pages than this "
            "(0 or negative disables the limit; default is unlimited)."
        ),
    )
    parser.add_argument("--max-workers", type=int, default=None, help="Concurrent thumbnail downloads per batch")
    parser.add_argument("--skip-profile", action="store_true", help="Do not fetch the profile or avatar")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def build_config(args: argparse.Namespace) -> FeedConfig:
    config = load_config(args.config)

    if args.page_size is not None:
        if args.page_size <= 0:
            raise ConfigError("--page-size must be positive")
        config = config.with_overrides(page_size=args.page_size)
    if args.max_pages is not None:
        config = replace(config, max_pages=args.max_pages if args.max_pages > 0 else None)
    if args.max_workers is not None:
        if args.max_workers <= 0:
            raise ConfigError("--max-workers must be positive")
        config = replace(config, rate_limit=replace(config.rate_limit, max_workers=args.max_workers))

    if args.data_dir is not None or args.images_dir is not None:
        data_dir = args.data_dir or config.paths.data_dir
        images_dir = args.images_dir or config.paths.images_dir
        config = replace(config, paths=PathConfig.under(data_dir, images_dir=images_dir))
    return config


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = build_config(args)
    except ConfigError as exc:
        parser.error(str(exc))

    LOGGER.info("Feed sync for %s", config.model.name)
    orchestrator = IngestionOrchestrator(config, skip_profile=args.skip_profile)
    try:
        result = orchestrator.run()
    except SnapshotIntegrityError as exc:
        LOGGER.error("Refusing to continue: %s", exc)
        return 2
    except IngestionCancelled:
        LOGGER.warning("Ingestion cancelled")
        return 1
    except OSError as exc:
        LOGGER.error("Could not write local output: %s", exc)
        return 3

    LOGGER.info("Run finished (%s) with %d videos", result.outcome.value, len(result.videos))
    return 0


__all__ = [
    "IngestionOrchestrator",
    "IngestionResult",
    "RunOutcome",
    "Stage",
    "build_arg_parser",
    "build_config",
    "configure_logging",
    "main",
    "next_stage",
]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
