"""Configuration values shared by every ingestion component."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

DEFAULT_DATA_DIR = Path("data")
DEFAULT_IMAGES_DIR = Path("src/assets/images")
DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
DEFAULT_PAGE_SIZE = 200

_FEED_URL_ENV = "FEEDSYNC_FEED_URL"
_DATA_DIR_ENV = "FEEDSYNC_DATA_DIR"


class ConfigError(ValueError):
    """Raised when a configuration file is missing or malformed."""


@dataclass(frozen=True, slots=True)
class ModelConfig:
    id: str
    name: str
    profile_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TrackingConfig:
    """Referral attribution appended to outbound links."""

    param: str = "atc"
    value: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.param and self.value)


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    page_delay: float = 1.0
    profile_delay: float = 1.0
    batch_delay: float = 0.1
    max_workers: int = 10


@dataclass(frozen=True, slots=True)
class TimeoutConfig:
    request_timeout: float = 15.0
    asset_timeout: float = 30.0


@dataclass(frozen=True, slots=True)
class PathConfig:
    data_dir: Path = DEFAULT_DATA_DIR
    videos_file: Path = DEFAULT_DATA_DIR / "videos.json"
    profile_file: Path = DEFAULT_DATA_DIR / "profile.json"
    images_dir: Path = DEFAULT_IMAGES_DIR
    public_images_prefix: str = "/images"

    @property
    def video_images_dir(self) -> Path:
        return self.images_dir / "videos"

    @property
    def public_video_images_prefix(self) -> str:
        return f"{self.public_images_prefix}/videos"

    @classmethod
    def under(cls, data_dir: Path, images_dir: Path = DEFAULT_IMAGES_DIR) -> "PathConfig":
        return cls(
            data_dir=data_dir,
            videos_file=data_dir / "videos.json",
            profile_file=data_dir / "profile.json",
            images_dir=images_dir,
        )


@dataclass(frozen=True, slots=True)
class FeedConfig:
    model: ModelConfig
    feed_url: str
    profile_url: Optional[str] = None
    video_base_url: str = ""
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int | None = None
    locale: str = "de_DE"
    user_agent: str = DEFAULT_USER_AGENT
    referer: Optional[str] = None
    accept_language: str = "de-DE,de;q=0.9"
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    paths: PathConfig = field(default_factory=PathConfig)

    def resolved_profile_url(self) -> str:
        if self.profile_url:
            return self.profile_url
        return self.feed_url.replace("/amateurvideos/", "/amateurs/")

    def with_overrides(self, **changes: Any) -> "FeedConfig":
        cleaned = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **cleaned)


def _require(section: Mapping[str, Any], key: str, context: str) -> Any:
    value = section.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError(f"Missing required setting '{context}.{key}'")
    return value


def _section(payload: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = payload.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Section '{name}' must be an object")
    return value


def _coerce_positive_int(raw_value: Any, name: str) -> int:
    try:
        value = int(raw_value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Setting '{name}' must be an integer (got {raw_value!r})") from exc
    if value <= 0:
        raise ConfigError(f"Setting '{name}' must be positive (got {value})")
    return value


def config_from_mapping(payload: Mapping[str, Any], *, base_dir: Path | None = None) -> FeedConfig:
    """Build a :class:`FeedConfig` from a site configuration mapping."""

    site = _section(payload, "site")
    model_section = _section(payload, "model")
    feed = _section(payload, "feed")
    tracking_section = feed.get("trackingParams") or {}
    if not isinstance(tracking_section, Mapping):
        raise ConfigError("Section 'feed.trackingParams' must be an object")

    model = ModelConfig(
        id=str(_require(model_section, "id", "model")),
        name=str(_require(model_section, "name", "model")),
        profile_url=model_section.get("profileUrl"),
    )

    feed_url = os.getenv(_FEED_URL_ENV) or _require(feed, "url", "feed")

    root = base_dir or Path(".")
    data_dir_raw = os.getenv(_DATA_DIR_ENV) or feed.get("dataDir")
    data_dir = Path(data_dir_raw).expanduser() if data_dir_raw else root / DEFAULT_DATA_DIR
    paths = PathConfig.under(data_dir, images_dir=root / DEFAULT_IMAGES_DIR)
    cache_file = feed.get("cacheFile")
    if cache_file and not data_dir_raw:
        paths = replace(paths, videos_file=root / cache_file)

    rate_limit = RateLimitConfig()
    if feed.get("parallelDownloads") is not None:
        rate_limit = replace(
            rate_limit,
            max_workers=_coerce_positive_int(feed["parallelDownloads"], "feed.parallelDownloads"),
        )

    page_size = DEFAULT_PAGE_SIZE
    if feed.get("pageSize") is not None:
        page_size = _coerce_positive_int(feed["pageSize"], "feed.pageSize")

    return FeedConfig(
        model=model,
        feed_url=str(feed_url),
        profile_url=feed.get("profileUrl"),
        video_base_url=feed.get("videoBaseUrl") or "",
        page_size=page_size,
        locale=site.get("locale") or "de_DE",
        referer=feed.get("referer"),
        tracking=TrackingConfig(param="atc", value=tracking_section.get("atc")),
        rate_limit=rate_limit,
        paths=paths,
    )


def load_config(path: Path, *, base_dir: Path | None = None) -> FeedConfig:
    """Load a JSON site configuration file.

    Relative data and image directories resolve against ``base_dir`` (the
    working directory when omitted), not against the config file location.
    """

    try:
        raw_text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file {path} does not exist") from exc
    except OSError as exc:
        raise ConfigError(f"Config file {path} could not be read: {exc}") from exc

    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return config_from_mapping(payload, base_dir=base_dir)
