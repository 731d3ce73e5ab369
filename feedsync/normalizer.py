"""Normalization of raw feed items into canonical records.

Upstream deployments disagree on field names and value shapes. Everything in
this module is pure: unexpected input is replaced by a documented default and
never raises.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import parse_qsl

from dateutil import parser as dateparser

from .config import FeedConfig
from .records import ProfileRecord, VideoRecord

LOGGER = logging.getLogger(__name__)

MILLISECOND_THRESHOLD = 10_000_000_000
NEW_VIDEO_WINDOW = timedelta(days=7)
DEFAULT_TITLE = "Untitled Video"

# Ordered candidate keys per canonical field; the first present value wins.
VIDEO_FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "id": ("id", "videoId"),
    "title": ("title", "name"),
    "description": ("description", "text"),
    "thumbnail": ("image", "thumbnail", "thumbUrl", "preview"),
    "thumbnail_webp": ("thumbnailWebp",),
    "runtime": ("runtime",),
    "release": ("releasetime", "date", "createdAt", "publishedAt"),
    "views": ("views", "viewCount"),
    "likes": ("likes", "likeCount", "rating_count"),
    "url": ("url", "videoUrl"),
    "categories": ("categories",),
    "hd": ("isHD", "hd"),
}

PROFILE_FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "id": ("u_id", "id"),
    "username": ("nick", "username"),
    "name": ("vorname", "nick", "username"),
    "gender": ("gender",),
    "age": ("u_alter", "age"),
    "country": ("land", "country"),
    "zip_code": ("plz",),
    "height": ("groesse",),
    "weight": ("gewicht",),
    "eye_color": ("augen",),
    "hair_color": ("haare",),
    "bust_width": ("k_umfang",),
    "cup_size": ("k_schale",),
    "intimate": ("rasintim",),
    "appearance": ("aussehen",),
    "tattoos": ("tatoos",),
    "piercings": ("piercing",),
    "profession": ("beruf",),
    "relationship_status": ("famst",),
    "zodiac": ("sternzeichen",),
    "sexual_orientation": ("sexor",),
    "preferences": ("sexvor",),
    "looking_for": ("suche",),
    "interests": ("interesse",),
    "bio": ("beschr", "bio"),
    "url": ("url",),
}

_DIACRITICS = (
    ("ä", "ae"),
    ("ö", "oe"),
    ("ü", "ue"),
    ("ß", "ss"),
)
_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\-]+", re.ASCII)
_MULTI_HYPHEN_RE = re.compile(r"-{2,}")
_DOTTED_DURATION_RE = re.compile(r"^\s*(\d+)\.(\d+)\s*$")
_PLAIN_DURATION_RE = re.compile(r"^\s*(\d+)\s*$")
_DIGITS_RE = re.compile(r"^\s*\d+\s*$")

_DATE_PATTERNS = {
    "de": "%d.%m.%Y",
    "en": "%m/%d/%Y",
}


def resolve_field(raw: Mapping[str, Any], candidates: Sequence[str], default: Any = None) -> Any:
    for key in candidates:
        value = raw.get(key)
        if value is None or value == "":
            continue
        return value
    return default


def slugify(text: object) -> str:
    value = str(text).lower().strip()
    value = _WHITESPACE_RE.sub("-", value)
    for source, replacement in _DIACRITICS:
        value = value.replace(source, replacement)
    value = _NON_WORD_RE.sub("", value)
    value = _MULTI_HYPHEN_RE.sub("-", value)
    return value.strip("-")


def parse_duration(value: object) -> int:
    """Return the duration in seconds for ``"MM.SS"`` or plain-seconds input."""

    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return max(value, 0)

    text = str(value)
    match = _DOTTED_DURATION_RE.match(text)
    if match:
        minutes, seconds = match.groups()
        return int(minutes) * 60 + int(seconds)
    match = _PLAIN_DURATION_RE.match(text)
    if match:
        return int(match.group(1))

    LOGGER.debug("Unrecognised duration %r; defaulting to 0", value)
    return 0


def format_duration(seconds: int | str) -> str:
    if isinstance(seconds, str) and ":" in seconds:
        return seconds
    total = int(seconds)
    minutes, remainder = divmod(total, 60)
    return f"{minutes}:{remainder:02d}"


def parse_release_date(value: object) -> datetime | None:
    """Parse Unix seconds, Unix milliseconds, ISO-8601 or free-form dates.

    Numeric values below ``MILLISECOND_THRESHOLD`` are seconds, larger ones
    milliseconds. Naive results are taken as UTC. Returns ``None`` when the
    value cannot be interpreted.
    """

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)) or (isinstance(value, str) and _DIGITS_RE.match(value)):
        try:
            timestamp = int(value)
            seconds = timestamp if timestamp < MILLISECOND_THRESHOLD else timestamp / 1000
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            LOGGER.debug("Timestamp %r out of range", value)
            return None

    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = dateparser.parse(text)
        except (ValueError, OverflowError):
            LOGGER.debug("Unparseable release date %r", value)
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_iso(moment: datetime) -> str:
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def format_date(moment: datetime | None, locale: str = "de_DE") -> str:
    if moment is None:
        return ""
    language = locale.replace("-", "_").split("_", 1)[0].lower()
    pattern = _DATE_PATTERNS.get(language, "%Y-%m-%d")
    return moment.astimezone(timezone.utc).strftime(pattern)


def is_new(release: datetime | None, now: datetime) -> bool:
    if release is None:
        return False
    return now - release <= NEW_VIDEO_WINDOW


def extract_tags(categories: object) -> list[str]:
    if not isinstance(categories, (list, tuple)):
        return []
    tags: list[str] = []
    for entry in categories:
        if isinstance(entry, Mapping):
            name = entry.get("name")
            if name:
                tags.append(str(name))
        elif isinstance(entry, str):
            if entry:
                tags.append(entry)
        elif isinstance(entry, (int, float)) and not isinstance(entry, bool):
            tags.append(str(entry))
    return tags


def add_tracking_param(url: str, name: str, value: str | None) -> str:
    """Append ``name=value`` to ``url`` unless the parameter is already present."""

    if not url or not name or not value:
        return url

    base, hash_mark, fragment = url.partition("#")
    _, question_mark, query = base.partition("?")
    existing = {key for key, _ in parse_qsl(query, keep_blank_values=True)}
    if name in existing:
        return url

    if not question_mark:
        separator = "?"
    elif query and not query.endswith("&"):
        separator = "&"
    else:
        separator = ""
    return f"{base}{separator}{name}={value}{hash_mark}{fragment}"


def _coerce_count(value: object) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _coerce_optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _string_list(value: object) -> list[str]:
    if isinstance(value, str):
        return [value] if value else []
    return extract_tags(value)


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _is_truthy_flag(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "hd"}
    return bool(value)


class FieldNormalizer:
    """Map raw feed items onto :class:`VideoRecord` and :class:`ProfileRecord`."""

    def __init__(self, config: FeedConfig, *, now: datetime | None = None) -> None:
        self._config = config
        self._now = now or datetime.now(timezone.utc)

    def normalize(self, raw_item: Mapping[str, Any], index: int) -> VideoRecord:
        raw = raw_item if isinstance(raw_item, Mapping) else {}
        candidates = VIDEO_FIELD_CANDIDATES

        video_id = str(resolve_field(raw, candidates["id"], f"video-{index}"))
        title = str(resolve_field(raw, candidates["title"], DEFAULT_TITLE))
        slug = slugify(resolve_field(raw, candidates["title"], "")) or f"video-{index}"

        duration = parse_duration(resolve_field(raw, candidates["runtime"], "0"))
        release = parse_release_date(resolve_field(raw, candidates["release"]))

        url = resolve_field(raw, candidates["url"])
        if not isinstance(url, str) or not url:
            url = f"{self._config.video_base_url}{video_id}"
        url = self._with_tracking(url)

        thumbnail = _optional_str(resolve_field(raw, candidates["thumbnail"]))

        return VideoRecord(
            id=video_id,
            slug=slug,
            title=title,
            description=str(resolve_field(raw, candidates["description"], "")),
            thumbnail=thumbnail,
            thumbnail_original=thumbnail,
            thumbnail_webp=_optional_str(resolve_field(raw, candidates["thumbnail_webp"])),
            duration=duration,
            duration_formatted=format_duration(duration),
            views=_coerce_count(resolve_field(raw, candidates["views"], 0)),
            likes=_coerce_count(resolve_field(raw, candidates["likes"], 0)),
            date=format_iso(release or self._now),
            date_formatted=format_date(release, self._config.locale),
            tags=extract_tags(resolve_field(raw, candidates["categories"], [])),
            url=url,
            is_hd=_is_truthy_flag(resolve_field(raw, candidates["hd"], False)) or raw.get("quality") == "HD",
            is_new=is_new(release, self._now),
        )

    def normalize_all(self, raw_items: Iterable[Mapping[str, Any]]) -> list[VideoRecord]:
        """Normalize items in feed order, suffixing repeated slugs with ``-2``, ``-3``..."""

        videos: list[VideoRecord] = []
        seen_slugs: set[str] = set()
        for index, raw in enumerate(raw_items):
            video = self.normalize(raw, index)
            if video.slug in seen_slugs:
                base = video.slug
                counter = 2
                while f"{base}-{counter}" in seen_slugs:
                    counter += 1
                video.slug = f"{base}-{counter}"
                LOGGER.debug("Duplicate slug %r renamed to %r", base, video.slug)
            seen_slugs.add(video.slug)
            videos.append(video)
        return videos

    def normalize_profile(self, raw_profile: Mapping[str, Any] | None) -> ProfileRecord | None:
        if not isinstance(raw_profile, Mapping) or not raw_profile:
            return None

        candidates = PROFILE_FIELD_CANDIDATES

        def pick(name: str) -> Any:
            return resolve_field(raw_profile, candidates[name])

        country = pick("country")
        bust_width = pick("bust_width")
        bust_size = f"{bust_width}{pick('cup_size') or ''}" if bust_width else None
        tattoos = pick("tattoos")

        images = raw_profile.get("images")
        avatar = images.get("bild1") if isinstance(images, Mapping) else None

        profile_url = pick("url")
        if isinstance(profile_url, str) and profile_url:
            profile_url = self._with_tracking(profile_url)
        else:
            profile_url = None

        return ProfileRecord(
            id=_optional_str(pick("id")),
            username=_optional_str(pick("username")),
            name=_optional_str(pick("name")),
            gender=_optional_str(pick("gender")),
            age=_coerce_optional_int(pick("age")),
            country=str(country).upper() if country else None,
            zip_code=_optional_str(pick("zip_code")),
            height=_coerce_optional_int(pick("height")),
            weight=_coerce_optional_int(pick("weight")),
            eye_color=_optional_str(pick("eye_color")),
            hair_color=_optional_str(pick("hair_color")),
            bust_size=bust_size,
            intimate="Rasiert" if pick("intimate") == 1 else None,
            appearance=_string_list(pick("appearance")),
            has_tattoos=bool(tattoos) if tattoos is not None else None,
            piercings=_optional_str(pick("piercings")),
            profession=_optional_str(pick("profession")),
            relationship_status=_optional_str(pick("relationship_status")),
            zodiac=_optional_str(pick("zodiac")),
            sexual_orientation=_optional_str(pick("sexual_orientation")),
            preferences=_string_list(pick("preferences")),
            looking_for=_string_list(pick("looking_for")),
            interests=_string_list(pick("interests")),
            avatar=_optional_str(avatar),
            avatar_original=_optional_str(avatar),
            bio=str(pick("bio") or ""),
            profile_url=profile_url,
        )

    def _with_tracking(self, url: str) -> str:
        tracking = self._config.tracking
        if not tracking.enabled:
            return url
        return add_tracking_param(url, tracking.param, tracking.value)
