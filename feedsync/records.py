"""Canonical records and snapshot documents produced by an ingestion run."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping


class PayloadError(ValueError):
    """Raised when a serialized payload does not match the canonical shape."""


@dataclass(slots=True)
class VideoRecord:
    id: str
    slug: str
    title: str
    description: str
    thumbnail: str | None
    thumbnail_original: str | None
    duration: int
    duration_formatted: str
    views: int
    likes: int
    date: str
    date_formatted: str
    tags: list[str]
    url: str
    is_hd: bool = False
    is_new: bool = False
    thumbnail_webp: str | None = None


@dataclass(slots=True)
class ProfileRecord:
    id: str | None
    username: str | None
    name: str | None
    gender: str | None = None
    age: int | None = None
    country: str | None = None
    zip_code: str | None = None
    height: int | None = None
    weight: int | None = None
    eye_color: str | None = None
    hair_color: str | None = None
    bust_size: str | None = None
    intimate: str | None = None
    appearance: list[str] = field(default_factory=list)
    has_tattoos: bool | None = None
    piercings: str | None = None
    profession: str | None = None
    relationship_status: str | None = None
    zodiac: str | None = None
    sexual_orientation: str | None = None
    preferences: list[str] = field(default_factory=list)
    looking_for: list[str] = field(default_factory=list)
    interests: list[str] = field(default_factory=list)
    avatar: str | None = None
    avatar_original: str | None = None
    bio: str = ""
    profile_url: str | None = None


@dataclass(slots=True)
class VideoSnapshot:
    last_updated: str
    model_id: str
    model_name: str
    videos: list[VideoRecord]

    @property
    def total_videos(self) -> int:
        return len(self.videos)


@dataclass(slots=True)
class ProfileSnapshot:
    last_updated: str
    profile: ProfileRecord


# Snapshot files keep the camelCase keys the site renderer reads.
_VIDEO_KEYS = {
    "id": "id",
    "slug": "slug",
    "title": "title",
    "description": "description",
    "thumbnail": "thumbnail",
    "thumbnail_original": "thumbnailOriginal",
    "thumbnail_webp": "thumbnailWebp",
    "duration": "duration",
    "duration_formatted": "durationFormatted",
    "views": "views",
    "likes": "likes",
    "date": "date",
    "date_formatted": "dateFormatted",
    "tags": "tags",
    "url": "url",
    "is_hd": "isHD",
    "is_new": "isNew",
}

_PROFILE_KEYS = {
    "id": "id",
    "username": "username",
    "name": "name",
    "gender": "gender",
    "age": "age",
    "country": "country",
    "zip_code": "zipCode",
    "height": "height",
    "weight": "weight",
    "eye_color": "eyeColor",
    "hair_color": "hairColor",
    "bust_size": "bustSize",
    "intimate": "intimate",
    "appearance": "appearance",
    "has_tattoos": "hasTattoos",
    "piercings": "piercings",
    "profession": "profession",
    "relationship_status": "relationshipStatus",
    "zodiac": "zodiac",
    "sexual_orientation": "sexualOrientation",
    "preferences": "preferences",
    "looking_for": "lookingFor",
    "interests": "interests",
    "avatar": "avatar",
    "avatar_original": "avatarOriginal",
    "bio": "bio",
    "profile_url": "profileUrl",
}

_REQUIRED_VIDEO_FIELDS = ("id", "slug", "title", "url")


def video_to_payload(video: VideoRecord) -> dict[str, Any]:
    return {_VIDEO_KEYS[f.name]: getattr(video, f.name) for f in fields(VideoRecord)}


def video_from_payload(payload: Mapping[str, Any]) -> VideoRecord:
    if not isinstance(payload, Mapping):
        raise PayloadError(f"Video entry must be an object, got {type(payload).__name__}")
    for name in _REQUIRED_VIDEO_FIELDS:
        if _VIDEO_KEYS[name] not in payload:
            raise PayloadError(f"Video entry is missing '{_VIDEO_KEYS[name]}'")

    tags = payload.get("tags") or []
    if not isinstance(tags, list):
        raise PayloadError("Video 'tags' must be a list")

    try:
        return VideoRecord(
            id=str(payload["id"]),
            slug=str(payload["slug"]),
            title=str(payload["title"]),
            description=str(payload.get("description") or ""),
            thumbnail=payload.get("thumbnail"),
            thumbnail_original=payload.get("thumbnailOriginal"),
            thumbnail_webp=payload.get("thumbnailWebp"),
            duration=int(payload.get("duration") or 0),
            duration_formatted=str(payload.get("durationFormatted") or ""),
            views=int(payload.get("views") or 0),
            likes=int(payload.get("likes") or 0),
            date=str(payload.get("date") or ""),
            date_formatted=str(payload.get("dateFormatted") or ""),
            tags=[str(tag) for tag in tags],
            url=str(payload["url"]),
            is_hd=bool(payload.get("isHD")),
            is_new=bool(payload.get("isNew")),
        )
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"Invalid video entry {payload.get('id')!r}: {exc}") from exc


def profile_to_payload(profile: ProfileRecord) -> dict[str, Any]:
    return {_PROFILE_KEYS[f.name]: getattr(profile, f.name) for f in fields(ProfileRecord)}


def profile_from_payload(payload: Mapping[str, Any]) -> ProfileRecord:
    if not isinstance(payload, Mapping):
        raise PayloadError(f"Profile must be an object, got {type(payload).__name__}")
    values = {name: payload.get(key) for name, key in _PROFILE_KEYS.items() if key in payload}
    for list_field in ("appearance", "preferences", "looking_for", "interests"):
        if values.get(list_field) is None:
            values.pop(list_field, None)
    if values.get("bio") is None:
        values.pop("bio", None)
    for required in ("id", "username", "name"):
        values.setdefault(required, None)
    return ProfileRecord(**values)


def video_snapshot_to_payload(snapshot: VideoSnapshot) -> dict[str, Any]:
    return {
        "lastUpdated": snapshot.last_updated,
        "modelId": snapshot.model_id,
        "modelName": snapshot.model_name,
        "totalVideos": snapshot.total_videos,
        "videos": [video_to_payload(video) for video in snapshot.videos],
    }


def video_snapshot_from_payload(payload: Mapping[str, Any]) -> VideoSnapshot:
    if not isinstance(payload, Mapping):
        raise PayloadError("Video snapshot must be a JSON object")
    videos = payload.get("videos")
    if not isinstance(videos, list):
        raise PayloadError("Video snapshot is missing the 'videos' list")
    total = payload.get("totalVideos")
    if total is not None and total != len(videos):
        raise PayloadError(f"Video snapshot declares {total} videos but contains {len(videos)}")
    return VideoSnapshot(
        last_updated=str(payload.get("lastUpdated") or ""),
        model_id=str(payload.get("modelId") or ""),
        model_name=str(payload.get("modelName") or ""),
        videos=[video_from_payload(entry) for entry in videos],
    )


def profile_snapshot_to_payload(snapshot: ProfileSnapshot) -> dict[str, Any]:
    return {
        "lastUpdated": snapshot.last_updated,
        "profile": profile_to_payload(snapshot.profile),
    }


def profile_snapshot_from_payload(payload: Mapping[str, Any]) -> ProfileSnapshot:
    if not isinstance(payload, Mapping):
        raise PayloadError("Profile snapshot must be a JSON object")
    if "profile" not in payload:
        raise PayloadError("Profile snapshot is missing 'profile'")
    return ProfileSnapshot(
        last_updated=str(payload.get("lastUpdated") or ""),
        profile=profile_from_payload(payload["profile"]),
    )
