"""Synthetic development data used when no feed and no snapshot are available."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from .config import FeedConfig
from .normalizer import add_tracking_param, format_date, format_duration, format_iso, slugify
from .records import VideoRecord

SAMPLE_VIDEO_COUNT = 24
SAMPLE_SEED = 2796391
SAMPLE_TAGS = ("Amateur", "Deutsch", "Exklusiv")
NEW_SAMPLE_COUNT = 3


def build_sample_videos(
    config: FeedConfig,
    now: datetime,
    *,
    count: int = SAMPLE_VIDEO_COUNT,
    seed: int = SAMPLE_SEED,
) -> list[VideoRecord]:
    rng = random.Random(seed)
    model_slug = slugify(config.model.name)
    target_url = config.model.profile_url or config.video_base_url
    if config.tracking.enabled:
        target_url = add_tracking_param(target_url, config.tracking.param, config.tracking.value)

    videos: list[VideoRecord] = []
    for number in range(1, count + 1):
        slug = f"beispiel-video-{number}"
        duration = 300 + rng.randrange(600)
        if number <= NEW_SAMPLE_COUNT:
            released = now - timedelta(days=number - 1)
        else:
            released = now - timedelta(days=8 + rng.randrange(82), hours=rng.randrange(24))
        videos.append(
            VideoRecord(
                id=f"sample-{number}",
                slug=slug,
                title=f"Beispiel Video {number} - Exklusiver Content",
                description=(
                    f"Dies ist eine Beispielbeschreibung für Video {number}. "
                    "Hier würde der echte Beschreibungstext aus dem Feed stehen."
                ),
                thumbnail=f"{config.paths.public_video_images_prefix}/{model_slug}-{slug}.jpg",
                thumbnail_original=f"https://via.placeholder.com/640x360/e11d48/ffffff?text=Video+{number}",
                duration=duration,
                duration_formatted=format_duration(duration),
                views=rng.randrange(1000, 51000),
                likes=rng.randrange(100, 5100),
                date=format_iso(released),
                date_formatted=format_date(released, config.locale),
                tags=list(SAMPLE_TAGS),
                url=target_url,
                is_hd=rng.random() > 0.3,
                is_new=number <= NEW_SAMPLE_COUNT,
            )
        )
    return videos
