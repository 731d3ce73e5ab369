"""Sequential, offset-based retrieval of the remote video list."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from .config import FeedConfig
from .http_client import HttpFetcher, HttpFetchError, mask_tokens
from .pacing import Pacer

LOGGER = logging.getLogger(__name__)

ITEM_LIST_KEYS = ("videos", "items", "data")

_OFFSET_RE = re.compile(r"([?&])offset=\d*")
_LIMIT_RE = re.compile(r"([?&])limit=\d*")


class FeedFetchError(RuntimeError):
    """Raised when the complete video list could not be retrieved."""


def _set_query_param(url: str, pattern: re.Pattern[str], name: str, value: int) -> str:
    if pattern.search(url):
        return pattern.sub(lambda match: f"{match.group(1)}{name}={value}", url, count=1)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{name}={value}"


def build_page_url(template: str, offset: int, page_size: int) -> str:
    url = _set_query_param(template, _OFFSET_RE, "offset", offset)
    return _set_query_param(url, _LIMIT_RE, "limit", page_size)


def next_page_offset(offset: int, page_size: int, item_count: int) -> int | None:
    """Return the offset of the following page, or ``None`` when the list is complete.

    An empty page ends the list, and so does a short page. A full page always
    asks for one more, so a list whose size is a multiple of ``page_size``
    costs one extra request that comes back empty.
    """

    if item_count == 0 or item_count < page_size:
        return None
    return offset + page_size


def extract_page_items(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in ITEM_LIST_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    raise FeedFetchError(
        f"Unexpected feed payload: expected a list under one of {', '.join(ITEM_LIST_KEYS)}"
    )


class PaginationFetcher:
    """Walk the list endpoint page by page until the feed is exhausted."""

    def __init__(
        self,
        config: FeedConfig,
        *,
        http: HttpFetcher,
        pacer: Pacer | None = None,
    ) -> None:
        self._config = config
        self._http = http
        self._pacer = pacer or Pacer()
        self.requests_made = 0

    def fetch_all(self, page_size: int | None = None) -> list[Any]:
        size = page_size or self._config.page_size
        if size <= 0:
            raise ValueError("page_size must be positive")

        items: list[Any] = []
        offset = 0
        page_number = 1
        self.requests_made = 0
        max_pages = self._config.max_pages
        while True:
            url = build_page_url(self._config.feed_url, offset, size)
            self.requests_made += 1
            try:
                payload = self._http.fetch_json(url)
            except HttpFetchError as exc:
                raise FeedFetchError(f"Page {page_number} (offset {offset}) failed: {exc}") from exc

            page_items = extract_page_items(payload)
            items.extend(page_items)
            LOGGER.info(
                "Page %d (offset %d): %d videos (total %d)",
                page_number,
                offset,
                len(page_items),
                len(items),
            )

            next_offset = next_page_offset(offset, size, len(page_items))
            if next_offset is None:
                break
            if max_pages is not None and page_number >= max_pages:
                raise FeedFetchError(
                    f"Feed has more than {max_pages} pages; refusing to keep a partial list of {len(items)} videos"
                )

            offset = next_offset
            page_number += 1
            self._pacer.wait(self._config.rate_limit.page_delay, "page rate limit")

        LOGGER.info("Fetched %d videos in %d requests", len(items), self.requests_made)
        return items


class ProfileFetcher:
    """Fetch the single profile document that accompanies the video list."""

    def __init__(self, config: FeedConfig, *, http: HttpFetcher) -> None:
        self._config = config
        self._http = http

    def fetch(self) -> Mapping[str, Any] | None:
        url = self._config.resolved_profile_url()
        try:
            payload = self._http.fetch_json(url)
        except HttpFetchError as exc:
            LOGGER.warning("Profile request failed (%s): %s", mask_tokens(url), exc)
            return None

        items = payload.get("items") if isinstance(payload, Mapping) else None
        if not isinstance(items, list) or not items:
            LOGGER.warning("Profile response from %s contained no items", mask_tokens(url))
            return None
        profile = items[0]
        if not isinstance(profile, Mapping):
            LOGGER.warning("Unexpected profile item type %s", type(profile).__name__)
            return None
        return profile
