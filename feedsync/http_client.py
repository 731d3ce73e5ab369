"""HTTP utilities for talking to the feed API and image CDN."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

import httpx

from .config import FeedConfig

LOGGER = logging.getLogger(__name__)

_TOKEN_PARAM_RE = re.compile(r"(?P<key>\b(?:ats|token)=)(?P<value>[^&\s\"']+)")


class HttpFetchError(RuntimeError):
    """Raised when an HTTP request fails irrecoverably."""


def mask_tokens(text: str) -> str:
    return _TOKEN_PARAM_RE.sub(r"\g<key><redacted>", text)


class _HttpxTokenFilter(logging.Filter):
    """Redact embedded feed tokens from httpx request logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = mask_tokens(message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


def _ensure_httpx_filter() -> None:
    logger = logging.getLogger("httpx")
    if any(isinstance(f, _HttpxTokenFilter) for f in logger.filters):
        return
    logger.addFilter(_HttpxTokenFilter())


_ensure_httpx_filter()


def build_client(
    config: FeedConfig,
    *,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create the shared client used for feed and asset requests."""

    headers = {
        "User-Agent": config.user_agent,
        "Accept-Language": config.accept_language,
    }
    kwargs: dict[str, object] = {
        "timeout": config.timeout.request_timeout,
        "headers": headers,
        "follow_redirects": True,
    }
    if transport:
        kwargs["transport"] = transport
    return httpx.Client(**kwargs)


class HttpFetcher:
    """Thin wrapper returning decoded JSON or raw bytes, raising ``HttpFetchError``."""

    def __init__(
        self,
        config: FeedConfig,
        *,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._client = client or build_client(config, transport=transport)
        self._owns_client = client is None

    def fetch_json(self, url: str) -> Any:
        try:
            response = self._client.get(url, headers={"Accept": "application/json"})
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise HttpFetchError(f"Request to {mask_tokens(url)} failed: {exc}") from exc

        if not response.is_success:
            raise HttpFetchError(
                f"HTTP {response.status_code} {response.reason_phrase} for {mask_tokens(url)}"
            )

        try:
            return response.json()
        except ValueError as exc:
            raise HttpFetchError(f"Invalid JSON payload from {mask_tokens(url)}: {exc}") from exc

    def fetch_bytes(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> bytes:
        request_headers = {"Accept": "image/*"}
        if headers:
            request_headers.update(headers)
        try:
            response = self._client.get(
                url,
                headers=request_headers,
                timeout=timeout if timeout is not None else self._config.timeout.asset_timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise HttpFetchError(f"Request to {url} failed: {exc}") from exc

        if not response.is_success:
            raise HttpFetchError(f"HTTP {response.status_code} {response.reason_phrase} for {url}")
        return response.content

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()
