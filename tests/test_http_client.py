import logging
import unittest
from collections import deque

import httpx

from feedsync.config import FeedConfig, ModelConfig
from feedsync.http_client import HttpFetchError, HttpFetcher, mask_tokens


def _build_config() -> FeedConfig:
    return FeedConfig(
        model=ModelConfig(id="1", name="Demo"),
        feed_url="https://api.example.com/api/amateurvideos/?ats=secret",
        user_agent="feedsync-test",
    )


class HttpFetcherTestCase(unittest.TestCase):
    def test_fetch_json_sends_configured_headers(self) -> None:
        seen = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": []})

        fetcher = HttpFetcher(_build_config(), transport=httpx.MockTransport(handler))
        try:
            payload = fetcher.fetch_json("https://api.example.com/api/amateurvideos/")
        finally:
            fetcher.close()

        self.assertEqual(payload, {"items": []})
        request = seen.popleft()
        self.assertEqual(request.headers["user-agent"], "feedsync-test")
        self.assertEqual(request.headers["accept"], "application/json")
        self.assertEqual(request.headers["accept-language"], "de-DE,de;q=0.9")

    def test_fetch_json_error_message_masks_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(httpx.codes.FORBIDDEN)

        with HttpFetcher(_build_config(), transport=httpx.MockTransport(handler)) as fetcher:
            with self.assertRaises(HttpFetchError) as ctx:
                fetcher.fetch_json("https://api.example.com/list?ats=secret&offset=0")

        message = str(ctx.exception)
        self.assertIn("403", message)
        self.assertNotIn("secret", message)

    def test_fetch_bytes_merges_headers(self) -> None:
        seen = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"png")

        with HttpFetcher(_build_config(), transport=httpx.MockTransport(handler)) as fetcher:
            content = fetcher.fetch_bytes(
                "https://cdn.example.com/a.png",
                headers={"Referer": "https://www.example.de/"},
            )

        self.assertEqual(content, b"png")
        request = seen.popleft()
        self.assertEqual(request.headers["accept"], "image/*")
        self.assertEqual(request.headers["referer"], "https://www.example.de/")

    def test_fetch_bytes_wraps_transport_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with HttpFetcher(_build_config(), transport=httpx.MockTransport(handler)) as fetcher:
            with self.assertRaises(HttpFetchError):
                fetcher.fetch_bytes("https://cdn.example.com/a.png")

    def test_malformed_url_is_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"unused")

        with HttpFetcher(_build_config(), transport=httpx.MockTransport(handler)) as fetcher:
            with self.assertRaises(HttpFetchError):
                fetcher.fetch_bytes("https://cdn.example.com/a b\n.jpg")
            with self.assertRaises(HttpFetchError):
                fetcher.fetch_json("https://api.example.com/li\nst?ats=secret")

    def test_external_client_is_not_closed(self) -> None:
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        try:
            HttpFetcher(_build_config(), client=client).close()
            self.assertFalse(client.is_closed)
        finally:
            client.close()


class TokenMaskingTestCase(unittest.TestCase):
    def test_mask_tokens(self) -> None:
        self.assertEqual(
            mask_tokens("GET https://api.example.com/?amateurId=1&ats=abc123&offset=0"),
            "GET https://api.example.com/?amateurId=1&ats=<redacted>&offset=0",
        )
        self.assertEqual(mask_tokens("token=xyz"), "token=<redacted>")
        self.assertEqual(mask_tokens("no secrets here"), "no secrets here")

    def test_httpx_logger_records_are_redacted(self) -> None:
        with self.assertLogs("httpx", level="INFO") as captured:
            logging.getLogger("httpx").info(
                'HTTP Request: GET %s "%s"',
                "https://api.example.com/?ats=abc",
                "HTTP/1.1 200 OK",
            )

        self.assertEqual(len(captured.records), 1)
        self.assertNotIn("abc", captured.output[0])
        self.assertIn("ats=<redacted>", captured.output[0])


if __name__ == "__main__":
    unittest.main()
