import json
import unittest
from datetime import datetime, timedelta, timezone

from feedsync.config import FeedConfig, ModelConfig, TrackingConfig
from feedsync.normalizer import (
    FieldNormalizer,
    add_tracking_param,
    extract_tags,
    format_date,
    format_duration,
    format_iso,
    is_new,
    parse_duration,
    parse_release_date,
    resolve_field,
    slugify,
)

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _build_config() -> FeedConfig:
    return FeedConfig(
        model=ModelConfig(id="2796391", name="Texas Patti"),
        feed_url="https://api.example.com/api/amateurvideos/?amateurId=2796391&limit=200&offset=0",
        video_base_url="https://www.example.de/video/",
        tracking=TrackingConfig(param="atc", value="cal-example-rocks"),
    )


class SlugifyTestCase(unittest.TestCase):
    def test_folds_german_diacritics_and_strips_punctuation(self) -> None:
        self.assertEqual(slugify("Müller Girl!"), "mueller-girl")
        self.assertEqual(slugify("Heiße Öl Übung"), "heisse-oel-uebung")

    def test_collapses_and_trims_hyphens(self) -> None:
        self.assertEqual(slugify("  -- Hello   --  World -- "), "hello-world")

    def test_is_idempotent(self) -> None:
        samples = [
            "Müller Girl!",
            "  Spaß im Büro -- Teil 2 ",
            "ÄÖÜ ß",
            "already-a-slug",
            "emoji 🎬 title",
            "___under_score___",
            "",
        ]
        for sample in samples:
            with self.subTest(sample=sample):
                once = slugify(sample)
                self.assertEqual(slugify(once), once)


class DurationTestCase(unittest.TestCase):
    def test_dotted_minutes_seconds(self) -> None:
        seconds = parse_duration("5.30")
        self.assertEqual(seconds, 330)
        self.assertEqual(format_duration(seconds), "5:30")

    def test_plain_seconds(self) -> None:
        self.assertEqual(parse_duration("420"), 420)
        self.assertEqual(parse_duration(95), 95)
        self.assertEqual(format_duration(65), "1:05")

    def test_unrecognised_defaults_to_zero(self) -> None:
        for value in ("abc", "", None, "1:2:3", True, [], "5.3x"):
            with self.subTest(value=value):
                self.assertEqual(parse_duration(value), 0)

    def test_already_formatted_string_is_kept(self) -> None:
        self.assertEqual(format_duration("12:34"), "12:34")


class ReleaseDateTestCase(unittest.TestCase):
    def test_seconds_and_iso_are_equivalent(self) -> None:
        from_seconds = parse_release_date("1700000000")
        from_iso = parse_release_date("2023-11-14T22:13:20Z")
        self.assertIsNotNone(from_seconds)
        self.assertEqual(from_seconds, from_iso)
        self.assertEqual(parse_release_date(1700000000), from_iso)

    def test_thirteen_digits_are_milliseconds(self) -> None:
        parsed = parse_release_date("1700000000000")
        self.assertEqual(parsed, datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc))

    def test_free_form_dates(self) -> None:
        parsed = parse_release_date("Tue, 14 Nov 2023 22:13:20 GMT")
        self.assertEqual(parsed, datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc))

    def test_naive_iso_is_utc(self) -> None:
        parsed = parse_release_date("2024-01-05 08:30:00")
        self.assertEqual(parsed, datetime(2024, 1, 5, 8, 30, tzinfo=timezone.utc))

    def test_unparseable_returns_none(self) -> None:
        for value in ("not a date", "", None, {"x": 1}, False, float("nan"), float("inf"), float("-inf")):
            with self.subTest(value=value):
                self.assertIsNone(parse_release_date(value))

    def test_iso_formatting_matches_renderer_format(self) -> None:
        moment = datetime(2023, 11, 14, 22, 13, 20, 123456, tzinfo=timezone.utc)
        self.assertEqual(format_iso(moment), "2023-11-14T22:13:20.123Z")

    def test_locale_date_format(self) -> None:
        moment = datetime(2024, 1, 5, tzinfo=timezone.utc)
        self.assertEqual(format_date(moment, "de_DE"), "05.01.2024")
        self.assertEqual(format_date(moment, "en-US"), "01/05/2024")
        self.assertEqual(format_date(None, "de_DE"), "")

    def test_is_new_window(self) -> None:
        self.assertTrue(is_new(NOW - timedelta(days=7), NOW))
        self.assertFalse(is_new(NOW - timedelta(days=7, seconds=1), NOW))
        self.assertFalse(is_new(None, NOW))


class TrackingParamTestCase(unittest.TestCase):
    def test_appends_once(self) -> None:
        url = "https://www.example.de/video/123?ats=abc"
        once = add_tracking_param(url, "atc", "cal-site")
        self.assertEqual(once, "https://www.example.de/video/123?ats=abc&atc=cal-site")
        self.assertEqual(add_tracking_param(once, "atc", "cal-site"), once)

    def test_uses_question_mark_without_query(self) -> None:
        self.assertEqual(
            add_tracking_param("https://www.example.de/video/123", "atc", "x"),
            "https://www.example.de/video/123?atc=x",
        )

    def test_keeps_fragment_last(self) -> None:
        self.assertEqual(
            add_tracking_param("https://example.de/v?a=1#top", "atc", "x"),
            "https://example.de/v?a=1&atc=x#top",
        )

    def test_existing_parameter_with_other_value_is_left_alone(self) -> None:
        url = "https://example.de/v?atc=other"
        self.assertEqual(add_tracking_param(url, "atc", "x"), url)


class FieldResolutionTestCase(unittest.TestCase):
    def test_first_present_candidate_wins(self) -> None:
        raw = {"thumbUrl": "b.jpg", "preview": "c.jpg", "image": ""}
        self.assertEqual(resolve_field(raw, ("image", "thumbnail", "thumbUrl", "preview")), "b.jpg")

    def test_tags_accept_strings_and_named_objects(self) -> None:
        tags = extract_tags(["Solo", {"name": "Outdoor"}, {"id": 3}, "Solo", None])
        self.assertEqual(tags, ["Solo", "Outdoor", "Solo"])


class FieldNormalizerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.normalizer = FieldNormalizer(_build_config(), now=NOW)

    def test_normalizes_complete_item(self) -> None:
        raw = {
            "id": 991,
            "title": "Müller Girl!",
            "description": "Beschreibung",
            "image": "https://cdn.example.com/thumbs/991.png?x=1",
            "runtime": "5.30",
            "releasetime": str(int((NOW - timedelta(days=2)).timestamp())),
            "views": 1200,
            "likeCount": 45,
            "categories": [{"name": "Amateur"}, "Deutsch"],
            "url": "https://www.example.de/video/991?ats=abc",
            "quality": "HD",
        }

        video = self.normalizer.normalize(raw, 0)

        self.assertEqual(video.id, "991")
        self.assertEqual(video.slug, "mueller-girl")
        self.assertEqual(video.thumbnail, "https://cdn.example.com/thumbs/991.png?x=1")
        self.assertEqual(video.thumbnail_original, video.thumbnail)
        self.assertEqual(video.duration, 330)
        self.assertEqual(video.duration_formatted, "5:30")
        self.assertEqual(video.views, 1200)
        self.assertEqual(video.likes, 45)
        self.assertEqual(video.tags, ["Amateur", "Deutsch"])
        self.assertEqual(video.url, "https://www.example.de/video/991?ats=abc&atc=cal-example-rocks")
        self.assertTrue(video.is_hd)
        self.assertTrue(video.is_new)
        self.assertEqual(video.date_formatted, "08.03.2024")

    def test_defaults_for_sparse_item(self) -> None:
        video = self.normalizer.normalize({"releasetime": "garbage"}, 4)

        self.assertEqual(video.id, "video-4")
        self.assertEqual(video.slug, "video-4")
        self.assertEqual(video.title, "Untitled Video")
        self.assertEqual(video.description, "")
        self.assertIsNone(video.thumbnail)
        self.assertEqual(video.duration, 0)

    def test_non_finite_release_time_is_unknown(self) -> None:
        for raw in (
            json.loads('{"releasetime": NaN, "title": "x"}'),
            json.loads('{"releasetime": Infinity, "title": "x"}'),
            json.loads('{"releasetime": 1e400, "title": "x"}'),
        ):
            with self.subTest(raw=raw):
                video = self.normalizer.normalize(raw, 0)
                self.assertEqual(video.date, format_iso(NOW))
                self.assertEqual(video.date_formatted, "")
                self.assertFalse(video.is_new)
        self.assertEqual(video.date, format_iso(NOW))
        self.assertEqual(video.date_formatted, "")
        self.assertFalse(video.is_new)
        self.assertEqual(video.tags, [])
        self.assertEqual(video.url, "https://www.example.de/video/video-4?atc=cal-example-rocks")

    def test_never_raises_on_odd_shapes(self) -> None:
        raw = {"id": None, "title": 12345, "views": "many", "categories": "Solo", "runtime": {"m": 1}}
        video = self.normalizer.normalize(raw, 1)
        self.assertEqual(video.slug, "12345")
        self.assertEqual(video.views, 0)
        self.assertEqual(video.tags, [])
        self.assertEqual(video.duration, 0)

    def test_normalize_all_keeps_order_and_unique_slugs(self) -> None:
        raw_items = [{"id": 1, "title": "Same"}, {"id": 2, "title": "Other"}, {"id": 3, "title": "Same"}]
        videos = self.normalizer.normalize_all(raw_items)
        self.assertEqual([video.id for video in videos], ["1", "2", "3"])
        self.assertEqual([video.slug for video in videos], ["same", "other", "same-2"])

    def test_normalize_profile(self) -> None:
        raw = {
            "u_id": 2796391,
            "nick": "TexasPatti",
            "vorname": "Patti",
            "u_alter": "34",
            "land": "de",
            "groesse": 168,
            "k_umfang": 80,
            "k_schale": "C",
            "rasintim": 1,
            "aussehen": ["Blond", "Kurvig"],
            "tatoos": 0,
            "images": {"bild1": "https://cdn.example.com/avatar.webp"},
            "beschr": "Hallo!",
            "url": "https://www.example.de/profil/2796391-TexasPatti",
        }

        profile = self.normalizer.normalize_profile(raw)

        self.assertIsNotNone(profile)
        self.assertEqual(profile.id, "2796391")
        self.assertEqual(profile.username, "TexasPatti")
        self.assertEqual(profile.name, "Patti")
        self.assertEqual(profile.age, 34)
        self.assertEqual(profile.country, "DE")
        self.assertEqual(profile.bust_size, "80C")
        self.assertEqual(profile.intimate, "Rasiert")
        self.assertEqual(profile.appearance, ["Blond", "Kurvig"])
        self.assertFalse(profile.has_tattoos)
        self.assertIsNone(profile.hair_color)
        self.assertEqual(profile.avatar, "https://cdn.example.com/avatar.webp")
        self.assertEqual(
            profile.profile_url,
            "https://www.example.de/profil/2796391-TexasPatti?atc=cal-example-rocks",
        )

    def test_normalize_profile_without_data(self) -> None:
        self.assertIsNone(self.normalizer.normalize_profile(None))
        self.assertIsNone(self.normalizer.normalize_profile({}))


if __name__ == "__main__":
    unittest.main()
